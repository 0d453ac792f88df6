"""Document store interface and the SQLModel-backed implementation.

Entities are kept in a schemaless key-document store addressed by
collection name and document id. `DocumentStore` defines the small set of
calls the repositories rely on; `SQLDocumentStore` implements it on top of
a single SQLModel table and `firestore.FirestoreDocumentStore` on Cloud
Firestore.

`get_document_store` builds the process-wide store lazily from settings
and is used as a FastAPI dependency, so tests can override it with an
explicitly constructed in-memory store.
"""

import contextlib
import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from .config import settings
from .errors import DocumentNotFound, StoreConfigurationError, StoreError
from .models import Document

logger = logging.getLogger("jmkcms.store")

APPS = "apps"
CONCEPTS = "concepts"
LECTURES = "lectures"
AFFILIATE_ADS = "affiliate_ads"
CONTACT_SUBMISSIONS = "contact_submissions"
COLLECTIONS = (APPS, CONCEPTS, LECTURES, AFFILIATE_ADS, CONTACT_SUBMISSIONS)

_DATE_TAG = "$date"


class DocumentSnapshot(NamedTuple):
    """Result of a read: the id, an existence flag and the field map."""
    id: str
    exists: bool
    data: Optional[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.data or {})


class DocumentStore:
    """Collection/document CRUD used by the repositories.

    Implementations raise `StoreError` for any backend failure and
    `DocumentNotFound` when `update`/`increment` address a missing document.
    """

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        raise NotImplementedError

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id and return the id."""
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        """Create or fully overwrite the document at `doc_id`."""
        raise NotImplementedError

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        """Merge `fields` into an existing document."""
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing id is not an error."""
        raise NotImplementedError

    def query(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[DocumentSnapshot]:
        """Return documents whose fields equal every `where` item."""
        raise NotImplementedError

    def increment(self, collection: str, doc_id: str, field: str, amount: int = 1) -> None:
        raise NotImplementedError


def _encode(value: Any) -> Any:
    """Make a field value JSON safe, tagging datetimes so they round-trip."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {_DATE_TAG: value.isoformat()}
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_DATE_TAG}:
            return datetime.fromisoformat(value[_DATE_TAG])
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


def _sort_snapshots(docs: List[DocumentSnapshot], field: str, descending: bool) -> List[DocumentSnapshot]:
    # documents missing the field are dropped, matching Firestore ordering
    present = [d for d in docs if (d.data or {}).get(field) is not None]
    return sorted(present, key=lambda d: d.data[field], reverse=descending)


class SQLDocumentStore(DocumentStore):
    """`DocumentStore` over the SQLModel `documents` table."""

    def __init__(self, engine):
        self.engine = engine

    @contextlib.contextmanager
    def _session(self):
        try:
            with Session(self.engine) as session:
                yield session
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def _row(self, session: Session, collection: str, doc_id: str) -> Optional[Document]:
        return session.get(Document, (collection, doc_id))

    def get(self, collection, doc_id):
        with self._session() as session:
            row = self._row(session, collection, doc_id)
            if row is None:
                return DocumentSnapshot(doc_id, False, None)
            return DocumentSnapshot(doc_id, True, _decode(row.data))

    def add(self, collection, data):
        doc_id = uuid.uuid4().hex
        with self._session() as session:
            session.add(Document(collection=collection, doc_id=doc_id, data=_encode(data)))
            session.commit()
        return doc_id

    def set(self, collection, doc_id, data):
        with self._session() as session:
            row = self._row(session, collection, doc_id)
            if row is None:
                row = Document(collection=collection, doc_id=doc_id)
            row.data = _encode(data)
            row.updated_at = datetime.now(timezone.utc)
            session.add(row)
            session.commit()

    def update(self, collection, doc_id, fields):
        with self._session() as session:
            row = self._row(session, collection, doc_id)
            if row is None:
                raise DocumentNotFound(collection, doc_id)
            # reassign so the JSON column is flagged dirty
            row.data = {**row.data, **_encode(fields)}
            row.updated_at = datetime.now(timezone.utc)
            session.add(row)
            session.commit()

    def delete(self, collection, doc_id):
        with self._session() as session:
            row = self._row(session, collection, doc_id)
            if row is not None:
                session.delete(row)
                session.commit()

    def query(self, collection, where=None, order_by=None, descending=False, limit=None):
        with self._session() as session:
            rows = session.exec(select(Document).where(Document.collection == collection)).all()
            docs = [DocumentSnapshot(r.doc_id, True, _decode(r.data)) for r in rows]
        # equality filters and ordering run in Python; collections are small
        for field, expected in (where or {}).items():
            docs = [d for d in docs if d.data.get(field) == expected]
        if order_by:
            docs = _sort_snapshots(docs, order_by, descending)
        if limit:
            docs = docs[:limit]
        return docs

    def increment(self, collection, doc_id, field, amount=1):
        with self._session() as session:
            row = self._row(session, collection, doc_id)
            if row is None:
                raise DocumentNotFound(collection, doc_id)
            current = row.data.get(field) or 0
            row.data = {**row.data, field: current + amount}
            session.add(row)
            session.commit()


def create_sql_store(url: str) -> SQLDocumentStore:
    """Create an engine for `url`, make sure the table exists and wrap it."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    engine = create_engine(url, echo=False, connect_args=connect_args)
    SQLModel.metadata.create_all(engine)
    return SQLDocumentStore(engine)


_store: Optional[DocumentStore] = None
_store_lock = threading.Lock()


def get_document_store() -> DocumentStore:
    """Return the process-wide store, constructing it on first use.

    Construction failures propagate to the caller and are not retried on
    this call; the next call attempts construction again.
    """
    global _store
    if _store is not None:
        return _store
    with _store_lock:
        if _store is None:
            if settings.DOCUMENT_STORE == "firestore":
                from .firestore import FirestoreDocumentStore

                _store = FirestoreDocumentStore.from_service_account(
                    settings.FIREBASE_SERVICE_ACCOUNT_KEY, settings.FIREBASE_PROJECT_ID
                )
            else:
                try:
                    _store = create_sql_store(settings.DATABASE_URL)
                except SQLAlchemyError as exc:
                    raise StoreConfigurationError(f"cannot open {settings.DATABASE_URL}: {exc}") from exc
            logger.info("document store initialized (%s)", settings.DOCUMENT_STORE)
    return _store
