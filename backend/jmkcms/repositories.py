"""Repository classes mapping catalog records to store documents.

Each repository is small and focused on a single collection (apps,
concepts, lectures, affiliate ads, contact submissions). Repositories
apply defaults, stamp timestamps and convert documents back into schema
records. They raise `StoreError` and never build user-facing messages;
that is the job of the handlers in `services`.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel

from . import database, schemas
from .database import DocumentSnapshot, DocumentStore
from .utils.formatting import normalize_iso_date, parse_timestamp

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DocumentRepository:
    """Shared get/update/delete for one collection."""
    collection: str
    record: Type[BaseModel]
    key_field = "id"
    created_field = "created_at"
    updated_field = "updated_at"

    def __init__(self, store: DocumentStore):
        self.store = store

    def _to_record(self, snap: DocumentSnapshot):
        data = snap.to_dict()
        data[self.key_field] = snap.id
        for field in (self.created_field, self.updated_field):
            data[field] = parse_timestamp(data.get(field))
        return self.record.model_validate(data)

    def _stamped(self, data: Dict[str, Any]) -> Dict[str, Any]:
        now = _now()
        return {**data, self.created_field: now, self.updated_field: now}

    def get(self, doc_id: str):
        """Return the record for `doc_id` or `None` if not found."""
        snap = self.store.get(self.collection, doc_id)
        if not snap.exists:
            return None
        return self._to_record(snap)

    def exists(self, doc_id: str) -> bool:
        return self.store.get(self.collection, doc_id).exists

    def update(self, doc_id: str, fields: Dict[str, Any]) -> None:
        """Write only `fields` (plus the updated timestamp) to an existing document."""
        self.store.update(self.collection, doc_id, {**fields, self.updated_field: _now()})

    def delete(self, doc_id: str) -> None:
        self.store.delete(self.collection, doc_id)

    def _query(self, **kwargs) -> list:
        return [self._to_record(s) for s in self.store.query(self.collection, **kwargs)]


class AppRepository(DocumentRepository):
    """Apps are keyed by their user-chosen `bundle_id`."""
    collection = database.APPS
    record = schemas.App
    key_field = "bundle_id"

    def create(self, payload: schemas.AppIn) -> str:
        self.store.set(self.collection, payload.bundle_id, self._stamped(payload.model_dump()))
        return payload.bundle_id

    def list_all(self) -> List[schemas.App]:
        """All apps, drafts included, newest first."""
        return self._query(order_by=self.created_field, descending=True)

    def list_published(self) -> List[schemas.App]:
        """Published apps, featured first then by name."""
        apps = self._query(where={"status": "published"})
        return sorted(apps, key=lambda a: (not a.is_featured, a.app_name))


class ConceptRepository(DocumentRepository):
    collection = database.CONCEPTS
    record = schemas.Concept

    def create(self, payload: schemas.ConceptIn) -> str:
        return self.store.add(self.collection, self._stamped(payload.model_dump()))

    def list_by_app(self, app_id: str) -> List[schemas.Concept]:
        """Concepts of an app, most important first."""
        concepts = self._query(where={"app_id": app_id})
        return sorted(concepts, key=lambda c: (-c.importance, c.title))

    def list_recent(self, limit: int = 50) -> List[schemas.Concept]:
        return self._query(order_by=self.created_field, descending=True, limit=limit)


class LectureRepository(DocumentRepository):
    collection = database.LECTURES
    record = schemas.Lecture

    def create(self, payload: schemas.LectureIn) -> str:
        return self.store.add(self.collection, self._stamped(payload.model_dump()))

    def list_by_app(self, app_id: str) -> List[schemas.Lecture]:
        """Lectures of an app in the order they were added."""
        lectures = self._query(where={"app_id": app_id})
        return sorted(lectures, key=lambda l: l.created_at or _EPOCH)

    def list_recent(self, limit: int = 50) -> List[schemas.Lecture]:
        return self._query(order_by=self.created_field, descending=True, limit=limit)


class AffiliateAdRepository(DocumentRepository):
    """Affiliate ads use camelCase document keys."""
    collection = database.AFFILIATE_ADS
    record = schemas.AffiliateAd
    created_field = "createdAt"
    updated_field = "updatedAt"

    def create(self, payload: schemas.AffiliateAdIn) -> str:
        data = payload.model_dump(by_alias=True)
        data["startDate"] = normalize_iso_date(data["startDate"])
        data["endDate"] = normalize_iso_date(data["endDate"])
        data["impressions"] = 0
        data["clicks"] = 0
        return self.store.add(self.collection, self._stamped(data))

    def update(self, doc_id: str, fields: Dict[str, Any]) -> None:
        for key in ("startDate", "endDate"):
            if key in fields:
                fields = {**fields, key: normalize_iso_date(fields[key])}
        super().update(doc_id, fields)

    def is_active(self, doc_id: str) -> Optional[bool]:
        """Current `isActive` flag, or `None` when the ad does not exist."""
        snap = self.store.get(self.collection, doc_id)
        if not snap.exists:
            return None
        return bool(snap.to_dict().get("isActive"))

    def list_all(self) -> List[schemas.AffiliateAd]:
        """All ads, highest priority first."""
        return self._query(order_by="priority", descending=True)

    def list_active(self) -> List[schemas.AffiliateAd]:
        ads = self._query(where={"isActive": True})
        return sorted(ads, key=lambda a: a.priority, reverse=True)

    def increment(self, doc_id: str, counter: str) -> None:
        self.store.increment(self.collection, doc_id, counter)


class ContactSubmissionRepository(DocumentRepository):
    collection = database.CONTACT_SUBMISSIONS
    record = schemas.ContactSubmission

    def create(self, name: str, email: str, subject: str, message: str) -> str:
        data = {
            "name": name,
            "email": email,
            "subject": subject,
            "message": message,
            "status": "pending",
        }
        return self.store.add(self.collection, self._stamped(data))

    def list_recent(self, status: Optional[str] = None, limit: int = 100) -> List[schemas.ContactSubmission]:
        if status:
            # equality plus ordering on another field needs a composite index
            # in Firestore, so the status filter sorts client side
            subs = self._query(where={"status": status})
            return sorted(subs, key=lambda s: s.created_at or _EPOCH, reverse=True)[:limit]
        return self._query(order_by=self.created_field, descending=True, limit=limit)
