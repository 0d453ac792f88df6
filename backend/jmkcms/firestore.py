"""Cloud Firestore implementation of `DocumentStore`.

Selected with `DOCUMENT_STORE=firestore`. The service account key is read
from `FIREBASE_SERVICE_ACCOUNT_KEY` as a JSON string.
"""

import contextlib
import json
import logging

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core.exceptions import GoogleAPIError, NotFound
from google.auth.exceptions import GoogleAuthError
from google.cloud.firestore_v1.base_query import FieldFilter

from .database import DocumentSnapshot, DocumentStore
from .errors import DocumentNotFound, StoreConfigurationError, StoreError

logger = logging.getLogger("jmkcms.store")


def parse_service_account(key_json: str) -> dict:
    """Parse a service account key, unescaping `\\n` in the private key."""
    if not key_json:
        raise StoreConfigurationError("FIREBASE_SERVICE_ACCOUNT_KEY environment variable is not set")
    try:
        account = json.loads(key_json)
    except ValueError as exc:
        raise StoreConfigurationError("FIREBASE_SERVICE_ACCOUNT_KEY must be valid JSON") from exc
    if not isinstance(account, dict):
        raise StoreConfigurationError("FIREBASE_SERVICE_ACCOUNT_KEY must be a JSON object")
    if account.get("private_key"):
        account["private_key"] = account["private_key"].replace("\\n", "\n")
    return account


class FirestoreDocumentStore(DocumentStore):
    """`DocumentStore` over a `google.cloud.firestore.Client`."""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_service_account(cls, key_json: str, project_id: str) -> "FirestoreDocumentStore":
        account = parse_service_account(key_json)
        try:
            app = firebase_admin.get_app()
        except ValueError:
            try:
                app = firebase_admin.initialize_app(credentials.Certificate(account), {"projectId": project_id})
            except ValueError as exc:
                raise StoreConfigurationError(f"invalid Firebase credentials: {exc}") from exc
        logger.info("Firebase Admin initialized for project %s", project_id)
        return cls(firestore.client(app))

    @contextlib.contextmanager
    def _calling(self, collection: str, doc_id: str = ""):
        try:
            yield
        except NotFound as exc:
            raise DocumentNotFound(collection, doc_id) from exc
        except (GoogleAPIError, GoogleAuthError) as exc:
            raise StoreError(str(exc)) from exc

    def _doc(self, collection, doc_id):
        return self.client.collection(collection).document(doc_id)

    def get(self, collection, doc_id):
        with self._calling(collection, doc_id):
            snap = self._doc(collection, doc_id).get()
        if not snap.exists:
            return DocumentSnapshot(doc_id, False, None)
        return DocumentSnapshot(snap.id, True, snap.to_dict())

    def add(self, collection, data):
        with self._calling(collection):
            _, ref = self.client.collection(collection).add(data)
        return ref.id

    def set(self, collection, doc_id, data):
        with self._calling(collection, doc_id):
            self._doc(collection, doc_id).set(data)

    def update(self, collection, doc_id, fields):
        with self._calling(collection, doc_id):
            self._doc(collection, doc_id).update(fields)

    def delete(self, collection, doc_id):
        with self._calling(collection, doc_id):
            self._doc(collection, doc_id).delete()

    def query(self, collection, where=None, order_by=None, descending=False, limit=None):
        q = self.client.collection(collection)
        for field, expected in (where or {}).items():
            q = q.where(filter=FieldFilter(field, "==", expected))
        if order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            q = q.order_by(order_by, direction=direction)
        if limit:
            q = q.limit(limit)
        with self._calling(collection):
            return [DocumentSnapshot(s.id, True, s.to_dict()) for s in q.stream()]

    def increment(self, collection, doc_id, field, amount=1):
        with self._calling(collection, doc_id):
            self._doc(collection, doc_id).update({field: firestore.Increment(amount)})
