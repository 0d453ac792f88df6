"""SQLModel storage models.

The catalog is schemaless: every entity is kept as a JSON document in the
single `documents` table, addressed by `(collection, doc_id)`. Record
shapes live in `schemas`; this module only defines the storage row.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(SQLModel, table=True):
    """A stored document.

    Fields:
    - `collection`: collection name (see `database.COLLECTIONS`)
    - `doc_id`: document key, generated or caller supplied (app bundle ids)
    - `data`: the field map, JSON encoded by the store
    """
    __tablename__ = "documents"

    collection: str = Field(primary_key=True, max_length=64)
    doc_id: str = Field(primary_key=True, max_length=200)
    data: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
