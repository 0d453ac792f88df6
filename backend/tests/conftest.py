import os

os.environ.setdefault("ENV", "dev")
os.environ.setdefault("DOCUMENT_STORE", "sql")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from jmkcms import main
from jmkcms.config import settings
from jmkcms.database import SQLDocumentStore, get_document_store

ADMIN_PASSWORD = "test-password"


@pytest.fixture()
def store():
    """A fresh in-memory document store per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return SQLDocumentStore(engine)


@pytest.fixture()
def client(store, monkeypatch):
    """TestClient wired to the in-memory store with a known admin password."""
    monkeypatch.setattr(settings, "ADMIN_PASSWORD", ADMIN_PASSWORD)
    monkeypatch.setattr(settings, "SESSION_COOKIE_SECURE", False)
    main._login_limiter.reset()
    main._contact_limiter.reset()
    main.app.dependency_overrides[get_document_store] = lambda: store
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture()
def admin_client(client):
    r = client.post("/admin/login", json={"password": ADMIN_PASSWORD})
    assert r.status_code == 200
    assert r.json()["success"] is True
    return client
