"""Shared fixtures: in-memory MongoDB, temporary blob storage and an API client."""
import os
import tempfile
import uuid

# main creates and mounts its upload directory at import time
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="storefront-uploads-"))

import mongomock
import pytest
from fastapi.testclient import TestClient

import main
from auth import AuthService
from database import get_db
from events import EventChannel
from storage import BlobStorage

STORAGE_URL = "http://testserver/uploads"
ADMIN_EMAIL = "admin@banglabazar.com"
ADMIN_PASSWORD = "s3cret-pass"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()[f"storefront_{uuid.uuid4().hex[:8]}"]


@pytest.fixture
def storage(tmp_path) -> BlobStorage:
    return BlobStorage(tmp_path / "uploads", STORAGE_URL)


@pytest.fixture
def auth_events() -> EventChannel:
    return EventChannel("auth")


@pytest.fixture
def auth_service(mongo_db, auth_events) -> AuthService:
    return AuthService(mongo_db, "test-secret", auth_events, ttl_seconds=3600)


@pytest.fixture
def admin(auth_service) -> str:
    return auth_service.create_admin(ADMIN_EMAIL, "Store Admin", ADMIN_PASSWORD)


@pytest.fixture(name="client")
def client_fixture(mongo_db, storage, auth_service):
    main.app.dependency_overrides[get_db] = lambda: mongo_db
    main.app.dependency_overrides[main.get_storage] = lambda: storage
    main.app.dependency_overrides[main.get_auth_service] = lambda: auth_service
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(client, admin) -> dict:
    response = client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}
