"""
Pytest configuration and fixtures for the API tests.

The app reads its configuration from the environment at import time, so the
temporary database and storage directory are set up before importing it.
"""
import os
import shutil
import tempfile

_tmp = tempfile.mkdtemp(prefix="bookshelf-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_tmp}/test.db"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["LOCAL_STORAGE_PATH"] = os.path.join(_tmp, "storage")
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from fastapi.testclient import TestClient

from bookshelf.database import Base, SessionLocal, engine
from bookshelf.errors import NotFound, StorageError
from bookshelf.main import app
from bookshelf.storage import Bucket, get_bucket


class MemoryBackend:
    """In-memory storage backend that records every call."""

    def __init__(self, fail_upload=False, fail_download=False, fail_remove=False):
        self.objects = {}
        self.calls = []
        self.fail_upload = fail_upload
        self.fail_download = fail_download
        self.fail_remove = fail_remove

    def upload(self, path, data, content_type=None):
        self.calls.append(("upload", path))
        if self.fail_upload:
            raise StorageError("upload refused")
        self.objects[path] = data

    def download(self, path):
        self.calls.append(("download", path))
        if self.fail_download:
            raise StorageError("download refused")
        if path not in self.objects:
            raise NotFound("Object not found")
        return self.objects[path]

    def remove(self, paths):
        self.calls.append(("remove", list(paths)))
        if self.fail_remove:
            raise StorageError("remove refused")
        for p in paths:
            self.objects.pop(p, None)

    def list(self, prefix=""):
        return sorted(p for p in self.objects if p.startswith(prefix))


@pytest.fixture(autouse=True)
def clean_state():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    shutil.rmtree(os.environ["LOCAL_STORAGE_PATH"], ignore_errors=True)
    get_bucket.cache_clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def memory_backend():
    """Routes the app's bucket to a fresh in-memory backend."""
    backend = MemoryBackend()
    bucket = Bucket(backend)
    app.dependency_overrides[get_bucket] = lambda: bucket
    return backend


def register(client, email, password="secret123", full_name=None):
    """Sign up and sign in; returns the user id, email and auth headers."""
    resp = client.post("/auth/signup", json={"email": email, "password": password, "full_name": full_name})
    assert resp.status_code == 201, resp.text
    user_id = resp.json()["id"]
    resp = client.post("/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    token = resp.json()["token"]
    return {"id": user_id, "email": email, "headers": {"Authorization": f"Bearer {token}"}}


@pytest.fixture
def alice(client):
    return register(client, "alice@example.com", full_name="Alice")


@pytest.fixture
def bob(client):
    return register(client, "bob@example.com", full_name="Bob")


def upload(client, user, title="Dune", author="Frank Herbert", filename="dune.pdf", data=b"%PDF-1.4 dune"):
    return client.post(
        "/books",
        data={"title": title, "author": author} if author is not None else {"title": title},
        files={"file": (filename, data, "application/pdf")},
        headers=user["headers"],
    )
