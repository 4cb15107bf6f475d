"""
Tests for the books bucket, the local backend and the orphan report
"""
import uuid

import cloudinary
import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils
import pytest
import urllib3.exceptions

from bookshelf.errors import NotFound, ObjectTooLarge, PolicyViolation, StorageError
from bookshelf.library import object_path
from bookshelf.storage import Bucket, CloudinaryStorage, LocalStorage
from scripts.orphan_report import find_orphans


@pytest.fixture
def local_bucket(tmp_path):
    return Bucket(LocalStorage(tmp_path, "books"))


class TestBucket:

    def test_round_trip_on_local_disk(self, local_bucket):
        user_id = uuid.uuid4()
        path = f"{user_id}/1.pdf"
        local_bucket.upload(user_id, path, b"pages")
        assert local_bucket.download(user_id, path) == b"pages"
        assert local_bucket.list() == [path]

    def test_upload_into_foreign_folder_rejected(self, local_bucket):
        with pytest.raises(PolicyViolation):
            local_bucket.upload(uuid.uuid4(), f"{uuid.uuid4()}/1.pdf", b"x")

    def test_foreign_object_is_not_found(self, local_bucket):
        owner, other = uuid.uuid4(), uuid.uuid4()
        local_bucket.upload(owner, f"{owner}/1.pdf", b"x")
        with pytest.raises(NotFound):
            local_bucket.download(other, f"{owner}/1.pdf")

    def test_remove_skips_foreign_objects(self, local_bucket):
        owner, other = uuid.uuid4(), uuid.uuid4()
        local_bucket.upload(owner, f"{owner}/1.pdf", b"x")
        removed = local_bucket.remove(other, [f"{owner}/1.pdf"])
        assert removed == []
        assert local_bucket.list() == [f"{owner}/1.pdf"]

    def test_object_size_limit(self, tmp_path):
        bucket = Bucket(LocalStorage(tmp_path, "books"), file_size_limit=4)
        user_id = uuid.uuid4()
        with pytest.raises(ObjectTooLarge):
            bucket.upload(user_id, f"{user_id}/1.pdf", b"12345")

    def test_existing_object_is_not_overwritten(self, local_bucket):
        user_id = uuid.uuid4()
        local_bucket.upload(user_id, f"{user_id}/1.pdf", b"first")
        with pytest.raises(StorageError):
            local_bucket.upload(user_id, f"{user_id}/1.pdf", b"second")
        assert local_bucket.download(user_id, f"{user_id}/1.pdf") == b"first"

    def test_path_escaping_the_bucket_rejected(self, local_bucket):
        user_id = uuid.uuid4()
        with pytest.raises(StorageError):
            local_bucket.upload(user_id, f"{user_id}/../../escape.pdf", b"x")

    def test_removing_missing_object_is_quiet(self, local_bucket):
        user_id = uuid.uuid4()
        assert local_bucket.remove(user_id, [f"{user_id}/missing.pdf"]) == [f"{user_id}/missing.pdf"]


def test_object_path_uses_timestamp_and_extension():
    user_id = uuid.uuid4()
    assert object_path(user_id, "Dune.PDF", timestamp=1700000000000) == f"{user_id}/1700000000000.PDF"


def test_orphan_report(db, local_bucket, alice):
    from bookshelf.models import Book

    user_id = uuid.UUID(alice["id"])
    local_bucket.upload(user_id, f"{user_id}/kept.pdf", b"x")
    local_bucket.upload(user_id, f"{user_id}/stray.pdf", b"x")
    db.add_all([
        Book(user_id=user_id, title="Kept", file_path=f"{user_id}/kept.pdf", file_size=1),
        Book(user_id=user_id, title="Lost", file_path=f"{user_id}/lost.pdf", file_size=1),
    ])
    db.commit()

    stray_objects, stray_rows = find_orphans(db, local_bucket)
    assert stray_objects == [f"{user_id}/stray.pdf"]
    assert stray_rows == [f"{user_id}/lost.pdf"]


def test_local_write_error_leaves_no_partial_file(tmp_path, monkeypatch):
    import pathlib

    backend = LocalStorage(tmp_path, "books")
    real_write = pathlib.Path.write_bytes

    def half_write(self, data):
        real_write(self, data[:1])
        raise OSError("disk full")

    monkeypatch.setattr(pathlib.Path, "write_bytes", half_write)
    with pytest.raises(StorageError):
        backend.upload("u/1.pdf", b"pages")
    monkeypatch.undo()
    assert backend.list() == []


class FakeResponse:

    def __init__(self, status, data=b""):
        self.status = status
        self.data = data


class FakePool:

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.urls = []

    def request(self, method, url):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def cloudinary_env(monkeypatch):
    monkeypatch.delenv("CLOUDINARY_URL", raising=False)
    monkeypatch.setenv("CLOUDINARY_CLOUD_NAME", "demo")
    monkeypatch.setenv("CLOUDINARY_API_KEY", "key")
    monkeypatch.setenv("CLOUDINARY_API_SECRET", "secret")


class TestCloudinaryStorage:

    def test_missing_credentials(self, monkeypatch):
        for name in ("CLOUDINARY_URL", "CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
            monkeypatch.delenv(name, raising=False)
        with pytest.raises(StorageError):
            CloudinaryStorage("books")

    def test_upload_sends_private_raw_resource(self, cloudinary_env, monkeypatch):
        calls = []

        def fake_upload(file, **options):
            calls.append((file.read(), options))
            return {"public_id": options["public_id"]}

        monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
        CloudinaryStorage("books").upload("u/1.pdf", b"pages")

        data, options = calls[0]
        assert data == b"pages"
        assert options["public_id"] == "books/u/1.pdf"
        assert options["resource_type"] == "raw"
        assert options["type"] == "private"
        assert options["overwrite"] is False

    def test_upload_onto_existing_asset_fails(self, cloudinary_env, monkeypatch):
        monkeypatch.setattr(cloudinary.uploader, "upload", lambda file, **options: {"existing": True})
        with pytest.raises(StorageError):
            CloudinaryStorage("books").upload("u/1.pdf", b"pages")

    def test_upload_api_error(self, cloudinary_env, monkeypatch):
        def fail(file, **options):
            raise cloudinary.exceptions.Error("rate limited")

        monkeypatch.setattr(cloudinary.uploader, "upload", fail)
        with pytest.raises(StorageError):
            CloudinaryStorage("books").upload("u/1.pdf", b"pages")

    def test_download(self, cloudinary_env, monkeypatch):
        monkeypatch.setattr(cloudinary.utils, "private_download_url", lambda public_id, fmt, **options: f"https://dl/{public_id}")
        backend = CloudinaryStorage("books")
        backend.http = FakePool(FakeResponse(200, b"pages"))
        assert backend.download("u/1.pdf") == b"pages"
        assert backend.http.urls == ["https://dl/books/u/1.pdf"]

    @pytest.mark.parametrize("status,error", [(404, NotFound), (500, StorageError)])
    def test_download_bad_status(self, cloudinary_env, monkeypatch, status, error):
        monkeypatch.setattr(cloudinary.utils, "private_download_url", lambda public_id, fmt, **options: "https://dl/x")
        backend = CloudinaryStorage("books")
        backend.http = FakePool(FakeResponse(status))
        with pytest.raises(error):
            backend.download("u/1.pdf")

    def test_download_network_error(self, cloudinary_env, monkeypatch):
        monkeypatch.setattr(cloudinary.utils, "private_download_url", lambda public_id, fmt, **options: "https://dl/x")
        backend = CloudinaryStorage("books")
        backend.http = FakePool(error=urllib3.exceptions.MaxRetryError(None, "https://dl/x"))
        with pytest.raises(StorageError):
            backend.download("u/1.pdf")

    def test_remove(self, cloudinary_env, monkeypatch):
        calls = []
        monkeypatch.setattr(cloudinary.api, "delete_resources", lambda ids, **options: calls.append((ids, options)))
        backend = CloudinaryStorage("books")
        backend.remove([])
        backend.remove(["u/1.pdf", "u/2.pdf"])
        assert calls == [(["books/u/1.pdf", "books/u/2.pdf"], {"resource_type": "raw", "type": "private"})]

    def test_list_follows_cursor_and_strips_bucket(self, cloudinary_env, monkeypatch):
        pages = {
            None: {"resources": [{"public_id": "books/u/2.pdf"}], "next_cursor": "c1"},
            "c1": {"resources": [{"public_id": "books/u/1.pdf"}]},
        }
        prefixes = []

        def fake_resources(**options):
            prefixes.append(options["prefix"])
            return pages[options.get("next_cursor")]

        monkeypatch.setattr(cloudinary.api, "resources", fake_resources)
        assert CloudinaryStorage("books").list("u/") == ["u/1.pdf", "u/2.pdf"]
        assert prefixes == ["books/u/", "books/u/"]
