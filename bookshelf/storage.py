"""Object storage for book files.

A :class:`Bucket` applies the object policy and the per-object size limit,
then hands the bytes to a backend: the local filesystem for dev and tests,
Cloudinary for production.
"""
import io
import logging
import os
from functools import lru_cache
from pathlib import Path

import cloudinary
import cloudinary.api
import cloudinary.uploader
import cloudinary.utils
import urllib3
import urllib3.exceptions

from bookshelf import config
from bookshelf.errors import NotFound, ObjectTooLarge, PolicyViolation, StorageError
from bookshelf.policy import can_access_object

logger = logging.getLogger(__name__)


class LocalStorage:
    """Stores objects as files under ``<root>/<bucket>/``."""

    def __init__(self, root, bucket: str):
        self.base_path = Path(root) / bucket
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self.base_path / path).resolve()
        if self.base_path.resolve() not in target.parents:
            raise StorageError(f"Invalid object path: {path}")
        return target

    def upload(self, path: str, data: bytes, content_type: str = None):
        target = self._resolve(path)
        if target.exists():
            raise StorageError("The resource already exists")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            target.unlink(missing_ok=True)
            raise StorageError(f"Local write failed: {e}") from e

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFound("Object not found")
        return target.read_bytes()

    def remove(self, paths):
        for path in paths:
            target = self._resolve(path)
            if target.exists():
                os.remove(target)

    def list(self, prefix: str = ""):
        return sorted(
            p.relative_to(self.base_path).as_posix()
            for p in self.base_path.rglob("*")
            if p.is_file() and p.relative_to(self.base_path).as_posix().startswith(prefix)
        )


class CloudinaryStorage:
    """Private raw resources, public_id ``<bucket>/<path>``."""

    def __init__(self, bucket: str):
        if not (os.getenv("CLOUDINARY_URL") or (os.getenv("CLOUDINARY_API_KEY") and os.getenv("CLOUDINARY_API_SECRET") and os.getenv("CLOUDINARY_CLOUD_NAME"))):
            raise StorageError("Cloudinary API credentials not configured. Set CLOUDINARY_URL or CLOUDINARY_API_KEY/CLOUDINARY_API_SECRET/CLOUDINARY_CLOUD_NAME.")
        if not os.getenv("CLOUDINARY_URL"):
            cloudinary.config(
                cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
                api_key=os.getenv("CLOUDINARY_API_KEY"),
                api_secret=os.getenv("CLOUDINARY_API_SECRET"),
                secure=True,
            )
        self.bucket = bucket
        self.http = urllib3.PoolManager()

    def _public_id(self, path: str) -> str:
        return f"{self.bucket}/{path}"

    def upload(self, path: str, data: bytes, content_type: str = None):
        try:
            result = cloudinary.uploader.upload(
                io.BytesIO(data),
                public_id=self._public_id(path),
                resource_type="raw",
                type="private",
                overwrite=False,
            )
        except Exception as e:
            raise StorageError(f"Cloudinary upload failed: {e}") from e
        # overwrite=False hands back the old asset instead of failing
        if result.get("existing"):
            raise StorageError("The resource already exists")

    def download(self, path: str) -> bytes:
        url = cloudinary.utils.private_download_url(
            self._public_id(path), "", resource_type="raw", type="private"
        )
        try:
            resp = self.http.request("GET", url)
        except urllib3.exceptions.HTTPError as e:
            raise StorageError(f"Cloudinary download failed: {e}") from e
        if resp.status == 404:
            raise NotFound("Object not found")
        if resp.status != 200:
            raise StorageError(f"Cloudinary download failed with status {resp.status}")
        return resp.data

    def remove(self, paths):
        if not paths:
            return
        try:
            cloudinary.api.delete_resources(
                [self._public_id(p) for p in paths], resource_type="raw", type="private"
            )
        except Exception as e:
            raise StorageError(f"Cloudinary delete failed: {e}") from e

    def list(self, prefix: str = ""):
        out = []
        cursor = None
        while True:
            kwargs = {"next_cursor": cursor} if cursor else {}
            result = cloudinary.api.resources(
                resource_type="raw",
                type="private",
                prefix=self._public_id(prefix),
                max_results=500,
                **kwargs,
            )
            out.extend(r["public_id"][len(self.bucket) + 1:] for r in result.get("resources", []))
            cursor = result.get("next_cursor")
            if not cursor:
                return sorted(out)


class Bucket:
    """The private ``books`` bucket as seen by one caller at a time."""

    def __init__(self, backend, name: str = config.BUCKET_NAME, file_size_limit: int = config.STORAGE_LIMIT_BYTES):
        self.backend = backend
        self.name = name
        self.public = False
        self.file_size_limit = file_size_limit

    def upload(self, user_id, path: str, data: bytes, content_type: str = None):
        if not can_access_object(user_id, self.name, path):
            raise PolicyViolation("new row violates row-level security policy")
        if len(data) > self.file_size_limit:
            raise ObjectTooLarge()
        self.backend.upload(path, data, content_type)
        logger.info("stored %s/%s (%d bytes)", self.name, path, len(data))

    def download(self, user_id, path: str) -> bytes:
        if not can_access_object(user_id, self.name, path):
            raise NotFound("Object not found")
        return self.backend.download(path)

    def remove(self, user_id, paths):
        """Remove the caller's objects among ``paths``; others are skipped silently."""
        allowed = [p for p in paths if can_access_object(user_id, self.name, p)]
        self.backend.remove(allowed)
        return allowed

    def list(self, prefix: str = ""):
        # Unscoped; maintenance scripts only.
        return self.backend.list(prefix)


def make_backend(kind: str = None):
    kind = kind or config.STORAGE_BACKEND
    if kind == "local":
        return LocalStorage(config.LOCAL_STORAGE_PATH, config.BUCKET_NAME)
    if kind == "cloudinary":
        return CloudinaryStorage(config.BUCKET_NAME)
    raise ValueError(f"Unknown storage backend: {kind}")


@lru_cache(maxsize=1)
def get_bucket() -> Bucket:
    """FastAPI dependency returning the process-wide bucket."""
    return Bucket(make_backend())
