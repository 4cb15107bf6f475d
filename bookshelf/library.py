"""Upload, list, download and delete flows for a user's books.

Upload and delete each touch storage and the database in two separate
steps. Nothing here makes them atomic: a failed metadata insert is
compensated by removing the fresh object, and a failed object removal after
a delete is only logged, leaving the object orphaned.
"""
import logging
import time

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from bookshelf.config import ACCEPTED_EXTENSIONS, STORAGE_LIMIT_BYTES
from bookshelf.errors import (
    DeleteFailed, LibraryError, MetadataError, NotFound, ObjectTooLarge, PolicyViolation, QuotaExceeded, StorageError,
    UnsupportedFileType,
)
from bookshelf.models import Book
from bookshelf.policy import DELETE, SELECT, check_insert, row_filter
from bookshelf.storage import Bucket

logger = logging.getLogger(__name__)


def get_user_storage_used(db: Session, user_uuid) -> int:
    """Total bytes of all books owned by ``user_uuid``."""
    # postgres sums bigint into numeric
    return int(db.scalar(
        select(func.coalesce(func.sum(Book.file_size), 0)).where(Book.user_id == user_uuid)
    ))


def storage_usage(db: Session, user_id) -> dict:
    used = get_user_storage_used(db, user_id)
    return {
        "used": used,
        "limit": STORAGE_LIMIT_BYTES,
        "percentage": round(used / STORAGE_LIMIT_BYTES * 100, 2),
    }


def file_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1]


def object_path(user_id, filename: str, timestamp: int = None) -> str:
    if timestamp is None:
        timestamp = time.time_ns() // 1000
    return f"{user_id}/{timestamp}.{file_extension(filename)}"


def list_books(db: Session, user_id):
    return db.scalars(
        select(Book)
        .where(row_filter(Book, user_id, SELECT))
        .order_by(Book.uploaded_at.desc())
    ).all()


def get_book(db: Session, user_id, book_id) -> Book:
    book = db.scalar(select(Book).where(Book.id == book_id, row_filter(Book, user_id, SELECT)))
    if book is None:
        raise NotFound("Book not found")
    return book


def upload_book(
    db: Session,
    bucket: Bucket,
    user_id,
    title: str,
    filename: str,
    data: bytes,
    author: str = None,
    content_type: str = None,
) -> Book:
    title = (title or "").strip()
    if not title:
        raise LibraryError("Title is required")
    if not filename:
        raise LibraryError("Please select a file")

    size = len(data)
    used = get_user_storage_used(db, user_id)
    if used + size > STORAGE_LIMIT_BYTES:
        logger.info("upload rejected for %s: %d + %d bytes over quota", user_id, used, size)
        raise QuotaExceeded()

    if file_extension(filename).lower() not in ACCEPTED_EXTENSIONS:
        raise UnsupportedFileType(f"Unsupported file type: {filename}")

    path = object_path(user_id, filename)
    try:
        bucket.upload(user_id, path, data, content_type)
    except (ObjectTooLarge, PolicyViolation):
        raise
    except Exception as e:
        logger.warning("upload of %s failed: %s", path, e)
        raise StorageError("Failed to upload file") from e

    book = Book(
        user_id=user_id,
        title=title,
        author=author or None,
        file_path=path,
        file_size=size,
        file_type=content_type,
    )
    try:
        check_insert(db, book, user_id)
        db.add(book)
        db.commit()
    except Exception as e:
        db.rollback()
        _discard_object(bucket, user_id, path)
        raise MetadataError() from e
    db.refresh(book)
    return book


def _discard_object(bucket: Bucket, user_id, path: str):
    try:
        bucket.remove(user_id, [path])
    except Exception:
        logger.exception("could not remove %s after failed metadata insert", path)


def download_book(db: Session, bucket: Bucket, user_id, book_id):
    """Returns ``(filename, content_type, data)``."""
    book = get_book(db, user_id, book_id)
    try:
        data = bucket.download(user_id, book.file_path)
    except Exception as e:
        logger.warning("download of %s failed: %s", book.file_path, e)
        raise StorageError("Failed to download book") from e
    filename = f"{book.title}.{file_extension(book.file_path)}"
    return filename, book.file_type or "application/octet-stream", data


def delete_book(db: Session, bucket: Bucket, user_id, book_id):
    path = db.scalar(
        select(Book.file_path).where(Book.id == book_id, row_filter(Book, user_id, DELETE))
    )
    if path is None:
        raise NotFound("Book not found")
    try:
        db.execute(delete(Book).where(Book.id == book_id, row_filter(Book, user_id, DELETE)))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("delete of book %s failed", book_id)
        raise DeleteFailed() from e

    try:
        bucket.remove(user_id, [path])
    except Exception:
        logger.exception("Storage deletion error for %s", path)
