#!/usr/bin/env python3
"""
Report storage objects and book rows that have lost their counterpart.

Uploads and deletes are two separate steps, so a crash or a failed cleanup
can leave an object without a row, or a row without an object. This script
only reports them; nothing is changed.

Usage:
  - Ensure DATABASE_URL and STORAGE_BACKEND (plus CLOUDINARY_* when using
    cloudinary) match the running app
  - python scripts/orphan_report.py [--user USER_ID]
"""
import argparse
import sys

from sqlalchemy import select

from bookshelf.database import SessionLocal
from bookshelf.models import Book
from bookshelf.storage import Bucket, make_backend


def find_orphans(db, bucket, prefix=""):
    """Returns ``(objects_without_rows, rows_without_objects)``."""
    query = select(Book.file_path)
    if prefix:
        query = query.where(Book.file_path.startswith(prefix))
    paths = set(db.scalars(query).all())
    objects = set(bucket.list(prefix))
    return sorted(objects - paths), sorted(paths - objects)


def main(argv=None):
    p = argparse.ArgumentParser()
    p.add_argument("--user", help="limit to one user id")
    args = p.parse_args(argv)

    prefix = f"{args.user}/" if args.user else ""
    db = SessionLocal()
    try:
        stray_objects, stray_rows = find_orphans(db, Bucket(make_backend()), prefix)
    finally:
        db.close()

    print(f"Objects without a book row: {len(stray_objects)}")
    for path in stray_objects:
        print(f"  {path}")
    print(f"Book rows without an object: {len(stray_rows)}")
    for path in stray_rows:
        print(f"  {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
