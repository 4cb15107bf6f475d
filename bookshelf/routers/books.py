"""Book upload, listing, download and delete."""
import uuid
from typing import List
from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, Response, UploadFile, status
from sqlalchemy.orm import Session

from bookshelf import library
from bookshelf.auth import get_current_user
from bookshelf.database import get_db
from bookshelf.schemas import BookOut, Principal, StorageUsage
from bookshelf.storage import Bucket, get_bucket

router = APIRouter(tags=["books"])


@router.get("/books", response_model=List[BookOut])
def list_books(current_user: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return library.list_books(db, current_user.id)


@router.post("/books", response_model=BookOut, status_code=status.HTTP_201_CREATED)
async def upload_book(
    file: UploadFile,
    title: str = Form(...),
    author: str = Form(None),
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
    bucket: Bucket = Depends(get_bucket),
):
    data = await file.read()
    return library.upload_book(
        db,
        bucket,
        current_user.id,
        title=title,
        author=author,
        filename=file.filename,
        data=data,
        content_type=file.content_type,
    )


@router.get("/books/{book_id}", response_model=BookOut)
def get_book(book_id: uuid.UUID, current_user: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return library.get_book(db, current_user.id, book_id)


@router.get("/books/{book_id}/download")
def download_book(
    book_id: uuid.UUID,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
    bucket: Bucket = Depends(get_bucket),
):
    filename, content_type, data = library.download_book(db, bucket, current_user.id, book_id)
    return Response(
        content=data,
        media_type=content_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )


@router.delete("/books/{book_id}")
def delete_book(
    book_id: uuid.UUID,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
    bucket: Bucket = Depends(get_bucket),
):
    library.delete_book(db, bucket, current_user.id, book_id)
    return {"message": "Book deleted successfully"}


@router.get("/storage", response_model=StorageUsage)
def storage_usage(current_user: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return library.storage_usage(db, current_user.id)
