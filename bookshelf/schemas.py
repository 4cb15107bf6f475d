"""Request/response schemas."""
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from bookshelf.models import AppRole


class Principal(BaseModel):
    """The authenticated caller."""
    id: uuid.UUID
    email: str
    session_id: Optional[uuid.UUID] = None


class UserOut(BaseModel):
    id: uuid.UUID
    email: str
    full_name: Optional[str] = None

    model_config = {"from_attributes": True}


class TokenOut(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserOut


class SessionOut(BaseModel):
    id: uuid.UUID
    user: UserOut
    created_at: datetime
    expires_at: datetime


class ProfileOut(BaseModel):
    id: uuid.UUID
    email: Optional[str] = None
    full_name: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None


class RoleOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    role: AppRole

    model_config = {"from_attributes": True}


class RoleCreate(BaseModel):
    user_id: uuid.UUID
    role: AppRole


class BookOut(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    author: Optional[str] = None
    file_path: str
    file_size: int
    file_type: Optional[str] = None
    cover_url: Optional[str] = None
    uploaded_at: datetime

    model_config = {"from_attributes": True}


class StorageUsage(BaseModel):
    used: int
    limit: int
    percentage: float


class StorageUsedRequest(BaseModel):
    user_uuid: uuid.UUID


class HasRoleRequest(BaseModel):
    user_id: uuid.UUID
    role: AppRole
