"""Profile, role management and the two remote-callable functions."""
import uuid
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookshelf.auth import get_current_user
from bookshelf.database import get_db
from bookshelf.errors import LibraryError, NotFound
from bookshelf.library import get_user_storage_used
from bookshelf.models import Profile, UserRole
from bookshelf.policy import DELETE, SELECT, UPDATE, check_insert, has_role, row_filter
from bookshelf.schemas import HasRoleRequest, Principal, ProfileOut, ProfileUpdate, RoleCreate, RoleOut, StorageUsedRequest

router = APIRouter(tags=["account"])


@router.get("/profile", response_model=ProfileOut)
def get_profile(current_user: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    profile = db.scalar(select(Profile).where(row_filter(Profile, current_user.id, SELECT)))
    if profile is None:
        raise NotFound("Profile not found")
    return profile


@router.patch("/profile", response_model=ProfileOut)
def update_profile(
    body: ProfileUpdate,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = db.execute(
        update(Profile)
        .where(Profile.id == current_user.id, row_filter(Profile, current_user.id, UPDATE))
        .values(full_name=body.full_name)
    )
    db.commit()
    if result.rowcount == 0:
        raise NotFound("Profile not found")
    return db.get(Profile, current_user.id)


@router.get("/roles", response_model=List[RoleOut])
def list_roles(current_user: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return db.scalars(select(UserRole).where(row_filter(UserRole, current_user.id, SELECT))).all()


@router.post("/roles", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
def grant_role(body: RoleCreate, current_user: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    role = UserRole(id=uuid.uuid4(), user_id=body.user_id, role=body.role)
    check_insert(db, role, current_user.id)
    db.add(role)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise LibraryError("Role already assigned or user does not exist")
    return role


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_role(role_id: uuid.UUID, current_user: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    result = db.execute(
        delete(UserRole).where(UserRole.id == role_id, row_filter(UserRole, current_user.id, DELETE))
    )
    db.commit()
    if result.rowcount == 0:
        raise NotFound("Role not found")


@router.post("/rpc/get_user_storage_used")
def rpc_get_user_storage_used(
    body: StorageUsedRequest,
    current_user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_user_storage_used(db, body.user_uuid)


@router.post("/rpc/has_role")
def rpc_has_role(body: HasRoleRequest, current_user: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    return has_role(db, body.user_id, body.role)
