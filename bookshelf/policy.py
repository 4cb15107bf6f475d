"""Row and object access policy.

Every table carries a small allow-list of rules keyed by action. A rule's
``using`` builds a SQL predicate for the caller, which is ANDed into every
select, update and delete, so rows outside the rules simply do not exist for
that caller. A rule's ``check`` is evaluated against new rows before insert
and raises :class:`PolicyViolation` when no rule admits the row.

Objects in the books bucket follow the same idea: the first folder of an
object's path must be the caller's id.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import exists, false, or_, select
from sqlalchemy.orm import Session

from bookshelf.config import BUCKET_NAME
from bookshelf.errors import PolicyViolation
from bookshelf.models import AppRole, Book, Profile, UserRole

logger = logging.getLogger(__name__)

SELECT, INSERT, UPDATE, DELETE = "select", "insert", "update", "delete"
ALL = (SELECT, INSERT, UPDATE, DELETE)

_roles = UserRole.__table__.alias("caller_roles")


def has_role_clause(user_id, role: AppRole):
    # Reads user_roles through an alias, outside the user_roles policy.
    return exists().where(_roles.c.user_id == user_id, _roles.c.role == role)


def has_role(db: Session, user_id, role: AppRole) -> bool:
    return bool(db.scalar(select(has_role_clause(user_id, role))))


@dataclass(frozen=True)
class Rule:
    name: str
    model: type
    actions: tuple
    using: Optional[Callable] = None  # uid -> SQL predicate
    check: Optional[Callable] = None  # (db, uid, row) -> bool


RULES = [
    Rule("Users can view their own profile", Profile, (SELECT,),
         using=lambda uid: Profile.id == uid),
    Rule("Users can update their own profile", Profile, (UPDATE,),
         using=lambda uid: Profile.id == uid),
    Rule("Users can insert their own profile", Profile, (INSERT,),
         check=lambda db, uid, row: row.id == uid),

    Rule("Users can view their own roles", UserRole, (SELECT,),
         using=lambda uid: UserRole.user_id == uid),
    Rule("Admins can manage all roles", UserRole, ALL,
         using=lambda uid: has_role_clause(uid, AppRole.admin),
         check=lambda db, uid, row: has_role(db, uid, AppRole.admin)),

    Rule("Users can view their own books", Book, (SELECT,),
         using=lambda uid: Book.user_id == uid),
    Rule("Users can upload their own books", Book, (INSERT,),
         check=lambda db, uid, row: row.user_id == uid),
    Rule("Users can update their own books", Book, (UPDATE,),
         using=lambda uid: Book.user_id == uid),
    Rule("Users can delete their own books", Book, (DELETE,),
         using=lambda uid: Book.user_id == uid),
]


def rules_for(model, action):
    return [r for r in RULES if r.model is model and action in r.actions]


def row_filter(model, user_id, action=SELECT):
    """WHERE clause limiting ``model`` rows to those ``user_id`` may act on."""
    clauses = [r.using(user_id) for r in rules_for(model, action) if r.using is not None]
    if not clauses:
        return false()
    return or_(*clauses)


def check_insert(db: Session, row, user_id):
    for rule in rules_for(type(row), INSERT):
        if rule.check is not None and rule.check(db, user_id, row):
            return
    logger.warning("insert into %s rejected for user %s", type(row).__tablename__, user_id)
    raise PolicyViolation(f'new row violates row-level security policy for table "{type(row).__tablename__}"')


def folder_name(path: str):
    """Folders of an object path, without the file name."""
    return [p for p in path.split("/")[:-1] if p]


def object_owner(path: str):
    folders = folder_name(path)
    return folders[0] if folders else None


def can_access_object(user_id, bucket_id: str, path: str) -> bool:
    # Same predicate for select, insert and delete on storage objects.
    if bucket_id != BUCKET_NAME:
        return False
    return object_owner(path) == str(user_id)

