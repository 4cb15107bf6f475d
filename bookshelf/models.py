import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger, Column, DateTime, Enum, ForeignKey, String, Text, UniqueConstraint, Uuid, event,
)

from bookshelf.database import Base


def utcnow():
    return datetime.now(timezone.utc)


class AppRole(str, enum.Enum):
    admin = "admin"
    user = "user"


class Identity(Base):
    """Login identity. Profile and role rows hang off it and cascade with it."""
    __tablename__ = "auth_users"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(320), unique=True, nullable=False)
    password = Column(String, nullable=False)
    full_name = Column(String, nullable=True)  # signup metadata, copied into the profile
    created_at = Column(DateTime(timezone=True), default=utcnow)


class AuthSession(Base):
    __tablename__ = "auth_sessions"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)  # token jti
    user_id = Column(Uuid, ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(Uuid, ForeignKey("auth_users.id", ondelete="CASCADE"), primary_key=True)
    email = Column(String(320))
    full_name = Column(String)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(AppRole, name="app_role"), nullable=False)


class Book(Base):
    __tablename__ = "books"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("auth_users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(Text, nullable=False)
    author = Column(Text, nullable=True)
    file_path = Column(Text, nullable=False)  # "{user_id}/{timestamp}.{ext}" inside the books bucket
    file_size = Column(BigInteger, nullable=False)
    file_type = Column(Text, nullable=True)
    cover_url = Column(Text, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow)


@event.listens_for(Identity, "after_insert")
def handle_new_user(mapper, connection, target):
    # Runs on the identity's own connection, so a failure here aborts the signup too.
    connection.execute(
        Profile.__table__.insert().values(
            id=target.id, email=target.email, full_name=target.full_name, created_at=utcnow()
        )
    )
    connection.execute(
        UserRole.__table__.insert().values(id=uuid.uuid4(), user_id=target.id, role=AppRole.user)
    )
