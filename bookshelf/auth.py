import logging
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookshelf.config import ACCESS_TOKEN_HOURS, ALGORITHM, SECRET_KEY
from bookshelf.database import get_db
from bookshelf.errors import LibraryError, NotAuthenticated
from bookshelf.models import AuthSession, Identity, utcnow
from bookshelf.schemas import Principal

logger = logging.getLogger(__name__)

SIGNED_UP = "SIGNED_UP"
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"

pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
security = HTTPBearer(auto_error=False)

_listeners = []


def hash_password(p: str) -> str:
    if p is None:
        p = ""
    return pwd.hash(p)

def verify(p: str, h: str) -> bool:
    if p is None:
        p = ""
    return pwd.verify(p, h)

def create_token(data: dict, expires_at: datetime):
    payload = data.copy()
    payload["exp"] = expires_at
    return jwt.encode(payload, SECRET_KEY, algorithm=ALGORITHM)


def on_auth_state_change(callback):
    """Subscribe ``callback(event, principal)`` to session changes.

    Returns a function that removes the subscription.
    """
    _listeners.append(callback)

    def unsubscribe():
        if callback in _listeners:
            _listeners.remove(callback)
    return unsubscribe


def _emit(event: str, principal: Principal):
    for callback in list(_listeners):
        try:
            callback(event, principal)
        except Exception:
            logger.exception("auth listener failed on %s", event)


def _aware(dt: datetime) -> datetime:
    # sqlite hands back naive datetimes
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def signup(db: Session, email: str, password: str, full_name: str = None) -> Identity:
    """Create an identity; its profile and default role are created alongside it."""
    if db.query(Identity).filter(Identity.email == email).first():
        raise LibraryError("Email already registered")
    user = Identity(email=email, password=hash_password(password), full_name=full_name)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise LibraryError("Email already registered")
    except Exception:
        db.rollback()
        raise
    _emit(SIGNED_UP, Principal(id=user.id, email=user.email))
    return user


def sign_in(db: Session, email: str, password: str):
    """Open a session. Returns ``(token, session, identity)``."""
    user = db.query(Identity).filter(Identity.email == email).first()
    if not user or not verify(password, user.password):
        raise NotAuthenticated("Invalid credentials")
    now = utcnow()
    # sessions never refreshed; drop this user's dead ones
    db.query(AuthSession).filter(AuthSession.user_id == user.id, AuthSession.expires_at <= now).delete(
        synchronize_session=False
    )
    session = AuthSession(
        id=uuid.uuid4(),
        user_id=user.id,
        expires_at=now + timedelta(hours=ACCESS_TOKEN_HOURS),
    )
    db.add(session)
    db.commit()
    token = create_token(
        {"sub": str(user.id), "email": user.email, "jti": str(session.id)},
        session.expires_at,
    )
    _emit(SIGNED_IN, Principal(id=user.id, email=user.email, session_id=session.id))
    return token, session, user


def sign_out(db: Session, principal: Principal):
    if principal.session_id is not None:
        db.query(AuthSession).filter(AuthSession.id == principal.session_id).delete()
        db.commit()
    _emit(SIGNED_OUT, principal)


def resolve_session(db: Session, token: str):
    """Returns ``(session, identity)`` for a live token."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        session_id = uuid.UUID(payload.get("jti"))
    except (JWTError, TypeError, ValueError):
        raise NotAuthenticated("Invalid token")
    session = db.get(AuthSession, session_id)
    if session is None or _aware(session.expires_at) <= utcnow():
        raise NotAuthenticated("Session expired")
    user = db.get(Identity, session.user_id)
    if user is None:
        raise NotAuthenticated("User not found")
    return session, user


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Principal:
    if not credentials or not credentials.credentials:
        raise NotAuthenticated("Missing authentication token")
    session, user = resolve_session(db, credentials.credentials)
    return Principal(id=user.id, email=user.email, session_id=session.id)
