"""Sign up, sign in, sign out and session lookup."""
from fastapi import APIRouter, Depends, Form, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from bookshelf.auth import get_current_user, resolve_session, security, sign_in, sign_out, signup
from bookshelf.database import get_db
from bookshelf.errors import NotAuthenticated
from bookshelf.schemas import Principal, SessionOut, TokenOut, UserOut

router = APIRouter(prefix="/auth", tags=["auth"])


async def read_credentials(request: Request, email: str = None, password: str = None, full_name: str = None):
    # Accept form data, query params, or JSON body
    email = email or request.query_params.get("email")
    password = password or request.query_params.get("password")
    full_name = full_name or request.query_params.get("full_name")

    if (not email or not password) and request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            email = email or body.get("email")
            password = password or body.get("password")
            full_name = full_name or body.get("full_name")

    if not email or not password:
        raise HTTPException(status_code=422, detail=[{"loc": ["body"], "msg": "email and password required"}])
    return email, password, full_name


@router.post("/signup", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    email: str = Form(None),
    password: str = Form(None),
    full_name: str = Form(None),
    db: Session = Depends(get_db),
):
    email, password, full_name = await read_credentials(request, email, password, full_name)
    return signup(db, email, password, full_name)


@router.post("/login", response_model=TokenOut)
async def login(
    request: Request,
    email: str = Form(None),
    password: str = Form(None),
    db: Session = Depends(get_db),
):
    email, password, _ = await read_credentials(request, email, password)
    token, session, user = sign_in(db, email, password)
    return {"token": token, "expires_at": session.expires_at, "user": user}


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(current_user: Principal = Depends(get_current_user), db: Session = Depends(get_db)):
    sign_out(db, current_user)


@router.get("/session", response_model=SessionOut)
def current_session(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
):
    if not credentials:
        raise NotAuthenticated("Missing authentication token")
    session, user = resolve_session(db, credentials.credentials)
    return {"id": session.id, "user": user, "created_at": session.created_at, "expires_at": session.expires_at}
