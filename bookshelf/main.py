import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from bookshelf import config
from bookshelf.auth import on_auth_state_change
from bookshelf.database import Base, engine
from bookshelf.errors import LibraryError, NotAuthenticated
from bookshelf.routers import account, auth, books

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)
app = FastAPI(title="Bookshelf", description="Personal digital library API.")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotAuthenticated)
async def not_authenticated_handler(request: Request, exc: NotAuthenticated):
    # Browsers go to the login page; API clients get a 401.
    if "text/html" in request.headers.get("accept", ""):
        return RedirectResponse(config.LOGIN_PATH, status_code=303)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(LibraryError)
async def library_error_handler(request: Request, exc: LibraryError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def log_auth_event(event, principal):
    logger.info("%s %s", event, principal.email)


on_auth_state_change(log_auth_event)

app.include_router(auth.router)
app.include_router(books.router)
app.include_router(account.router)


@app.get("/ping")
def ping():
    return {"status": "backend ok"}
