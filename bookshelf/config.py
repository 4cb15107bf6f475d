import os
from dotenv import load_dotenv
load_dotenv()  # load .env before anything reads the environment

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./bookshelf.db")

SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_HOURS = float(os.getenv("ACCESS_TOKEN_HOURS", "2"))

# Storage backend: "local" for dev, "cloudinary" for production
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local")
LOCAL_STORAGE_PATH = os.getenv("LOCAL_STORAGE_PATH", "./storage")

BUCKET_NAME = "books"
STORAGE_LIMIT_BYTES = 200 * 1024 * 1024  # 200MB per account, also the per-object ceiling
ACCEPTED_EXTENSIONS = {"pdf", "epub", "mobi", "txt", "doc", "docx"}

# Comma-separated CORS origins
ALLOW_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]

LOGIN_PATH = os.getenv("LOGIN_PATH", "/auth")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
