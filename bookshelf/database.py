from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

from bookshelf.config import DATABASE_URL

if DATABASE_URL.startswith("sqlite"):
	engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})

	@event.listens_for(engine, "connect")
	def _enable_foreign_keys(dbapi_connection, connection_record):
		# sqlite ignores ON DELETE CASCADE unless this is on
		cursor = dbapi_connection.cursor()
		cursor.execute("PRAGMA foreign_keys=ON")
		cursor.close()
else:
	engine = create_engine(DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(bind=engine)
Base = declarative_base()


def get_db():
	"""FastAPI dependency that yields one session per request."""
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()
