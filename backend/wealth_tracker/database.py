from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker
from .config import settings

url = make_url(settings.database_url)
is_sqlite = url.get_backend_name() == "sqlite"
in_memory = is_sqlite and url.database in (None, "", ":memory:")

connect_args = {}
if is_sqlite:
    connect_args = {
        "check_same_thread": False,  # sessions cross the FastAPI threadpool
        "timeout": 30,  # Wait up to 30 seconds for lock
    }
    if not in_memory:
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

engine = create_engine(url, connect_args=connect_args)

# WAL lets the refresh cycle write while dashboard reads continue
if is_sqlite and not in_memory:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=30000")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create missing tables for every registered model."""
    from . import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
