"""Database helpers: engines, session factories and DB initialization.

Provides read/write session factories and an `init_db` helper that creates
the schema. When both URLs are the same the read side reuses the write
engine, which keeps in-memory SQLite databases shared between the two.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from core.config import settings
from .models import Base

WRITE_DATABASE_URL = settings.write_database_url
READ_DATABASE_URL = settings.read_database_url


def make_engine(url: str) -> Engine:
    """Create an engine, pinning in-memory SQLite to a single connection."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url)


write_engine = make_engine(WRITE_DATABASE_URL)
read_engine = write_engine if READ_DATABASE_URL == WRITE_DATABASE_URL else make_engine(READ_DATABASE_URL)

WriteSessionLocal = sessionmaker(bind=write_engine)
ReadSessionLocal = sessionmaker(bind=read_engine)


def init_db():
    """Create all tables defined on the ORM metadata."""
    Base.metadata.create_all(bind=write_engine)


def get_write_session():
    """Yield a write-enabled SQLAlchemy session for the request scope."""
    db = WriteSessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_read_session():
    """Yield a read-only SQLAlchemy session for the request scope.

    Used for read endpoints where routing reads to a replica may be desired.
    """
    db = ReadSessionLocal()
    try:
        yield db
    finally:
        db.close()
