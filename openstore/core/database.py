# openstore/core/database.py
import os
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from ..core.config import get_settings
from ..domain.db_models import Base

_engine = None
_SessionLocal = None


def _sqlite_path(db_url: str) -> str | None:
    if not db_url.startswith("sqlite:///"):
        return None
    path = db_url[len("sqlite:///"):]
    return None if path in ("", ":memory:") else path


def get_engine():
    global _engine
    if _engine is None:
        db_url = get_settings().DB_URL
        path = _sqlite_path(db_url)
        if path and os.path.dirname(path):
            os.makedirs(os.path.dirname(path), exist_ok=True)
        # writers wait up to 30s for the sqlite lock
        connect_args = {"check_same_thread": False, "timeout": 30} if db_url.startswith("sqlite") else {}
        _engine = create_engine(db_url, connect_args=connect_args)
    return _engine


def get_session_local():
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=get_engine())
    return _SessionLocal


def init_db():
    """Create the packages, package_downloads and users tables if missing."""
    Base.metadata.create_all(bind=get_engine())


def dispose_engine():
    """Close pooled connections and forget the engine (settings changed, tests)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


@contextmanager
def get_db():
    """One transaction: committed when the block exits, rolled back if it raises."""
    SessionLocal = get_session_local()
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
