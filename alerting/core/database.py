"""
Database engine and session wiring.

Requests get a session per call through get_db; the reminder scheduler opens
its own through get_db_session since it runs outside a request.
"""
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from alerting.core.config import settings


def _engine_options(database_url: str) -> dict:
    options = {"echo": settings.DEBUG}
    if not database_url.startswith("sqlite"):
        return options

    # The scheduler and request handlers share SQLite connections across threads
    options["connect_args"] = {"check_same_thread": False}

    db_path = database_url.replace("sqlite:///", "", 1)
    if db_path and db_path != ":memory:":
        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
    return options


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind: Optional[Engine] = None) -> None:
    """
    Create any missing tables.

    Models are imported here so every table is registered on Base.metadata
    before create_all runs.
    """
    import alerting.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """FastAPI dependency yielding a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Session for work that runs outside a request, such as a reminder sweep.

    Usage:
        with get_db_session() as db:
            service = AlertService(db)
            await service.process_reminders()

    The session is rolled back if the block raises and always closed.
    Committing is left to the caller.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
