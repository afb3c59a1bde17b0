"""
Engine and session handling for the catalog database.

`SessionLocal` is the process-wide factory. The scheduler's worker threads
and the API each open their own short-lived sessions from it; a session is
never shared across threads.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from db.models import Base

logger = logging.getLogger(__name__)


def build_engine(url: str = settings.DATABASE_URL, **kwargs) -> Engine:
    # SQLite connections get used from the scheduler pool threads
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, echo=settings.DEBUG, **kwargs)


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create the catalog tables, seed default platform settings and destinations."""
    from services.country_codes import seed_destinations
    from services.settings_store import SettingsStore

    target = bind or engine
    Base.metadata.create_all(bind=target)
    session = sessionmaker(autocommit=False, autoflush=False, bind=target)()
    try:
        SettingsStore(session).ensure_defaults()
        seed_destinations(session)
    finally:
        session.close()
    logger.info(f"Catalog database ready ({target.url.drivername})")


@contextmanager
def get_db(factory: Callable[[], Session] = None) -> Generator[Session, None, None]:
    """Session scope: commit on success, roll back and re-raise on error."""
    db = (factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db_dependency() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
