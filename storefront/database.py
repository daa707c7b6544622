"""
Database connection and session management.
Uses SQLAlchemy for the catalog / pricing / stock / schedule store.

The storefront core only reads from these tables; writes happen in the
ERP import jobs that own them.
"""

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from storefront.config import get_config
from storefront.logger import get_logger

logger = get_logger("database")

# Base class for all our database models (must be defined before engine)
Base = declarative_base()

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def make_engine(database_url: str) -> Engine:
    """Create an engine; SQLite URLs get the flags needed for threaded access."""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)


def get_engine() -> Engine:
    """Return the process-wide engine, creating it on first use."""
    global _engine
    if _engine is None:
        url = get_config().database_url
        _engine = make_engine(url)
        logger.info("Database engine created: dialect=%s", _engine.dialect.name)
    return _engine


def get_session_factory() -> sessionmaker:
    """Return the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory


def init_db(engine: Optional[Engine] = None) -> None:
    """Create tables if they don't exist (local/dev databases only)."""
    # Models must be imported so they register on Base.metadata
    from storefront import models  # noqa: F401
    Base.metadata.create_all(bind=engine or get_engine())


def reset_engine() -> None:
    """Drop the cached engine and session factory (used after config changes)."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
