from __future__ import annotations

from collections.abc import Generator
from contextlib import AbstractContextManager, contextmanager, nullcontext

from loguru import logger
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from skillpath.config import get_settings
from skillpath.db.models.base import Base

_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def _build_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections are shared across worker threads."""
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.close()

        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


def configure_engine(url: str | None = None, echo: bool | None = None) -> Engine:
    """(Re)bind the module engine and session factory, e.g. for tests or the CLI."""
    global _engine, _SessionLocal
    settings = get_settings()
    url = url or settings.database_url
    if echo is None:
        echo = settings.log_level == "DEBUG"

    if _engine is not None:
        _engine.dispose()
    _engine = _build_engine(url, echo=echo)
    _SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False, expire_on_commit=False)
    logger.debug(f"Database engine configured for {_engine.url.render_as_string(hide_password=True)}")
    return _engine


def get_engine() -> Engine:
    """Get the database engine, creating it from settings on first use."""
    if _engine is None:
        configure_engine()
    return _engine


def _get_session_factory() -> sessionmaker[Session]:
    if _SessionLocal is None:
        configure_engine()
    return _SessionLocal


def init_db() -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables initialized")


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = _get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def read_scope() -> Generator[Session, None, None]:
    """Session for read-only paths; never commits. Loaded objects stay usable after close."""
    session = _get_session_factory()()
    try:
        yield session
    finally:
        session.close()


def bound_session(session: Session | None, read_only: bool = False) -> AbstractContextManager[Session]:
    """Use the caller's session when given (no commit), else a fresh scope."""
    if session is not None:
        return nullcontext(session)
    return read_scope() if read_only else session_scope()
