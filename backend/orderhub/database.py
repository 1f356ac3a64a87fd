"""Database engine, session factory and FastAPI dependency.

WHAT:
    Owns the single process-wide SQLAlchemy engine (connection pool) and the
    session factory built on top of it. Exposes FastAPI dependencies and a
    context manager for code running outside a request.

WHY:
    - One pooled engine per process: webhook bursts reuse connections instead
      of opening a client per request
    - Explicit lifecycle: init_engine() on startup, dispose_engine() on
      shutdown (wired to the FastAPI lifespan in orderhub/main.py)
    - Lazy: importing this module never touches the database or requires
      DATABASE_URL, so tests and tooling can import models freely

ARCHITECTURE:
    ┌──────────────────┐
    │  init_engine()   │  lifespan startup (or first get_engine() call)
    └────────┬─────────┘
    ┌────────▼─────────┐
    │  Engine (pool)   │  psycopg2 in production, SQLite in tests
    └────────┬─────────┘
    ┌────────▼─────────┐
    │  sessionmaker    │
    └────────┬─────────┘
    ┌────────▼─────────┐     ┌────────────────────┐
    │  get_db()        │     │ get_sync_session() │
    │  (FastAPI dep)   │     │ (background tasks) │
    └──────────────────┘     └────────────────────┘

REFERENCES:
    - https://docs.sqlalchemy.org/en/20/core/pooling.html
    - orderhub/routers/ (consumers of get_db)
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

# Base is defined in orderhub.models to ensure a single registry across the app
from .models import Base  # noqa: F401

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def _get_database_url() -> str:
    """Get DATABASE_URL from environment, loading .env if needed.

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        # Attempt to load from local .env for developer convenience
        from orderhub.utils.env import load_env_file
        load_env_file()
        database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is not set. "
            "Ensure backend/.env is loaded or env var is exported."
        )

    return database_url


def _normalize_url(url: str) -> str:
    """Accept Heroku-style postgres:// URLs."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


# =============================================================================
# ENGINE LIFECYCLE
# =============================================================================

def init_engine(database_url: Optional[str] = None) -> Engine:
    """Create the process-wide engine and session factory (idempotent).

    Args:
        database_url: Override for DATABASE_URL (tests, scripts)

    Returns:
        The shared Engine
    """
    global _engine, _session_factory

    if _engine is not None:
        return _engine

    url = _normalize_url(database_url or _get_database_url())

    # NOTE: SQLite engines (tests/dev) do not support pool_size/max_overflow.
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            pool_size=10,           # Base pool size
            max_overflow=20,        # Allow up to 30 total connections under webhook bursts
            pool_recycle=3600,      # Recycle connections every hour
            pool_pre_ping=True,     # Validate connections before use
        )

    _engine = engine
    _session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    logger.info(f"[DATABASE] Engine initialized ({engine.url.get_backend_name()})")
    return engine


def get_engine() -> Engine:
    """Return the shared engine, initializing it on first use."""
    if _engine is None:
        return init_engine()
    return _engine


def get_sessionmaker() -> sessionmaker:
    """Return the session factory bound to the shared engine."""
    if _session_factory is None:
        init_engine()
    return _session_factory


def dispose_engine() -> None:
    """Drain the connection pool and forget the engine (shutdown hook)."""
    global _engine, _session_factory

    if _engine is None:
        return

    _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("[DATABASE] Engine disposed")


# =============================================================================
# FASTAPI DEPENDENCIES / CONTEXT MANAGERS
# =============================================================================

def get_db() -> Generator[Session, None, None]:
    """Yield a database session for FastAPI dependency injection.

    Example:
        @router.post("/webhook/orders")
        async def handle(db: Session = Depends(get_db)):
            ...
    """
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Context manager for sessions outside FastAPI (background tasks, scripts).

    Example:
        with get_sync_session() as db:
            user = db.get(User, user_id)
    """
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()
