"""
Database session management (SQLAlchemy)

Every use case receives a Session and owns exactly one transaction per call:
it commits once at the end, or rolls back everything on failure.
"""
from contextlib import contextmanager
from typing import Iterator

import psycopg
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from tesoreria.config import get_settings


class Base(DeclarativeBase):
    """
    SQLAlchemy declarative base for all ORM models
    """
    pass


_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def get_engine() -> Engine:
    """Lazily create the process-wide engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.get_sqlalchemy_url(),
            pool_pre_ping=True,
            isolation_level=settings.DB_ISOLATION_LEVEL,
        )
    return _engine


def get_session_factory() -> sessionmaker:
    """Lazily create the session factory bound to get_engine()."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)
    return _SessionLocal


def get_db() -> Iterator[Session]:
    """
    Dependency para FastAPI - abre una sesión por request y la cierra al terminar

    Usage:
        @router.get("/categories")
        def list_categories(db: Session = Depends(get_db)):
            ...
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Sesión para trabajos fuera de HTTP (scheduler, scripts).

    Commit is left to the use case; anything still pending on error is rolled back.
    """
    db = get_session_factory()()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def check_db_connection() -> None:
    """
    Health check - SELECT 1 contra PostgreSQL con psycopg directo

    Raises:
        psycopg.OperationalError: si la BD no está disponible
    """
    dsn = get_settings().DATABASE_URL
    if dsn.startswith("postgresql+psycopg://"):
        dsn = dsn.replace("postgresql+psycopg://", "postgresql://", 1)
    with psycopg.connect(dsn, connect_timeout=3) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1;")
            cur.fetchone()
