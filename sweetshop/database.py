"""
Database configuration and session management for the Sweets service.

This module sets up the database connection using SQLAlchemy and provides
a session factory for database operations.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL


def make_engine(url: str):
    """
    Create an engine for the given database URL.

    SQLite connections are shared across worker threads, so the
    same-thread check is disabled for them.
    """
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


def make_session_factory(bind):
    """
    Build a session factory bound to an engine.

    Records are not expired on commit so that values returned from a
    finished transaction stay readable after its locks are released.
    """
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine       = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)
Base         = declarative_base()


def get_db():
    """
    Dependency function that provides a database session.

    Yields:
        Session: SQLAlchemy database session

    Usage:
        Use as a FastAPI dependency to inject database sessions into route handlers.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
