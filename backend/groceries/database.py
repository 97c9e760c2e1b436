"""
Database configuration and session management for the grocery list service.

Uses SQLAlchemy ORM; SQLite by default, PostgreSQL in production.
"""

import os
import logging
import sqlite3
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from contextlib import contextmanager

from groceries.config import settings

logger = logging.getLogger(__name__)

# Create database directory if it doesn't exist
if settings.DATABASE_URL.startswith("sqlite:///"):
    db_dir = os.path.dirname(settings.DATABASE_URL.replace("sqlite:///", ""))
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)

# Create SQLAlchemy engine
connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args["check_same_thread"] = False

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DATABASE_ECHO,
    connect_args=connect_args,
)


# SQLite ships with foreign keys disabled; history rows rely on ON DELETE SET NULL
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if isinstance(dbapi_conn, sqlite3.Connection):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Base class for declarative models
Base = declarative_base()

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """
    Initialize database by creating all tables and seeding default categories.
    """
    # Import models to ensure they're registered
    from groceries.models import category, product, list_entry, history, parser_log  # noqa: F401
    from groceries.services.normalization import seed_default_categories

    Base.metadata.create_all(bind=engine)

    if settings.SEED_DEFAULT_CATEGORIES:
        with get_db_context() as db:
            created = seed_default_categories(db)
            db.commit()
            if created:
                logger.info(f"Seeded {created} default categories")


def get_db() -> Session:
    """
    Dependency for getting database session.
    Use in FastAPI route dependencies.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context():
    """
    Context manager for database session.
    Use for non-FastAPI contexts.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def dialect_insert(db: Session, model):
    """
    INSERT construct with ON CONFLICT support for the session's dialect.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise NotImplementedError(f"Upserts are not supported on {dialect}")
    return insert(model)
