"""
Database Configuration Module
=============================

Provides SQLAlchemy database engine and session management for the
Angkor Compliance access control layer. Uses SQLite by default; point
``ANGKOR_DATABASE_URL`` at another SQLAlchemy URL to use a different store.

Every lookup made by the policy store, the user repository and the audit
logger opens its own short-lived session through ``get_session`` so that
the evaluator can be shared between concurrent requests.
"""

import os
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Database file location
DB_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'access_control.db')
DATABASE_URL = os.environ.get('ANGKOR_DATABASE_URL', f"sqlite:///{DB_PATH}")

_IN_MEMORY_URLS = ('sqlite://', 'sqlite:///:memory:')


def create_db_engine(url: str = DATABASE_URL, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite databases are pinned to a single connection so every
    session sees the same schema and rows.
    """
    kwargs = {}
    connect_args = {}
    if url.startswith('sqlite'):
        connect_args['check_same_thread'] = False  # Required for SQLite
    if url in _IN_MEMORY_URLS:
        kwargs['poolclass'] = StaticPool
    return create_engine(url, echo=echo, connect_args=connect_args, **kwargs)


engine = create_db_engine()

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()


def make_session_factory(bind: Engine) -> sessionmaker:
    """Build a session factory bound to a specific engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


@contextmanager
def get_session(session_factory: Optional[sessionmaker] = None):
    """
    Context manager for database sessions.

    Ensures proper session lifecycle management with automatic
    commit on success and rollback on failure.

    Usage:
        with get_session() as session:
            user = session.query(User).first()
    """
    factory = session_factory or SessionLocal
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(bind: Optional[Engine] = None):
    """
    Initialize the database schema.

    Creates all tables defined in the models if they don't exist.
    Safe to call multiple times.
    """
    from . import entities  # noqa: F401 - Ensure models are loaded
    Base.metadata.create_all(bind=bind or engine)


def reset_db(bind: Optional[Engine] = None):
    """
    Reset the database by dropping and recreating all tables.

    WARNING: This destroys all data. Use only for development/testing.
    """
    from . import entities  # noqa: F401
    Base.metadata.drop_all(bind=bind or engine)
    Base.metadata.create_all(bind=bind or engine)
