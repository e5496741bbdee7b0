"""
Database configuration.

SQLite by default; any SQLAlchemy URL works (`IDENAWL_DATABASE_URL`).
"""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DEFAULT_DATABASE_URL = "sqlite:///./whitelist.db"

# Base class for ORM models
Base = declarative_base()


def make_engine(url: str = DEFAULT_DATABASE_URL, *, echo: bool = False) -> Engine:
    kwargs = {}
    if url.startswith("sqlite"):
        # Read API and orchestrator thread share the engine.
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(url, echo=echo, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create all tables."""
    # Register models on Base before create_all.
    from idenawl.store import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
