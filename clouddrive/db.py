# Filename: clouddrive/db.py
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """Build the engine for a database URL.

    In-memory SQLite gets a single shared connection so every session (and
    every thread of the test client) sees the same database.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def init_db(engine: Engine) -> None:
    """Create DB tables"""
    # models must be imported for their tables to be registered
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
