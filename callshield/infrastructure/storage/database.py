"""
Database Connection and Session Management
Builds SQLAlchemy engines and session factories for the risk store
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Iterator

from callshield.infrastructure.storage.models import Base


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    SQLite connections are shared across threads (FastAPI runs sync
    handlers in a thread pool).
    """
    connect_args = {}
    engine_kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty DB
            engine_kwargs["poolclass"] = StaticPool

    return create_engine(
        database_url,
        connect_args=connect_args,
        echo=echo,  # Set to True for debugging SQL queries
        **engine_kwargs
    )


def init_db(engine: Engine) -> None:
    """Create tables if they do not exist"""
    Base.metadata.create_all(bind=engine)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def session_scope(factory: sessionmaker) -> Iterator[Session]:
    """
    Get database session with automatic cleanup

    Usage:
        with session_scope(factory) as db:
            rows = db.query(RiskRecordRow).all()
    """
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
