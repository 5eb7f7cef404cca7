"""
SQLAlchemy engine and session factory for the auth core.

Stores open one short-lived session per call:

    from db.engine import SessionLocal

    with SessionLocal() as db:
        account = db.get(Account, account_id)
"""

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from config import Config


def build_engine(database_url: str, echo: bool = False, **kwargs: Any) -> Engine:
    """Create an engine for ``database_url``.

    SQLite connections are shared across the threadpool FastAPI runs sync
    work on, so same-thread checks are off and pool sizing is skipped.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            **kwargs,
        )
    if "poolclass" not in kwargs:
        kwargs.setdefault("pool_size", 10)
        kwargs.setdefault("max_overflow", 20)
    return create_engine(database_url, echo=echo, pool_pre_ping=True, **kwargs)


engine = build_engine(Config.DATABASE_URL, echo=Config.DB_ECHO)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_engine() -> Engine:
    return engine

