"""
Database package for the Swayamvar auth core.

Models live in ``db.models``; the engine and session factory in ``db.engine``.
"""

from db.engine import Base, SessionLocal, build_engine, get_engine

__all__ = ["Base", "SessionLocal", "build_engine", "get_engine"]
