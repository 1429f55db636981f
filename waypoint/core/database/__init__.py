"""Database package."""

from waypoint.core.database.base import Base, utcnow
from waypoint.core.database.connection import (
    dispose_engine,
    get_db_session,
    get_engine,
    get_session_factory,
    init_database,
    init_engine,
)

__all__ = [
    "Base",
    "utcnow",
    "dispose_engine",
    "get_db_session",
    "get_engine",
    "get_session_factory",
    "init_database",
    "init_engine",
]
