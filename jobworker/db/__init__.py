"""
Database module.
Contains the async database connection used by the pgmq queue backend.
"""

from jobworker.db.connection import (
    close_db,
    get_engine,
    get_session_context,
    init_db,
)

__all__ = [
    "get_session_context",
    "get_engine",
    "init_db",
    "close_db",
]
