"""
Database module for the claims portal.
"""

from src.db.connection import (
    check_db_connection,
    close_db_connection,
    create_tables,
    get_engine,
    get_session,
    get_session_maker,
)
from src.db.repository import PortalRepository, SqlPortalRepository

__all__ = [
    "get_engine",
    "get_session_maker",
    "get_session",
    "create_tables",
    "close_db_connection",
    "check_db_connection",
    "PortalRepository",
    "SqlPortalRepository",
]
