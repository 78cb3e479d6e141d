"""
MySQL connectivity for schema-mirror.
"""

from .connection import (
    CONNECTION_LOST_CODES,
    ConnectionLostError,
    DatabaseError,
    MySQLConnection,
    is_connection_lost,
)

__all__ = [
    "MySQLConnection",
    "DatabaseError",
    "ConnectionLostError",
    "CONNECTION_LOST_CODES",
    "is_connection_lost",
]
