"""
Database module - SQL access handed to route handlers.

This module handles:
- Engine and session management (SQLAlchemy)
- The extensions bundle built once at startup
"""
from servicekit.database.connection import Database
from servicekit.database.extensions import ServiceExtensions, create_extensions

__all__ = [
    "Database",
    "ServiceExtensions",
    "create_extensions",
]
