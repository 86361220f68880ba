"""
Database Connection Management.

This module wraps a SQLAlchemy engine for route handlers.
It provides:
- Connection pooling
- Session management
- Connectivity checks

Why SQLAlchemy:
1. Connection pooling out of the box
2. Database-agnostic (PostgreSQL in production, SQLite in tests)
3. Secure parameterized queries
4. Transaction management
"""
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from servicekit.core.logging_config import get_logger

logger = get_logger(__name__)


def _safe_url(db_url: str) -> str:
    """Strip credentials from a URL before it is logged."""
    return db_url.split("@")[-1] if "@" in db_url else db_url


class Database:
    """
    Manages the engine and session lifecycle shared by all handlers.
    
    One instance is built at startup and handed to every handler through
    the extensions bundle. Handlers use either the engine directly or a
    session from get_session().
    
    Example:
        >>> db = Database("sqlite:///app.db")
        >>> with db.get_session() as session:
        ...     result = session.execute(text("SELECT 1"))
    """
    
    def __init__(self, connection_url: str, engine_options: Optional[Dict[str, Any]] = None):
        """
        Initialize database engine with connection pooling.
        
        Args:
            connection_url: SQLAlchemy connection URL
            engine_options: Extra keyword arguments for create_engine
        """
        options: Dict[str, Any] = {"pool_pre_ping": True, "echo": False}
        # SQLite pools do not accept sizing arguments
        if not connection_url.startswith("sqlite"):
            options.update(pool_size=5, max_overflow=10)
        options.update(engine_options or {})
        
        self.url = connection_url
        self.engine: Engine = create_engine(connection_url, **options)
        
        self._session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
        )
        
        logger.info(f"Database engine initialized: {_safe_url(connection_url)}")
    
    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session with automatic cleanup.
        
        Transactions are rolled back on error, committed on success.
        The error itself propagates so the error classifier can map it
        (a unique violation becomes a 409 reply).
        
        Yields:
            SQLAlchemy Session object
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning(f"Database error, rolling back: {e}")
            raise
        finally:
            session.close()
    
    def check_connection(self) -> None:
        """
        Run SELECT 1 against the database.
        
        Raises:
            SQLAlchemyError: If the database cannot be reached
        """
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        logger.debug("Database connection check: OK")
    
    def close(self):
        """Close all connections in the pool."""
        self.engine.dispose()
        logger.info("Database connections closed")
