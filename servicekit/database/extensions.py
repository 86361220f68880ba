"""
Extensions bundle - resources built once and injected into every handler.

Handlers receive the bundle as their second argument:

    async def create_user(data, extensions):
        with extensions.db.get_session() as session:
            ...
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from servicekit.core.exceptions import DatabaseError
from servicekit.core.logging_config import get_logger
from servicekit.database.connection import Database, _safe_url

logger = get_logger(__name__)


@dataclass(frozen=True)
class ServiceExtensions:
    """
    Shared resources handed unchanged to every handler invocation.
    
    Attributes:
        db: Pooled database access, None when no DATABASE_URL is configured
    """
    db: Optional[Database] = None
    
    def close(self) -> None:
        if self.db is not None:
            self.db.close()


def create_extensions(
    database_url: Optional[str] = None,
    engine_options: Optional[Dict[str, Any]] = None,
    check_connection: bool = True,
) -> ServiceExtensions:
    """
    Build the extensions bundle at startup.
    
    Args:
        database_url: SQLAlchemy URL; None skips the database extension
        engine_options: Extra create_engine keyword arguments
        check_connection: Run one connectivity check before returning
        
    Returns:
        ServiceExtensions with every configured resource
        
    Raises:
        DatabaseError: If the connectivity check fails (fatal to startup)
    """
    if not database_url:
        logger.info("No database configured, db extension disabled")
        return ServiceExtensions()
    
    logger.info(f"Creating db extension: {_safe_url(database_url)}")
    db = Database(database_url, engine_options)
    
    if check_connection:
        try:
            db.check_connection()
        except SQLAlchemyError as e:
            db.close()
            logger.error(f"Database connection failed: {e}")
            raise DatabaseError(
                "Database connection failed",
                details=str(e),
            ) from e
        logger.info("Database connected successfully")
    
    return ServiceExtensions(db=db)


def describe(extensions: ServiceExtensions) -> Dict[str, Any]:
    """Summary of the configured extensions, safe for logs."""
    return {"db": _safe_url(extensions.db.url) if extensions.db is not None else None}
