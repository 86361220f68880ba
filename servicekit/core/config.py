"""
Configuration management via environment variables.

This module loads configuration from a .env file using python-dotenv.
All configuration values are accessed through the Settings class.

Why environment variables:
1. Secrets (database credentials) never committed to Git
2. Different values per environment (development/staging/production)
3. Easy CI/CD override - no code changes needed per environment
"""
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load .env file from the current working directory (the service's root).
# This must happen before accessing os.environ
env_path = Path.cwd() / ".env"
load_dotenv(env_path)


@dataclass(frozen=True)
class Settings:
    """
    Service settings loaded from environment variables.
    
    frozen=True makes the dataclass immutable, preventing accidental
    modification of settings at runtime.
    
    Attributes:
        service_name: Service identifier used for logging and docs title
        app_env: Environment name (development, staging, production)
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for daily log files, None for console only
        host: Interface the HTTP server binds to
        port: Port the HTTP server listens on
        api_prefix: Path prefix prepended to every declared route
        auto_docs: Serve /docs and /openapi.json
        strict_validation: Check every route schema at registration time
        database_url: SQLAlchemy connection URL, None disables the db extension
        db_check_on_startup: Run SELECT 1 once before listening
        audit_logging: Log every request with status and duration
    """
    service_name: str
    app_env: str
    log_level: str
    log_dir: Optional[str]
    
    # HTTP settings
    host: str
    port: int
    api_prefix: str
    auto_docs: bool
    strict_validation: bool
    
    # Database settings
    database_url: Optional[str]
    db_check_on_startup: bool
    
    audit_logging: bool
    
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env.lower() == "development"
    
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"


def _get_env(key: str, default: Optional[str] = None) -> str:
    """
    Get environment variable with optional default.
    
    Args:
        key: Environment variable name
        default: Default value if not set
        
    Returns:
        Environment variable value
        
    Raises:
        ValueError: If required variable is not set and no default provided
    """
    value = os.environ.get(key, default)
    if value is None:
        raise ValueError(
            f"Required environment variable '{key}' is not set. "
            f"Please check your .env file."
        )
    return value


def _get_bool(key: str, default: str) -> bool:
    return _get_env(key, default).strip().lower() in ("1", "true", "yes", "on")


def _get_int(key: str, default: str) -> int:
    raw = _get_env(key, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(
            f"Environment variable '{key}' must be an integer, got {raw!r}"
        ) from None


def _normalize_database_url(database_url: Optional[str]) -> Optional[str]:
    """Rewrite legacy URL schemes to the dialect names SQLAlchemy expects."""
    if not database_url:
        return None
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    if database_url.startswith("mysql://"):
        database_url = database_url.replace("mysql://", "mysql+pymysql://", 1)
    return database_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.
    
    Why lru_cache:
    - Settings are read once at startup
    - Avoids re-parsing .env on every access
    - maxsize=1 ensures only one instance exists
    
    Tests that change the environment call get_settings.cache_clear().
    
    Returns:
        Settings instance with all configuration values
        
    Raises:
        ValueError: If an environment variable holds an invalid value
    """
    return Settings(
        service_name=_get_env("SERVICE_NAME", "servicekit"),
        app_env=_get_env("APP_ENV", "production"),
        log_level=_get_env("LOG_LEVEL", "INFO"),
        log_dir=os.environ.get("LOG_DIR") or None,
        
        # HTTP
        host=_get_env("HOST", "0.0.0.0"),
        port=_get_int("PORT", "3000"),
        api_prefix=_get_env("API_PREFIX", "/api"),
        auto_docs=_get_bool("AUTO_DOCS", "true"),
        strict_validation=_get_bool("STRICT_VALIDATION", "true"),
        
        # Database
        database_url=_normalize_database_url(os.environ.get("DATABASE_URL")),
        db_check_on_startup=_get_bool("DB_CHECK_ON_STARTUP", "true"),
        
        audit_logging=_get_bool("AUDIT_LOGGING", "true"),
    )
