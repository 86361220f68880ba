"""
Centralized logging configuration.

This module provides consistent logging across all servicekit modules.
Logs are written to the console (stdout) and, optionally, daily log files.

Why centralized logging:
1. Consistent format - Every log entry follows the same structure
2. Single configuration point - Change format/level in one place
3. Easy to extend - Add handlers (file, remote, etc.) centrally
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


# Module-level flag to prevent duplicate handler registration
_logging_configured = False

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """
    Configure service-wide logging.
    
    This function should be called once at service startup.
    Repeated calls return the already configured root logger.
    
    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for daily log files. None logs to console only.
        
    Returns:
        Configured root logger instance
        
    Example:
        >>> from servicekit.core.logging_config import setup_logging
        >>> logger = setup_logging("INFO")
        >>> logger.info("Service started")
    """
    global _logging_configured
    
    if _logging_configured:
        return logging.getLogger()
    
    # Format: timestamp | level | module:line | message
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Handlers decide what gets through
    
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.addHandler(console_handler)
    
    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"service_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)  # File captures everything
        root_logger.addHandler(file_handler)
    
    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    
    _logging_configured = True
    
    root_logger.debug(f"Logging configured: level={log_level}, file={log_file}")
    
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.
    
    Using __name__ as the logger name preserves the module hierarchy.
    
    Args:
        name: Logger name, typically __name__ of the calling module
        
    Returns:
        Logger instance for the specified name
    """
    return logging.getLogger(name)


class LoggerMixin:
    """
    Mixin class to add logging capability to any class.
    
    Provides a self.logger attribute named after the class.
    
    Example:
        >>> class MyService(LoggerMixin):
        ...     def start(self):
        ...         self.logger.info("Starting...")
    """
    
    @property
    def logger(self) -> logging.Logger:
        """Get logger named after this class."""
        return get_logger(self.__class__.__name__)
