"""
Custom Exceptions - servicekit error classes.

This module defines a hierarchy of exceptions for clean error handling:
- ServiceError subclasses carry their own HTTP status code
- Validation failures carry the full list of per-field failures
- Lifecycle and configuration errors are raised at startup only
"""
from typing import Any, Dict, List, Optional


class ServiceError(Exception):
    """
    Base exception for errors with an explicit HTTP status.
    
    Handlers raise these (or subclasses) to choose the reply status.
    The error classifier reports them as
    {"error": error_name, "reason": message, "details": details}.
    """
    status_code: int = 500
    error_name: str = "ServiceError"
    
    def __init__(self, message: str, details: Any = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
    
    def to_dict(self) -> dict:
        """Convert to error response dict."""
        payload = {"error": self.error_name, "reason": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class BadRequestError(ServiceError):
    """Raised by handlers when the request is well-formed but unusable."""
    status_code = 400
    error_name = "BadRequest"


class NotFoundError(ServiceError):
    """Raised by handlers when the addressed resource does not exist."""
    status_code = 404
    error_name = "NotFound"


class ConflictError(ServiceError):
    """Raised by handlers when the request conflicts with current state."""
    status_code = 409
    error_name = "Conflict"


class DatabaseError(ServiceError):
    """Raised when the database extension cannot be used."""
    status_code = 503
    error_name = "DatabaseError"
    
    def __init__(self, message: str = "Database operation failed", details: Any = None):
        super().__init__(message, details=details)


class ConfigurationError(Exception):
    """Raised at startup when routes, schemas or options are invalid."""


class ServiceStateError(Exception):
    """Raised when a lifecycle step is attempted in the wrong state."""


class SchemaValidationFailed(Exception):
    """
    Base for failures carrying a list of per-field validation errors.
    
    `validation` holds dicts shaped like
    {"instancePath": "/email", "message": "...", "keyword": "...", ...}.
    """
    
    def __init__(self, message: str, validation: List[Dict[str, Any]]):
        super().__init__(message)
        self.message = message
        self.validation = validation


class RequestValidationFailed(SchemaValidationFailed):
    """Raised before a handler runs when the request breaks its schema."""
    
    def __init__(self, validation: List[Dict[str, Any]]):
        super().__init__("Request validation failed", validation)


class ResponseValidationFailed(SchemaValidationFailed):
    """Raised when a handler result breaks its declared response schema."""
    
    def __init__(self, validation: List[Dict[str, Any]]):
        super().__init__("Response validation failed", validation)
