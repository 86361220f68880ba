"""
Global error handlers - the catch-all for failures outside route handlers.

Installed once per service. Covers:
- upstream request validation (RequestValidationFailed, and FastAPI's own
  RequestValidationError for routes added directly on the app)
- routing failures (Starlette HTTPException: 404, 405, ...)
- anything else that escapes
"""
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from servicekit.api.classifier import classify_error
from servicekit.core.exceptions import RequestValidationFailed
from servicekit.core.logging_config import get_logger

logger = get_logger(__name__)

REQUEST_VALIDATION_TYPE = "request_validation"

# pydantic location prefixes that name the request section
_PYDANTIC_SECTIONS = {"body": "body", "path": "params", "query": "query", "header": "headers"}


def normalize_pydantic_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Rewrite FastAPI/pydantic error dicts into the instancePath failure shape."""
    failures = []
    for error in errors:
        loc = list(error.get("loc", ()))
        failure = {
            "instancePath": "".join(f"/{part}" for part in loc[1:]),
            "keyword": error.get("type"),
            "message": error.get("msg"),
        }
        if loc and loc[0] in _PYDANTIC_SECTIONS:
            failure["section"] = _PYDANTIC_SECTIONS[loc[0]]
        failures.append(failure)
    return failures


def install_error_handlers(app: FastAPI, development: bool = False) -> None:
    """
    Register the global error handlers on app.
    
    Args:
        app: The service's FastAPI application
        development: Attach tracebacks to error bodies
    """
    
    @app.exception_handler(RequestValidationFailed)
    async def request_validation_handler(request: Request, exc: RequestValidationFailed):
        """Handle upstream validation of params/query/headers/body."""
        classified = classify_error(exc, development, validation_type=REQUEST_VALIDATION_TYPE)
        return classified.to_response()
    
    @app.exception_handler(RequestValidationError)
    async def fastapi_validation_handler(request: Request, exc: RequestValidationError):
        """Handle FastAPI's own validation errors the same way."""
        failed = RequestValidationFailed(normalize_pydantic_errors(list(exc.errors())))
        classified = classify_error(failed, development, validation_type=REQUEST_VALIDATION_TYPE)
        return classified.to_response()
    
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle routing failures (404 Not Found, 405 Method Not Allowed)."""
        classified = classify_error(exc, development)
        return JSONResponse(
            status_code=classified.status_code,
            content=classified.body,
            headers=getattr(exc, "headers", None),
        )
    
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Handle uncaught exceptions globally.
        
        Detailed error information is only included in development mode.
        """
        logger.exception(f"Unhandled exception: {exc}")
        return classify_error(exc, development).to_response()
