"""
Error Classifier - maps a raised exception to (status code, JSON body).

Recognized shapes, checked in this order:

    MISSING_FIELD    message contains '"<field>" is required!'      -> 422
    VALIDATION       non-empty `validation` list of failures         -> 400
    EXPLICIT_STATUS  integer `status_code` attribute                 -> that code
    CONFLICT         unique-violation code (SQLSTATE 23505)          -> 409
    INTERNAL         anything else                                   -> 500

Classification depends only on the exception itself. In development mode
every body also carries the formatted traceback under "stack".
"""
import re
import traceback
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from servicekit.models.errors import ClassifiedError

MISSING_FIELD_MARKER = "is required!"
MISSING_FIELD_PATTERN = re.compile(r'"([^"]+)" is required!')

# PostgreSQL unique_violation
UNIQUE_VIOLATION_CODE = "23505"
SQLITE_UNIQUE_ERRORS = ("SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY")

DEFAULT_FIELD = "field"


class ErrorKind(Enum):
    MISSING_FIELD = "missing_field"
    VALIDATION = "validation"
    EXPLICIT_STATUS = "explicit_status"
    CONFLICT = "conflict"
    INTERNAL = "internal"


def error_message(exc: BaseException) -> str:
    """Human-readable message: `message`, then `detail`, then str(exc)."""
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    detail = getattr(exc, "detail", None)
    if isinstance(detail, str) and detail:
        return detail
    return str(exc)


def validation_failures(exc: BaseException) -> List[Dict[str, Any]]:
    failures = getattr(exc, "validation", None)
    if isinstance(failures, (list, tuple)) and failures:
        return list(failures)
    return []


def explicit_status(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status
    return None


def is_unique_violation(exc: BaseException) -> bool:
    """
    True for unique-constraint violations.
    
    Looks at the exception and, for SQLAlchemy errors, the wrapped DB-API
    error in `orig` (psycopg2 `pgcode`, psycopg `sqlstate`, sqlite3
    `sqlite_errorname`).
    """
    for candidate in (exc, getattr(exc, "orig", None)):
        if candidate is None:
            continue
        for attr in ("code", "pgcode", "sqlstate"):
            if getattr(candidate, attr, None) == UNIQUE_VIOLATION_CODE:
                return True
        if getattr(candidate, "sqlite_errorname", None) in SQLITE_UNIQUE_ERRORS:
            return True
        if candidate is not exc and str(candidate).startswith("UNIQUE constraint failed"):
            # sqlite3 before 3.11 has no sqlite_errorname
            return True
    return False


def detect_kind(exc: BaseException) -> ErrorKind:
    """Pick the first matching shape; the order is fixed."""
    if MISSING_FIELD_MARKER in error_message(exc):
        return ErrorKind.MISSING_FIELD
    if validation_failures(exc):
        return ErrorKind.VALIDATION
    if explicit_status(exc) is not None:
        return ErrorKind.EXPLICIT_STATUS
    if is_unique_violation(exc):
        return ErrorKind.CONFLICT
    return ErrorKind.INTERNAL


def missing_field_name(message: str) -> str:
    match = MISSING_FIELD_PATTERN.search(message)
    return match.group(1) if match else DEFAULT_FIELD


def failure_field(failure: Any) -> str:
    """Field name from a failure's instancePath, minus one leading '/'."""
    path = failure.get("instancePath") if isinstance(failure, Mapping) else None
    path = path or ""
    return path.replace("/", "", 1) or DEFAULT_FIELD


def failure_reason(failure: Any) -> str:
    message = failure.get("message") if isinstance(failure, Mapping) else failure
    return f"{failure_field(failure)}: {message}"


def format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def _finish(status_code: int, body: Dict[str, Any], exc: BaseException, development: bool) -> ClassifiedError:
    if development:
        body["stack"] = format_stack(exc)
    return ClassifiedError(status_code=status_code, body=body)


def classify_error(
    exc: BaseException,
    development: bool = False,
    validation_type: str = "validation",
) -> ClassifiedError:
    """
    Classify an exception raised by a handler or the framework.
    
    Args:
        exc: The raised exception
        development: Attach the traceback under "stack"
        validation_type: details.type reported for validation failures
            ("request_validation" on the global handler path)
            
    Returns:
        ClassifiedError with status code and JSON body
    """
    kind = detect_kind(exc)
    message = error_message(exc)
    
    match kind:
        case ErrorKind.MISSING_FIELD:
            field = missing_field_name(message)
            status_code = 422
            body = {
                "error": "Validation Error",
                "reason": f'Field "{field}" is required',
                "details": {"type": "missing_field", "field": field},
            }
        case ErrorKind.VALIDATION:
            failures = validation_failures(exc)
            status_code = 400
            body = {
                "error": "Validation Error",
                "reason": failure_reason(failures[0]),
                "details": {"type": validation_type, "errors": failures},
            }
        case ErrorKind.EXPLICIT_STATUS:
            status_code = explicit_status(exc)
            body = {
                "error": getattr(exc, "error_name", None) or type(exc).__name__,
                "reason": message,
            }
            details = getattr(exc, "details", None)
            if details is not None:
                body["details"] = details
        case ErrorKind.CONFLICT:
            status_code = 409
            body = {"error": "Resource already exists"}
        case ErrorKind.INTERNAL:
            status_code = 500
            body = {
                "error": "Internal Server Error",
                "reason": message or "Something went wrong",
            }
    
    return _finish(status_code, body, exc, development)


def classify_serialization_error(exc: BaseException, development: bool = False) -> ClassifiedError:
    """
    Classify a failure to send a handler's result. Always 422.
    
    Covers response-schema mismatches and results that cannot be
    encoded as JSON.
    """
    message = error_message(exc)
    
    if MISSING_FIELD_MARKER in message:
        field = missing_field_name(message)
        body = {
            "error": "Response Validation Error",
            "reason": f'Field "{field}" is required in response',
            "details": {"type": "missing_field", "field": field, "message": message},
        }
    elif validation_failures(exc):
        failures = validation_failures(exc)
        body = {
            "error": "Response Validation Error",
            "reason": failure_reason(failures[0]),
            "details": {"type": "response_validation", "errors": failures},
        }
    else:
        body = {
            "error": "Serialization Error",
            "reason": message or "Failed to serialize response",
        }
    
    return _finish(422, body, exc, development)

