"""
Response Resolver - status code policy and outgoing validation.

Status policy, in order:
1. POST with a result other than None -> 201
2. DELETE -> 204, no body whatever the handler returned
3. everything else -> 200

When the route declares a response schema for the resolved status, the
JSON-encoded result must satisfy it; otherwise ResponseValidationFailed
is raised and the caller replies 422 instead of sending the payload.
"""
from typing import Any, Dict, Mapping

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.responses import Response

from servicekit.api.validation import collect_failures, compile_validator
from servicekit.core.exceptions import ResponseValidationFailed

CREATED = 201
NO_CONTENT = 204
OK = 200


def resolve_status(method: str, result: Any) -> int:
    """Map an HTTP method and handler result to the success status code."""
    method = method.upper()
    if method == "POST" and result is not None:
        return CREATED
    if method == "DELETE":
        return NO_CONTENT
    return OK


class ResponseResolver:
    """
    Builds the success reply for one route.
    
    Response validators are compiled once, at registration.
    """
    
    def __init__(self, method: str, response_schemas: Mapping[int, Dict[str, Any]], strict: bool = True):
        self.method = method.upper()
        self._validators = {
            status: compile_validator(schema, strict)
            for status, schema in response_schemas.items()
        }
    
    def has_schema(self, status: int) -> bool:
        return status in self._validators
    
    def resolve(self, result: Any) -> Response:
        """
        Turn a handler result into a reply.
        
        Raises:
            ResponseValidationFailed: Result breaks the declared response schema
            ValueError, TypeError: Result cannot be encoded as JSON
        """
        status = resolve_status(self.method, result)
        
        validator = self._validators.get(status)
        if validator is None:
            if status == NO_CONTENT:
                return Response(status_code=NO_CONTENT)
            return JSONResponse(status_code=status, content=jsonable_encoder(result))
        
        content = jsonable_encoder(result)
        failures = collect_failures(validator, content)
        if failures:
            raise ResponseValidationFailed(failures)
        
        if status == NO_CONTENT:
            return Response(status_code=NO_CONTENT)
        return JSONResponse(status_code=status, content=content)
