"""
API documentation - OpenAPI document and Swagger UI.

Route schemas are already JSON schema, so each route's OpenAPI operation
is assembled directly from its normalized schema and handed to FastAPI
as `openapi_extra`. Docs are optional: a failure here only disables the
/docs endpoint.
"""
from http import HTTPStatus
from typing import Any, Dict, List

from fastapi import FastAPI
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.responses import JSONResponse
from starlette.requests import Request

from servicekit.core.logging_config import get_logger

logger = get_logger(__name__)

OPENAPI_URL = "/openapi.json"
DOCS_URL = "/docs"

# Request section -> OpenAPI parameter location
PARAMETER_LOCATIONS = (("params", "path"), ("query", "query"), ("headers", "header"))


def setup_docs(app: FastAPI) -> bool:
    """
    Serve the OpenAPI document and Swagger UI.
    
    Returns:
        True when the endpoints were registered, False if docs are disabled
    """
    try:
        async def openapi_document(request: Request) -> JSONResponse:
            return JSONResponse(app.openapi())
        
        async def swagger_ui(request: Request):
            return get_swagger_ui_html(
                openapi_url=OPENAPI_URL,
                title=f"{app.title} - Docs",
                swagger_ui_parameters={"docExpansion": "full", "deepLinking": False},
            )
        
        app.add_route(OPENAPI_URL, openapi_document, include_in_schema=False)
        app.add_route(DOCS_URL, swagger_ui, include_in_schema=False)
    except Exception as e:
        logger.warning(f"Documentation setup failed, docs disabled: {e}")
        return False
    
    logger.debug(f"Documentation available at {DOCS_URL}")
    return True


def _parameters(schema: Dict[str, Any]) -> List[Dict[str, Any]]:
    parameters = []
    for section, location in PARAMETER_LOCATIONS:
        section_schema = schema.get(section)
        if not section_schema:
            continue
        required = set(section_schema.get("required") or [])
        for name, prop in (section_schema.get("properties") or {}).items():
            parameters.append({
                "name": name,
                "in": location,
                "required": location == "path" or name in required,
                "schema": prop,
            })
    return parameters


def _describe(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return f"Status {status}"


def build_openapi_extra(schema: Dict[str, Any]) -> Dict[str, Any]:
    """OpenAPI operation fields for a route's normalized schema."""
    extra: Dict[str, Any] = {}
    
    parameters = _parameters(schema)
    if parameters:
        extra["parameters"] = parameters
    
    if "body" in schema:
        extra["requestBody"] = {
            "required": True,
            "content": {"application/json": {"schema": schema["body"]}},
        }
    
    responses = {}
    for status, response_schema in sorted(schema.get("response", {}).items()):
        entry: Dict[str, Any] = {"description": _describe(status)}
        if status != HTTPStatus.NO_CONTENT:
            entry["content"] = {"application/json": {"schema": response_schema}}
        responses[str(status)] = entry
    extra["responses"] = responses
    
    return extra
