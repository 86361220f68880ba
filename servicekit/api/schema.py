"""
Schema Normalizer - route schemas as registered with the framework.

Runs once per route at registration time:
- pydantic models are converted to JSON schema
- response keys become integer status codes
- default 400/500 error shapes are added where the caller gave none
- documentation metadata from RouteConfig is merged in

The caller's RouteSchema is never modified.
"""
import copy
from typing import Any, Dict, Optional

from pydantic import BaseModel

from servicekit.core.exceptions import ConfigurationError
from servicekit.models.route import REQUEST_SECTIONS, RouteConfig, RouteSchema

# Default error reply shape advertised for 400 and 500
DEFAULT_ERROR_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "success": {"type": "boolean"},
        "error": {"type": "string"},
        "details": {"type": ["array", "null"]},
    },
}

DEFAULT_ERROR_STATUSES = (400, 500)


def to_json_schema(section: Any) -> Dict[str, Any]:
    """
    Return a fresh JSON schema dict for a schema section.
    
    Args:
        section: JSON schema dict or pydantic BaseModel subclass
        
    Raises:
        ConfigurationError: For anything else
    """
    if isinstance(section, type) and issubclass(section, BaseModel):
        return section.model_json_schema()
    if isinstance(section, dict):
        return copy.deepcopy(section)
    raise ConfigurationError(
        f"Schema sections must be JSON schema dicts or pydantic models, got {type(section).__name__}"
    )


def _status_code(key: Any) -> int:
    try:
        code = int(key)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Response schema key {key!r} is not a status code") from None
    if not 100 <= code <= 599:
        raise ConfigurationError(f"Response schema key {key!r} is not a status code")
    return code


def normalize_schema(
    schema: Optional[RouteSchema],
    config: Optional[RouteConfig] = None,
) -> Dict[str, Any]:
    """
    Build the registration-time schema for a route.
    
    Args:
        schema: The route's declared schema, may be None
        config: The route's documentation metadata, may be None
        
    Returns:
        Dict with a key for every declared request section, a "response"
        map keyed by int status code (always holding 400 and 500), and
        the docs keys "tags", "summary", "description", "deprecated".
    """
    schema = schema if schema is not None else RouteSchema()
    config = config if config is not None else RouteConfig()
    
    normalized: Dict[str, Any] = {}
    for section in REQUEST_SECTIONS:
        if schema.declares(section):
            normalized[section] = to_json_schema(getattr(schema, section))
    
    response = {
        _status_code(key): to_json_schema(value)
        for key, value in (schema.response or {}).items()
    }
    for status in DEFAULT_ERROR_STATUSES:
        response.setdefault(status, copy.deepcopy(DEFAULT_ERROR_SCHEMA))
    normalized["response"] = response
    
    normalized["tags"] = list(config.tags) or ["default"]
    if config.summary:
        normalized["summary"] = config.summary
    if config.description:
        normalized["description"] = config.description
    normalized["deprecated"] = config.deprecated
    
    return normalized
