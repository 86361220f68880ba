"""
Route declarations - the data an application hands to the service.

These models describe a route once, at startup:
- RouteSchema: JSON schemas (or pydantic models) per request section and
  per response status code
- RouteConfig: documentation metadata
- RouteDefinition: method + path + schema + config + handler
- RequestData: the normalized request snapshot a handler receives
"""
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from starlette.requests import Request

from servicekit.core.exceptions import ConfigurationError

SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

# Request sections a schema may declare, in the order they are read
REQUEST_SECTIONS = ("body", "params", "query", "headers")

SectionSchema = Union[Dict[str, Any], type]


@dataclass(frozen=True)
class RouteSchema:
    """
    Per-route validation contract.
    
    Each section is either a JSON schema dict or a pydantic BaseModel
    subclass. `response` maps a status code to the schema the handler's
    result must satisfy when the reply uses that code.
    """
    body: Optional[SectionSchema] = None
    params: Optional[SectionSchema] = None
    query: Optional[SectionSchema] = None
    headers: Optional[SectionSchema] = None
    response: Mapping[Union[int, str], SectionSchema] = field(default_factory=dict)
    
    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RouteSchema":
        unknown = set(raw) - set(REQUEST_SECTIONS) - {"response"}
        if unknown:
            raise ConfigurationError(f"Unknown route schema sections: {sorted(unknown)}")
        return cls(**{key: value for key, value in raw.items() if value is not None})
    
    def declares(self, section: str) -> bool:
        """True if the schema has an entry for a request section."""
        return getattr(self, section) is not None


class RouteConfig(BaseModel):
    """Documentation metadata attached to a route."""
    model_config = ConfigDict(frozen=True)
    
    summary: Optional[str] = Field(default=None, description="One-line operation summary")
    description: Optional[str] = Field(default=None, description="Long-form operation description")
    tags: List[str] = Field(default_factory=lambda: ["default"], description="Docs grouping tags")
    deprecated: bool = Field(default=False, description="Mark the operation as deprecated")


@dataclass(frozen=True)
class RequestData:
    """
    Snapshot handed to a route handler.
    
    Sections the route schema does not declare (or that the request did
    not carry) are None. `request` is the raw Starlette request.
    """
    request: Request
    body: Any = None
    params: Optional[Dict[str, Any]] = None
    query: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, Any]] = None


Handler = Callable[[RequestData, Any], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class RouteDefinition:
    """
    A route declared once at startup.
    
    Attributes:
        method: One of GET, POST, PUT, PATCH, DELETE (case-insensitive)
        path: Path relative to the service prefix, e.g. "/users/{user_id}"
        handler: Callable(request_data, extensions) returning the reply data
        schema: Optional RouteSchema (or a plain dict with the same keys)
        config: Optional RouteConfig (or a plain dict with the same keys)
    """
    method: str
    path: str
    handler: Handler
    schema: Optional[RouteSchema] = None
    config: Optional[RouteConfig] = None
    
    def __post_init__(self):
        method = str(self.method).upper()
        if method not in SUPPORTED_METHODS:
            raise ConfigurationError(
                f"Unsupported method {self.method!r} for route {self.path!r}; "
                f"expected one of {', '.join(SUPPORTED_METHODS)}"
            )
        if not callable(self.handler):
            raise ConfigurationError(f"Handler for {method} {self.path} is not callable")
        
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "method", method)
        if isinstance(self.schema, Mapping):
            object.__setattr__(self, "schema", RouteSchema.from_dict(self.schema))
        elif self.schema is not None and not isinstance(self.schema, RouteSchema):
            raise ConfigurationError(f"Schema for {method} {self.path} must be a RouteSchema or dict")
        if isinstance(self.config, Mapping):
            object.__setattr__(self, "config", RouteConfig(**self.config))
