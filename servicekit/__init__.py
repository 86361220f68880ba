"""
servicekit - declarative routes with schema-driven validation on FastAPI.

Package layout by responsibility:
- api/       : Route pipeline, error classification, service lifecycle
- core/      : Configuration, logging, exceptions, audit middleware
- database/  : SQLAlchemy access and the extensions bundle
- models/    : Route declarations and reply values
"""
from servicekit.api.service import Service, ServiceOptions, ServiceState, create_service
from servicekit.core.exceptions import (
    BadRequestError,
    ConfigurationError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    RequestValidationFailed,
    ResponseValidationFailed,
    ServiceError,
    ServiceStateError,
)
from servicekit.database.extensions import ServiceExtensions
from servicekit.models.route import RequestData, RouteConfig, RouteDefinition, RouteSchema

__version__ = "1.0.0"

__all__ = [
    "Service",
    "ServiceOptions",
    "ServiceState",
    "create_service",
    "BadRequestError",
    "ConfigurationError",
    "ConflictError",
    "DatabaseError",
    "NotFoundError",
    "RequestValidationFailed",
    "ResponseValidationFailed",
    "ServiceError",
    "ServiceStateError",
    "ServiceExtensions",
    "RequestData",
    "RouteConfig",
    "RouteDefinition",
    "RouteSchema",
]
