"""
Models module - route declarations and reply values.

This module defines:
- Route models: RouteDefinition, RouteSchema, RouteConfig
- Handler input: RequestData
- Error replies: ClassifiedError
"""
from servicekit.models.route import (
    REQUEST_SECTIONS,
    SUPPORTED_METHODS,
    RequestData,
    RouteConfig,
    RouteDefinition,
    RouteSchema,
)
from servicekit.models.errors import ClassifiedError

__all__ = [
    "REQUEST_SECTIONS",
    "SUPPORTED_METHODS",
    "RequestData",
    "RouteConfig",
    "RouteDefinition",
    "RouteSchema",
    "ClassifiedError",
]
