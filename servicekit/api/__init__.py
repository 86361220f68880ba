"""
API module - route registration and HTTP error handling.

This module handles:
- Schema normalization and JSON schema validation
- The per-route request pipeline
- Error classification and global error handlers
- The service lifecycle
"""
from servicekit.api.classifier import ErrorKind, classify_error, classify_serialization_error
from servicekit.api.request import adapt_request
from servicekit.api.responder import ResponseResolver, resolve_status
from servicekit.api.schema import normalize_schema
from servicekit.api.service import Service, ServiceOptions, ServiceState, create_service

__all__ = [
    "ErrorKind",
    "classify_error",
    "classify_serialization_error",
    "adapt_request",
    "ResponseResolver",
    "resolve_status",
    "normalize_schema",
    "Service",
    "ServiceOptions",
    "ServiceState",
    "create_service",
]
