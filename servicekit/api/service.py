"""
Service Orchestrator - builds, starts and stops a servicekit service.

Lifecycle:

    CONFIGURED -> DOCS_REGISTERED (optional) -> ROUTES_REGISTERED
               -> ERROR_HANDLER_INSTALLED -> LISTENING -> CLOSED

Each declared route is registered exactly once, with its normalized
schema and a RoutePipeline as the endpoint. The route list is frozen
when the Service is constructed.

Example:
    >>> routes = [RouteDefinition("GET", "/users/{user_id}", get_user)]
    >>> service = create_service(ServiceOptions.from_settings(routes))
    >>> service.run()
"""
import asyncio
import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

import uvicorn
from fastapi import FastAPI

from servicekit.api.docs import DOCS_URL, build_openapi_extra, setup_docs
from servicekit.api.handlers import install_error_handlers
from servicekit.api.pipeline import RoutePipeline
from servicekit.api.schema import normalize_schema
from servicekit.core.audit import AuditMiddleware
from servicekit.core.config import Settings, get_settings
from servicekit.core.exceptions import ConfigurationError, ServiceStateError
from servicekit.core.logging_config import LoggerMixin, setup_logging
from servicekit.database.extensions import ServiceExtensions, create_extensions, describe
from servicekit.models.route import RouteDefinition

STARTUP_POLL_INTERVAL = 0.05


class ServiceState(str, Enum):
    CONFIGURED = "configured"
    DOCS_REGISTERED = "docs_registered"
    ROUTES_REGISTERED = "routes_registered"
    ERROR_HANDLER_INSTALLED = "error_handler_installed"
    LISTENING = "listening"
    CLOSED = "closed"


@dataclass
class ServiceOptions:
    """
    Everything a Service needs to start.
    
    Attributes:
        name: Service name, used as docs title and in logs
        routes: Declared routes, frozen at construction
        port: Listening port
        host: Listening interface
        prefix: Path prefix for every route
        auto_docs: Serve /docs and /openapi.json
        strict_validation: Reject invalid JSON schemas at registration
        development: Attach tracebacks to error replies
        database_url: SQLAlchemy URL for the db extension
        db_check_on_startup: Run one connectivity check before listening
        engine_options: Extra create_engine keyword arguments
        extensions: Prebuilt extensions bundle (skips create_extensions)
        audit_logging: Log every request
        log_level: Console log level
        log_dir: Directory for daily log files
        version: Version shown in the OpenAPI document
        fastapi_options: Extra FastAPI constructor arguments
    """
    name: str
    routes: Sequence[RouteDefinition]
    port: int = 3000
    host: str = "0.0.0.0"
    prefix: str = "/api"
    auto_docs: bool = True
    strict_validation: bool = True
    development: bool = False
    database_url: Optional[str] = None
    db_check_on_startup: bool = True
    engine_options: Dict[str, Any] = field(default_factory=dict)
    extensions: Optional[ServiceExtensions] = None
    audit_logging: bool = True
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    version: str = "1.0.0"
    fastapi_options: Dict[str, Any] = field(default_factory=dict)
    
    @classmethod
    def from_settings(
        cls,
        routes: Sequence[RouteDefinition],
        settings: Optional[Settings] = None,
        **overrides: Any,
    ) -> "ServiceOptions":
        """Build options from environment settings; keyword overrides win."""
        settings = settings or get_settings()
        values: Dict[str, Any] = dict(
            name=settings.service_name,
            routes=routes,
            port=settings.port,
            host=settings.host,
            prefix=settings.api_prefix,
            auto_docs=settings.auto_docs,
            strict_validation=settings.strict_validation,
            development=settings.is_development(),
            database_url=settings.database_url,
            db_check_on_startup=settings.db_check_on_startup,
            audit_logging=settings.audit_logging,
            log_level=settings.log_level,
            log_dir=settings.log_dir,
        )
        values.update(overrides)
        return cls(**values)


def build_path(prefix: str, path: str) -> str:
    """
    Join prefix and route path, collapsing repeated slashes.
    
    ":name" path segments are accepted as an alias for "{name}".
    """
    path = re.sub(r"(?<=/):(\w+)", r"{\1}", path)
    return re.sub(r"/{2,}", "/", f"{prefix}{path}")


class Service(LoggerMixin):
    """
    Owns the FastAPI application, the extensions bundle and the server.
    
    prepare() builds everything up to the error handlers and returns the
    app (TestClient and external ASGI servers use it from there);
    initialize() additionally starts uvicorn.
    """
    
    def __init__(self, options: ServiceOptions):
        self.options = options
        self.routes: Tuple[RouteDefinition, ...] = tuple(options.routes)
        self.state = ServiceState.CONFIGURED
        self.extensions: Optional[ServiceExtensions] = options.extensions
        self.docs_enabled = False
        self.pipelines: Dict[Tuple[str, str], RoutePipeline] = {}
        
        self._server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None
        self._startup_error: Optional[BaseException] = None
        
        setup_logging(options.log_level, options.log_dir)
        
        fastapi_options: Dict[str, Any] = {
            "title": options.name,
            "version": options.version,
            # Docs routes are added by setup_docs() when enabled
            "openapi_url": None,
            "docs_url": None,
            "redoc_url": None,
        }
        fastapi_options.update(options.fastapi_options)
        self.app = FastAPI(**fastapi_options)
        
        if options.audit_logging:
            self.app.add_middleware(AuditMiddleware)
    
    # ============================================================
    # Startup steps
    # ============================================================
    
    def prepare(self) -> FastAPI:
        """
        Register docs, build extensions, register routes, install handlers.
        
        Raises:
            DatabaseError: The startup connectivity check failed
            ConfigurationError: A route or schema is invalid
            ServiceStateError: Called more than once
        """
        self._require(ServiceState.CONFIGURED, action="prepare")
        
        if self.options.auto_docs:
            self.setup_docs()
        
        if self.extensions is None:
            self.extensions = create_extensions(
                self.options.database_url,
                self.options.engine_options,
                check_connection=self.options.db_check_on_startup,
            )
        self.logger.info(f"Extensions ready: {describe(self.extensions)}")
        
        self.register_routes(self.extensions)
        self.set_error_handler()
        return self.app
    
    def setup_docs(self) -> None:
        self._require(ServiceState.CONFIGURED, action="set up docs")
        if setup_docs(self.app):
            self.docs_enabled = True
            self.state = ServiceState.DOCS_REGISTERED
    
    def register_routes(self, extensions: ServiceExtensions) -> None:
        self._require(
            ServiceState.CONFIGURED,
            ServiceState.DOCS_REGISTERED,
            action="register routes",
        )
        for route in self.routes:
            self._register_route(route, extensions)
        self.state = ServiceState.ROUTES_REGISTERED
        self.logger.info(f"Registered {len(self.routes)} routes under {self.options.prefix}")
    
    def _register_route(self, route: RouteDefinition, extensions: ServiceExtensions) -> None:
        full_path = build_path(self.options.prefix, route.path)
        key = (route.method, full_path)
        if key in self.pipelines:
            raise ConfigurationError(f"Route {route.method} {full_path} is declared more than once")
        
        schema = normalize_schema(route.schema, route.config)
        pipeline = RoutePipeline(
            route,
            schema,
            extensions,
            development=self.options.development,
            strict=self.options.strict_validation,
        )
        
        self.app.add_api_route(
            full_path,
            pipeline.endpoint(),
            methods=[route.method],
            response_model=None,
            summary=schema.get("summary"),
            description=schema.get("description"),
            tags=schema["tags"],
            deprecated=schema["deprecated"] or None,
            openapi_extra=build_openapi_extra(schema),
        )
        self.pipelines[key] = pipeline
        self.logger.debug(f"Route registered: {route.method} {full_path}")
    
    def set_error_handler(self) -> None:
        self._require(ServiceState.ROUTES_REGISTERED, action="install error handlers")
        install_error_handlers(self.app, development=self.options.development)
        self.state = ServiceState.ERROR_HANDLER_INSTALLED
    
    # ============================================================
    # Server lifecycle
    # ============================================================
    
    async def initialize(self) -> None:
        """Prepare the app and start listening. Exits the process on listen failure."""
        self.prepare()
        await self.listen()
    
    async def listen(self) -> None:
        self._require(ServiceState.ERROR_HANDLER_INSTALLED, action="listen")
        host, port = self.options.host, self.options.port
        
        config = uvicorn.Config(self.app, host=host, port=port, log_config=None, access_log=False)
        self._server = uvicorn.Server(config)
        self._server_task = asyncio.create_task(self._serve_until_stopped())
        
        while not self._server.started and not self._server_task.done():
            await asyncio.sleep(STARTUP_POLL_INTERVAL)
        
        if not self._server.started:
            error = self._startup_error or "server stopped during startup"
            self.logger.error(f"Failed to start server: {error}")
            if self.extensions is not None:
                self.extensions.close()
            sys.exit(1)
        
        self.state = ServiceState.LISTENING
        self.logger.info(f"{self.options.name} started on http://{host}:{port}")
        if self.docs_enabled:
            self.logger.info(f"Documentation: http://{host}:{port}{DOCS_URL}")
    
    async def _serve_until_stopped(self) -> None:
        try:
            await self._server.serve()
        except (OSError, SystemExit) as e:
            # uvicorn exits on bind failures; listen() reports it
            self._startup_error = e
    
    async def serve(self) -> None:
        """Wait until the server stops."""
        if self._server_task is not None:
            await self._server_task
    
    async def close(self) -> None:
        """Stop the server and release extensions. Safe to call twice."""
        if self.state is ServiceState.CLOSED:
            return
        if self._server is not None and self._server_task is not None:
            self._server.should_exit = True
            await self._server_task
        if self.extensions is not None:
            self.extensions.close()
        self.state = ServiceState.CLOSED
        self.logger.info(f"{self.options.name} closed")
    
    def run(self) -> None:
        """Blocking entry point: initialize, serve until stopped, close."""
        async def main():
            await self.initialize()
            try:
                await self.serve()
            finally:
                await self.close()
        
        asyncio.run(main())
    
    def get_app(self) -> FastAPI:
        return self.app
    
    def _require(self, *states: ServiceState, action: str) -> None:
        if self.state not in states:
            raise ServiceStateError(f"Cannot {action} while service is {self.state.value}")


def create_service(options: ServiceOptions) -> Service:
    """Factory for Service."""
    return Service(options)
