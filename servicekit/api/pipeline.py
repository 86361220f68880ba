"""
Route pipeline - one per registered route.

    request -> RequestValidator -> adapt_request -> invoke_handler -> ResponseResolver -> reply

    handler failure   -> classify_error               -> reply
    resolver failure  -> classify_serialization_error -> reply

Request validation failures propagate unchanged: the
framework hands them to the global error handler. Everything raised
after that point is turned into exactly one reply here.
"""
import inspect
from typing import Any, Awaitable, Callable, Dict

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from servicekit.api.classifier import classify_error, classify_serialization_error
from servicekit.api.request import adapt_request
from servicekit.api.responder import ResponseResolver
from servicekit.api.validation import RequestValidator
from servicekit.core.logging_config import get_logger
from servicekit.models.errors import ClassifiedError
from servicekit.models.route import Handler, RequestData, RouteDefinition

logger = get_logger(__name__)


async def invoke_handler(handler: Handler, data: RequestData, extensions: Any) -> Any:
    """
    Call a route handler exactly once and return its result.
    
    Coroutine functions are awaited on the event loop; plain functions
    run in the threadpool so blocking database calls do not stall other
    requests. Exceptions propagate unchanged.
    """
    if inspect.iscoroutinefunction(handler):
        return await handler(data, extensions)
    result = await run_in_threadpool(handler, data, extensions)
    if inspect.isawaitable(result):
        result = await result
    return result


class RoutePipeline:
    """
    Composes validation, adaptation, invocation and resolution for a route.
    
    Everything route-specific (compiled validators, normalized schema) is
    built in __init__, at registration time.
    """
    
    def __init__(
        self,
        route: RouteDefinition,
        schema: Dict[str, Any],
        extensions: Any,
        development: bool = False,
        strict: bool = True,
    ):
        self.route = route
        self.schema = schema
        self.extensions = extensions
        self.development = development
        self.request_validator = RequestValidator(schema, strict)
        self.resolver = ResponseResolver(route.method, schema["response"], strict)
    
    async def handle(self, request: Request) -> Response:
        raw = await self.request_validator.read(request)
        data = RequestData(request=request, **adapt_request(raw, self.schema))
        
        try:
            result = await invoke_handler(self.route.handler, data, self.extensions)
        except Exception as exc:
            classified = classify_error(exc, self.development)
            self._log_failure(request, classified, exc)
            return classified.to_response()
        
        try:
            return self.resolver.resolve(result)
        except Exception as exc:
            classified = classify_serialization_error(exc, self.development)
            self._log_failure(request, classified, exc)
            return classified.to_response()
    
    def endpoint(self) -> Callable[[Request], Awaitable[Response]]:
        """Plain coroutine function suitable for FastAPI's add_api_route."""
        async def endpoint(request: Request) -> Response:
            return await self.handle(request)
        
        endpoint.__name__ = getattr(self.route.handler, "__name__", "endpoint")
        return endpoint
    
    def _log_failure(self, request: Request, classified: ClassifiedError, exc: Exception) -> None:
        where = f"{request.method} {request.url.path}"
        if classified.status_code >= 500:
            logger.error(f"Handler failed: {where} error={exc!r}", exc_info=exc)
        else:
            logger.warning(
                f"Request rejected: {where} status={classified.status_code} "
                f"error={classified.body.get('error')}"
            )
