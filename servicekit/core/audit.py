"""
Audit Middleware - Request/response logging.

This middleware logs every request the service handles:
- Request method and path
- Response status code
- Request duration

Logs go through the servicekit logging configuration.
"""
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from servicekit.core.logging_config import get_logger

logger = get_logger(__name__)

# Documentation endpoints are only logged at DEBUG level
QUIET_PATHS = ("/docs", "/openapi.json", "/docs/oauth2-redirect")


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging all requests and responses.
    
    Captures timing information and adds an X-Response-Time header.
    """
    
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log audit information."""
        start_time = time.time()
        
        method = request.method
        path = request.url.path
        client_ip = request.client.host if request.client else "unknown"
        
        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            logger.error(
                f"REQUEST FAILED: {method} {path} "
                f"client={client_ip} duration={duration:.3f}s error={str(e)}"
            )
            raise
        
        duration = time.time() - start_time
        self._log_request(
            method=method,
            path=path,
            status_code=response.status_code,
            duration=duration,
            client_ip=client_ip,
        )
        response.headers["X-Response-Time"] = f"{duration:.3f}s"
        
        return response
    
    def _log_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration: float,
        client_ip: str,
    ) -> None:
        """Log request details."""
        if path in QUIET_PATHS:
            logger.debug(f"DOCS: {path} status={status_code} duration={duration:.3f}s")
            return
        
        # Determine log level based on status code
        if status_code >= 500:
            log_fn = logger.error
        elif status_code >= 400:
            log_fn = logger.warning
        else:
            log_fn = logger.info
        
        log_fn(
            f"REQUEST: {method} {path} "
            f"status={status_code} duration={duration:.3f}s client={client_ip}"
        )
