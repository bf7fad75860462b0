"""Request timing middleware feeding the request metrics recorder and exporter."""

import time
import uuid
from collections.abc import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ...constants import CONSTANTS
from ...utils.logging import bind_request_id, clear_request_context

logger = structlog.get_logger(__name__)


class RequestMetricsMiddleware(BaseHTTPMiddleware):  # pylint: disable=too-few-public-methods
    """Times every request and records it with the monitoring service."""

    def __init__(self, app, request_id_header: str = CONSTANTS.REQUEST_ID_HEADER):
        """Initialize request metrics middleware.

        Args:
            app: FastAPI application
            request_id_header: Header carrying the request id
        """
        super().__init__(app)
        self.request_id_header = request_id_header

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and record its timing.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware/handler

        Returns:
            HTTP response
        """
        request_id = request.headers.get(self.request_id_header) or str(uuid.uuid4())
        bind_request_id(request_id)
        started = time.perf_counter()

        try:
            try:
                response = await call_next(request)
            except Exception as e:
                self._record(request, 500, started)
                logger.error(
                    "Request failed",
                    method=request.method,
                    path=request.url.path,
                    error=str(e),
                )
                raise

            response.headers[self.request_id_header] = request_id
            self._record(request, response.status_code, started)
            return response
        finally:
            clear_request_context()

    def _record(self, request: Request, status_code: int, started: float) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        path = request.url.path
        route = request.scope.get("route")
        route_path = getattr(route, "path", path)

        monitoring = getattr(request.app.state, "monitoring", None)
        if monitoring is not None:
            monitoring.recorder.record(path, duration_ms, is_error=status_code >= 400)
            monitoring.exporter.observe_request(request.method, route_path, status_code, duration_ms)

        logger.info(
            "Request completed",
            method=request.method,
            path=path,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
            client_ip=request.client.host if request.client else "unknown",
        )
