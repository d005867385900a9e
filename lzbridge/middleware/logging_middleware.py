"""
HTTP request logging middleware.

One ``http_request`` line per call. Besides method, path, status and
duration it carries the transfer the request was about: the tx hash from
the path (``/api/transfers/{tx_hash}``) or query string, and the route
template so status polls for different hashes group together.
"""

import time
import uuid
from typing import Any, Dict

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.stdlib.get_logger("http")

_TX_QUERY_KEYS = ("txHash", "tx")
_NETWORK_QUERY_KEYS = ("network", "sourceNetwork")


def transfer_fields(request: Request) -> Dict[str, Any]:
    """Bridge context found in the matched route and query string."""

    fields: Dict[str, Any] = {}
    path_params = request.scope.get("path_params") or {}
    tx_hash = path_params.get("tx_hash") or next(
        (request.query_params[k] for k in _TX_QUERY_KEYS if k in request.query_params), None
    )
    if tx_hash:
        fields["tx_hash"] = tx_hash
    network = next((request.query_params[k] for k in _NETWORK_QUERY_KEYS if k in request.query_params), None)
    if network:
        fields["network"] = network
    route = request.scope.get("route")
    if route is not None and getattr(route, "path", None):
        fields["route"] = route.path
    return fields


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log bridge API requests with a per-request id."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("x-request-id", uuid.uuid4().hex[:8])

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["x-request-id"] = request_id
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 1)
            if status_code >= 500:
                log = logger.error
            elif status_code >= 400:
                log = logger.warning
            else:
                log = logger.info
            # Routing fills path_params in the shared scope during call_next
            log(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=duration_ms,
                **transfer_fields(request),
            )
