"""Access log middleware.

One ``agency_api.access`` record per request.  Besides method, path, status
and latency it records who acted (``actor_tenant``, ``role``) and, for admin
routes, which tenant was acted on (``target_tenant``), so overrides of a
client's hours can be traced back to the staff request that made them.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("agency_api.access")

CORRELATION_HEADER = "X-Correlation-ID"

_MASKED = frozenset({"authorization", "cookie", "x-api-key"})
_ADMIN_TENANT_PATH = re.compile(r"/maintenance/admin/tenants/(?P<tenant>[^/]+)")


def _masked_headers(request: Request) -> dict[str, str]:
    return {k: "***" if k.lower() in _MASKED else v for k, v in request.headers.items()}


def _target_tenant(path: str) -> str | None:
    match = _ADMIN_TENANT_PATH.search(path)
    return match.group("tenant") if match else None


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and echo its correlation id.

    The id is taken from ``X-Correlation-ID`` when the caller sends one,
    otherwise a UUID-4 is generated.  A request that raises is logged as
    status 500.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        started = time.monotonic()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            payload: dict[str, Any] = {
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
                "correlation_id": correlation_id,
                "actor_tenant": getattr(request.state, "tenant_id", None),
                "target_tenant": _target_tenant(request.url.path),
                "role": getattr(request.state, "role", None),
                "headers": _masked_headers(request),
            }
            logger.log(_level_for(status_code), "request completed", extra={"request": payload})
