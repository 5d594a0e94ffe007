"""Authentication middleware that validates bearer tokens.

Extracts ``Authorization: Bearer <token>`` from every request, validates
it with :class:`~agency_api.security.TokenManager`, and populates
``request.state`` with ``sub``, ``tenant_id`` and ``role``.  Tokens
without a role claim are treated as ``client`` (least privilege).

Endpoints listed in ``_PUBLIC_PATHS`` bypass authentication.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from agency_api.config import APISettings, PlatformEnv
from agency_api.security import TokenManager

logger = logging.getLogger(__name__)

_PUBLIC_PATHS: frozenset[str] = frozenset(
    {
        "/api/v1/health",
        "/ready",
        "/docs",
        "/openapi.json",
        "/redoc",
        "/favicon.ico",
    }
)

_PUBLIC_PREFIXES: tuple[str, ...] = (
    "/docs",
    "/redoc",
)


def build_token_manager(settings: APISettings) -> TokenManager:
    """Construct the token manager from settings.

    In dev an empty ``API_AUTH_SECRET`` yields a random per-process secret;
    elsewhere it is a startup error.
    """
    secret = settings.auth_secret.get_secret_value()
    if not secret:
        if settings.platform_env != PlatformEnv.DEV:
            raise RuntimeError(
                f"API_AUTH_SECRET must be set when platform_env={settings.platform_env.value}. "
                "Refusing to start with an insecure default secret."
            )
        secret = f"dev-{secrets.token_hex(32)}"
        logger.warning("API_AUTH_SECRET not set; generated random per-process dev secret")
    return TokenManager(secret, ttl_seconds=settings.token_ttl_seconds)


def _is_public_path(path: str) -> bool:
    """Return ``True`` if the path should bypass authentication."""
    if path in _PUBLIC_PATHS:
        return True
    return any(path.startswith(prefix) for prefix in _PUBLIC_PREFIXES)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that enforces Bearer token authentication.

    On each request the middleware:

    1. Skips public paths (health, docs) and CORS preflights.
    2. Extracts the ``Authorization: Bearer <token>`` header.
    3. Validates the token via :class:`TokenManager`.
    4. Stores ``sub``, ``tenant_id`` and ``role`` on ``request.state``.
    5. Returns a 401/403 JSON response on failure.
    """

    def __init__(self, app: Any, token_manager: TokenManager) -> None:
        super().__init__(app)
        self._token_manager = token_manager

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path

        # CORS preflights carry no credentials.
        if request.method == "OPTIONS" or _is_public_path(path):
            return await call_next(request)

        auth_header = request.headers.get("authorization")
        if not auth_header:
            return JSONResponse(
                status_code=401,
                content={"detail": "Missing Authorization header"},
            )

        parts = auth_header.split(None, 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return JSONResponse(
                status_code=401,
                content={"detail": "Authorization header must use Bearer scheme"},
            )

        try:
            claims = self._token_manager.validate_token(parts[1])
        except PermissionError as exc:
            error_msg = str(exc)
            if "expired" in error_msg.lower():
                return JSONResponse(
                    status_code=403,
                    content={"detail": "Token has expired"},
                )
            return JSONResponse(
                status_code=401,
                content={"detail": f"Invalid token: {error_msg}"},
            )

        request.state.sub = claims.sub
        request.state.tenant_id = claims.tenant_id
        request.state.role = claims.role or "client"

        return await call_next(request)
