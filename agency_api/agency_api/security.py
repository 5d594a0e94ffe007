"""HMAC-signed bearer tokens.

Token layout is ``agdev.<urlsafe-b64(payload-json)>.<hex hmac-sha256>``
where the HMAC is computed over the raw payload JSON.  Payload fields:
``sub``, ``tenant_id`` (``null`` for staff without a tenant), ``role``,
``iat``, ``exp`` and ``jti``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from typing import Any

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "agdev"


class TokenClaims(BaseModel):
    """Validated contents of a bearer token."""

    sub: str
    tenant_id: str | None = None
    role: str = "client"
    iat: float
    exp: float
    jti: str | None = None


class TokenManager:
    """Issue and validate HMAC bearer tokens.

    Parameters
    ----------
    secret:
        Shared signing secret.
    ttl_seconds:
        Default lifetime of issued tokens.
    """

    def __init__(self, secret: str, *, ttl_seconds: int = 3600) -> None:
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._secret = secret.encode("utf-8")
        self._ttl_seconds = ttl_seconds

    def _sign(self, payload_json: str) -> str:
        return hmac.new(self._secret, payload_json.encode("utf-8"), hashlib.sha256).hexdigest()

    def generate_token(
        self,
        sub: str,
        *,
        tenant_id: str | None = None,
        role: str = "client",
        ttl_seconds: int | None = None,
    ) -> str:
        """Return a signed token for *sub*."""
        now = time.time()
        payload: dict[str, Any] = {
            "sub": sub,
            "tenant_id": tenant_id,
            "role": role,
            "iat": now,
            "exp": now + (ttl_seconds or self._ttl_seconds),
            "jti": secrets.token_hex(8),
        }
        payload_json = json.dumps(payload)
        encoded = base64.urlsafe_b64encode(payload_json.encode("utf-8")).decode("ascii")
        return f"{TOKEN_PREFIX}.{encoded}.{self._sign(payload_json)}"

    def validate_token(self, token: str) -> TokenClaims:
        """Verify signature and expiry and return the claims.

        Raises
        ------
        PermissionError
            If the token is malformed, forged or expired.
        """
        parts = token.split(".")
        if len(parts) != 3 or parts[0] != TOKEN_PREFIX:
            raise PermissionError("malformed token")

        try:
            payload_json = base64.urlsafe_b64decode(parts[1].encode("ascii")).decode("utf-8")
        except (binascii.Error, UnicodeError, ValueError) as exc:
            raise PermissionError("malformed token") from exc

        if not hmac.compare_digest(self._sign(payload_json), parts[2]):
            raise PermissionError("bad signature")

        try:
            claims = TokenClaims.model_validate_json(payload_json)
        except ValidationError as exc:
            raise PermissionError("invalid claims") from exc

        if claims.exp < time.time():
            raise PermissionError("token expired")
        return claims
