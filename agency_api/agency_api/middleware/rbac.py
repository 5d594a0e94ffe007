"""Role-based access control for the maintenance API.

Two roles exist.  ``CLIENT`` users belong to a tenant and can read their
own cycle, entries and features.  ``ADMIN`` users are agency staff and can
manage any tenant through the admin routes.

Usage in routers::

    from agency_api.middleware.rbac import Role, require_role

    @router.get("/admin/features")
    async def list_features(
        ...,
        _role: Role = Depends(require_role(Role.ADMIN)),
    ) -> ...:
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import IntEnum

from fastapi import Depends, HTTPException, Request

logger = logging.getLogger(__name__)


class Role(IntEnum):
    """User roles ordered by privilege level (higher int = more authority)."""

    CLIENT = 0
    ADMIN = 1


_ROLE_LOOKUP: dict[str, Role] = {r.name.lower(): r for r in Role}


def parse_role(raw: str) -> Role:
    """Convert a token ``role`` claim string into a :class:`Role`.

    Raises :class:`ValueError` if the string does not map to a known role.
    """
    try:
        return _ROLE_LOOKUP[raw.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown role '{raw}'. Valid roles: {sorted(_ROLE_LOOKUP)}") from None


def get_user_role(request: Request) -> Role:
    """Extract and validate the user role from ``request.state.role``.

    Raises
    ------
    HTTPException(401)
        If the request carries no authenticated identity.
    HTTPException(403)
        If the role claim value is not a recognised role.
    """
    raw_role: str | None = getattr(request.state, "role", None)
    if raw_role is None:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        return parse_role(raw_role)
    except ValueError:
        logger.warning("Unrecognised role claim '%s'; denying access", raw_role)
        raise HTTPException(
            status_code=403,
            detail=f"Unrecognised role '{raw_role}'. Valid roles: {sorted(_ROLE_LOOKUP)}",
        ) from None


def require_role(min_role: Role) -> Callable[..., Role]:
    """Return a FastAPI dependency that enforces a minimum role level."""

    def _guard(role: Role = Depends(get_user_role)) -> Role:
        if role < min_role:
            logger.info(
                "Role check failed: has=%s, required=%s",
                role.name,
                min_role.name,
            )
            raise HTTPException(
                status_code=403,
                detail=f"Insufficient role: '{role.name.lower()}' requires at least '{min_role.name.lower()}'",
            )
        return role

    return _guard
