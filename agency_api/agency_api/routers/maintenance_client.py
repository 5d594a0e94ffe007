"""Tenant-facing maintenance API.

Read-only views of the caller's own tenant.  The tenant comes from the
bearer token; users without one get HTTP 400.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from agency_api.dependencies import ClockDep, HoursPolicyDep, SessionDep, SettingsDep, TenantDep
from agency_api.middleware.rbac import Role, require_role
from agency_api.routers.errors import http_error
from agency_api.services.feature_service import FeatureService
from agency_api.services.maintenance_service import MaintenanceService
from agency_core.maintenance.errors import MaintenanceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.get("/current")
async def get_current_summary(
    session: SessionDep,
    tenant_id: TenantDep,
    settings: SettingsDep,
    clock: ClockDep,
    hours_policy: HoursPolicyDep,
    _role: Role = Depends(require_role(Role.CLIENT)),
) -> dict[str, Any]:
    """Summary of the caller's current cycle with total and remaining hours."""
    service = MaintenanceService(
        session,
        tenant_id=tenant_id,
        clock=clock,
        hours_policy=hours_policy,
        conflict_retries=settings.cycle_conflict_retries,
    )
    try:
        return await service.get_current_summary()
    except MaintenanceError as exc:
        raise http_error(exc) from exc


@router.get("/entries")
async def list_entries(
    session: SessionDep,
    tenant_id: TenantDep,
    _role: Role = Depends(require_role(Role.CLIENT)),
) -> list[dict[str, Any]]:
    """Every time entry of the caller's tenant with its month."""
    service = MaintenanceService(session, tenant_id=tenant_id)
    return await service.list_entries_with_month()


@router.get("/features")
async def list_features(
    session: SessionDep,
    tenant_id: TenantDep,
    _role: Role = Depends(require_role(Role.CLIENT)),
) -> list[dict[str, Any]]:
    """Active features included in the caller's plan."""
    return await FeatureService(session).list_features_for_tenant(tenant_id)
