"""Admin API for maintenance cycles, time entries, tasks and features.

Every endpoint requires the ``admin`` role and names the target tenant in
the path.  Request bodies accept both snake_case and camelCase keys.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from agency_api.dependencies import ClockDep, HoursPolicyDep, SessionDep, SettingsDep
from agency_api.middleware.rbac import Role, require_role
from agency_api.routers.errors import http_error
from agency_api.services.feature_service import FeatureService
from agency_api.services.maintenance_service import MaintenanceService
from agency_core.maintenance.errors import MaintenanceError
from agency_core.maintenance.models import CycleOverrides, TimeEntryInput

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/maintenance/admin", tags=["maintenance-admin"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UpdateCycleRequest(_RequestModel):
    """Hour bucket overrides; omitted fields are left unchanged."""

    base_hours: float | None = None
    carried_hours: float | None = None
    used_hours: float | None = None


class CreateEntryRequest(_RequestModel):
    """Request body for logging maintenance time."""

    date: datetime
    duration_hours: float
    task_id: str | None = None
    is_included_in_plan: bool | None = None
    notes: str | None = Field(None, max_length=2000)


class CreateTaskRequest(_RequestModel):
    """Request body for creating a maintenance task."""

    title: str = Field(..., max_length=255)
    type: str | None = None
    status: str | None = None


class CreateFeatureRequest(_RequestModel):
    """Request body for adding a catalog feature."""

    label: str = Field(..., min_length=1, max_length=120)
    description: str | None = Field(None, max_length=500)


class SetTenantFeaturesRequest(_RequestModel):
    """Request body replacing a tenant's assigned features."""

    feature_ids: list[str]


def _service(
    session: SessionDep,
    settings: SettingsDep,
    clock: ClockDep,
    hours_policy: HoursPolicyDep,
    tenant_id: str,
) -> MaintenanceService:
    return MaintenanceService(
        session,
        tenant_id=tenant_id,
        clock=clock,
        hours_policy=hours_policy,
        conflict_retries=settings.cycle_conflict_retries,
    )


# ---------------------------------------------------------------------------
# Cycles
# ---------------------------------------------------------------------------


@router.get("/tenants/{tenant_id}/current")
async def get_current_cycle(
    tenant_id: str,
    service: MaintenanceService = Depends(_service),
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> dict[str, Any]:
    """Return the tenant's cycle for the current month, creating it if needed."""
    try:
        return await service.get_current_cycle()
    except MaintenanceError as exc:
        raise http_error(exc) from exc


@router.patch("/tenants/{tenant_id}/current")
async def update_current_cycle(
    tenant_id: str,
    body: UpdateCycleRequest,
    service: MaintenanceService = Depends(_service),
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> dict[str, Any]:
    """Override the current cycle's base, carried or used hours."""
    overrides = CycleOverrides(
        base_hours=body.base_hours,
        carried_hours=body.carried_hours,
        used_hours=body.used_hours,
    )
    try:
        return await service.update_current_cycle(overrides)
    except MaintenanceError as exc:
        raise http_error(exc) from exc


# ---------------------------------------------------------------------------
# Time entries
# ---------------------------------------------------------------------------


@router.post("/tenants/{tenant_id}/entries")
async def create_time_entry(
    tenant_id: str,
    body: CreateEntryRequest,
    service: MaintenanceService = Depends(_service),
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> dict[str, Any]:
    """Log time against the tenant's current cycle."""
    entry = TimeEntryInput(
        date=body.date,
        duration_hours=body.duration_hours,
        task_id=body.task_id,
        is_included_in_plan=True if body.is_included_in_plan is None else body.is_included_in_plan,
        notes=body.notes,
    )
    try:
        return await service.create_time_entry(entry)
    except MaintenanceError as exc:
        raise http_error(exc) from exc


@router.get("/tenants/{tenant_id}/entries")
async def list_current_entries(
    tenant_id: str,
    service: MaintenanceService = Depends(_service),
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> list[dict[str, Any]]:
    """Entries of the tenant's current cycle, newest first."""
    try:
        return await service.list_current_entries()
    except MaintenanceError as exc:
        raise http_error(exc) from exc


@router.get("/tenants/{tenant_id}/entries/all")
async def list_all_entries(
    tenant_id: str,
    service: MaintenanceService = Depends(_service),
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> list[dict[str, Any]]:
    """Every entry of the tenant with its cycle month and task title."""
    return await service.list_entries_with_month()


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@router.post("/tenants/{tenant_id}/tasks")
async def create_task(
    tenant_id: str,
    body: CreateTaskRequest,
    service: MaintenanceService = Depends(_service),
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> dict[str, Any]:
    """Create a maintenance task for the tenant."""
    try:
        return await service.create_task(body.title, type=body.type, status=body.status)
    except MaintenanceError as exc:
        raise http_error(exc) from exc


@router.get("/tenants/{tenant_id}/tasks")
async def list_tasks(
    tenant_id: str,
    service: MaintenanceService = Depends(_service),
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> list[dict[str, Any]]:
    """Tasks of the tenant, newest first."""
    return await service.list_tasks()


# ---------------------------------------------------------------------------
# Feature catalog
# ---------------------------------------------------------------------------


@router.get("/features")
async def list_features(
    session: SessionDep,
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> list[dict[str, Any]]:
    """Active catalog features ordered by label."""
    return await FeatureService(session).list_active_features()


@router.post("/features")
async def create_feature(
    body: CreateFeatureRequest,
    session: SessionDep,
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> dict[str, Any]:
    """Add a feature to the catalog."""
    return await FeatureService(session).create_feature(body.label, body.description)


@router.get("/tenants/{tenant_id}/features")
async def get_tenant_features(
    tenant_id: str,
    session: SessionDep,
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> dict[str, Any]:
    """Current feature selection of the tenant."""
    try:
        return await FeatureService(session).get_tenant_feature_selection(tenant_id)
    except MaintenanceError as exc:
        raise http_error(exc) from exc


@router.put("/tenants/{tenant_id}/features")
async def set_tenant_features(
    tenant_id: str,
    body: SetTenantFeaturesRequest,
    session: SessionDep,
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> dict[str, Any]:
    """Replace the tenant's feature selection."""
    try:
        return await FeatureService(session).assign_features_to_tenant(tenant_id, body.feature_ids)
    except MaintenanceError as exc:
        raise http_error(exc) from exc


@router.post("/tenants/{tenant_id}/features")
async def create_and_assign_feature(
    tenant_id: str,
    body: CreateFeatureRequest,
    session: SessionDep,
    _role: Role = Depends(require_role(Role.ADMIN)),
) -> dict[str, Any]:
    """Create a catalog feature and assign it to the tenant in one step."""
    try:
        return await FeatureService(session).create_feature_and_assign(tenant_id, body.label, body.description)
    except MaintenanceError as exc:
        raise http_error(exc) from exc
