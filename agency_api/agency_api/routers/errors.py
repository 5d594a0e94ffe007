"""Translation of maintenance engine errors into HTTP errors."""

from __future__ import annotations

from fastapi import HTTPException

from agency_core.maintenance.errors import (
    CycleConflictError,
    FeatureValidationError,
    HoursValidationError,
    MaintenanceError,
    TaskNotFoundError,
    TenantNotFoundError,
)


def http_error(exc: MaintenanceError) -> HTTPException:
    """Map a :class:`MaintenanceError` to the matching ``HTTPException``."""
    if isinstance(exc, (TenantNotFoundError, TaskNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, CycleConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, FeatureValidationError):
        return HTTPException(
            status_code=400,
            detail={"message": str(exc), "missing_ids": exc.missing_ids},
        )
    if isinstance(exc, HoursValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    return HTTPException(status_code=500, detail="Maintenance engine error")
