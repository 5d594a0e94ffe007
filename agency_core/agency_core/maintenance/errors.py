"""Exceptions raised by the maintenance engine.

Routers translate these into HTTP responses; the engine itself never
imports the web layer.
"""

from __future__ import annotations


class MaintenanceError(Exception):
    """Base class for maintenance engine errors."""


class CycleConflictError(MaintenanceError):
    """Concurrent creation of the same ``(tenant_id, month)`` cycle.

    Transient: the caller should retry the read.
    """

    def __init__(self, tenant_id: str, month: str) -> None:
        self.tenant_id = tenant_id
        self.month = month
        super().__init__(f"Cycle for tenant '{tenant_id}' month {month} is being created concurrently; retry the request")


class TenantNotFoundError(MaintenanceError, LookupError):
    """Raised by the tenant directory when the tenant does not exist."""

    def __init__(self, tenant_id: str) -> None:
        self.tenant_id = tenant_id
        super().__init__(f"Tenant '{tenant_id}' not found")


class FeatureValidationError(MaintenanceError, ValueError):
    """One or more feature ids passed for assignment do not exist."""

    def __init__(self, missing_ids: list[str]) -> None:
        self.missing_ids = missing_ids
        super().__init__("One or more features do not exist")


class HoursValidationError(MaintenanceError, ValueError):
    """An hours value was rejected by the active hours policy."""

    def __init__(self, field: str, value: float, reason: str) -> None:
        self.field = field
        self.value = value
        super().__init__(f"Invalid value for {field}: {value} ({reason})")


class TaskNotFoundError(MaintenanceError, LookupError):
    """A time entry referenced a task the tenant does not own."""

    def __init__(self, tenant_id: str, task_id: str) -> None:
        self.tenant_id = tenant_id
        self.task_id = task_id
        super().__init__(f"Task '{task_id}' not found for tenant '{tenant_id}'")
