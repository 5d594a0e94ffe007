"""State persistence layer (PostgreSQL in production, SQLite locally)."""

from agency_core.state.database import engine_from_settings, get_engine, get_session, session_factory
from agency_core.state.repository import (
    MaintenanceCycleRepository,
    MaintenanceFeatureRepository,
    MaintenanceTaskRepository,
    MaintenanceTimeEntryRepository,
    TenantMaintenanceFeatureRepository,
    TenantRepository,
)

__all__ = [
    "MaintenanceCycleRepository",
    "MaintenanceFeatureRepository",
    "MaintenanceTaskRepository",
    "MaintenanceTimeEntryRepository",
    "TenantMaintenanceFeatureRepository",
    "TenantRepository",
    "engine_from_settings",
    "get_engine",
    "get_session",
    "session_factory",
]
