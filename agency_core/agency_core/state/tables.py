"""SQLAlchemy 2.0 ORM table definitions for the maintenance state store.

All tables use the modern ``Mapped`` / ``mapped_column`` declaration style
introduced in SQLAlchemy 2.0.  The ``Base`` declarative base is exported for
use by Alembic migrations and the repository layer.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


def new_id() -> str:
    """Generate a primary key for rows with string ids."""
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all dashboard tables."""


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TenantTable(Base):
    """Client websites managed by the agency.

    Only the maintenance-plan columns are read by the cycle engine, and only
    when a new cycle is created.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    maintenance_plan_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    maintenance_hours_per_month: Mapped[float | None] = mapped_column(Float, nullable=True)
    maintenance_carryover_mode: Mapped[str | None] = mapped_column(String(32), nullable=True)
    maintenance_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


# ---------------------------------------------------------------------------
# Maintenance cycles
# ---------------------------------------------------------------------------


class MaintenanceCycleTable(Base):
    """One hour bucket per tenant per calendar month (``YYYY-MM``)."""

    __tablename__ = "maintenance_cycles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    base_hours: Mapped[float] = mapped_column(Float, nullable=False)
    carried_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    used_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "month", name="uq_maintenance_cycles_tenant_month"),
        CheckConstraint("status IN ('open')", name="ck_maintenance_cycles_status"),
        Index("ix_maintenance_cycles_tenant", "tenant_id"),
    )


# ---------------------------------------------------------------------------
# Maintenance tasks
# ---------------------------------------------------------------------------


class MaintenanceTaskTable(Base):
    """Named units of work that time entries may be logged against."""

    __tablename__ = "maintenance_tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False, default="routine")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="open")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (Index("ix_maintenance_tasks_tenant", "tenant_id"),)


# ---------------------------------------------------------------------------
# Maintenance time entries
# ---------------------------------------------------------------------------


class MaintenanceTimeEntryTable(Base):
    """Immutable record of a logged work session.

    ``cycle_id`` is fixed at creation to the cycle that was current then.
    """

    __tablename__ = "maintenance_time_entries"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    cycle_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("maintenance_cycles.id", ondelete="RESTRICT"), nullable=False
    )
    task_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("maintenance_tasks.id", ondelete="SET NULL"), nullable=True
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_hours: Mapped[float] = mapped_column(Float, nullable=False)
    is_included_in_plan: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_maintenance_time_entries_tenant_date", "tenant_id", "date"),
        Index("ix_maintenance_time_entries_cycle", "cycle_id"),
    )


# ---------------------------------------------------------------------------
# Maintenance features
# ---------------------------------------------------------------------------


class MaintenanceFeatureTable(Base):
    """Reusable catalog of labels describing what a maintenance plan covers."""

    __tablename__ = "maintenance_features"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    key: Mapped[str] = mapped_column(String(160), nullable=False, unique=True)
    label: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class TenantMaintenanceFeatureTable(Base):
    """Assignment of a catalog feature to a tenant."""

    __tablename__ = "tenant_maintenance_features"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(64), ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)
    feature_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("maintenance_features.id", ondelete="RESTRICT"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("tenant_id", "feature_id", name="uq_tenant_maintenance_features_pair"),)
