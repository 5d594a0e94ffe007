"""Initial schema for the maintenance state store.

Creates tenants, maintenance_cycles, maintenance_tasks,
maintenance_time_entries, maintenance_features and
tenant_maintenance_features.  ``maintenance_cycles`` carries the
``(tenant_id, month)`` unique constraint that cycle creation relies on.

Revision ID: 001
Revises: None
Create Date: 2026-09-01 00:00:00.000000+00:00

"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def upgrade() -> None:
    # ------------------------------------------------------------------
    # tenants
    # ------------------------------------------------------------------
    op.create_table(
        "tenants",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("website_url", sa.String(1024), nullable=True),
        sa.Column("maintenance_plan_name", sa.String(255), nullable=True),
        sa.Column("maintenance_hours_per_month", sa.Float(), nullable=True),
        sa.Column("maintenance_carryover_mode", sa.String(32), nullable=True),
        sa.Column("maintenance_start_date", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # ------------------------------------------------------------------
    # maintenance_cycles
    # ------------------------------------------------------------------
    op.create_table(
        "maintenance_cycles",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(64),
            sa.ForeignKey("tenants.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("base_hours", sa.Float(), nullable=False),
        sa.Column("carried_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("used_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False, server_default="open"),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "month", name="uq_maintenance_cycles_tenant_month"),
        sa.CheckConstraint("status IN ('open')", name="ck_maintenance_cycles_status"),
    )
    op.create_index("ix_maintenance_cycles_tenant", "maintenance_cycles", ["tenant_id"])

    # ------------------------------------------------------------------
    # maintenance_tasks
    # ------------------------------------------------------------------
    op.create_table(
        "maintenance_tasks",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(64),
            sa.ForeignKey("tenants.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("type", sa.String(64), nullable=False, server_default="routine"),
        sa.Column("status", sa.String(32), nullable=False, server_default="open"),
        *_timestamps(),
    )
    op.create_index("ix_maintenance_tasks_tenant", "maintenance_tasks", ["tenant_id"])

    # ------------------------------------------------------------------
    # maintenance_time_entries
    # ------------------------------------------------------------------
    op.create_table(
        "maintenance_time_entries",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(64),
            sa.ForeignKey("tenants.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "cycle_id",
            sa.String(64),
            sa.ForeignKey("maintenance_cycles.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "task_id",
            sa.String(64),
            sa.ForeignKey("maintenance_tasks.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_hours", sa.Float(), nullable=False),
        sa.Column("is_included_in_plan", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_maintenance_time_entries_tenant_date",
        "maintenance_time_entries",
        ["tenant_id", "date"],
    )
    op.create_index("ix_maintenance_time_entries_cycle", "maintenance_time_entries", ["cycle_id"])

    # ------------------------------------------------------------------
    # maintenance_features
    # ------------------------------------------------------------------
    op.create_table(
        "maintenance_features",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("key", sa.String(160), nullable=False, unique=True),
        sa.Column("label", sa.String(120), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    # ------------------------------------------------------------------
    # tenant_maintenance_features
    # ------------------------------------------------------------------
    op.create_table(
        "tenant_maintenance_features",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "tenant_id",
            sa.String(64),
            sa.ForeignKey("tenants.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "feature_id",
            sa.String(64),
            sa.ForeignKey("maintenance_features.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.UniqueConstraint("tenant_id", "feature_id", name="uq_tenant_maintenance_features_pair"),
    )


def downgrade() -> None:
    op.drop_table("tenant_maintenance_features")
    op.drop_table("maintenance_features")
    op.drop_index("ix_maintenance_time_entries_cycle", table_name="maintenance_time_entries")
    op.drop_index("ix_maintenance_time_entries_tenant_date", table_name="maintenance_time_entries")
    op.drop_table("maintenance_time_entries")
    op.drop_index("ix_maintenance_tasks_tenant", table_name="maintenance_tasks")
    op.drop_table("maintenance_tasks")
    op.drop_index("ix_maintenance_cycles_tenant", table_name="maintenance_cycles")
    op.drop_table("maintenance_cycles")
    op.drop_table("tenants")
