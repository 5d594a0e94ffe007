"""Agency CLI application -- Typer-based operator interface.

Provides commands to run the API server, initialise the database, manage
tenants, inspect maintenance cycles and log time.  Human-readable output
goes to *stderr* via Rich; ``--json`` switches command output to JSON on
*stdout*.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import typer
from rich.console import Console
from sqlalchemy.ext.asyncio import AsyncSession

from agency_cli.display import display_cycle_summary, display_cycles, display_entries, display_tenants
from agency_core.config import load_settings
from agency_core.maintenance.cycle_manager import CycleManager
from agency_core.maintenance.errors import MaintenanceError
from agency_core.maintenance.models import CarryoverMode, TimeEntryInput
from agency_core.maintenance.months import FixedClock, SystemClock
from agency_core.state.database import engine_from_settings, get_session
from agency_core.state.repository import TenantRepository
from agency_core.state.sqlite_adapter import create_local_tables

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="agency",
    help="Agency Dashboard - maintenance hour tracking for client websites",
    no_args_is_help=True,
)
console = Console(stderr=True)

tenant_app = typer.Typer(name="tenant", help="Manage tenants.", no_args_is_help=True)
app.add_typer(tenant_app, name="tenant")

cycle_app = typer.Typer(name="cycle", help="Inspect cycles and log maintenance time.", no_args_is_help=True)
app.add_typer(cycle_app, name="cycle")

from agency_cli.commands.serve import serve_command  # noqa: E402

app.command(name="serve")(serve_command)

_json_output: bool = False
_database_url: str | None = None


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Database URL (defaults to PLATFORM_DATABASE_URL or the local SQLite file).",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output, _database_url  # noqa: PLW0603
    _json_output = json_mode
    _database_url = database_url


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_database_url() -> str:
    return _database_url or load_settings().database_url


def _run(work: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """Run *work* inside one committed session against the configured database."""

    async def _main() -> T:
        engine = engine_from_settings(load_settings(), database_url=_database_url)
        try:
            async with get_session(engine) as session:
                return await work(session)
        finally:
            await engine.dispose()

    return asyncio.run(_main())


def _emit_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _parse_instant(value: str | None, option: str) -> datetime | None:
    if value is None:
        return None
    try:
        instant = datetime.fromisoformat(value)
    except ValueError:
        console.print(f"[red]Invalid {option}: {value!r} (expected ISO-8601)[/red]")
        raise typer.Exit(code=2) from None
    return instant if instant.tzinfo is not None else instant.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# init-db
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db() -> None:
    """Create all tables in the configured database (idempotent)."""
    url = _resolve_database_url()

    async def _main() -> None:
        engine = engine_from_settings(load_settings(), database_url=url)
        try:
            await create_local_tables(engine)
        finally:
            await engine.dispose()

    asyncio.run(_main())
    console.print(f"[green]✓[/green] Database ready at {url}")


# ---------------------------------------------------------------------------
# token
# ---------------------------------------------------------------------------


@app.command("token")
def token(
    sub: str = typer.Option(..., "--sub", help="User identity."),
    tenant_id: str | None = typer.Option(None, "--tenant", help="Tenant the user belongs to."),
    role: str = typer.Option("client", "--role", help="client | admin"),
    ttl_seconds: int | None = typer.Option(None, "--ttl", help="Lifetime in seconds."),
) -> None:
    """Mint a bearer token signed with ``API_AUTH_SECRET``."""
    from agency_api.config import load_api_settings
    from agency_api.middleware.rbac import parse_role
    from agency_api.security import TokenManager

    settings = load_api_settings()
    secret = settings.auth_secret.get_secret_value()
    if not secret:
        console.print("[red]API_AUTH_SECRET is not set; tokens would not verify against the server.[/red]")
        raise typer.Exit(code=2)
    try:
        parse_role(role)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc

    manager = TokenManager(secret, ttl_seconds=settings.token_ttl_seconds)
    typer.echo(manager.generate_token(sub, tenant_id=tenant_id, role=role.lower(), ttl_seconds=ttl_seconds))


# ---------------------------------------------------------------------------
# tenant
# ---------------------------------------------------------------------------


@tenant_app.command("add")
def tenant_add(
    name: str = typer.Argument(..., help="Display name of the client website."),
    tenant_id: str | None = typer.Option(None, "--id", help="Explicit tenant id."),
    hours: float | None = typer.Option(None, "--hours", help="Maintenance hours per month."),
    carryover: CarryoverMode | None = typer.Option(None, "--carryover", help="Unused hour policy."),
    plan: str | None = typer.Option(None, "--plan", help="Maintenance plan name."),
    website_url: str | None = typer.Option(None, "--url", help="Website URL."),
) -> None:
    """Register a tenant with its maintenance plan."""

    async def _work(session: AsyncSession) -> dict[str, Any]:
        row = await TenantRepository(session).create(
            name,
            tenant_id=tenant_id,
            website_url=website_url,
            maintenance_plan_name=plan,
            maintenance_hours_per_month=hours,
            maintenance_carryover_mode=carryover.value if carryover else None,
        )
        return {"id": row.id, "name": row.name}

    created = _run(_work)
    if _json_output:
        _emit_json(created)
    else:
        console.print(f"[green]✓[/green] Tenant {created['name']} created ({created['id']})")


@tenant_app.command("list")
def tenant_list() -> None:
    """List tenants."""

    async def _work(session: AsyncSession) -> list[Any]:
        return await TenantRepository(session).list_all()

    tenants = _run(_work)
    if _json_output:
        _emit_json(
            [
                {
                    "id": t.id,
                    "name": t.name,
                    "maintenance_hours_per_month": t.maintenance_hours_per_month,
                    "maintenance_carryover_mode": t.maintenance_carryover_mode,
                }
                for t in tenants
            ]
        )
    else:
        display_tenants(console, tenants)


# ---------------------------------------------------------------------------
# cycle
# ---------------------------------------------------------------------------


@cycle_app.command("show")
def cycle_show(
    tenant_id: str = typer.Argument(..., help="Tenant id."),
    as_of: str | None = typer.Option(None, "--as-of", help="ISO-8601 instant to treat as now."),
) -> None:
    """Show the tenant's cycle for the current (or ``--as-of``) month, creating it if needed."""
    instant = _parse_instant(as_of, "--as-of")
    clock = FixedClock(instant) if instant else SystemClock()

    async def _work(session: AsyncSession) -> tuple[str, Any]:
        tenant = await TenantRepository(session).get_or_raise(tenant_id)
        manager = CycleManager(session, tenant_id, clock=clock, conflict_retries=load_settings().cycle_conflict_retries)
        cycle = await manager.get_or_create_current_cycle()
        return tenant.name, manager.summarize(cycle)

    try:
        tenant_name, summary = _run(_work)
    except MaintenanceError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    if _json_output:
        _emit_json(summary.model_dump())
    else:
        display_cycle_summary(console, tenant_name, summary)


@cycle_app.command("log")
def cycle_log(
    tenant_id: str = typer.Argument(..., help="Tenant id."),
    hours: float = typer.Option(..., "--hours", help="Duration in hours."),
    notes: str | None = typer.Option(None, "--notes", help="What was done."),
    task_id: str | None = typer.Option(None, "--task", help="Task the time belongs to."),
    date: str | None = typer.Option(None, "--date", help="ISO-8601 date of the work (defaults to now)."),
    excluded: bool = typer.Option(False, "--excluded", help="Mark the work as outside the plan."),
    as_of: str | None = typer.Option(None, "--as-of", help="ISO-8601 instant to treat as now."),
) -> None:
    """Log maintenance time against the tenant's current cycle."""
    instant = _parse_instant(as_of, "--as-of")
    clock = FixedClock(instant) if instant else SystemClock()
    entry = TimeEntryInput(
        date=_parse_instant(date, "--date") or clock.now(),
        duration_hours=hours,
        task_id=task_id,
        is_included_in_plan=not excluded,
        notes=notes,
    )

    async def _work(session: AsyncSession) -> Any:
        manager = CycleManager(session, tenant_id, clock=clock, conflict_retries=load_settings().cycle_conflict_retries)
        await manager.record_time_entry(entry)
        cycle = await manager.get_or_create_current_cycle()
        return manager.summarize(cycle)

    try:
        summary = _run(_work)
    except MaintenanceError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    if _json_output:
        _emit_json(summary.model_dump())
    else:
        console.print(f"[green]✓[/green] Logged {hours:.2f}h for {summary.month}")
        console.print(f"  Remaining: {summary.display_remaining:.2f}h of {summary.total_available:.2f}h")


@cycle_app.command("history")
def cycle_history(tenant_id: str = typer.Argument(..., help="Tenant id.")) -> None:
    """List every cycle of the tenant, most recent month first."""

    async def _work(session: AsyncSession) -> list[Any]:
        return await CycleManager(session, tenant_id).list_cycles()

    cycles = _run(_work)
    if _json_output:
        _emit_json(
            [
                {
                    "month": c.month,
                    "base_hours": c.base_hours,
                    "carried_hours": c.carried_hours,
                    "used_hours": c.used_hours,
                }
                for c in cycles
            ]
        )
    else:
        display_cycles(console, cycles)


@cycle_app.command("entries")
def cycle_entries(tenant_id: str = typer.Argument(..., help="Tenant id.")) -> None:
    """List every time entry of the tenant with its month."""

    async def _work(session: AsyncSession) -> list[Any]:
        return await CycleManager(session, tenant_id).list_entries_with_month()

    entries = _run(_work)
    if _json_output:
        _emit_json([e.model_dump(mode="json") for e in entries])
    else:
        display_entries(console, entries)
