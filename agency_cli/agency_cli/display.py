"""Rich output formatting for the agency CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from agency_core.maintenance.models import CycleSummary, EntryWithMonth
    from agency_core.state.tables import MaintenanceCycleTable, TenantTable


def _hours(value: float) -> str:
    return f"{value:.2f}h"


def display_cycle_summary(console: Console, tenant_name: str, summary: CycleSummary) -> None:
    """Render the current cycle as a panel.

    Parameters
    ----------
    console:
        Rich console to write to.
    tenant_name:
        Shown in the panel title.
    summary:
        Derived totals of the cycle.
    """
    remaining_colour = "green" if summary.remaining > 0 else "red"
    lines = [
        f"[bold]Month:[/bold]      {summary.month}",
        f"[bold]Base:[/bold]       {_hours(summary.base_hours)}",
        f"[bold]Carried:[/bold]    {_hours(summary.carried_hours)}",
        f"[bold]Available:[/bold]  {_hours(summary.total_available)}",
        f"[bold]Used:[/bold]       {_hours(summary.used_hours)}",
        f"[bold]Remaining:[/bold]  [{remaining_colour}]{_hours(summary.display_remaining)}[/{remaining_colour}]",
    ]
    if summary.remaining < 0:
        lines.append(f"[bold red]Over plan by {_hours(-summary.remaining)}[/bold red]")
    console.print(Panel("\n".join(lines), title=f"Maintenance: {tenant_name}", border_style="blue"))


def display_cycles(console: Console, cycles: Sequence[MaintenanceCycleTable]) -> None:
    """Render cycle history, most recent month first."""
    if not cycles:
        console.print("[dim]No cycles recorded.[/dim]")
        return

    table = Table(title="Cycle History", show_lines=False)
    table.add_column("Month", style="bold")
    table.add_column("Base", justify="right")
    table.add_column("Carried", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Remaining", justify="right")

    for cycle in cycles:
        remaining = cycle.base_hours + cycle.carried_hours - cycle.used_hours
        colour = "green" if remaining >= 0 else "red"
        table.add_row(
            cycle.month,
            _hours(cycle.base_hours),
            _hours(cycle.carried_hours),
            _hours(cycle.used_hours),
            f"[{colour}]{_hours(remaining)}[/{colour}]",
        )
    console.print(table)


def display_entries(console: Console, entries: Sequence[EntryWithMonth]) -> None:
    """Render time entries with their month and task."""
    if not entries:
        console.print("[dim]No time entries.[/dim]")
        return

    table = Table(title="Time Entries")
    table.add_column("Date")
    table.add_column("Month")
    table.add_column("Hours", justify="right")
    table.add_column("Task")
    table.add_column("Notes", overflow="fold")

    for entry in entries:
        table.add_row(
            entry.date.strftime("%Y-%m-%d"),
            entry.month,
            _hours(entry.duration_hours),
            entry.task_title or "[dim]-[/dim]",
            entry.notes or "",
        )
    console.print(table)


def display_tenants(console: Console, tenants: Sequence[TenantTable]) -> None:
    """Render the tenant directory."""
    if not tenants:
        console.print("[dim]No tenants.[/dim]")
        return

    table = Table(title="Tenants")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Plan")
    table.add_column("Hours/month", justify="right")
    table.add_column("Carryover")

    for tenant in tenants:
        hours = tenant.maintenance_hours_per_month
        table.add_row(
            tenant.id,
            tenant.name,
            tenant.maintenance_plan_name or "",
            _hours(hours) if hours is not None else "[dim]unset[/dim]",
            tenant.maintenance_carryover_mode or "none",
        )
    console.print(table)
