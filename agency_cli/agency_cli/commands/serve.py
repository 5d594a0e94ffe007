"""``agency serve`` -- run the API server.

Runs the FastAPI app under uvicorn.  Without an explicit database URL the
server uses a SQLite file under ``.agency/`` in the working directory, so
no external database is needed for local use.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

logger = logging.getLogger(__name__)


def serve_command(
    port: int = typer.Option(8000, "--port", "-p", help="API server port."),
    host: str = typer.Option("127.0.0.1", "--host", help="Host to bind the API server to."),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload on code changes."),
    database_url: str | None = typer.Option(
        None,
        "--database-url",
        help="Database URL (defaults to a local SQLite file).",
        envvar="API_DATABASE_URL",
    ),
) -> None:
    """Start the maintenance API server."""
    console = Console(stderr=True)

    if database_url is None:
        state_db = Path.cwd() / ".agency" / "state.db"
        state_db.parent.mkdir(parents=True, exist_ok=True)
        database_url = f"sqlite+aiosqlite:///{state_db}"
    os.environ["API_DATABASE_URL"] = database_url
    os.environ["API_PORT"] = str(port)
    os.environ.setdefault("API_HOST", host)

    console.print(
        Panel(
            f"[bold]API:[/bold]      http://{host}:{port}\n"
            f"[bold]Docs:[/bold]     http://{host}:{port}/docs\n"
            f"[bold]Database:[/bold] {database_url}",
            title="Agency Dashboard",
            border_style="blue",
        )
    )

    try:
        import uvicorn

        uvicorn.run(
            "agency_api.main:app",
            host=host,
            port=port,
            reload=reload,
            log_level="info",
            access_log=False,
        )
    except KeyboardInterrupt:
        console.print("[yellow]Server stopped.[/yellow]")
    except Exception as exc:
        console.print(f"[red]Server error: {exc}[/red]")
        raise typer.Exit(code=3) from exc
