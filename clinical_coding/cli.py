"""Command Line Interface for the Clinical Coding Workflow.

This module provides a Typer CLI for running the API and the dead-letter
worker and for operator tasks: initialising the database, inspecting the
audit trail and listing or retrying dead letters.

Security Impact:
    - Secrets are never printed; `info` shows which backends are configured only
    - Dead-letter payloads are truncated in listings
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from clinical_coding import __version__
from clinical_coding.container import ServiceContainer, build_container
from clinical_coding.domain.ports import NotFoundError
from clinical_coding.infrastructure.logging_config import setup_logging
from clinical_coding.infrastructure.settings import settings
from clinical_coding.worker import run_worker

# Initialize Typer app and Rich console
app = typer.Typer(
    name="clinical-coding",
    help="Clinical Coding Workflow: episode review, clinician queries and dead-letter replay",
    add_completion=False
)
dead_letters_app = typer.Typer(help="Inspect and replay dead letters", add_completion=False)
app.add_typer(dead_letters_app, name="dead-letters")

console = Console()

PAYLOAD_PREVIEW = 60


def create_container_cli() -> ServiceContainer:
    """Wire services from settings (CLI wrapper)."""
    try:
        return build_container(settings)
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to initialise services: {str(e)}")
        raise typer.Exit(code=1)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
    with_worker: bool = typer.Option(
        False, "--with-worker", help="Run the dead-letter consumer inside the API process"
    ),
) -> None:
    """Run the HTTP API with uvicorn.

    Use --with-worker with the durable queue on a DuckDB file, since only one
    process can open the file for writing.
    """
    import uvicorn

    from clinical_coding.api.main import create_app

    console.print(f"[bold blue]{settings.app_name}[/bold blue] v{__version__}")
    console.print(f"[dim]Database path:[/dim] {settings.get_db_path()}")
    console.print(f"[dim]Queue provider:[/dim] {settings.queue.provider}")
    console.print(f"[dim]Embedded worker:[/dim] {'yes' if with_worker else 'no'}\n")

    uvicorn.run(create_app(with_worker=with_worker), host=host, port=port, log_level=settings.log_level.lower())


@app.command()
def worker(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run the dead-letter consumer until interrupted."""
    setup_logging(use_json=settings.json_logs, log_level="DEBUG" if verbose else settings.log_level)
    container = create_container_cli()
    console.print(
        f"[bold blue]Dead-letter consumer[/bold blue] "
        f"({settings.queue.provider}, max attempts {settings.queue.max_attempts})"
    )
    try:
        asyncio.run(run_worker(container))
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠[/yellow] Worker interrupted by user")
        raise typer.Exit(code=130)


@app.command("init-db")
def init_db() -> None:
    """Create the database schema if it does not exist."""
    container = create_container_cli()
    container.close()
    console.print(f"[green]✓[/green] Schema ready at {settings.get_db_path()}")


@app.command()
def audit(
    limit: int = typer.Option(50, "--limit", "-n", help="Number of entries to show"),
    episode: Optional[str] = typer.Option(None, "--episode", "-e", help="Only entries for this episode"),
) -> None:
    """Show the most recent audit entries, newest first."""
    container = create_container_cli()
    try:
        entries = container.audit_log.list_recent(limit=limit, entity_id=episode)
    finally:
        container.close()

    table = Table(show_header=True, header_style="bold")
    table.add_column("Timestamp (UTC)")
    table.add_column("Action")
    table.add_column("By")
    table.add_column("Entity")
    table.add_column("Audit Id", style="dim")
    for entry in entries:
        table.add_row(
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.action.value,
            entry.performed_by,
            f"{entry.entity_type}:{entry.entity_id}",
            entry.audit_id,
        )
    console.print(table)


@dead_letters_app.command("list")
def list_dead_letters(
    limit: int = typer.Option(50, "--limit", "-n", help="Number of records to show"),
) -> None:
    """List dead letters, newest first."""
    container = create_container_cli()
    try:
        records = container.dead_letters.list(limit=limit)
    finally:
        container.close()

    if not records:
        console.print("[green]✓[/green] No dead letters")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Id", style="dim")
    table.add_column("Created (UTC)")
    table.add_column("Attempts", justify="right")
    table.add_column("Quarantined")
    table.add_column("Error")
    table.add_column("Payload")
    for record in records:
        payload = record.payload_json
        if len(payload) > PAYLOAD_PREVIEW:
            payload = payload[:PAYLOAD_PREVIEW] + "…"
        table.add_row(
            record.dead_letter_id,
            record.created_on.strftime("%Y-%m-%d %H:%M:%S"),
            str(record.attempts),
            "yes" if record.quarantined else "",
            record.error,
            payload,
        )
    console.print(table)


@dead_letters_app.command("retry")
def retry_dead_letter(
    dead_letter_id: str = typer.Argument(..., help="Dead letter id"),
) -> None:
    """Replay one dead letter now."""
    container = create_container_cli()
    try:
        result = asyncio.run(container.dead_letters.retry(dead_letter_id))
    except NotFoundError as e:
        console.print(f"[red]✗[/red] {str(e)}")
        raise typer.Exit(code=1)
    finally:
        container.close()

    if result.is_success():
        console.print(f"[green]✓[/green] Replayed dead letter {dead_letter_id} (query {result.value})")
    else:
        console.print(f"[red]✗[/red] Retry failed ({result.error_type}): {result.error}")
        raise typer.Exit(code=1)


@app.command()
def info() -> None:
    """Display configuration (secrets are never shown)."""
    console.print("[bold blue]System Information[/bold blue]\n")

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", settings.app_name)
    info_table.add_row("Database Path:", settings.get_db_path())
    info_table.add_row("Queue Provider:", settings.queue.provider)
    info_table.add_row("Queue Name:", settings.queue.queue_name)
    info_table.add_row("Max Attempts:", str(settings.queue.max_attempts))
    info_table.add_row("Debounce Window:", f"{settings.reconcile.min_interval_minutes:g} min")
    info_table.add_row("Per-Episode Lock:", "Enabled" if settings.reconcile.serialize_per_episode else "Disabled")
    info_table.add_row("Strict Transitions:", "Enabled" if settings.reconcile.strict_transitions else "Disabled")
    info_table.add_row("Webhook Secret:", "Configured" if settings.webhook.secret_bytes() else "Missing")
    info_table.add_row("Analytics:", settings.analytics.provider)

    console.print(info_table)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version information")
) -> None:
    """Clinical Coding Workflow."""
    logging.getLogger().setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    if version:
        console.print(f"Clinical Coding Workflow v{__version__}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit()


if __name__ == "__main__":
    app()
