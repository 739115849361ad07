"""Command Line Interface for the CareOps service.

This module provides a CLI using Typer for running the API server, the
scheduled batch jobs (welfare priority scoring, appointment reminders) and
quick operational views of beds, transfers and skill accuracy.

Security Impact:
    - Batch jobs run through the same services as the API, so every write is audited
    - Connection details are shown without credentials
    - HL7 messages are parsed locally; message contents are not logged
"""

import logging
import time
from pathlib import Path
from typing import Any, Iterable, Optional

import typer
from rich.console import Console
from rich.table import Table

from src.dashboard.services.poller import Poller
from src.domain.ports import ServiceResult
from src.infrastructure.hl7_parser import HL7Parser
from src.infrastructure.settings import settings

# Initialize Typer app and Rich console
app = typer.Typer(
    name="careops",
    help="CareOps: hospital operations service",
    add_completion=False
)
console = Console()


def create_container_cli():
    """Create the service container from settings (CLI wrapper)."""
    try:
        from src.main import ServiceContainer
        return ServiceContainer.from_settings()
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to initialize services: {str(e)}")
        raise typer.Exit(code=1)


def unwrap(result: ServiceResult, action: str) -> Any:
    """Return ``result.data`` or print the failure and exit."""
    if result.is_failure():
        console.print(f"[red]✗[/red] {action} failed: [{result.error_code}] {result.error.message}")
        raise typer.Exit(code=1)
    return result.data


def rows_table(title: str, rows: Iterable[dict], columns: list[str]) -> Table:
    table = Table(title=title, show_header=True, header_style="bold")
    for column in columns:
        table.add_column(column.replace("_", " ").title())
    for row in rows:
        table.add_row(*["" if row.get(column) is None else str(row.get(column)) for column in columns])
    return table


def set_verbose(verbose: bool) -> None:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        console.print("[dim]Verbose logging enabled[/dim]")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (defaults to CO_API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (defaults to CO_API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the CareOps API server."""
    import uvicorn

    console.print(f"[bold blue]{settings.app_name} API[/bold blue] v{settings.app_version}")
    console.print(f"[dim]Docs:[/dim] http://{host or settings.api_host}:{port or settings.api_port}/api/docs")
    uvicorn.run(
        "src.dashboard.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower()
    )


@app.command("init-db")
def init_db() -> None:
    """Create the service tables in a local DuckDB or PostgreSQL store.

    Examples:
        CO_DB_TYPE=duckdb CO_DB_PATH=careops.duckdb careops init-db
    """
    from src.main import create_database_adapter

    try:
        database = create_database_adapter()
    except Exception as e:
        console.print(f"[red]✗[/red] Failed to create database adapter: {str(e)}")
        raise typer.Exit(code=1)

    try:
        initialize = getattr(database, "initialize_schema", None)
        if initialize is None:
            console.print(f"[yellow]⚠[/yellow] {settings.db_config.db_type} stores manage their own schema")
            return
        created = unwrap(initialize(), "Schema initialization")
        console.print(f"[green]✓[/green] Schema ready ({created} tables)")
    finally:
        database.close()


@app.command()
def health() -> None:
    """Check database connectivity and language model configuration."""
    container = create_container_cli()
    try:
        ping = container.database.ping()
        stats = container.llm.circuit_breaker.get_statistics()

        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_row("Database:", settings.db_config.db_type)
        table.add_row(
            "Connected:",
            "[green]yes[/green]" if ping.is_success() else f"[red]no[/red] ({ping.error.message})"
        )
        table.add_row(
            "Language model:",
            "[green]configured[/green]" if container.llm.config.is_configured else "[yellow]not configured[/yellow]"
        )
        table.add_row("Circuit breaker:", "[red]open[/red]" if stats["is_open"] else "closed")
        table.add_row("Slack:", "configured" if container.slack is not None else "not configured")
        console.print(table)

        if ping.is_failure():
            raise typer.Exit(code=1)
    finally:
        container.close()


@app.command()
def beds(
    unit_id: Optional[str] = typer.Option(None, "--unit", "-u", help="Limit to one unit"),
    facility_id: Optional[str] = typer.Option(None, "--facility", "-f", help="Limit to one facility"),
) -> None:
    """Show unit capacity and occupancy."""
    container = create_container_cli()
    try:
        units = unwrap(container.beds.get_unit_capacity(unit_id=unit_id, facility_id=facility_id), "Capacity lookup")
        console.print(rows_table(
            "Unit Capacity",
            units,
            ["unit_name", "total_beds", "occupied_beds", "available_beds", "occupancy_rate"],
        ))
    finally:
        container.close()


@app.command()
def transfers(
    pending: bool = typer.Option(True, "--pending/--active", help="Pending requests only, or every active transfer"),
) -> None:
    """List transfer requests awaiting action."""
    container = create_container_cli()
    try:
        if pending:
            rows = unwrap(container.transfers.get_pending_transfers(), "Pending transfer lookup")
        else:
            rows = unwrap(container.transfers.get_active_transfers(), "Active transfer lookup")
        console.print(rows_table(
            "Transfers",
            rows,
            ["request_number", "status", "urgency", "patient_mrn", "requested_at"],
        ))
    finally:
        container.close()


@app.command()
def watch(
    unit_id: Optional[str] = typer.Option(None, "--unit", "-u", help="Limit to one unit"),
    interval: Optional[int] = typer.Option(None, "--interval", "-i", help="Seconds between refreshes"),
) -> None:
    """Refresh unit capacity on an interval until interrupted."""
    container = create_container_cli()

    def render(units: list[dict]) -> None:
        console.clear()
        console.print(rows_table(
            f"Unit Capacity (every {poller.interval_seconds}s)",
            units,
            ["unit_name", "total_beds", "occupied_beds", "available_beds", "occupancy_rate"],
        ))

    poller = Poller(
        lambda: container.beds.get_unit_capacity(unit_id=unit_id),
        interval_seconds=interval or settings.poll_interval_seconds,
        on_data=render,
        on_error=lambda message: console.print(f"[red]✗[/red] {message}"),
    )
    poller.start()
    try:
        while poller.running:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠[/yellow] Stopped")
    finally:
        poller.stop()
        container.close()


@app.command("welfare-batch")
def welfare_batch(
    tenant_id: str = typer.Argument(..., help="Tenant to score"),
    assessment_date: Optional[str] = typer.Option(None, "--date", "-d", help="Assessment date (YYYY-MM-DD)"),
) -> None:
    """Recalculate the welfare-check priority queue for a tenant."""
    container = create_container_cli()
    try:
        with console.status("[bold green]Scoring seniors..."):
            summary = unwrap(
                container.welfare_dispatch.calculate_priority_scores(tenant_id, assessment_date=assessment_date),
                "Welfare priority batch",
            )

        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_row("Assessed:", f"[bold]{summary.assessed:,}[/bold]")
        table.add_row("Critical:", f"[red]{summary.critical}[/red]" if summary.critical else "0")
        table.add_row("High:", str(summary.high))
        table.add_row("Elevated:", str(summary.elevated))
        table.add_row("Routine:", str(summary.routine))
        table.add_row("Auto-dispatched:", str(summary.auto_dispatched))
        table.add_row("Model cost:", f"${summary.total_cost:.4f}")
        console.print(table)
    finally:
        container.close()


@app.command()
def reminders(
    reminder_type: str = typer.Argument(..., help="Reminder window: 24h, 1h or 15m"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Appointments per run"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Send due appointment reminders of one type."""
    set_verbose(verbose)
    if reminder_type not in ("24h", "1h", "15m"):
        console.print("[red]✗[/red] Reminder type must be one of 24h, 1h, 15m")
        raise typer.Exit(code=1)

    container = create_container_cli()
    try:
        summary = unwrap(
            container.reminder_dispatcher.run(reminder_type, batch_size=batch_size or settings.reminder_batch_size),
            "Reminder run",
        )
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_row("Due:", f"[bold]{summary.found}[/bold]")
        table.add_row("Sent:", f"[green]{summary.sent}[/green]")
        table.add_row("Skipped (do not disturb):", str(summary.skipped_dnd))
        table.add_row("Failed:", f"[red]{summary.failed}[/red]" if summary.failed else "0")
        console.print(table)

        if summary.failed:
            raise typer.Exit(code=1)
    finally:
        container.close()


@app.command("parse-hl7")
def parse_hl7(
    message_file: Path = typer.Argument(..., help="File holding one HL7 v2 message", exists=True, dir_okay=False),
    ack: bool = typer.Option(False, "--ack", help="Print the ACK that would be returned"),
) -> None:
    """Parse an HL7 v2 message and summarize its segments."""
    parser = HL7Parser()
    raw = message_file.read_text(encoding="utf-8")
    result = parser.parse(raw)

    if result.message is None:
        for message in result.error_messages:
            console.print(f"[red]✗[/red] {message}")
        raise typer.Exit(code=1)

    message = result.message
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_row("Type:", f"{message.message_code}^{message.trigger_event}")
    table.add_row("Control ID:", message.control_id)
    table.add_row("Segments:", ", ".join(segment.get("segment_type", "?") for segment in message.segments))
    table.add_row("Observations:", str(len(message.observations)))
    table.add_row("Diagnoses:", str(len(message.diagnoses)))
    console.print(table)

    for issue in result.errors:
        colour = "red" if issue.severity == "error" else "yellow"
        console.print(f"[{colour}]{issue.severity}[/{colour}] segment {issue.segment_index}: {issue.message}")

    if ack:
        ack_code = "AA" if result.success else "AE"
        console.print(parser.generate_ack(message, ack_code, "; ".join(result.error_messages) or None))

    if not result.success:
        raise typer.Exit(code=1)


@app.command()
def accuracy(
    tenant_id: Optional[str] = typer.Option(None, "--tenant", "-t", help="Limit to one tenant"),
    days: int = typer.Option(30, "--days", "-d", help="Look-back window"),
) -> None:
    """Show prediction accuracy and cost per AI skill."""
    container = create_container_cli()
    try:
        metrics = unwrap(container.tracker.get_accuracy_dashboard(tenant_id=tenant_id, days=days), "Accuracy lookup")

        table = Table(title=f"Skill Accuracy (last {days} days)", show_header=True, header_style="bold")
        table.add_column("Skill", style="cyan")
        table.add_column("Predictions", justify="right")
        table.add_column("With Outcome", justify="right")
        table.add_column("Accuracy", justify="right")
        table.add_column("Cost (USD)", justify="right")
        for metric in metrics:
            table.add_row(
                metric.skill_name,
                f"{metric.total_predictions:,}",
                f"{metric.predictions_with_outcome:,}",
                "-" if metric.accuracy_rate is None else f"{metric.accuracy_rate:.1f}%",
                f"{metric.total_cost_usd:.4f}",
            )
        console.print(table)
    finally:
        container.close()


@app.command()
def info() -> None:
    """Display system information and configuration."""
    console.print("[bold blue]System Information[/bold blue]\n")

    info_table = Table(show_header=False, box=None, padding=(0, 2))
    info_table.add_row("Application:", f"{settings.app_name} v{settings.app_version}")
    info_table.add_row("Database Type:", settings.db_config.db_type)

    if settings.db_config.db_type == "duckdb":
        info_table.add_row("Database Path:", settings.get_db_path())
    elif settings.db_config.db_type == "postgresql":
        info_table.add_row("Database Host:", settings.db_config.host)
        info_table.add_row("Database Name:", settings.db_config.database)
    else:
        info_table.add_row("Database URL:", settings.db_config.url)

    info_table.add_row("Poll Interval:", f"{settings.poll_interval_seconds}s")
    info_table.add_row("Welfare Batch Size:", str(settings.welfare_batch_size))
    info_table.add_row("Reminder Batch Size:", str(settings.reminder_batch_size))
    info_table.add_row("Circuit Breaker:", "Enabled" if settings.circuit_breaker_enabled else "Disabled")

    console.print(info_table)


@app.callback()
def main_callback(
    version: bool = typer.Option(False, "--version", help="Show version information")
) -> None:
    """CareOps: hospital operations service."""
    if version:
        console.print(f"{settings.app_name} v{settings.app_version}")
        raise typer.Exit()


if __name__ == "__main__":
    app()
