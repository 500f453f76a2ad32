"""Pricebook CLI.

Commands:
- init: Initialize database schema
- process-job: Run the batch processor for one job inline
- job-status: Show a job's status and counters
- active-jobs: List pending and processing jobs for an organization
- modes: List pricing modes visible to an organization
- web serve: Run the HTTP API
"""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from pricebook.config import get_config
from pricebook.core.logging import configure_logging
from pricebook.db.connection import Database
from pricebook.jobs.processor import BatchPricingProcessor, OutcomeKind
from pricebook.jobs.store import JobStore
from pricebook.models import JobStatus, PricingJob
from pricebook.pricing.modes import list_pricing_modes, win_rate

app = typer.Typer(
    name="pricebook",
    help="Pricebook - bulk pricing override jobs",
    no_args_is_help=True,
)
web_cli = typer.Typer(help="Web UI / API")
app.add_typer(web_cli, name="web")

console = Console()

_STATUS_STYLES = {
    JobStatus.PENDING: "yellow",
    JobStatus.PROCESSING: "cyan",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
    JobStatus.CANCELLED: "dim",
}


def _status_text(job: PricingJob) -> str:
    style = _STATUS_STYLES[job.status]
    return f"[{style}]{job.status.value}[/{style}]"


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        database = Database(config.db)
        try:
            if drop:
                console.print("[yellow]Dropping existing tables...[/yellow]")
            console.print("[green]Creating tables...[/green]")
            await database.init_db(drop=drop)
        finally:
            await database.close()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="process-job")
def process_job_cmd(
    job_id: str = typer.Argument(..., help="Pricing job ID"),
    batch_size: int | None = typer.Option(None, "--batch-size", min=1, help="Items per batch"),
):
    """Run the batch processor for one job in this process."""
    config = get_config()
    configure_logging(config.log_level, config.log_format)

    async def _process():
        database = Database(config.db)
        try:
            store = JobStore(database)
            processor = BatchPricingProcessor.from_config(database, store, config.jobs)
            if batch_size is not None:
                processor.batch_size = batch_size
            return await processor.run(job_id)
        finally:
            await database.close()

    outcome = asyncio.run(_process())

    if outcome.kind == OutcomeKind.SUCCESS:
        result = outcome.result
        console.print(
            f"[bold green]✓[/bold green] Job {job_id} {outcome.status.value}: "
            f"{result.success_count} updated, {result.failed_count} failed"
        )
        for item in result.failed_items or []:
            console.print(f"  {item.name} ({item.line_item_id}): {item.error}", style="dim")
    elif outcome.kind == OutcomeKind.NOT_APPLICABLE:
        console.print(f"[yellow]⚠[/yellow] {outcome.message}")
    else:
        console.print(f"[bold red]✗[/bold red] {outcome.message}")
        raise typer.Exit(code=1)


@app.command(name="job-status")
def job_status_cmd(
    job_id: str = typer.Argument(..., help="Pricing job ID"),
):
    """Show a job's status and counters."""
    config = get_config()

    async def _status():
        database = Database(config.db)
        try:
            return await JobStore(database).get_job(job_id)
        finally:
            await database.close()

    job = asyncio.run(_status())
    if job is None:
        console.print(f"[bold red]✗[/bold red] Job not found: {job_id}")
        raise typer.Exit(code=1)

    table = Table(title=f"Job {job.id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Status", _status_text(job))
    table.add_row("Organization", job.organization_id)
    table.add_row("Mode", str(job.job_data.get("mode_name", "")))
    table.add_row("Progress", f"{job.processed_items + job.failed_items}/{job.total_items} ({job.progress_percent}%)")
    table.add_row("Processed", str(job.processed_items))
    table.add_row("Failed", str(job.failed_items))
    table.add_row("Created", job.created_at.isoformat())
    if job.completed_at:
        table.add_row("Completed", job.completed_at.isoformat())
    if job.error_message:
        table.add_row("Error", f"[red]{job.error_message}[/red]")
    console.print(table)


@app.command(name="active-jobs")
def active_jobs_cmd(
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
):
    """List pending and processing jobs, newest first."""
    config = get_config()
    org_val = org_id or config.org_id

    async def _active():
        database = Database(config.db)
        try:
            return await JobStore(database).get_active_jobs_for_organization(org_val)
        finally:
            await database.close()

    jobs = asyncio.run(_active())
    if not jobs:
        console.print(f"[yellow]No active jobs for {org_val}[/yellow]")
        return

    table = Table(title=f"Active jobs: {org_val}")
    table.add_column("Job", style="cyan")
    table.add_column("Status")
    table.add_column("Mode")
    table.add_column("Progress", justify="right", style="green")
    table.add_column("Created")
    for job in jobs:
        table.add_row(
            str(job.id),
            _status_text(job),
            str(job.job_data.get("mode_name", "")),
            f"{job.progress_percent}%",
            job.created_at.isoformat(timespec="seconds"),
        )
    console.print(table)


@app.command()
def modes(
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
):
    """List pricing modes visible to an organization."""
    config = get_config()
    org_val = org_id or config.org_id

    async def _modes():
        database = Database(config.db)
        try:
            async with database.session() as session:
                return await list_pricing_modes(session, org_val)
        finally:
            await database.close()

    rows = asyncio.run(_modes())
    table = Table(title="Pricing modes")
    table.add_column("Name", style="cyan")
    table.add_column("Preset")
    table.add_column("Adjustments")
    table.add_column("Used", justify="right", style="green")
    table.add_column("Win rate", justify="right")
    for mode in rows:
        adjustments = ", ".join(f"{k}={v}" for k, v in sorted((mode.adjustments or {}).items()))
        rate = win_rate(mode)
        table.add_row(
            mode.name,
            "yes" if mode.is_preset else "",
            adjustments,
            str(mode.usage_count),
            f"{rate}%" if rate is not None else "-",
        )
    console.print(table)


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI app."""
    import uvicorn

    typer.echo(f"Starting Pricebook API on http://{host}:{port}")
    uvicorn.run("pricebook.web.app:app", host=host, port=port, reload=reload, workers=1)


if __name__ == "__main__":
    app()
