"""CLI entry point for NudgeScope."""

import dataclasses
import logging
import time
from datetime import timedelta
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from nudgescope.config import LLM_MODES, SETTINGS_JSON_PATH, load_settings
from nudgescope.exceptions import NudgeScopeError, TranscriptNotFoundError
from nudgescope.ingest.reader import import_transcripts, read_transcripts
from nudgescope.services import build_services
from nudgescope.storage.database import Database
from nudgescope.storage.repository import Repository

console = Console(force_terminal=True)


def _get_settings(ctx):
    return ctx.obj["settings"]


def _get_services(ctx):
    """Build the pipeline components once per invocation."""
    if "services" not in ctx.obj:
        try:
            ctx.obj["services"] = build_services(_get_settings(ctx))
        except (NudgeScopeError, ValueError) as e:
            console.print(f"[red]Error:[/red] {e}")
            ctx.exit(1)
    return ctx.obj["services"]


@click.group()
@click.option("--db", default=None, help="Database path (overrides settings)", type=click.Path())
@click.option(
    "--index-dir", default=None, help="Similarity index directory (overrides settings)",
    type=click.Path(),
)
@click.option(
    "--settings", "settings_path", default=None, type=click.Path(),
    help=f"Settings file (default: {SETTINGS_JSON_PATH.name})",
)
@click.option(
    "--llm-mode", type=click.Choice(LLM_MODES), default=None, help="LLM access mode",
)
@click.option("--model", default=None, help="Model to use")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, db, index_dir, settings_path, llm_mode, model, verbose):
    """NudgeScope - Find sales nudges in support-call transcripts."""
    ctx.ensure_object(dict)
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    try:
        settings = load_settings(Path(settings_path) if settings_path else None)
    except NudgeScopeError as e:
        console.print(f"[red]Error:[/red] {e}")
        ctx.exit(1)

    overrides = {}
    if db:
        overrides["db_path"] = Path(db)
    if index_dir:
        overrides["index_dir"] = Path(index_dir)
    if llm_mode:
        overrides["llm_mode"] = llm_mode
    if model:
        overrides["model"] = model
    ctx.obj["settings"] = dataclasses.replace(settings, **overrides)


@cli.command(name="import")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_cmd(ctx, input_path):
    """Load transcripts from a .json, .jsonl or .csv export."""
    settings = _get_settings(ctx)
    try:
        records = read_transcripts(Path(input_path))
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        ctx.exit(1)

    console.print(f"Found [bold]{len(records)}[/bold] transcripts.")
    with Database(settings.db_path) as db:
        repo = Repository(db)
        inserted, skipped = import_transcripts(repo, records)
        total = repo.get_transcript_count()

    console.print(f"[green]Done![/green] Imported [bold]{inserted}[/bold] new transcripts.")
    if skipped:
        console.print(f"Skipped [dim]{skipped}[/dim] already-imported transcripts.")
    console.print(f"Total transcripts in database: [bold]{total}[/bold]")


@cli.command()
@click.pass_context
def status(ctx):
    """Show analysis progress."""
    settings = _get_settings(ctx)
    if not settings.db_path.exists():
        console.print("[yellow]No database found.[/yellow] Run 'import' first.")
        return

    with Database(settings.db_path) as db:
        repo = Repository(db)
        summary = repo.get_status_summary()
        holder = repo.get_batch_lock_holder(timedelta(minutes=settings.stale_after_minutes))

    console.print()
    console.print("[bold]NudgeScope Status[/bold]")
    console.print()

    table = Table(title="Analysis Progress")
    table.add_column("Status", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Share", justify="right")

    total = summary["total"]
    for key in ("pending", "processing", "completed", "failed"):
        count = summary[key]
        pct = f"{count / total * 100:.0f}%" if total else "0%"
        table.add_row(key.upper(), str(count), pct)
    table.add_row("[bold]Total[/bold]", f"[bold]{total}[/bold]", "")
    console.print(table)
    console.print(f"Completion rate: [bold]{summary['completion_rate']:.1f}%[/bold]")
    if holder:
        console.print(f"Batch run: [green]active[/green] ({holder})")
    else:
        console.print("Batch run: idle")


@cli.command()
@click.pass_context
def run(ctx):
    """Process the PENDING backlog once."""
    services = _get_services(ctx)
    console.print("Running batch analysis (Ctrl+C stops after the current record)...")
    try:
        summary = services.coordinator.run_backlog()
    except KeyboardInterrupt:
        services.coordinator.request_stop()
        raise

    console.print()
    if summary.already_running:
        console.print("[yellow]A batch run is already in progress.[/yellow]")
        return
    if summary.reclaimed:
        console.print(f"Reset [bold]{summary.reclaimed}[/bold] stale PROCESSING transcripts.")
    console.print(
        f"[green]Done![/green] Completed [bold]{summary.processed}[/bold], "
        f"failed [bold]{summary.failed}[/bold] of {summary.total} pending "
        f"in {summary.elapsed_seconds:.1f}s."
    )
    if summary.stopped:
        console.print("[yellow]Run stopped before the backlog was drained.[/yellow]")
    if summary.error:
        console.print(f"[red]Run aborted:[/red] {summary.error}")
        ctx.exit(1)


@cli.command()
@click.argument("consultation_number")
@click.pass_context
def analyze(ctx, consultation_number):
    """Analyze one transcript by consultation number."""
    services = _get_services(ctx)
    try:
        success = services.coordinator.run_one(consultation_number)
    except TranscriptNotFoundError as e:
        console.print(f"[red]Error:[/red] {e}")
        ctx.exit(1)

    with Database(services.settings.db_path) as db:
        record = Repository(db).get_transcript(consultation_number)

    if not success:
        console.print(f"[red]Analysis failed[/red] for {consultation_number}.")
        ctx.exit(1)

    table = Table(title=f"Consultation {consultation_number}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in record.result_dict.items():
        table.add_row(key, value)
    console.print(table)


@cli.command()
@click.option("--clear", is_flag=True, help="Empty the index and rebuild it from scratch")
@click.pass_context
def reindex(ctx, clear):
    """Add completed analyses missing from the similarity index."""
    services = _get_services(ctx)
    if clear:
        console.print("[yellow]Clearing the similarity index...[/yellow]")
        added = services.index_sync.clear_and_reinitialize()
    else:
        added = services.index_sync.reinitialize()
    console.print(
        f"[green]Done![/green] Added [bold]{added}[/bold] documents "
        f"(index now holds {services.index.count()})."
    )


@cli.command()
@click.option("--minutes", type=int, default=None, help="Age threshold (default: from settings)")
@click.pass_context
def reap(ctx, minutes):
    """Put transcripts stuck in PROCESSING back to PENDING."""
    settings = _get_settings(ctx)
    age = minutes if minutes is not None else settings.stale_after_minutes
    with Database(settings.db_path) as db:
        count = Repository(db).reset_stale_processing(timedelta(minutes=age))
    console.print(f"Reset [bold]{count}[/bold] transcripts older than {age} minutes to PENDING.")


@cli.command()
@click.option("--interval", type=float, default=None, help="Seconds between runs (default: from settings)")
@click.pass_context
def schedule(ctx, interval):
    """Run the backlog on a fixed delay until interrupted."""
    from nudgescope.batch.scheduler import FixedDelayScheduler

    services = _get_services(ctx)
    delay = interval if interval is not None else services.settings.schedule_interval
    scheduler = FixedDelayScheduler(services.coordinator, interval=delay)
    scheduler.start()
    console.print(f"Scheduler running every [bold]{delay:g}s[/bold]. Press Ctrl+C to stop.")
    try:
        while scheduler.is_alive():
            time.sleep(1)
    except KeyboardInterrupt:
        console.print()
        console.print("Stopping after the current record...")
    finally:
        scheduler.stop()


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", type=int, default=8000, help="Port")
@click.option("--schedule/--no-schedule", default=True, help="Also run the backlog on a fixed delay")
@click.option("--interval", type=float, default=None, help="Seconds between scheduled runs (default: from settings)")
@click.pass_context
def serve(ctx, host, port, schedule, interval):
    """Start the HTTP control API, with the scheduler by default."""
    import uvicorn

    from nudgescope.web.app import create_app

    console.print(f"Starting NudgeScope API at [bold]http://{host}:{port}[/bold]")
    app = create_app(_get_services(ctx), schedule=schedule, interval=interval)
    uvicorn.run(app, host=host, port=port)


@cli.command(name="settings")
@click.pass_context
def show_settings(ctx):
    """Show effective settings."""
    settings = _get_settings(ctx)
    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in settings.to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


if __name__ == "__main__":
    cli()
