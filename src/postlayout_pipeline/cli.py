from __future__ import annotations

import logging
import signal
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import FrozenSet, List, Optional

import typer
from pydantic import ValidationError

from postlayout_pipeline.config import Settings, load_settings
from postlayout_pipeline.errors import NoEligibleItems, RecordNotEligible, RecordNotFound
from postlayout_pipeline.export.csv_export import export_filename
from postlayout_pipeline.logging_utils import (
    JsonlLogger,
    bulk_completed_event,
    default_log_path,
    new_run_context,
    run_summary_event,
)
from postlayout_pipeline.models import CREATE_ELIGIBLE, GENERATE_ELIGIBLE, BulkOutcome
from postlayout_pipeline.pipeline.factory import build_orchestrator
from postlayout_pipeline.pipeline.orchestrator import PipelineOrchestrator
from postlayout_pipeline.storage.session_store import default_session_path, load_session, save_session

app = typer.Typer(add_completion=False, help="Post layout import & generation pipeline")


def _ensure_dirs(settings: Settings) -> None:
    settings.paths.data_dir.mkdir(parents=True, exist_ok=True)
    settings.paths.logs_dir.mkdir(parents=True, exist_ok=True)
    settings.paths.exports_dir.mkdir(parents=True, exist_ok=True)


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        exists=True,
        dir_okay=False,
        file_okay=True,
        readable=True,
        help="Path to YAML config (optional)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log pipeline progress to stderr"),
) -> None:
    """Load settings and store them in Typer context."""

    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings(config)
    _ensure_dirs(settings)
    ctx.obj = {"settings": settings}


def _start(ctx: typer.Context, command: str, **extra: object) -> tuple[Settings, JsonlLogger, str]:
    settings: Settings = ctx.obj["settings"]
    run_ctx = new_run_context()
    logger = JsonlLogger(default_log_path(settings.paths.logs_dir, now_utc=run_ctx.started_at_utc))
    logger.log(
        {
            "event": "command_start",
            "command": command,
            "run_id": run_ctx.run_id,
            "source": settings.source,
            "generator": settings.generator,
            **extra,
        }
    )
    ctx.obj["run_ctx"] = run_ctx
    return settings, logger, run_ctx.run_id


def _finish(ctx: typer.Context, logger: JsonlLogger, orchestrator: PipelineOrchestrator) -> None:
    logger.log(run_summary_event(ctx=ctx.obj["run_ctx"], state_counts=orchestrator.stats().by_state))


def _restore(settings: Settings, logger: JsonlLogger, run_id: str) -> PipelineOrchestrator:
    orchestrator = build_orchestrator(settings)
    session_path = default_session_path(settings.paths.data_dir)
    try:
        orchestrator.restore(load_session(session_path))
    except FileNotFoundError:
        logger.log({"event": "session_missing", "run_id": run_id, "path": str(session_path)})
        typer.echo("No imported session found. Run `postlayout import` first.", err=True)
        raise typer.Exit(code=2)
    except ValueError as exc:
        logger.log({"event": "session_invalid", "run_id": run_id, "path": str(session_path), "error": str(exc)})
        typer.echo(f"Saved session is unreadable ({exc}). Run `postlayout import` again.", err=True)
        raise typer.Exit(code=2)
    return orchestrator


def _save(settings: Settings, orchestrator: PipelineOrchestrator) -> Path:
    session_path = default_session_path(settings.paths.data_dir)
    save_session(session_path, orchestrator.snapshot())
    return session_path


def _select(
    orchestrator: PipelineOrchestrator, ids: Optional[List[str]], select_all: bool, eligible: FrozenSet[str]
) -> None:
    if select_all:
        for record in orchestrator.records:
            if record.state in eligible:
                orchestrator.select(record.id)
        return

    for record_id in ids or []:
        try:
            if not orchestrator.select(record_id):
                typer.echo(f"Skipping {record_id}: not eligible", err=True)
        except RecordNotFound as exc:
            typer.echo(str(exc), err=True)


def _run_bulk(
    ctx: typer.Context,
    action: str,
    ids: Optional[List[str]],
    select_all: bool,
) -> None:
    settings, logger, run_id = _start(ctx, action, ids=ids or [], all=select_all)
    orchestrator = _restore(settings, logger, run_id)
    _select(orchestrator, ids, select_all, CREATE_ELIGIBLE if action == "create" else GENERATE_ELIGIBLE)
    requested = sorted(orchestrator.selected)

    # Ctrl-C cancels between records.
    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda *_: cancel.set())
    try:
        if action == "create":
            outcome: BulkOutcome = orchestrator.bulk_create(cancel=cancel)
        else:
            outcome = orchestrator.bulk_generate(cancel=cancel)
    except NoEligibleItems as exc:
        logger.log({"event": "no_eligible_items", "run_id": run_id, "action": action})
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=2)
    finally:
        signal.signal(signal.SIGINT, previous)

    for record_id in requested:
        record = orchestrator.get(record_id)
        logger.log(
            {
                "event": "bulk_item",
                "run_id": run_id,
                "action": action,
                "record_id": record.id,
                "state": record.state,
                "external_post_id": record.external_post_id,
                "generation_trigger_id": record.generation_trigger_id,
                "error_message": record.error_message,
            }
        )

    logger.log(bulk_completed_event(run_id=run_id, outcome=outcome))
    _save(settings, orchestrator)
    _finish(ctx, logger, orchestrator)

    typer.echo(
        f"{action}: {outcome.successful} successful, {outcome.failed} failed"
        + (f", {outcome.skipped} skipped (cancelled)" if outcome.cancelled else "")
    )
    for err in outcome.errors:
        typer.echo(f"  {err.record_id}: {err.error}")

    if outcome.failed:
        raise typer.Exit(code=1)


@app.command("import")
def import_layouts(
    ctx: typer.Context,
    source: Optional[str] = typer.Option(None, "--source", help="Override the configured source (sheets|fixture)"),
) -> None:
    """Import briefs from the sheet (falls back to fixture records) and start a new session."""

    if source is not None:
        try:
            ctx.obj["settings"] = Settings.model_validate({**ctx.obj["settings"].model_dump(), "source": source})
        except ValidationError as exc:
            typer.echo(f"Invalid --source: {source}", err=True)
            raise typer.Exit(code=2) from exc
    settings, logger, run_id = _start(ctx, "import")

    orchestrator = build_orchestrator(settings)
    records = orchestrator.import_records()
    session_path = _save(settings, orchestrator)
    stats = orchestrator.stats()

    logger.log(
        {
            "event": "import_completed",
            "run_id": run_id,
            "session_id": orchestrator.session_id,
            "import_source": orchestrator.import_source,
            "import_error": orchestrator.import_error,
            "records": len(records),
            "state_counts": stats.by_state,
            "session_path": str(session_path),
        }
    )
    _finish(ctx, logger, orchestrator)

    if orchestrator.import_error:
        typer.echo(f"Sheet import failed ({orchestrator.import_error}); using fixture records", err=True)
    typer.echo(f"Imported {len(records)} records from {orchestrator.import_source}")
    for state, count in stats.by_state.items():
        typer.echo(f"  {state}: {count}")


@app.command("list")
def list_layouts(
    ctx: typer.Context,
    search: str = typer.Option("", "--search", help="Substring match on outline/meta title/keyword"),
    status: str = typer.Option("all", "--status", help="Filter by state"),
    date_filter: str = typer.Option("all", "--date", help="all|today|yesterday|this_week|YYYY-MM-DD"),
    page: int = typer.Option(1, "--page", min=1),
) -> None:
    """Show the filtered, paginated working set."""

    settings, logger, run_id = _start(ctx, "list")
    orchestrator = _restore(settings, logger, run_id)
    try:
        orchestrator.set_filters(search=search, status=status, date_filter=date_filter)
    except ValueError as exc:
        typer.echo(f"Invalid filter: {exc}", err=True)
        raise typer.Exit(code=2)
    orchestrator.set_page(page)

    pages = orchestrator.total_pages()
    for record in orchestrator.page_records():
        typer.echo(f"{record.id:<24} {record.state:<14} {record.keyword[:30]:<30} {record.meta_title[:60]}")
    typer.echo(f"page {orchestrator.page}/{max(pages, 1)} ({len(orchestrator.filtered())} matching)")


@app.command()
def generate(
    ctx: typer.Context,
    ids: Optional[List[str]] = typer.Option(None, "--id", help="Record id (repeatable)"),
    select_all: bool = typer.Option(False, "--all", help="Select every record that needs generation"),
) -> None:
    """Generate content for records in need_generate, one at a time."""
    _run_bulk(ctx, "generate", ids, select_all)


@app.command()
def create(
    ctx: typer.Context,
    ids: Optional[List[str]] = typer.Option(None, "--id", help="Record id (repeatable)"),
    select_all: bool = typer.Option(False, "--all", help="Select every pending/ready record"),
) -> None:
    """Create draft posts for ready records, one at a time."""
    _run_bulk(ctx, "create", ids, select_all)


@app.command()
def retry(
    ctx: typer.Context,
    ids: List[str] = typer.Option(..., "--id", help="Record id in state error (repeatable)"),
) -> None:
    """Reset errored records so they can be generated/created again."""

    settings, logger, run_id = _start(ctx, "retry", ids=ids)
    orchestrator = _restore(settings, logger, run_id)

    for record_id in ids:
        try:
            record = orchestrator.retry_record(record_id)
        except (RecordNotFound, RecordNotEligible) as exc:
            typer.echo(str(exc), err=True)
            continue
        logger.log({"event": "record_reset", "run_id": run_id, "record_id": record.id, "state": record.state})
        typer.echo(f"{record.id}: {record.state}")

    _save(settings, orchestrator)
    _finish(ctx, logger, orchestrator)


@app.command()
def export(
    ctx: typer.Context,
    output: Optional[Path] = typer.Option(None, "--output", help="Target CSV path"),
) -> None:
    """Write the working set as CSV."""

    settings, logger, run_id = _start(ctx, "export")
    orchestrator = _restore(settings, logger, run_id)

    if not orchestrator.records:
        typer.echo("No data to export", err=True)
        raise typer.Exit(code=2)

    today = datetime.now(timezone.utc).date()
    target = output or settings.paths.exports_dir / export_filename(today)
    payload = orchestrator.export_csv()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(payload)

    logger.log(
        {
            "event": "export_written",
            "run_id": run_id,
            "path": str(target),
            "records": len(orchestrator.records),
            "bytes_written": len(payload),
        }
    )
    _finish(ctx, logger, orchestrator)
    typer.echo(str(target))


if __name__ == "__main__":
    app()
