"""labreport CLI: run lab reports through the processing pipeline."""

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from labreport.config.settings import Settings
from labreport.database.connection import close_pool, ensure_schema, init_pool
from labreport.logging.logger import Log
from labreport.processing.builder import SessionContext, build_session
from labreport.processing.exceptions import FileReadError, UnsupportedDocumentTypeError
from labreport.processing.file_loader import FileLoader
from labreport.processing.models import DocumentInput
from labreport.processing.session import DocumentSessionManager
from labreport.routing.models import PerformanceAnalytics
from labreport.upload.exceptions import UploadValidationError
from labreport.upload.models import UploadPriority, UploadTaskStatus

app = typer.Typer(name="labreport", help="Lab report OCR and biomarker extraction pipeline")
console = Console()


def _uses_database(settings: Settings) -> bool:
    return "postgres" in (settings.preference_store, settings.upload_task_store)


def _load_inputs(files: list[Path]) -> list[DocumentInput]:
    loader = FileLoader()
    try:
        return loader.load_many(files)
    except (FileNotFoundError, FileReadError, UnsupportedDocumentTypeError) as exc:
        raise typer.BadParameter(str(exc)) from exc


def _print_session(session: DocumentSessionManager) -> None:
    document = session.selected_document
    if session.processing_error is not None:
        error = session.processing_error
        console.print(f"[red]{error.error_type.value}: {error}[/red]")
        suggestion = getattr(error, "recovery_suggestion", None)
        if suggestion:
            console.print(f"[yellow]{suggestion}[/yellow]")
    summary = session.processing_summary
    if document is None or summary is None:
        return

    console.print(
        f"[bold]{document.filename}[/bold] ({summary.document_type or 'Lab Report'}) "
        f"via {summary.method.value}{' (fallback)' if summary.is_fallback else ''}, "
        f"confidence {summary.overall_confidence:.2f}"
    )
    table = Table(title=f"{summary.total_extracted} biomarkers")
    for column in ("Name", "Value", "Unit", "Range", "Status", "Confidence"):
        table.add_column(column)
    for biomarker in session.biomarkers:
        table.add_row(
            biomarker.name,
            biomarker.value,
            biomarker.unit or "",
            biomarker.reference_range or "",
            biomarker.status.value,
            f"{biomarker.confidence:.2f}",
        )
    console.print(table)
    if session.biomarkers_needing_validation():
        console.print(
            f"[yellow]{len(session.biomarkers_needing_validation())} biomarkers need review[/yellow]"
        )


def _print_analytics(analytics: PerformanceAnalytics) -> None:
    table = Table(title=f"OCR performance ({analytics.total_operations} attempts)")
    for column in ("Method", "Attempts", "Success rate", "Avg latency (s)", "Avg quality"):
        table.add_column(column)
    for name, stats in (("remote", analytics.remote), ("local", analytics.local)):
        table.add_row(
            name,
            str(stats.operations),
            f"{stats.success_rate:.0%}",
            f"{stats.average_latency_seconds:.2f}",
            f"{stats.average_quality:.2f}",
        )
    console.print(table)
    console.print(f"Recommended method: [bold]{analytics.recommended_method.value}[/bold]")


async def _process(
    context: SessionContext, inputs: list[DocumentInput], show_analytics: bool
) -> bool:
    session = context.session
    documents = session.select_documents(inputs)
    ok = True
    for index, document in enumerate(documents):
        if index == 0:
            await session.settle()
        else:
            await session.process_document(document)
        _print_session(session)
        ok = ok and session.processing_error is None
    if show_analytics:
        _print_analytics(session.performance_analytics())
    return ok


async def _upload(context: SessionContext, inputs: list[DocumentInput], priority: UploadPriority) -> bool:
    session = context.session
    scheduler = context.scheduler
    scheduler.resume_pending()
    rejected: list[tuple[str, str]] = []
    for item in inputs:
        document = session.add_documents([item])[0]
        try:
            session.schedule_background_upload(document, priority)
        except UploadValidationError as exc:
            Log.warning(f"Not scheduling {document.filename}: {exc}")
            rejected.append((document.filename, str(exc)))
    statuses = await scheduler.join()
    table = Table(title="Background uploads")
    for column in ("File", "Priority", "Status", "Report", "Retries"):
        table.add_column(column)
    for status in statuses:
        table.add_row(
            status.filename,
            status.priority.name.lower(),
            status.status.value,
            status.report_id or "",
            str(status.retry_count),
        )
    console.print(table)
    for filename, reason in rejected:
        console.print(f"[red]Rejected {filename}: {reason}[/red]")
    scheduler.prune_finished()
    return not rejected and all(status.status is UploadTaskStatus.COMPLETED for status in statuses)


def _run(settings: Settings, work: Callable[[SessionContext], Awaitable[bool]]) -> bool:
    async def _main() -> bool:
        context = build_session(settings)
        try:
            return await work(context)
        finally:
            await context.aclose()

    if _uses_database(settings):
        init_pool(settings)
        ensure_schema()
    try:
        return asyncio.run(_main())
    finally:
        if _uses_database(settings):
            close_pool()


@app.command()
def process(
    files: list[Path] = typer.Argument(..., help="Images or PDFs of lab reports"),
    local_only: bool = typer.Option(False, "--local-only", help="Skip the remote service"),
    no_fallback: bool = typer.Option(False, "--no-fallback", help="Disable fallback"),
    timeout: float | None = typer.Option(None, "--timeout", help="Per-attempt timeout (s)"),
    analytics: bool = typer.Option(False, "--analytics", help="Print OCR performance"),
) -> None:
    """Extract biomarkers from one or more lab reports."""
    settings = Settings()
    Log.configure(settings.log_level)
    overrides: dict[str, object] = {}
    if local_only:
        overrides["ocr_prefer_remote"] = False
        overrides["ocr_allow_fallback"] = False
    if no_fallback:
        overrides["ocr_allow_fallback"] = False
    if timeout is not None:
        overrides["ocr_timeout_seconds"] = timeout
    if overrides:
        settings = settings.model_copy(update=overrides)

    inputs = _load_inputs(files)
    ok = _run(settings, lambda context: _process(context, inputs, analytics))
    if not ok:
        raise typer.Exit(code=1)


@app.command()
def upload(
    files: list[Path] = typer.Argument(..., help="Images or PDFs of lab reports"),
    priority: str = typer.Option("normal", "--priority", help="low, normal or high"),
) -> None:
    """Upload lab reports in the background and wait for them to finish."""
    try:
        upload_priority = UploadPriority[priority.upper()]
    except KeyError:
        raise typer.BadParameter(f"Unknown priority '{priority}'") from None
    settings = Settings()
    Log.configure(settings.log_level)
    inputs = _load_inputs(files)
    ok = _run(settings, lambda context: _upload(context, inputs, upload_priority))
    if not ok:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
