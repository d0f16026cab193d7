"""Command line interface for chatsync."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Optional

import typer
from rich.console import Console
from rich.table import Table

from chatsync.config import AppConfig
from chatsync.errors import ChatsyncError
from chatsync.factory import Runtime, build_runtime
from chatsync.ingestion.sources import NDJSONSource
from chatsync.models import SyncReport

console = Console()
app = typer.Typer(help="chatsync - keep a chatbot knowledge base in sync with CMS content")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load_config(db: Optional[Path], model: Optional[str]) -> AppConfig:
    config = AppConfig.from_env()
    if db is not None:
        config.db_path = db
    if model is not None:
        config.model_name = model
    return config


def _open_runtime(config: AppConfig, ndjson: Optional[Path] = None) -> Runtime:
    source = NDJSONSource(ndjson, types=config.supported_types) if ndjson is not None else None
    try:
        return build_runtime(config, base_dir=Path.cwd(), source=source)
    except ChatsyncError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


def _print_report(report: SyncReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Document")
    table.add_column("Title")
    table.add_column("Action")
    table.add_column("Chunks")
    for change in report.changes:
        if change.action == "unchanged":
            continue
        action = change.action if change.error is None else f"{change.action}: {change.error}"
        chunks = "" if change.chunk_count is None else str(change.chunk_count)
        table.add_row(change.source_id, change.title, action, chunks)
    if table.row_count:
        console.print(table)

    console.print(
        f"Added: {report.added}, updated: {report.updated}, deleted: {report.deleted}, "
        f"unchanged: {report.unchanged}, skipped: {report.skipped}, failed: {report.failed}, "
        f"chunks: {report.total_chunks}"
    )


def _run(runtime: Runtime, coro: Awaitable[Any]) -> Any:
    try:
        return asyncio.run(coro)
    except ChatsyncError as exc:
        console.print(f"[red]{type(exc).__name__}: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        runtime.close()


@app.command()
def sync(
    ndjson: Optional[Path] = typer.Option(
        None, "--ndjson", help="Sanity NDJSON export to sync from", exists=True, dir_okay=False
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: Optional[str] = typer.Option(None, help="Sentence-transformer model name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Reconcile the vector store with every document in the content source."""
    _setup_logging(verbose)
    config = _load_config(db, model)
    runtime = _open_runtime(config, ndjson)

    async def _full_sync() -> SyncReport:
        documents = await runtime.require_source().fetch_all()
        return await runtime.synchronizer.sync(documents)

    console.print(f"Syncing into [bold]{config.resolve_db_path(Path.cwd())}[/bold]...")
    report = _run(runtime, _full_sync())
    _print_report(report)
    if report.failed:
        raise typer.Exit(code=1)


@app.command("sync-one")
def sync_one(
    document_id: str = typer.Argument(..., help="CMS document id"),
    ndjson: Optional[Path] = typer.Option(
        None, "--ndjson", help="Sanity NDJSON export to read from", exists=True, dir_okay=False
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: Optional[str] = typer.Option(None, help="Sentence-transformer model name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Re-sync a single document, as a webhook delivery would."""
    _setup_logging(verbose)
    runtime = _open_runtime(_load_config(db, model), ndjson)
    _print_report(_run(runtime, runtime.synchronizer.sync_one(document_id)))


@app.command()
def delete(
    document_id: str = typer.Argument(..., help="CMS document id"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: Optional[str] = typer.Option(None, help="Sentence-transformer model name"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Remove a document's chunks and sync state."""
    _setup_logging(verbose)
    runtime = _open_runtime(_load_config(db, model))
    report = _run(runtime, runtime.synchronizer.delete_one(document_id))
    if not report.deleted:
        console.print(f"[yellow]{document_id} was not synced, nothing to delete.[/yellow]")
        return
    _print_report(report)


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: Optional[str] = typer.Option(None, help="Sentence-transformer model name"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum number of results"),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Minimum similarity"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Retrieve the chunks most similar to a query."""
    _setup_logging(verbose)
    config = _load_config(db, model)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        raise typer.BadParameter(f"Database not found: {resolved_db}")

    runtime = _open_runtime(config)
    results = _run(runtime, runtime.retriever.retrieve(query, threshold=threshold, limit=limit))
    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Type")
    table.add_column("Chunk")
    table.add_column("Snippet")

    for result in results:
        snippet = result.text.replace("\n", " ")
        table.add_row(
            f"{result.score:.4f}",
            str(result.metadata.get("title", result.source_id)),
            result.source_type,
            str(result.chunk_index),
            snippet[:180],
        )

    console.print(table)


@app.command()
def status(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    model: Optional[str] = typer.Option(None, help="Sentence-transformer model name"),
) -> None:
    """Show what the vector store currently holds."""
    config = _load_config(db, model)
    resolved_db = config.resolve_db_path(Path.cwd())
    if not resolved_db.exists():
        console.print("[yellow]Database not found, nothing synced yet.[/yellow]")
        return

    runtime = _open_runtime(config)
    try:
        stats = runtime.store.get_stats()
    finally:
        runtime.close()

    table = Table(show_header=False)
    for key, value in stats.items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Serve the webhook, admin and retrieval endpoints."""
    import uvicorn

    from chatsync.web.app import app as web_app

    if db is not None:
        # the web app reads its configuration from the environment
        os.environ["CHATSYNC_DB"] = str(db)

    console.print(f"Starting server on http://{host}:{port}")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )
