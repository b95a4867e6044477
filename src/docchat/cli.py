"""Command line interface for DocChat."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from docchat.config import AppConfig
from docchat.errors import DocChatError
from docchat.models import SearchOptions
from docchat.services import Services, build_services
from docchat.utils.files import iter_document_paths

console = Console()
app = typer.Typer(help="DocChat - chat with your Markdown and OpenAPI documentation")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _load_config(db: Optional[Path]) -> AppConfig:
    config = AppConfig.from_env()
    if db is not None:
        config.db_path = db
    config.db_path = config.resolve_db_path(Path.cwd())
    return config


def _open_services(config: AppConfig) -> Services:
    try:
        return build_services(config)
    except DocChatError as exc:
        console.print(f"[red]{exc.user_message}[/red]")
        raise typer.Exit(code=1) from exc


@app.command()
def index(
    inputs: List[Path] = typer.Argument(
        ..., help="Markdown/OpenAPI files or directories to index.", resolve_path=True
    ),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Index documentation files."""
    _setup_logging(verbose)
    config = _load_config(db)

    paths = list(iter_document_paths(inputs))
    if not paths:
        console.print("[yellow]No documentation files found.[/yellow]")
        return

    services = _open_services(config)
    console.print(f"Indexing into [bold]{config.db_path}[/bold]...")
    try:
        stats = services.indexer.index(paths)
    finally:
        services.close()
    console.print(f"Inserted: {stats.inserted}, skipped: {stats.skipped}, failed: {stats.failed}")


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    top_k: int = typer.Option(10, help="Number of results to display"),
    threshold: Optional[float] = typer.Option(None, help="Minimum similarity"),
    rerank: bool = typer.Option(False, "--rerank", help="Boost keyword and early-position matches"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Run a similarity search without generating an answer."""
    _setup_logging(verbose)
    config = _load_config(db)
    if not Path(config.db_path).exists():
        raise typer.BadParameter(f"Database not found: {config.db_path}")

    services = _open_services(config)
    try:
        results = services.search_index.search(
            query, SearchOptions(top_k=top_k, threshold=threshold), rerank_results=rerank
        )
    except DocChatError as exc:
        console.print(f"[red]{exc.user_message}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        services.close()

    if not results:
        console.print("[yellow]No matches found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score")
    table.add_column("Document")
    table.add_column("Section")
    table.add_column("Chunk")
    table.add_column("Snippet")

    for result in results:
        snippet = result.content.replace("\n", " ")
        table.add_row(
            f"{result.similarity:.4f}",
            result.file_name,
            result.metadata.section,
            str(result.chunk_index),
            snippet[:180],
        )

    console.print(table)


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question about the indexed documentation"),
    session: Optional[str] = typer.Option(None, "--session", "-s", help="Session to continue"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose logging"),
) -> None:
    """Ask a question and print the grounded answer."""
    _setup_logging(verbose)
    config = _load_config(db)
    services = _open_services(config)
    try:
        response = services.chat.process_message(question, session)
    except DocChatError as exc:
        console.print(f"[red]{exc.user_message}[/red]")
        raise typer.Exit(code=1) from exc
    finally:
        services.close()

    if response.warning:
        console.print(f"[yellow]{response.warning}[/yellow]")
    console.print(response.message)
    if response.sources:
        console.print(f"\n[bold]Sources[/bold] (confidence {response.confidence:.0f}%)")
        for source in response.sources:
            console.print(f"- {source['fileName']} / {source['section']} ({source['similarity']:.2f})")
    console.print(f"\nSession: [bold]{response.session_id}[/bold]")


@app.command()
def sessions(
    limit: int = typer.Option(50, help="Number of sessions to list"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """List the most recently active chat sessions."""
    config = _load_config(db)
    services = _open_services(config)
    try:
        rows = services.chat.list_sessions(limit)
    finally:
        services.close()

    if not rows:
        console.print("[yellow]No sessions yet.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Session")
    table.add_column("Messages")
    table.add_column("Updated")
    for row in rows:
        table.add_row(row["session_id"], str(row["message_count"]), row["updated_at"])
    console.print(table)


@app.command()
def stats(
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show document, index and session statistics."""
    config = _load_config(db)
    services = _open_services(config)
    try:
        documents = services.store.get_stats()
        index_stats = services.retriever.index_stats()
        totals = services.sessions.totals()
    finally:
        services.close()

    console.print(f"Documents: {documents['document_count']}")
    console.print(
        f"Chunks: {documents['chunk_count']} "
        f"({documents['average_chunks_per_document']:.1f} per document)"
    )
    console.print(f"Index coverage: {index_stats['index_coverage']:.1f}%")
    console.print(f"Sessions: {totals['session_count']}, messages: {totals['message_count']}")


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Server port"),
    db: Path = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Start the HTTP API."""
    try:
        import uvicorn
    except ImportError as exc:  # pragma: no cover - defensive
        raise typer.BadParameter(
            "uvicorn is not installed. Install the web extras with \"python -m pip install '.[web]'\""
        ) from exc

    from docchat.web.app import app as web_app, configure

    config = _load_config(db)
    configure(config)
    console.print(f"Starting DocChat API on http://{host}:{port} (database: {config.db_path})")
    uvicorn.run(
        web_app,
        host=host,
        port=port,
        reload=False,
        log_level="info",
    )

