"""CLI entry point using Typer."""

import sys
import time
from pathlib import Path
from typing import NoReturn

import typer
from loguru import logger
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from faiss_index_gen import __version__
from faiss_index_gen.config import (
    DOC_CACHE_FILENAME,
    EMBEDDING_MODELS,
    INDEX_FILENAME,
    INDEX_METADATA_FILENAME,
    METADATA_FILENAME,
    Settings,
)
from faiss_index_gen.errors import FaissGenError

app = typer.Typer(
    name="faiss-gen",
    help="Generate FAISS index files from a directory of documents",
    add_completion=False,
)

console = Console()


def _configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


def _load_settings(**overrides) -> Settings:
    """Settings from env/.env with explicit CLI options on top."""
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        console.print(f"[red]❌ Invalid options:[/red]\n{escape(str(e))}")
        raise typer.Exit(1)


def _fail(error: FaissGenError) -> NoReturn:
    console.print(f"\n[red]❌ {escape(error.message)}[/red]")
    if error.hint:
        console.print(f"[yellow]💡 {escape(error.hint)}[/yellow]")
    raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold blue]faiss-gen[/bold blue] version {__version__}")


@app.command()
def config(
    check: bool = typer.Option(False, "--check", help="Check Ollama connection status"),
):
    """Show default settings and available embedding models."""
    from faiss_index_gen.indexing import EmbeddingClient

    settings = _load_settings()

    console.print(Panel.fit(
        f"[bold]Embedding model:[/bold] {settings.model} (dim={settings.dimension})\n"
        f"[bold]Ollama URL:[/bold]      {settings.endpoint}\n"
        f"[bold]Chunk size:[/bold]      {settings.chunk_size} characters\n"
        f"[bold]Overlap:[/bold]         {settings.chunk_overlap} characters\n"
        f"[bold]Splitter:[/bold]        {settings.splitter}\n"
        f"[bold]Index type:[/bold]      {settings.metric}\n"
        f"[bold]Extensions:[/bold]      {', '.join(settings.extensions)}\n"
        f"[bold]Recursive:[/bold]       {settings.recursive}",
        title="⚙️  Configuration",
    ))

    table = Table(title="Available embedding models (Ollama)")
    table.add_column("Model")
    table.add_column("Dim", justify="right")
    table.add_column("Context", justify="right")
    table.add_column("Description")
    for name, model in EMBEDDING_MODELS.items():
        marker = " ⭐" if name == settings.model else ""
        table.add_row(name + marker, str(model.dimension), str(model.context), model.description)
    console.print(table)

    console.print(
        "\n[dim]To use a different model: ollama pull mxbai-embed-large, "
        "then faiss-gen build ./docs --model mxbai-embed-large[/dim]"
    )

    if check:
        with EmbeddingClient(
            endpoint=settings.endpoint,
            model=settings.model,
            health_timeout=settings.health_timeout,
            embeddings_path=settings.embeddings_path,
            models_path=settings.models_path,
        ) as client:
            health = client.health_check()

        if health.ok:
            console.print(f"\n[green]✅ {health.message}[/green]")
        else:
            console.print(f"\n[red]❌ {health.message}[/red]")
            raise typer.Exit(1)


@app.command()
def build(
    input_dir: Path = typer.Argument(..., help="Directory containing documents to index"),
    output_dir: Path = typer.Argument(Path("./faiss_output"), help="Output directory for index files"),
    chunk_size: int | None = typer.Option(None, "--chunk-size", "-c", help="Chunk size in characters"),
    overlap: int | None = typer.Option(None, "--overlap", "-o", help="Overlap between chunks"),
    extensions: str | None = typer.Option(None, "--extensions", "-e", help="Comma-separated file extensions"),
    recursive: bool | None = typer.Option(None, "--recursive/--no-recursive", "-r", help="Scan directories recursively"),
    index_type: str | None = typer.Option(None, "--index-type", "-t", help="IP (cosine) or L2 (euclidean)"),
    model: str | None = typer.Option(None, "--model", "-m", help="Ollama embedding model"),
    ollama_url: str | None = typer.Option(None, "--ollama-url", help="Ollama server URL"),
    splitter: str | None = typer.Option(None, "--splitter", "-s", help="recursive, character, markdown, code or fixed"),
    skip_unchanged: bool = typer.Option(False, "--skip-unchanged", help="Keep the index if no file changed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show verbose output"),
):
    """
    Generate a FAISS index from documents.

    Example:
        faiss-gen build ./documents ./faiss_output -c 1000 -e .md,.txt
    """
    from faiss_index_gen.indexing import IndexBuilder

    settings = _load_settings(
        chunk_size=chunk_size,
        chunk_overlap=overlap,
        extensions=extensions,
        recursive=recursive,
        metric=index_type.upper() if index_type else None,
        model=model,
        endpoint=ollama_url,
        splitter=splitter,
    )
    _configure_logging("DEBUG" if verbose else settings.log_level)

    console.print(Panel.fit(
        f"[bold]Input:[/bold]       {input_dir}\n"
        f"[bold]Output:[/bold]      {output_dir}\n"
        f"[bold]Chunk size:[/bold]  {settings.chunk_size} (overlap {settings.chunk_overlap})\n"
        f"[bold]Splitter:[/bold]    {settings.splitter}\n"
        f"[bold]Extensions:[/bold]  {', '.join(settings.extensions)}\n"
        f"[bold]Recursive:[/bold]   {settings.recursive}\n"
        f"[bold]Index type:[/bold]  {settings.metric}\n"
        f"[bold]Model:[/bold]       {settings.model} (dim={settings.dimension})\n"
        f"[bold]Ollama URL:[/bold]  {settings.endpoint}",
        title="🚀 FAISS Index Generator",
    ))

    try:
        builder = IndexBuilder(settings)
    except FaissGenError as e:
        _fail(e)

    try:
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Embedding chunks", total=None)

            def on_progress(current: int, total: int) -> None:
                progress.update(task, completed=current, total=total)

            report = builder.build(input_dir, output_dir, on_progress, skip_unchanged=skip_unchanged)
    except FaissGenError as e:
        _fail(e)
    finally:
        builder.close()

    if report.skipped:
        console.print(f"[green]✅ No changes ({report.changes.summary()}); index kept[/green]")
        return

    if verbose:
        for doc, count in report.chunks_per_file.items():
            console.print(f"  📄 {doc}: {count} chunk(s)")

    console.print(Panel.fit(
        f"[bold green]✅ Index built successfully![/bold green]\n\n"
        f"[bold]Files:[/bold]    {report.files} ({report.changes.summary()})\n"
        f"[bold]Chunks:[/bold]   {report.chunks}\n"
        f"[bold]Vectors:[/bold]  {report.vectors}\n"
        f"[bold]Time:[/bold]     {report.elapsed:.2f}s\n\n"
        f"[dim]{output_dir / DOC_CACHE_FILENAME}\n"
        f"{output_dir / METADATA_FILENAME}\n"
        f"{output_dir / INDEX_FILENAME}\n"
        f"{output_dir / INDEX_METADATA_FILENAME}[/dim]",
        title="📊 Build",
    ))


@app.command()
def query(
    index_dir: Path = typer.Argument(..., help="Directory containing the FAISS index files"),
    query_text: str = typer.Argument(..., metavar="QUERY", help="Search query text"),
    top_k: int = typer.Option(5, "--top-k", "-k", help="Number of results to return"),
    show_chunk: bool = typer.Option(True, "--show-chunk/--no-show-chunk", help="Show chunk content"),
    max_length: int = typer.Option(500, "--max-length", help="Max characters per chunk (0 = no limit)"),
    model: str | None = typer.Option(None, "--model", "-m", help="Ollama embedding model"),
    ollama_url: str | None = typer.Option(None, "--ollama-url", help="Ollama server URL"),
    index_type: str | None = typer.Option(None, "--index-type", "-t", help="IP (cosine) or L2 (euclidean)"),
):
    """
    Search the FAISS index with a query.

    Example:
        faiss-gen query ./faiss_output "find orders by status" -k 10
    """
    from faiss_index_gen.indexing import IndexBuilder

    settings = _load_settings(
        model=model,
        endpoint=ollama_url,
        metric=index_type.upper() if index_type else None,
    )
    _configure_logging(settings.log_level)

    try:
        builder = IndexBuilder(settings)
    except FaissGenError as e:
        _fail(e)

    try:
        store = builder.load(index_dir)
        stats = store.get_stats()
        console.print(f"📊 Index loaded: {stats.vectors} vectors, {stats.dimension} dimensions")

        start = time.perf_counter()
        results = store.search(query_text, top_k)
        elapsed_ms = (time.perf_counter() - start) * 1000
    except FaissGenError as e:
        _fail(e)
    finally:
        builder.close()

    console.print(f"⏱️  Search completed in {elapsed_ms:.0f}ms\n")

    if not results:
        console.print("  No results found.")
        return

    for i, result in enumerate(results, start=1):
        body = (
            f"[bold]Score:[/bold]     {result.score:.4f} ({result.score * 100:.1f}% match)\n"
            f"[bold]Doc:[/bold]       {escape(str(result.doc))}\n"
            f"[bold]Chunk ID:[/bold]  {result.chunk_id}"
        )
        if show_chunk and result.chunk:
            text = result.chunk
            if max_length > 0 and len(text) > max_length:
                text = text[:max_length] + "... [truncated]"
            body += f"\n\n{escape(text)}"
        console.print(Panel(body, title=f"📄 Result {i}/{len(results)}", highlight=False))


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
