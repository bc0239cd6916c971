"""Command line entry point.

Commands:
1. sweep: process a bucket prefix page by page (follows cursors unless --once)
2. automagic: dispatch one workflow per document and run them in-process
3. sync-ledger: mirror the external ledger into the graph store
4. serve: start the HTTP app
"""

from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from mountaingraph.pipeline.workflow import WorkflowStatus, dispatch_prefix
from mountaingraph.services import Services
from mountaingraph.utils.config import load_config
from mountaingraph.utils.logging_setup import configure_logging

app = typer.Typer(help="Extract a knowledge graph from research documents.")
console = Console()


def _services(config_path: str, verbose: bool) -> Services:
    config = load_config(config_path)
    configure_logging(config.logging, verbose=verbose)
    return Services.from_config(config)


@app.command()
def sweep(
    limit: Optional[int] = typer.Option(None, help="Objects listed per page"),
    cursor: Optional[str] = typer.Option(None, help="Resume after this cursor"),
    bucket: Optional[str] = typer.Option(None, help="Bucket name"),
    prefix: Optional[str] = typer.Option(None, help="Key prefix"),
    once: bool = typer.Option(False, help="Stop after a single page"),
    config_path: str = "config/config.yaml",
    verbose: bool = False,
):
    """Run the manual sweep, printing per-page stats."""
    services = _services(config_path, verbose)
    bucket_name = bucket or services.config.buckets.default_bucket
    prefix = prefix if prefix is not None else services.config.buckets.default_prefix

    table = Table(title=f"Sweep {bucket_name}/{prefix}")
    for column in ("Page", "Files", "Chunks", "Entities", "Relationships", "Events", "Failed"):
        table.add_column(column, justify="right")

    page = 0
    while True:
        page += 1
        result = services.orchestrator.sweep(
            limit=limit, cursor=cursor, bucket_name=bucket_name, prefix=prefix
        )
        stats = result.stats
        table.add_row(
            str(page),
            str(stats.files),
            str(stats.chunks),
            str(stats.entities_created),
            str(stats.relationships_created),
            str(stats.events_created + stats.events_updated),
            str(len(result.failed)),
        )
        for key in result.failed:
            console.print(f"[red]Failed:[/red] {key}")
        cursor = result.next_cursor
        if once or cursor is None:
            break

    console.print(table)
    if cursor:
        console.print(f"[bold blue]Next cursor:[/bold blue] {cursor}")
    else:
        console.print("[bold green]Sweep complete[/bold green]")


@app.command()
def automagic(
    bucket: Optional[str] = typer.Option(None, help="Bucket name"),
    prefix: Optional[str] = typer.Option(None, help="Key prefix"),
    config_path: str = "config/config.yaml",
    verbose: bool = False,
):
    """Dispatch a workflow for every document under the prefix, then run them."""
    services = _services(config_path, verbose)
    bucket_name = bucket or services.config.buckets.default_bucket
    prefix = prefix if prefix is not None else services.config.buckets.default_prefix
    if bucket_name not in services.buckets:
        console.print(f"[red]Unknown bucket:[/red] {bucket_name}")
        raise typer.Exit(code=1)

    summary = dispatch_prefix(
        services.host,
        services.buckets[bucket_name],
        bucket_name,
        prefix,
        page_size=services.config.sweep.page_size,
        extensions=services.config.sweep.extensions,
        window_seconds=services.config.workflow.dedup_window_seconds,
    )
    console.print(
        f"Dispatched {summary.dispatched} workflows ({summary.skipped} duplicates skipped)"
    )

    instances = services.host.run_pending()
    errored = [i for i in instances if i.status == WorkflowStatus.ERRORED]
    for instance in errored:
        console.print(f"[red]{instance.id}[/red]: {instance.error}")
    console.print(
        f"[bold green]Complete:[/bold green] {len(instances) - len(errored)}  "
        f"[bold red]Errored:[/bold red] {len(errored)}"
    )
    if errored:
        raise typer.Exit(code=1)


@app.command("sync-ledger")
def sync_ledger(config_path: str = "config/config.yaml", verbose: bool = False):
    """Mirror ledger entities and edges into the graph store."""
    services = _services(config_path, verbose)
    stats = services.ledger_sync().sync()

    table = Table(title="Ledger sync")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    for name, value in stats.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)


@app.command()
def serve(
    host: str = "127.0.0.1",
    port: int = 8000,
    config_path: str = "config/config.yaml",
    verbose: bool = False,
):
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from mountaingraph.api.app import create_app

    services = _services(config_path, verbose)
    logger.info(f"Serving on http://{host}:{port}")
    uvicorn.run(create_app(services), host=host, port=port, log_level="info")


if __name__ == "__main__":
    app()
