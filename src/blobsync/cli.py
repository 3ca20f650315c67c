"""CLI for blobsync."""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .cas import ContentAddressedStore
from .config import load_config
from .errors import StoreError
from .local_index import build_local_index
from .storage import make_blob_store
from .storage_models import SyncReport, TransferAction

app = typer.Typer(help="""\
Synchronize named blobs between object storage (or a local mirror) and
local directories, skipping transfers for content already on disk.""")

console = Console()

_ACTION_STYLE = {
    TransferAction.DOWNLOADED: "green",
    TransferAction.UPLOADED: "green",
    TransferAction.COPIED: "cyan",
    TransferAction.SKIPPED: "dim",
    TransferAction.FAILED: "red",
}


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Storage config YAML (default: ./.blobsync.yaml)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Configure logging and keep global options on the context."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    ctx.obj = {"config": config}


def open_store(ctx: typer.Context) -> ContentAddressedStore:
    """Build the configured backend, or exit with a readable error."""
    try:
        config = load_config(ctx.obj["config"])
        return ContentAddressedStore(make_blob_store(config))
    except StoreError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


def _print_report(report: SyncReport) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Key")
    table.add_column("Action")
    table.add_column("Detail", overflow="fold")

    for result in report.results:
        style = _ACTION_STYLE[result.action]
        detail = result.error or getattr(result, "source", None) or ""
        table.add_row(result.key, f"[{style}]{result.action.value}[/{style}]", detail)

    if report.results:
        console.print(table)
    console.print(f"[bold]Summary:[/bold] {report.summary()}")


@app.command("ls")
def list_keys(
    ctx: typer.Context,
    prefix: str = typer.Argument("", help="Key prefix"),
):
    """List keys under a prefix.

    Examples:
        blobsync ls
        blobsync ls models/
    """
    store = open_store(ctx)
    try:
        keys = store.list(prefix)
    except StoreError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    for key in sorted(keys):
        console.print(key, highlight=False)
    console.print(f"[dim]{len(keys)} key{'s' if len(keys) != 1 else ''}[/dim]")


@app.command()
def digest(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Blob key"),
):
    """Print the content digest of a blob."""
    store = open_store(ctx)
    try:
        console.print(store.remote_digest(key), highlight=False)
    except StoreError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


@app.command()
def pull(
    ctx: typer.Context,
    target: str = typer.Argument(..., help="Key, or a directory-like prefix"),
    dest: Path = typer.Option(Path("."), "--dest", "-d", help="Destination directory"),
    index: List[Path] = typer.Option([], "--index", "-i", help="Directory of local files to reuse (repeatable)"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace existing local files"),
):
    """Download a key or every key under a prefix.

    A target with keys below it (TARGET/...) is treated as a directory, with
    or without the trailing slash.

    Files whose content already exists in an --index directory are copied
    locally instead of downloaded.

    Examples:
        blobsync pull models/sir.bin --dest work
        blobsync pull models --dest work --index ~/cache
    """
    store = open_store(ctx)
    local_index = build_local_index(index) if index else None

    try:
        keys = store.list(target.rstrip("/") + "/")
        if keys or target.endswith("/"):
            report = store.fetch_many(keys, dest, local_index=local_index, overwrite=overwrite)
        else:
            report = SyncReport(fetched=[store.fetch(target, dest, local_index=local_index, overwrite=overwrite)])
    except (StoreError, OSError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    _print_report(report)
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def push(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="File or directory to publish"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Key (file) or key prefix (directory)"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Upload even if the key already has this content"),
):
    """Publish a file or directory.

    A file goes to --key (default: its name). A directory's files go to
    <key>/<relative path>, honoring .blobsyncignore.

    Examples:
        blobsync push data/pop.csv --key inputs/pop.csv
        blobsync push results/ --key runs/42
    """
    if not path.exists():
        console.print(f"[red]✗[/red] Path not found: {path}")
        raise typer.Exit(1)

    store = open_store(ctx)
    try:
        if path.is_dir():
            report = store.publish_directory(path, prefix=key or "", overwrite=overwrite)
        else:
            result = store.publish_from_path(key or path.name, path, overwrite=overwrite)
            report = SyncReport(published=[result])
    except (StoreError, OSError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    _print_report(report)
    if not report.ok:
        raise typer.Exit(1)
