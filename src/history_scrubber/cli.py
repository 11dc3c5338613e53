"""Command-line interface for history-scrubber.

Provides commands for scrubbing secrets out of git blobs through git plumbing,
without checking anything out.

Commands:
    scrub-blob    Redact one blob and print the resulting object id
    scrub-tree    Redact every blob under a commit's tree
    resolve-tree  Print the tree id a commit points to
    show-secrets  Show how a secrets file will be applied

Configuration:
    Supports config files: history-scrubber.toml, .scrubber.yml, etc.
    CLI flags override config file values.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from . import __version__
from .cache import CommandCache
from .config import ScrubberConfig
from .config_loader import ProjectConfig, load_config, merge_cli_with_config
from .errors import ScrubberError
from .logging_config import setup_logging
from .memory import MemoryMonitor
from .redactor import Redactor
from .rewriter import BlobRewriter
from .runner import GitRunner
from .secret_list import load_secrets
from .store import ObjectStore
from .tree import TreeResolver
from .utils import format_bytes

# Initialize CLI app
app = typer.Typer(
    name="history-scrubber",
    help="""Scrub secrets out of git blobs without a checkout.

Reads objects with git cat-file, replaces every configured secret in text
blobs with a marker and writes changed blobs back with git hash-object.

Examples:
    history-scrubber scrub-blob 3b18e51 --secrets secrets.txt
    history-scrubber scrub-tree HEAD --secrets secrets.txt --repo ./my-project
    history-scrubber resolve-tree HEAD
""",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def create_progress() -> Progress:
    """Create a rich progress bar for blob rewriting."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(bar_width=30),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"history-scrubber version {__version__}")
        raise typer.Exit()


def build_config(
    repo: Path,
    config_file: Path | None,
    *,
    large_blob_threshold: int | None = None,
    memory_threshold: float | None = None,
    chunk_size: int | None = None,
    timeout: float | None = None,
    exclude: str | None = None,
    workers: int | None = None,
    tie_break: str | None = None,
) -> tuple[ScrubberConfig, Path | None]:
    """Load the project config file and merge CLI flags over it.

    Returns:
        Tuple of (merged config, secrets file named in the config file or None)
    """
    project_config = load_config(repo, config_file)
    if project_config._config_file:
        console.print(f"[dim]Using config: {project_config._config_file.name}[/dim]")

    config = merge_cli_with_config(
        project_config,
        large_blob_threshold=large_blob_threshold,
        memory_threshold=memory_threshold,
        chunk_size=chunk_size,
        command_timeout=timeout,
        exclude_paths=exclude,
        max_workers=workers,
        tie_break=tie_break,
    )
    return config, project_config.secrets_file


def build_rewriter(
    repo: Path,
    config: ScrubberConfig,
    secrets_file: Path,
) -> tuple[BlobRewriter, TreeResolver]:
    """Wire runner, cache, store, redactor and monitor together for one run."""
    runner = GitRunner(repo, timeout=config.command_timeout)
    store = ObjectStore(runner, CommandCache(runner))
    secrets = load_secrets(secrets_file, tie_break=config.tie_break)
    redactor = Redactor(secrets, marker=config.marker)
    monitor = MemoryMonitor(threshold=config.memory_threshold)
    return BlobRewriter(store, redactor, monitor, config), TreeResolver(store)


def _resolve_secrets_file(cli_value: Path | None, config_value: Path | None) -> Path:
    secrets_file = cli_value or config_value
    if secrets_file is None:
        console.print("[red]Error: --secrets is required (or set secrets_file in config).[/red]")
        raise typer.Exit(1)
    return secrets_file


# Options shared by the rewriting commands
RepoOption = typer.Option(
    Path("."),
    "--repo",
    "-C",
    help="Path to the git repository.",
    exists=True,
    file_okay=False,
    dir_okay=True,
    resolve_path=True,
)
SecretsOption = typer.Option(
    None,
    "--secrets",
    "-s",
    help="File with one secret per line.",
    exists=True,
    file_okay=True,
    dir_okay=False,
)
ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to config file (history-scrubber.toml or .scrubber.yml).",
    exists=True,
    file_okay=True,
    dir_okay=False,
)
LargeBlobOption = typer.Option(
    None,
    "--large-blob-threshold",
    help="Stream blobs of at least this many bytes. [default: 10 MiB]",
)
MemoryThresholdOption = typer.Option(
    None,
    "--memory-threshold",
    help="Stream every blob while allocated/obtained memory exceeds this ratio. [default: 0.8]",
)
ChunkSizeOption = typer.Option(
    None,
    "--chunk-size",
    help="Read size for streamed blobs in bytes. [default: 64 KiB]",
)
TimeoutOption = typer.Option(
    None,
    "--timeout",
    help="Seconds before a single git command is killed. [default: 60]",
)
ExcludeOption = typer.Option(
    None,
    "--exclude",
    "-e",
    help="Never rewrite paths matching these gitignore-style patterns (comma-separated).",
)
TieBreakOption = typer.Option(
    None,
    "--tie-break",
    help="Order of equal-length secrets: 'input' (file order) or 'lexical'. [default: input]",
)
VerboseOption = typer.Option(False, "--verbose", help="Enable debug logging.")


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Scrub secrets out of git blobs without a checkout."""


@app.command("scrub-blob")
def scrub_blob(
    object_id: str = typer.Argument(..., help="Blob object id."),
    path: str = typer.Option("", "--path", "-p", help="Path of the blob (for excludes)."),
    secrets: Path | None = SecretsOption,
    repo: Path = RepoOption,
    config_file: Path | None = ConfigOption,
    large_blob_threshold: int | None = LargeBlobOption,
    memory_threshold: float | None = MemoryThresholdOption,
    chunk_size: int | None = ChunkSizeOption,
    timeout: float | None = TimeoutOption,
    exclude: str | None = ExcludeOption,
    tie_break: str | None = TieBreakOption,
    verbose: bool = VerboseOption,
) -> None:
    """Redact one blob and print the resulting object id.

    Prints the original id when nothing was redacted.

    \b
    EXAMPLES:
      history-scrubber scrub-blob 3b18e51 --secrets secrets.txt
      history-scrubber scrub-blob 3b18e51 -s secrets.txt --path config/.env
    """
    setup_logging(verbose)

    try:
        config, configured_secrets = build_config(
            repo,
            config_file,
            large_blob_threshold=large_blob_threshold,
            memory_threshold=memory_threshold,
            chunk_size=chunk_size,
            timeout=timeout,
            exclude=exclude,
            tie_break=tie_break,
        )
        rewriter, _ = build_rewriter(
            repo, config, _resolve_secrets_file(secrets, configured_secrets)
        )
        new_id = rewriter.rewrite(object_id, path)
    except ScrubberError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1) from None

    console.print(new_id, highlight=False)


@app.command("scrub-tree")
def scrub_tree(
    commit: str = typer.Argument(..., help="Commit whose tree is scrubbed."),
    secrets: Path | None = SecretsOption,
    repo: Path = RepoOption,
    config_file: Path | None = ConfigOption,
    workers: int | None = typer.Option(
        None,
        "--workers",
        "-w",
        help="Worker threads. [default: executor default]",
    ),
    deadline_seconds: float | None = typer.Option(
        None,
        "--deadline",
        help="Abort remaining blobs after this many seconds.",
    ),
    large_blob_threshold: int | None = LargeBlobOption,
    memory_threshold: float | None = MemoryThresholdOption,
    chunk_size: int | None = ChunkSizeOption,
    timeout: float | None = TimeoutOption,
    exclude: str | None = ExcludeOption,
    tie_break: str | None = TieBreakOption,
    verbose: bool = VerboseOption,
) -> None:
    """Redact every blob under a commit's tree.

    Writes a new blob for every blob that contained a secret and prints the
    old and new ids. Trees, commits and refs are left untouched.

    \b
    EXAMPLES:
      history-scrubber scrub-tree HEAD --secrets secrets.txt
      history-scrubber scrub-tree HEAD -s secrets.txt --workers 8 --exclude 'vendor/**'
    """
    setup_logging(verbose)
    start_time = time.time()

    try:
        config, configured_secrets = build_config(
            repo,
            config_file,
            large_blob_threshold=large_blob_threshold,
            memory_threshold=memory_threshold,
            chunk_size=chunk_size,
            timeout=timeout,
            exclude=exclude,
            workers=workers,
            tie_break=tie_break,
        )
        rewriter, resolver = build_rewriter(
            repo, config, _resolve_secrets_file(secrets, configured_secrets)
        )
        tree_id = resolver.resolve(commit)
        entries = rewriter.store.list_tree(tree_id)
    except ScrubberError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1) from None

    console.print(f"[cyan]Scrubbing {len(entries)} blobs in tree {tree_id}...[/cyan]")

    deadline = None
    if deadline_seconds is not None:
        deadline = time.monotonic() + deadline_seconds
    changed: list[tuple[str, str, str]] = []
    failures: list[tuple[str, str]] = []

    with create_progress() as progress:
        task = progress.add_task("Rewriting blobs", total=len(entries))

        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            futures = {
                executor.submit(rewriter.rewrite, entry.object_id, entry.path, deadline): entry
                for entry in entries
            }

            for future in as_completed(futures):
                entry = futures[future]
                progress.advance(task)
                try:
                    new_id = future.result()
                except ScrubberError as e:
                    failures.append((entry.path, str(e)))
                    continue
                if new_id != entry.object_id:
                    changed.append((entry.path, entry.object_id, new_id))

    elapsed = time.time() - start_time

    if changed:
        table = Table(title="Rewritten blobs")
        table.add_column("Path")
        table.add_column("Old id", style="dim")
        table.add_column("New id", style="green")
        for path, old_id, new_id in sorted(changed):
            table.add_row(path, old_id, new_id)
        console.print(table)

    stats = rewriter.stats.to_dict()
    console.print()
    console.print("[cyan]Statistics:[/cyan]")
    console.print(f"  Blobs processed: {stats['processed']}")
    console.print(f"  Blobs rewritten: {stats['rewritten']}")
    console.print(f"  Blobs unchanged: {stats['unchanged']}")
    console.print(f"  Binary blobs skipped: {stats['binary']}")
    console.print(f"  Excluded paths: {stats['excluded']}")
    console.print(f"  Streamed: {stats['streamed']}")
    console.print(f"  Processing time: {elapsed:.2f}s")

    redactions = rewriter.redactor.get_stats()
    if redactions:
        console.print()
        console.print("[cyan]Redactions applied:[/cyan]")
        for name, count in list(redactions.items())[:5]:
            console.print(f"  {name}: {count}")

    if failures:
        console.print()
        console.print(f"[yellow]Failed to rewrite {len(failures)} blobs:[/yellow]")
        for path, error in sorted(failures)[:5]:
            console.print(f"  {escape(path)}: {escape(error)}")
        if len(failures) > 5:
            console.print(f"  ... and {len(failures) - 5} more")
        raise typer.Exit(1)


@app.command("resolve-tree")
def resolve_tree(
    commit: str = typer.Argument(..., help="Commit id or revision."),
    repo: Path = RepoOption,
    timeout: float | None = TimeoutOption,
) -> None:
    """Print the tree id a commit points to."""
    runner = GitRunner(repo, timeout=timeout)
    resolver = TreeResolver(ObjectStore(runner))
    try:
        tree_id = resolver.resolve(commit)
    except ScrubberError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1) from None
    console.print(tree_id, highlight=False)


@app.command("show-secrets")
def show_secrets(
    secrets_file: Path = typer.Argument(
        ...,
        help="File with one secret per line.",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    tie_break: str | None = TieBreakOption,
    marker: str = typer.Option(ScrubberConfig().marker, "--marker", help="Redaction marker."),
) -> None:
    """Show the order secrets will be applied in, without revealing them."""
    setup_logging(False)

    try:
        config = merge_cli_with_config(ProjectConfig(), tie_break=tie_break, marker=marker)
        secrets = load_secrets(secrets_file, tie_break=config.tie_break)
        redactor = Redactor(secrets, marker=config.marker)
    except ScrubberError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1) from None

    table = Table(title=f"{len(redactor.secrets)} secrets")
    table.add_column("Rule")
    table.add_column("Length", justify="right")
    table.add_column("Bytes (UTF-8)", justify="right")
    for i, secret in enumerate(redactor.secrets, start=1):
        size = len(secret.encode("utf-8"))
        table.add_row(f"secret-{i}", str(len(secret)), format_bytes(size))
    console.print(table)

    dropped = len(secrets) - len(redactor.secrets)
    if dropped:
        console.print(f"[yellow]{dropped} secrets ignored (duplicates)[/yellow]")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
