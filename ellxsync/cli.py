from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from ellxsync.actions import running_in_actions, set_failed
from ellxsync.config import load_config, state_db_path_for
from ellxsync.errors import EXIT_ERROR, EXIT_INTERRUPTED, EXIT_SUCCESS, EllxSyncError
from ellxsync.filters import build_path_filter
from ellxsync.logging_config import setup_logging
from ellxsync.models import FileRecord, SyncOutcome
from ellxsync.orchestrator import CACHE_ERRORS, run_sync
from ellxsync.scanner import scan_local_files_with_progress
from ellxsync.state_db import load_fingerprints, load_last_run


app = typer.Typer(help="Synchronize a GitHub repository with an ellx sync service.")
console = Console()
log_console = Console(stderr=True)


def _render_path_summary(title: str, paths: list[str], style: str) -> None:
    if not paths:
        return
    console.print(Text(f"{title} ({len(paths)}):", style=style))
    for path in paths:
        console.print(f"  {escape(path)}")


def _render_outcome(outcome: SyncOutcome) -> None:
    _render_path_summary("Synced following files successfully", outcome.uploaded_paths, "green")
    if not outcome.uploaded_paths:
        console.print(
            f"[green]Nothing to upload.[/green] {escape(outcome.tag_name)} is up to date."
        )
    console.print(
        f"Repository: {escape(outcome.repo)} | Commit: {outcome.target_sha or 'unknown'} | "
        f"Fingerprinted: {outcome.file_count} file(s)"
    )


def _report_failure(message: str) -> None:
    console.print(f"[red]Sync failed:[/red] {escape(message)}")
    if running_in_actions():
        set_failed(message)


def _render_fingerprints(records: list[FileRecord]) -> None:
    table = Table(title="Fingerprints")
    table.add_column("Path")
    table.add_column("Size", justify="right")
    table.add_column("MD5")

    for record in records:
        table.add_row(escape(record.path), str(record.size), record.hash)

    console.print(table)


async def _sync_async(**overrides) -> int:
    try:
        config = load_config(**overrides)
        outcome = await run_sync(config, console=console)
    except EllxSyncError as exc:
        _report_failure(str(exc))
        return exc.exit_code
    except Exception as exc:
        _report_failure(f"{type(exc).__name__}: {exc}")
        return EXIT_ERROR

    _render_outcome(outcome)
    return EXIT_SUCCESS


@app.command()
def sync(
    root: Path | None = typer.Option(
        None,
        "--root",
        help="Repository checkout to sync. Defaults to $GITHUB_WORKSPACE or the current directory.",
    ),
    repo: str | None = typer.Option(
        None, "--repo", help="owner/name. Defaults to $GITHUB_REPOSITORY."
    ),
    ref: str | None = typer.Option(
        None, "--ref", help="Branch ref to sync. Defaults to $GITHUB_REF."
    ),
    sha: str | None = typer.Option(
        None, "--sha", help="Commit being synced. Defaults to $GITHUB_SHA."
    ),
    sync_url: str | None = typer.Option(
        None,
        "--sync-url",
        help="Base URL of the sync service. Defaults to the `ellx-url` action input.",
    ),
    api_url: str | None = typer.Option(None, "--api-url", help="GitHub API base URL."),
    include: list[str] | None = typer.Option(
        None,
        "--include",
        help="Include glob pattern(s) for paths to sync (repeatable).",
    ),
    exclude: list[str] | None = typer.Option(
        None,
        "--exclude",
        help="Exclude glob pattern(s) for paths to skip (repeatable).",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        help="Per-request timeout in seconds. Requests wait indefinitely by default.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log stage progress."),
    debug: bool = typer.Option(False, "--debug", help="Log every HTTP request."),
) -> None:
    """Fingerprint the checkout, negotiate with the sync service and upload changed files.

    The GitHub token is read from the `github-token` action input or $GITHUB_TOKEN.
    """
    setup_logging(verbose=verbose, debug=debug, console=log_console)
    try:
        code = asyncio.run(
            _sync_async(
                local_root=str(root) if root else None,
                repo=repo,
                ref=ref,
                commit_sha=sha,
                sync_url=sync_url,
                api_url=api_url,
                include_patterns=tuple(include or ()),
                exclude_patterns=tuple(exclude or ()),
                http_timeout=timeout,
            )
        )
    except KeyboardInterrupt:
        console.print("[yellow]Sync interrupted.[/yellow] Some uploads may have landed.")
        code = EXIT_INTERRUPTED
    raise typer.Exit(code=code)


async def _scan_async(root: Path, include: tuple[str, ...], exclude: tuple[str, ...]) -> int:
    root = root.resolve()
    db_path = state_db_path_for(root)
    previous: dict[str, FileRecord] = {}
    last_run = None
    if db_path is not None and db_path.exists():
        try:
            previous = await load_fingerprints(db_path)
            last_run = await load_last_run(db_path)
        except CACHE_ERRORS as exc:
            console.print(
                f"[yellow]Ignoring unreadable cache {db_path}: {escape(str(exc))}[/yellow]"
            )

    try:
        records = scan_local_files_with_progress(
            root,
            previous_records=previous,
            path_filter=build_path_filter(include, exclude),
            console=console,
        )
    except EllxSyncError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        return exc.exit_code

    _render_fingerprints(records)
    console.print(f"{len(records)} file(s) under {root}")
    if last_run:
        console.print(
            f"Last sync: {last_run.get('tag_name')} at {last_run.get('target_sha') or 'unknown'} "
            f"({last_run.get('uploaded_count', 0)} uploaded)"
        )
    return EXIT_SUCCESS


@app.command()
def scan(
    root: Path = typer.Argument(Path("."), help="Directory to fingerprint."),
    include: list[str] | None = typer.Option(
        None,
        "--include",
        help="Include glob pattern(s) for paths to consider (repeatable).",
    ),
    exclude: list[str] | None = typer.Option(
        None,
        "--exclude",
        help="Exclude glob pattern(s) for paths to ignore (repeatable).",
    ),
) -> None:
    """Show the fingerprints a sync would send, without contacting any service."""
    raise typer.Exit(
        code=asyncio.run(_scan_async(root, tuple(include or ()), tuple(exclude or ())))
    )
