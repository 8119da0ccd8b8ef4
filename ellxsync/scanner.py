from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Callable, NoReturn

from ellxsync.errors import ScanError
from ellxsync.filters import PathFilter
from ellxsync.models import FileRecord

if TYPE_CHECKING:
    from rich.console import Console


logger = logging.getLogger(__name__)

_Candidate = tuple[Path, str, int, int]


def server_path(relative_path: str) -> str:
    """Path as the sync service knows it: POSIX, relative, one leading slash."""
    if os.sep != "/":
        relative_path = relative_path.replace(os.sep, "/")
    return "/" + relative_path.lstrip("/")


def _require_utf8_name(relative_path: str) -> None:
    # os.walk hands back undecodable bytes as lone surrogates, which JSON and sqlite reject.
    try:
        relative_path.encode("utf-8")
    except UnicodeEncodeError as exc:
        raw = relative_path.encode("utf-8", "surrogateescape")
        shown = raw.decode("utf-8", "backslashreplace")
        raise ScanError(f"File name is not valid UTF-8: {shown}") from exc


def fingerprint_file(
    path: Path,
    chunk_size: int = 1024 * 1024,
    *,
    on_chunk: Callable[[int], None] | None = None,
) -> str:
    # Change detection only, not an integrity check.
    digest = hashlib.md5(usedforsecurity=False)
    with path.open("rb") as fh:
        while True:
            chunk = fh.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
            if on_chunk is not None:
                on_chunk(len(chunk))
    return digest.hexdigest()


def _raise_walk_error(exc: OSError) -> NoReturn:
    raise ScanError(f"Cannot read {exc.filename or 'directory'}: {exc.strerror or exc}") from exc


def _discover_candidates(root: Path, path_filter: PathFilter) -> tuple[list[_Candidate], int]:
    if not root.is_dir():
        raise ScanError(f"Repository root is not a directory: {root}")

    candidates: list[_Candidate] = []
    total_bytes = 0

    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
        current = Path(dirpath)
        rel_dir = current.relative_to(root).as_posix()
        dirnames[:] = sorted(
            name
            for name in dirnames
            if not path_filter.excludes_dir(name if rel_dir == "." else f"{rel_dir}/{name}")
        )

        for name in sorted(filenames):
            file_path = current / name
            relative_path = name if rel_dir == "." else f"{rel_dir}/{name}"
            if not path_filter.matches(relative_path):
                continue
            # Dangling symlinks and special files have nothing to upload.
            if not file_path.is_file():
                continue
            _require_utf8_name(relative_path)
            try:
                stat = file_path.stat()
            except OSError as exc:
                _raise_walk_error(exc)

            candidates.append(
                (file_path, server_path(relative_path), stat.st_size, stat.st_mtime_ns)
            )
            total_bytes += stat.st_size

    candidates.sort(key=lambda candidate: candidate[1])
    return candidates, total_bytes


def _record_from_candidate(
    candidate: _Candidate,
    previous_records: dict[str, FileRecord],
    *,
    on_hash_chunk: Callable[[int], None] | None = None,
) -> FileRecord:
    file_path, path, size, mtime_ns = candidate
    previous = previous_records.get(path)
    if previous is not None and previous.size == size and previous.mtime_ns == mtime_ns:
        digest = previous.hash
    else:
        try:
            digest = fingerprint_file(file_path, on_chunk=on_hash_chunk)
        except OSError as exc:
            _raise_walk_error(exc)

    return FileRecord(path=path, hash=digest, size=size, mtime_ns=mtime_ns)


def scan_local_files(
    root: Path,
    *,
    previous_records: dict[str, FileRecord] | None = None,
    path_filter: PathFilter | None = None,
) -> list[FileRecord]:
    """Fingerprint every file under ``root`` except VCS metadata.

    Records come back sorted by path. Hashes in ``previous_records`` are
    reused for files whose size and mtime did not change.
    """
    root = root.resolve()
    previous_records = previous_records or {}
    path_filter = path_filter or PathFilter()
    candidates, _ = _discover_candidates(root, path_filter)
    records = [_record_from_candidate(candidate, previous_records) for candidate in candidates]
    logger.debug("Scanned %d file(s) under %s", len(records), root)
    return records


def scan_local_files_with_progress(
    root: Path,
    *,
    previous_records: dict[str, FileRecord] | None = None,
    path_filter: PathFilter | None = None,
    console: "Console | None" = None,
) -> list[FileRecord]:
    from rich.progress import (
        BarColumn,
        DownloadColumn,
        Progress,
        SpinnerColumn,
        TaskProgressColumn,
        TextColumn,
    )

    root = root.resolve()
    previous_records = previous_records or {}
    path_filter = path_filter or PathFilter()

    if console is not None:
        with console.status("Discovering files to fingerprint..."):
            candidates, total_bytes = _discover_candidates(root, path_filter)
    else:
        candidates, total_bytes = _discover_candidates(root, path_filter)

    if not candidates:
        return []

    records: list[FileRecord] = []
    with Progress(
        SpinnerColumn(),
        TextColumn("[bold]Fingerprinting"),
        BarColumn(),
        TaskProgressColumn(),
        DownloadColumn(binary_units=True),
        TextColumn("{task.fields[path]}"),
        console=console,
        transient=True,
        expand=True,
    ) as progress:
        task_id = progress.add_task("scan", total=max(total_bytes, 1), path="")

        for candidate in candidates:
            _, path, size, _ = candidate
            progress.update(task_id, path=path)
            hashed = 0

            def _advance(delta: int) -> None:
                nonlocal hashed
                hashed += delta
                progress.advance(task_id, delta)

            records.append(
                _record_from_candidate(candidate, previous_records, on_hash_chunk=_advance)
            )
            if hashed < size:
                # Cached hash or a file that shrank while being read.
                progress.advance(task_id, size - hashed)

    logger.debug("Scanned %d file(s) under %s", len(records), root)
    return records
