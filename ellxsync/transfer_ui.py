from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TransferSpeedColumn,
)


@dataclass(slots=True)
class UploadTaskHandle:
    task_id: TaskID
    path: str
    total: int | None = None


class UploadProgressUI:
    """One progress row per planned upload.

    Uploads run on a single event loop, so rows are updated without locking.
    """

    def __init__(self, console: Console | None = None) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]PUT"),
            TextColumn("{task.fields[path]}"),
            BarColumn(),
            DownloadColumn(binary_units=True),
            TransferSpeedColumn(),
            TextColumn("{task.fields[state]}"),
            console=console,
            transient=False,
            expand=True,
        )

    def __enter__(self) -> "UploadProgressUI":
        self._progress.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._progress.__exit__(exc_type, exc, tb)

    def add_upload(self, path: str) -> UploadTaskHandle:
        task_id = self._progress.add_task(
            description=path,
            total=None,
            start=False,
            path=path,
            state="queued",
        )
        return UploadTaskHandle(task_id=task_id, path=path)

    def start(self, handle: UploadTaskHandle, total_bytes: int) -> None:
        handle.total = total_bytes
        self._progress.start_task(handle.task_id)
        self._progress.update(handle.task_id, total=total_bytes, state="uploading")

    def complete(self, handle: UploadTaskHandle) -> None:
        self._progress.update(handle.task_id, completed=handle.total or 0, state="done")

    def fail(self, handle: UploadTaskHandle, message: str = "failed") -> None:
        self._progress.update(handle.task_id, state=f"[red]{message}[/red]")
