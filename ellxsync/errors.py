"""Error taxonomy for a sync run.

Every error maps to a process exit code so the invoking pipeline can tell
the failing stage apart:

- 0: Success
- 1: Unexpected failure
- 2: Invalid or missing configuration
- 3: Local tree could not be scanned
- 4: GitHub API or sync service returned a non-success status
- 5: One or more file uploads failed
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ellxsync.models import UploadResult


EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG = 2
EXIT_SCAN = 3
EXIT_REMOTE = 4
EXIT_UPLOAD = 5
EXIT_INTERRUPTED = 130


class EllxSyncError(Exception):
    """Base class for all sync failures.

    ``stage`` is filled in by the orchestrator with the name of the stage the
    error surfaced in.
    """

    exit_code = EXIT_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.stage: str | None = None


class ConfigError(EllxSyncError):
    exit_code = EXIT_CONFIG


class ScanError(EllxSyncError):
    """The local file tree could not be read."""

    exit_code = EXIT_SCAN


class RemoteError(EllxSyncError):
    """An HTTP call answered with a status outside the 2xx range."""

    exit_code = EXIT_REMOTE

    def __init__(
        self,
        status_text: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
        payload: Any = None,
    ) -> None:
        self.status_text = status_text
        self.status_code = status_code
        self.url = url
        self.payload = payload
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [str(self.status_code)] if self.status_code is not None else []
        parts.append(self.status_text)
        message = " ".join(parts)
        if self.url:
            message = f"{message} ({self.url})"
        detail = _payload_message(self.payload)
        if detail:
            message = f"{message}: {detail}"
        return message


class UploadError(EllxSyncError):
    """Some uploads of an accepted plan failed. Completed siblings are kept."""

    exit_code = EXIT_UPLOAD

    def __init__(self, failed: list["UploadResult"], total: int) -> None:
        self.failed = failed
        self.total = total
        first = failed[0]
        message = f"Error uploading {first.path}: {first.status_text or 'failed'}"
        if len(failed) > 1:
            message += f" (and {len(failed) - 1} more of {total} file(s))"
        super().__init__(message)

    @property
    def failed_paths(self) -> list[str]:
        return [result.path for result in self.failed]


def _payload_message(payload: Any) -> str | None:
    if payload is None:
        return None
    if isinstance(payload, dict):
        for key in ("message", "error"):
            value = payload.get(key)
            if value:
                return str(value)
    if isinstance(payload, str):
        return payload.strip() or None
    return str(payload)
