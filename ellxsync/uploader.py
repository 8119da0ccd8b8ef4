from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

import httpx

from ellxsync.errors import UploadError
from ellxsync.models import UploadResult, UploadTarget
from ellxsync.transfer_ui import UploadProgressUI


logger = logging.getLogger(__name__)

CACHE_CONTROL = "max-age=31536000"
SCRIPT_RE = re.compile(r"\.(js|ellx)$")
MARKDOWN_RE = re.compile(r"\.md$")


def content_type_for(path: str) -> str:
    if SCRIPT_RE.search(path):
        return "text/javascript"
    if MARKDOWN_RE.search(path):
        return "text/plain"
    return "text/plain"


def local_file_path(root: Path, path: str) -> Path:
    return root / path.lstrip("/")


def new_upload_client(
    *,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    # Every planned file goes out at once; the pool must not queue them.
    return httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
        limits=httpx.Limits(max_connections=None, max_keepalive_connections=20),
    )


async def upload_one(
    target: UploadTarget,
    root: Path,
    client: httpx.AsyncClient,
    *,
    ui: UploadProgressUI | None = None,
) -> UploadResult:
    handle = ui.add_upload(target.path) if ui is not None else None
    try:
        content = await asyncio.to_thread(local_file_path(root, target.path).read_bytes)
    except OSError as exc:
        logger.error("Cannot read %s for upload: %s", target.path, exc)
        if ui is not None and handle is not None:
            ui.fail(handle, "unreadable")
        return UploadResult(path=target.path, success=False, status_text=str(exc))

    if ui is not None and handle is not None:
        ui.start(handle, len(content))

    try:
        response = await client.put(
            target.upload_url,
            content=content,
            headers={
                "Content-Type": content_type_for(target.path),
                "Cache-Control": CACHE_CONTROL,
            },
        )
    except httpx.HTTPError as exc:
        logger.error("Upload of %s failed: %s", target.path, exc)
        if ui is not None and handle is not None:
            ui.fail(handle)
        return UploadResult(
            path=target.path,
            success=False,
            status_text=f"{type(exc).__name__}: {exc}",
        )

    if not response.is_success:
        logger.error(
            "Upload of %s rejected with %s %s",
            target.path,
            response.status_code,
            response.reason_phrase,
        )
        if ui is not None and handle is not None:
            ui.fail(handle, str(response.status_code))
        return UploadResult(
            path=target.path,
            success=False,
            status_code=response.status_code,
            status_text=response.reason_phrase,
        )

    if ui is not None and handle is not None:
        ui.complete(handle)
    return UploadResult(
        path=target.path,
        success=True,
        status_code=response.status_code,
        status_text=response.reason_phrase,
    )


async def upload_plan(
    plan: list[UploadTarget],
    root: Path,
    client: httpx.AsyncClient,
    *,
    scanned_paths: set[str] | None = None,
    ui: UploadProgressUI | None = None,
) -> list[UploadResult]:
    """PUT every planned file concurrently and collect one result per entry.

    A failing upload never cancels its siblings; results keep plan order.
    Entries naming a path outside ``scanned_paths`` are refused without
    touching the disk or the network.
    """
    if not plan:
        return []

    async def _guarded(target: UploadTarget) -> UploadResult:
        if scanned_paths is not None and target.path not in scanned_paths:
            logger.error("Sync service requested unknown path %s", target.path)
            return UploadResult(path=target.path, success=False, status_text="not a scanned file")
        return await upload_one(target, root, client, ui=ui)

    return list(await asyncio.gather(*(_guarded(target) for target in plan)))


def ensure_uploaded(results: list[UploadResult]) -> list[str]:
    """Return the uploaded paths, or raise if any upload failed."""
    failed = [result for result in results if not result.success]
    if failed:
        raise UploadError(failed, total=len(results))
    return [result.path.lstrip("/") for result in results]
