from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any

import aiosqlite
import httpx
from rich.console import Console

from ellxsync.config import SyncConfig
from ellxsync.errors import ConfigError, EllxSyncError
from ellxsync.filters import build_path_filter
from ellxsync.github import GitHubClient
from ellxsync.models import FileRecord, SyncOutcome, SyncRequest, UploadResult, UploadTarget
from ellxsync.naming import branch_name, derive_tag_and_suffix
from ellxsync.scanner import scan_local_files, scan_local_files_with_progress
from ellxsync.state_db import load_fingerprints, record_last_run, replace_fingerprints
from ellxsync.sync_client import SyncClient
from ellxsync.transfer_ui import UploadProgressUI
from ellxsync.uploader import ensure_uploaded, new_upload_client, upload_plan


logger = logging.getLogger(__name__)


class SyncStage(str, Enum):
    SCANNING = "scanning"
    NEGOTIATING = "negotiating"
    UPLOADING = "uploading"
    REPORTING = "reporting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@contextmanager
def _stage(stage: SyncStage) -> Iterator[None]:
    logger.info("Stage: %s", stage.value)
    try:
        yield
    except EllxSyncError as exc:
        if exc.stage is None:
            exc.stage = stage.value
        logger.error("Stage: %s while %s: %s", SyncStage.FAILED.value, stage.value, exc)
        raise


async def gather_settled(*aws: Awaitable[Any]) -> list[Any]:
    """Wait for every awaitable to finish, then raise the first failure if any."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


CACHE_ERRORS = (OSError, ValueError, aiosqlite.Error)


async def _load_cache(db_path: Path | None) -> dict[str, FileRecord]:
    if db_path is None or not db_path.exists():
        return {}
    try:
        return await load_fingerprints(db_path)
    except CACHE_ERRORS as exc:
        logger.warning("Fingerprint cache unavailable at %s: %s", db_path, exc)
        return {}


async def _save_cache(db_path: Path | None, records: list[FileRecord]) -> None:
    if db_path is None:
        logger.debug("No VCS metadata directory; fingerprint cache disabled")
        return
    try:
        await replace_fingerprints(db_path, records)
    except CACHE_ERRORS as exc:
        logger.warning("Could not update fingerprint cache at %s: %s", db_path, exc)


async def scan_repository(
    config: SyncConfig, *, console: Console | None = None
) -> list[FileRecord]:
    root = config.local_root_path
    path_filter = build_path_filter(config.include_patterns, config.exclude_patterns)
    previous = await _load_cache(config.state_db_path)
    if console is not None:
        records = scan_local_files_with_progress(
            root, previous_records=previous, path_filter=path_filter, console=console
        )
    else:
        records = scan_local_files(root, previous_records=previous, path_filter=path_filter)
    await _save_cache(config.state_db_path, records)
    logger.info("Fingerprinted %d file(s) under %s", len(records), root)
    return records


async def negotiate(
    config: SyncConfig,
    records: list[FileRecord],
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[SyncRequest, list[UploadTarget]]:
    try:
        branch = branch_name(config.ref)
        tag_name, url_suffix = derive_tag_and_suffix(config.ref)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    async with GitHubClient(
        config.token, config.api_url, timeout=config.http_timeout, transport=transport
    ) as github, SyncClient(
        config.sync_url, timeout=config.http_timeout, transport=transport
    ) as sync_service:
        meta, head, tag = await gather_settled(
            github.get_repo_meta(config.repo),
            github.get_matching_ref(config.repo, "heads", branch),
            github.get_matching_ref(config.repo, "tags", tag_name),
        )
        request = SyncRequest(
            repo=config.repo,
            token=config.token,
            acl=meta.acl,
            description=meta.description,
            target_sha=config.commit_sha or head.commit_sha,
            tag_name=tag_name,
            current_sha=tag.commit_sha,
            files=records,
        )
        logger.info(
            "Negotiating %s at %s (tag %s currently %s)",
            config.repo,
            request.target_sha or "unknown commit",
            tag_name,
            tag.commit_sha or "absent",
        )
        plan = await sync_service.negotiate(request, url_suffix)
    return request, plan


async def upload(
    config: SyncConfig,
    plan: list[UploadTarget],
    records: list[FileRecord],
    *,
    console: Console | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[UploadResult]:
    if not plan:
        logger.info("Nothing to upload")
        return []

    scanned_paths = {record.path for record in records}
    root = config.local_root_path
    async with new_upload_client(timeout=config.http_timeout, transport=transport) as client:
        if console is None:
            return await upload_plan(plan, root, client, scanned_paths=scanned_paths)
        with UploadProgressUI(console=console) as ui:
            return await upload_plan(plan, root, client, scanned_paths=scanned_paths, ui=ui)


async def run_sync(
    config: SyncConfig,
    *,
    console: Console | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SyncOutcome:
    """Fingerprint the workspace, negotiate with the sync service and upload what it asks for.

    Raises an :class:`EllxSyncError` subclass tagged with the failing stage.
    Uploads that completed before another upload failed are not rolled back.
    """
    with _stage(SyncStage.SCANNING):
        records = await scan_repository(config, console=console)

    with _stage(SyncStage.NEGOTIATING):
        request, plan = await negotiate(config, records, transport=transport)

    with _stage(SyncStage.UPLOADING):
        results = await upload(config, plan, records, console=console, transport=transport)

    with _stage(SyncStage.REPORTING):
        uploaded_paths = ensure_uploaded(results)

    outcome = SyncOutcome(
        repo=config.repo,
        tag_name=request.tag_name or "",
        target_sha=request.target_sha,
        file_count=len(records),
        uploaded_paths=uploaded_paths,
    )
    if config.state_db_path is not None:
        try:
            await record_last_run(config.state_db_path, outcome)
        except CACHE_ERRORS as exc:
            logger.warning("Could not record run metadata: %s", exc)
    logger.info("Stage: %s (%d file(s) uploaded)", SyncStage.SUCCEEDED.value, len(uploaded_paths))
    return outcome
