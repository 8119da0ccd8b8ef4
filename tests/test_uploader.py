"""Tests for the concurrent upload executor."""

from __future__ import annotations

import asyncio
import io
from pathlib import Path

import httpx
import pytest
from rich.console import Console

from conftest import FakeServices
from ellxsync.errors import UploadError
from ellxsync.models import UploadResult, UploadTarget
from ellxsync.transfer_ui import UploadProgressUI
from ellxsync.uploader import CACHE_CONTROL, content_type_for, ensure_uploaded, upload_plan


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("a.js", "text/javascript"),
        ("a.ellx", "text/javascript"),
        ("/dir/b.ellx", "text/javascript"),
        ("a.md", "text/plain"),
        ("a.png", "text/plain"),
        ("a.json", "text/plain"),
        ("Makefile", "text/plain"),
    ],
)
def test_content_type_for(path: str, expected: str) -> None:
    assert content_type_for(path) == expected


@pytest.mark.asyncio
async def test_empty_plan_makes_no_requests(repo_tree: Path, services: FakeServices) -> None:
    async with httpx.AsyncClient(transport=services.transport) as client:
        results = await upload_plan([], repo_tree, client)

    assert results == []
    assert services.requests == []


@pytest.mark.asyncio
async def test_uploads_raw_bytes_with_headers(repo_tree: Path, services: FakeServices) -> None:
    services.add("PUT", "https://u/1")
    services.add("PUT", "https://u/2")
    plan = [
        UploadTarget(path="/a.js", upload_url="https://u/1"),
        UploadTarget(path="/logo.png", upload_url="https://u/2"),
    ]

    async with httpx.AsyncClient(transport=services.transport) as client:
        results = await upload_plan(plan, repo_tree, client)

    assert [result.path for result in results] == ["/a.js", "/logo.png"]
    assert all(result.success for result in results)
    by_url = {str(request.url): request for request in services.requests}
    assert by_url["https://u/1"].content == (repo_tree / "a.js").read_bytes()
    assert by_url["https://u/1"].headers["Content-Type"] == "text/javascript"
    assert by_url["https://u/2"].content == b"\x89PNG\r\n"
    assert by_url["https://u/2"].headers["Content-Type"] == "text/plain"
    assert by_url["https://u/2"].headers["Cache-Control"] == CACHE_CONTROL


@pytest.mark.asyncio
async def test_one_failure_does_not_stop_siblings(repo_tree: Path, services: FakeServices) -> None:
    services.add("PUT", "https://u/1")
    services.add("PUT", "https://u/2", status=500)
    services.add("PUT", "https://u/3")
    plan = [
        UploadTarget(path="/a.js", upload_url="https://u/1"),
        UploadTarget(path="/docs/readme.md", upload_url="https://u/2"),
        UploadTarget(path="/sheet.ellx", upload_url="https://u/3"),
    ]

    async with httpx.AsyncClient(transport=services.transport) as client:
        results = await upload_plan(plan, repo_tree, client)

    assert len(services.requests) == 3
    assert [result.success for result in results] == [True, False, True]
    assert results[1].status_code == 500
    assert results[1].status_text == "Internal Server Error"


@pytest.mark.asyncio
async def test_uploads_run_concurrently(repo_tree: Path) -> None:
    in_flight = 0
    peak = 0

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.1)
        in_flight -= 1
        return httpx.Response(200)

    plan = [
        UploadTarget(path=path, upload_url=f"https://u/{index}")
        for index, path in enumerate(["/a.js", "/logo.png", "/sheet.ellx"])
    ]
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        results = await upload_plan(plan, repo_tree, client)

    assert all(result.success for result in results)
    assert peak == 3


@pytest.mark.asyncio
async def test_transport_error_is_a_failed_result(repo_tree: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        results = await upload_plan(
            [UploadTarget(path="/a.js", upload_url="https://u/1")], repo_tree, client
        )

    assert results[0].success is False
    assert "ConnectError" in (results[0].status_text or "")


@pytest.mark.asyncio
async def test_missing_local_file_is_a_failed_result(
    repo_tree: Path, services: FakeServices
) -> None:
    async with httpx.AsyncClient(transport=services.transport) as client:
        results = await upload_plan(
            [UploadTarget(path="/gone.js", upload_url="https://u/1")], repo_tree, client
        )

    assert results[0].success is False
    assert services.requests == []


@pytest.mark.asyncio
async def test_unscanned_path_is_refused(repo_tree: Path, services: FakeServices) -> None:
    async with httpx.AsyncClient(transport=services.transport) as client:
        results = await upload_plan(
            [UploadTarget(path="/.git/HEAD", upload_url="https://u/1")],
            repo_tree,
            client,
            scanned_paths={"/a.js"},
        )

    assert results == [
        UploadResult(path="/.git/HEAD", success=False, status_text="not a scanned file")
    ]
    assert services.requests == []


def test_ensure_uploaded_lists_paths_without_leading_slash() -> None:
    results = [
        UploadResult(path="/a.js", success=True, status_code=200),
        UploadResult(path="/docs/readme.md", success=True, status_code=200),
    ]
    assert ensure_uploaded(results) == ["a.js", "docs/readme.md"]


def test_ensure_uploaded_names_first_failure() -> None:
    results = [
        UploadResult(path="/a.js", success=True, status_code=200),
        UploadResult(
            path="/b.js", success=False, status_code=500, status_text="Internal Server Error"
        ),
        UploadResult(path="/c.js", success=False, status_code=403, status_text="Forbidden"),
    ]

    with pytest.raises(UploadError) as excinfo:
        ensure_uploaded(results)

    assert "/b.js" in str(excinfo.value)
    assert "Internal Server Error" in str(excinfo.value)
    assert excinfo.value.failed_paths == ["/b.js", "/c.js"]
    assert excinfo.value.total == 3


@pytest.mark.asyncio
async def test_progress_ui_tracks_each_upload(repo_tree: Path, services: FakeServices) -> None:
    services.add("PUT", "https://u/1")
    services.add("PUT", "https://u/2", status=503)
    plan = [
        UploadTarget(path="/a.js", upload_url="https://u/1"),
        UploadTarget(path="/sheet.ellx", upload_url="https://u/2"),
    ]
    console = Console(file=io.StringIO(), force_terminal=False)

    async with httpx.AsyncClient(transport=services.transport) as client:
        with UploadProgressUI(console=console) as ui:
            results = await upload_plan(plan, repo_tree, client, ui=ui)

    assert [result.success for result in results] == [True, False]
