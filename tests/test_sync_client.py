from __future__ import annotations

import pytest

from conftest import SYNC_URL, FakeServices
from ellxsync.errors import RemoteError
from ellxsync.models import FileRecord, SyncRequest, UploadTarget
from ellxsync.sync_client import SyncClient, parse_upload_plan


def _request(**overrides) -> SyncRequest:
    values = dict(
        repo="o/r",
        token="gh-token",
        acl="public",
        description=None,
        target_sha="abc",
        tag_name="ellx-sync/master",
        current_sha=None,
        files=[FileRecord(path="/a.js", hash="h1", size=3, mtime_ns=1)],
    )
    values.update(overrides)
    return SyncRequest(**values)


@pytest.mark.asyncio
async def test_negotiate_puts_request_and_parses_plan(services: FakeServices) -> None:
    services.add(
        "PUT",
        f"{SYNC_URL}/sync/o/r",
        payload=[{"path": "/a.js", "uploadUrl": "https://u/1"}],
    )

    async with SyncClient(SYNC_URL, transport=services.transport) as client:
        plan = await client.negotiate(_request())

    assert plan == [UploadTarget(path="/a.js", upload_url="https://u/1")]
    request = services.requests[0]
    assert "Authorization" not in request.headers
    assert services.json_body(request) == {
        "repo": "o/r",
        "token": "gh-token",
        "acl": "public",
        "description": None,
        "targetSha": "abc",
        "tagName": "ellx-sync/master",
        "files": [{"path": "/a.js", "hash": "h1"}],
    }


@pytest.mark.asyncio
async def test_negotiate_appends_release_suffix(services: FakeServices) -> None:
    services.add("PUT", f"{SYNC_URL}/sync/o/r@2.1", payload=[])

    async with SyncClient(SYNC_URL, transport=services.transport) as client:
        plan = await client.negotiate(_request(), "@2.1")

    assert plan == []
    assert str(services.requests[0].url) == f"{SYNC_URL}/sync/o/r@2.1"


@pytest.mark.asyncio
async def test_negotiate_failure_carries_error_body(services: FakeServices) -> None:
    services.add("PUT", f"{SYNC_URL}/sync/o/r", status=403, payload={"error": "Bad token"})

    async with SyncClient(SYNC_URL, transport=services.transport) as client:
        with pytest.raises(RemoteError) as excinfo:
            await client.negotiate(_request())

    assert excinfo.value.status_code == 403
    assert "Bad token" in str(excinfo.value)


def test_unknown_shas_are_omitted_not_empty() -> None:
    payload = _request(current_sha=None, description=None, target_sha=None).to_payload()
    assert "currentSha" not in payload
    assert "targetSha" not in payload


def test_missing_description_is_sent_as_null() -> None:
    payload = _request(description=None).to_payload()
    assert "description" in payload
    assert payload["description"] is None


def test_token_is_not_in_repr() -> None:
    assert "gh-token" not in repr(_request())


@pytest.mark.parametrize(
    "data",
    [
        {"success": True},
        [{"path": "/a.js"}],
        [{"path": 1, "uploadUrl": "https://u/1"}],
        ["/a.js"],
    ],
)
def test_malformed_plan_is_rejected(data) -> None:
    with pytest.raises(RemoteError):
        parse_upload_plan(data)
