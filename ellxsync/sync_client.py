from __future__ import annotations

import logging

import httpx

from ellxsync.errors import RemoteError
from ellxsync.http_client import JsonClient
from ellxsync.models import SyncRequest, UploadTarget


logger = logging.getLogger(__name__)


def parse_upload_plan(data: object) -> list[UploadTarget]:
    if not isinstance(data, list):
        raise RemoteError("Malformed upload plan: expected a list", payload=data)

    plan: list[UploadTarget] = []
    for entry in data:
        if (
            not isinstance(entry, dict)
            or not isinstance(entry.get("path"), str)
            or not isinstance(entry.get("uploadUrl"), str)
        ):
            raise RemoteError("Malformed upload plan entry", payload=entry)
        plan.append(UploadTarget(path=entry["path"], upload_url=entry["uploadUrl"]))
    return plan


class SyncClient(JsonClient):
    """Client for the ellx sync service.

    The service is not authenticated at the transport level; the GitHub
    token and repository identity travel inside the negotiation body.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, timeout=timeout, transport=transport)

    async def negotiate(self, request: SyncRequest, url_suffix: str = "") -> list[UploadTarget]:
        """Send local fingerprints; the service answers with the files it wants uploaded."""
        data = await self.put(f"/sync/{request.repo}{url_suffix}", request.to_payload())
        plan = parse_upload_plan(data)
        logger.info(
            "Sync service requested %d of %d file(s) for %s",
            len(plan),
            len(request.files),
            request.repo,
        )
        return plan
