from __future__ import annotations

import logging
from typing import Literal
from urllib.parse import quote

import httpx

from ellxsync.config import DEFAULT_API_URL
from ellxsync.errors import RemoteError
from ellxsync.http_client import JsonClient
from ellxsync.models import RefPointer, RepoMeta


logger = logging.getLogger(__name__)

RefKind = Literal["heads", "tags"]


def _unexpected_refs(path: str, payload: object) -> RemoteError:
    return RemoteError("Unexpected matching-refs payload", url=f"GET {path}", payload=payload)


class GitHubClient(JsonClient):
    """Read-only view of the GitHub REST API needed before negotiating."""

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(
            base_url,
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def get_repo_meta(self, repo: str) -> RepoMeta:
        data = await self.get(f"/repos/{repo}")
        if not isinstance(data, dict):
            raise RemoteError(
                "Unexpected repository payload", url=f"GET /repos/{repo}", payload=data
            )
        return RepoMeta(
            visibility="private" if data.get("private") else "public",
            description=data.get("description"),
        )

    async def get_matching_ref(self, repo: str, kind: RefKind, name: str) -> RefPointer:
        """Resolve ``refs/{kind}/{name}``; a ref that does not exist has no commit SHA.

        GitHub answers with every ref that has ``name`` as a prefix, most
        specific first, so an exact match is preferred when one is present.
        """
        ref_name = f"refs/{kind}/{name}"
        path = f"/repos/{repo}/git/matching-refs/{kind}/{quote(name)}"
        matches = await self.get(path)
        if matches is not None and not (
            isinstance(matches, list) and all(isinstance(item, dict) for item in matches)
        ):
            raise _unexpected_refs(path, matches)
        if not matches:
            logger.debug("No %s found for %s", ref_name, repo)
            return RefPointer(ref_name=ref_name)

        exact = next((item for item in matches if item.get("ref") == ref_name), None)
        chosen = exact or matches[0]
        target = chosen.get("object") or {}
        if not isinstance(target, dict):
            raise _unexpected_refs(path, matches)
        return RefPointer(ref_name=ref_name, commit_sha=target.get("sha"))
