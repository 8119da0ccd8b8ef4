"""Shared fixtures: a small checkout on disk and a fake GitHub / sync service."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from ellxsync.config import SyncConfig


API_URL = "https://api.github.test"
SYNC_URL = "https://sync.test"


class FakeServices:
    """Routes requests by method and full URL and records every one of them."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, status: int = 200, payload: Any = None) -> None:
        def _respond(request: httpx.Request) -> httpx.Response:
            if payload is None:
                return httpx.Response(status)
            return httpx.Response(status, json=payload)

        self.routes[(method, url)] = _respond

    def add_handler(
        self, method: str, url: str, handler: Callable[[httpx.Request], httpx.Response]
    ) -> None:
        self.routes[(method, url)] = handler

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, str(request.url)))
        if route is None:
            message = f"no route for {request.method} {request.url}"
            return httpx.Response(404, json={"message": message})
        return route(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def sent(self, method: str, url_prefix: str = "") -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if request.method == method and str(request.url).startswith(url_prefix)
        ]

    def json_body(self, request: httpx.Request) -> Any:
        return json.loads(request.content)

    def github_repo(
        self, repo: str, *, private: bool = False, description: str | None = "demo"
    ) -> None:
        payload = {"private": private, "description": description}
        self.add("GET", f"{API_URL}/repos/{repo}", payload=payload)

    def github_ref(self, repo: str, kind: str, name: str, sha: str | None) -> None:
        refs = [] if sha is None else [{"ref": f"refs/{kind}/{name}", "object": {"sha": sha}}]
        self.add("GET", f"{API_URL}/repos/{repo}/git/matching-refs/{kind}/{name}", payload=refs)


@pytest.fixture
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def repo_tree(tmp_path: Path) -> Path:
    """A checkout with VCS metadata, nested folders and a mix of file types."""
    root = tmp_path / "checkout"
    (root / ".git" / "objects").mkdir(parents=True)
    (root / ".git" / "HEAD").write_text("ref: refs/heads/master\n")
    (root / ".git" / "objects" / "ab").write_bytes(b"\x00\x01")
    (root / ".github" / "workflows").mkdir(parents=True)
    (root / ".github" / "workflows" / "sync.yml").write_text("on: push\n")
    (root / "docs").mkdir()
    (root / "docs" / "readme.md").write_text("# Demo\n")
    (root / "a.js").write_text("export const a = 1;\n")
    (root / "sheet.ellx").write_text("x = 1\n")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n")
    return root


@pytest.fixture
def make_config(repo_tree: Path) -> Callable[..., SyncConfig]:
    def _make(**overrides: Any) -> SyncConfig:
        values: dict[str, Any] = {
            "repo": "o/r",
            "token": "gh-token",
            "sync_url": SYNC_URL,
            "ref": "refs/heads/master",
            "commit_sha": None,
            "local_root": str(repo_tree),
            "api_url": API_URL,
        }
        values.update(overrides)
        return SyncConfig(**values)

    return _make
