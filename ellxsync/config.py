from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from ellxsync.actions import get_input
from ellxsync.errors import ConfigError
from ellxsync.filters import VCS_METADATA_DIR


CONFIG_FILENAME = ".ellxsync.json"
STATE_DB_FILENAME = "ellxsync_state.db"
DEFAULT_API_URL = "https://api.github.com"
GITHUB_HOSTS = {"github.com", "www.github.com"}


@dataclass(slots=True)
class SyncConfig:
    repo: str
    token: str = field(repr=False)
    sync_url: str
    ref: str
    commit_sha: str | None = None
    local_root: str = "."
    api_url: str = DEFAULT_API_URL
    include_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    http_timeout: float | None = None

    @property
    def local_root_path(self) -> Path:
        return Path(self.local_root).resolve()

    @property
    def state_db_path(self) -> Path | None:
        return state_db_path_for(self.local_root_path)


def state_db_path_for(root: Path) -> Path | None:
    """Fingerprint cache location, kept under the VCS metadata directory so it is never scanned.

    A root without that directory gets no cache.
    """
    vcs_dir = root / VCS_METADATA_DIR
    if not vcs_dir.is_dir():
        return None
    return vcs_dir / STATE_DB_FILENAME


def config_path(base_dir: Path | None = None) -> Path:
    return (base_dir or Path.cwd()).resolve() / CONFIG_FILENAME


def load_config_file(base_dir: Path | None = None) -> dict[str, Any]:
    path = config_path(base_dir)
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a JSON object in {path}")
    return data


def load_config(
    base_dir: Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> SyncConfig:
    """Resolve the run configuration.

    Precedence is explicit ``overrides`` (CLI options), then the environment
    GitHub Actions provides, then ``.ellxsync.json`` in the workspace.
    """
    env = os.environ if env is None else env
    workspace = env.get("GITHUB_WORKSPACE", "").strip()
    root = Path(overrides.get("local_root") or base_dir or workspace or Path.cwd())
    file_values = load_config_file(root)

    def pick(key: str, *candidates: str | None) -> Any:
        value = overrides.get(key)
        if value not in (None, "", ()):
            return value
        for candidate in candidates:
            if candidate:
                return candidate
        return file_values.get(key)

    values = {
        "repo": pick("repo", env.get("GITHUB_REPOSITORY")),
        "token": pick("token", get_input("github-token", env), env.get("GITHUB_TOKEN")),
        "sync_url": pick("sync_url", get_input("ellx-url", env), env.get("ELLX_URL")),
        "ref": pick("ref", env.get("GITHUB_REF")),
        "commit_sha": pick("commit_sha", env.get("GITHUB_SHA")),
        "api_url": pick("api_url", env.get("GITHUB_API_URL")) or DEFAULT_API_URL,
    }

    missing = [key for key in ("repo", "token", "sync_url", "ref") if not values[key]]
    if missing:
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

    repo = normalize_repo_id(str(values["repo"]))
    if repo.count("/") != 1 or not all(repo.split("/")):
        raise ConfigError(f"Repository must look like owner/name, got: {values['repo']}")

    return SyncConfig(
        repo=repo,
        token=str(values["token"]).strip(),
        sync_url=str(values["sync_url"]).rstrip("/"),
        ref=str(values["ref"]).strip(),
        commit_sha=values["commit_sha"] or None,
        local_root=str(root.resolve()),
        api_url=str(values["api_url"]).rstrip("/"),
        include_patterns=tuple(pick("include_patterns") or ()),
        exclude_patterns=tuple(pick("exclude_patterns") or ()),
        http_timeout=_parse_timeout(pick("http_timeout")),
    )


def _parse_timeout(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        timeout = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"http_timeout must be a number of seconds, got: {value!r}") from exc
    if timeout <= 0:
        return None
    return timeout


def normalize_repo_id(repo_id: str) -> str:
    value = (repo_id or "").strip()
    if not value:
        return value

    # SSH form used by git remotes (`git@github.com:owner/repo.git`)
    if value.startswith("git@github.com:"):
        value = value.split(":", 1)[1]
        return _strip_git_suffix(value).strip("/")

    if "://" not in value:
        return value.strip("/")

    parsed = urlparse(value)
    if parsed.hostname not in GITHUB_HOSTS:
        return value

    parts = [part for part in _strip_git_suffix(parsed.path.strip("/")).split("/") if part]
    # Web URLs may point deeper into the repo (`/owner/repo/tree/main`).
    return "/".join(parts[:2])


def _strip_git_suffix(path: str) -> str:
    return path[:-4] if path.endswith(".git") else path
