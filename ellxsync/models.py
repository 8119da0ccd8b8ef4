from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal


Visibility = Literal["public", "private"]
OPTIONAL_SHA_KEYS = ("targetSha", "currentSha")


@dataclass(frozen=True, slots=True)
class FileRecord:
    path: str
    hash: str
    size: int
    mtime_ns: int

    def to_payload(self) -> dict[str, str]:
        return {"path": self.path, "hash": self.hash}


@dataclass(frozen=True, slots=True)
class RepoMeta:
    visibility: Visibility
    description: str | None = None

    @property
    def acl(self) -> Visibility:
        return self.visibility


@dataclass(frozen=True, slots=True)
class RefPointer:
    ref_name: str
    commit_sha: str | None = None

    @property
    def exists(self) -> bool:
        return self.commit_sha is not None


@dataclass(slots=True)
class SyncRequest:
    repo: str
    token: str = field(repr=False)
    acl: Visibility
    description: str | None
    target_sha: str | None
    tag_name: str | None
    current_sha: str | None
    files: list[FileRecord]

    def to_payload(self) -> dict[str, Any]:
        """Wire form of the negotiation body.

        ``description`` is always present (``null`` when the repository has
        none); the commit SHAs are left out when the ref they come from is unknown.
        """
        payload: dict[str, Any] = {
            "repo": self.repo,
            "token": self.token,
            "acl": self.acl,
            "description": self.description,
            "targetSha": self.target_sha,
            "tagName": self.tag_name,
            "currentSha": self.current_sha,
            "files": [record.to_payload() for record in self.files],
        }
        for key in OPTIONAL_SHA_KEYS:
            if payload[key] is None:
                del payload[key]
        return payload


@dataclass(frozen=True, slots=True)
class UploadTarget:
    path: str
    upload_url: str


@dataclass(frozen=True, slots=True)
class UploadResult:
    path: str
    success: bool
    status_code: int | None = None
    status_text: str | None = None


@dataclass(slots=True)
class SyncOutcome:
    repo: str
    tag_name: str
    target_sha: str | None
    file_count: int
    uploaded_paths: list[str]
