from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath


VCS_METADATA_DIR = ".git"


def _normalize_pattern(pattern: str) -> str:
    normalized = pattern.strip().replace("\\", "/")
    if normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.lstrip("/")


def _match_pattern(path: str, pattern: str) -> bool:
    if not pattern:
        return False
    path_obj = PurePosixPath(path)
    # A trailing slash selects a whole directory, otherwise glob anywhere in the tree.
    if pattern.endswith("/"):
        return path.startswith(pattern)
    return path_obj.match(pattern) or path_obj.match(f"**/{pattern}")


def first_segment(path: str) -> str:
    return path.lstrip("/").split("/", 1)[0]


@dataclass(frozen=True, slots=True)
class PathFilter:
    """Selects which repository paths take part in a sync.

    Paths are compared in their POSIX form with any leading ``/`` removed.
    Anything whose first segment is listed in ``excluded_roots`` never
    matches, regardless of the include patterns.
    """

    include_patterns: tuple[str, ...] = ()
    exclude_patterns: tuple[str, ...] = ()
    excluded_roots: tuple[str, ...] = (VCS_METADATA_DIR,)

    def matches(self, path: str) -> bool:
        relative = path.lstrip("/")
        if first_segment(relative) in self.excluded_roots:
            return False
        if self.include_patterns and not any(
            _match_pattern(relative, pattern) for pattern in self.include_patterns
        ):
            return False
        return not any(_match_pattern(relative, pattern) for pattern in self.exclude_patterns)

    def excludes_dir(self, relative_dir: str) -> bool:
        return first_segment(relative_dir) in self.excluded_roots


def build_path_filter(
    include_patterns: list[str] | tuple[str, ...] | None = None,
    exclude_patterns: list[str] | tuple[str, ...] | None = None,
) -> PathFilter:
    include = tuple(_normalize_pattern(p) for p in (include_patterns or []) if p and p.strip())
    exclude = tuple(_normalize_pattern(p) for p in (exclude_patterns or []) if p and p.strip())
    return PathFilter(include_patterns=include, exclude_patterns=exclude)
