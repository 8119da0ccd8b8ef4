"""Tag and URL naming for a synced branch.

Each branch is tracked on GitHub by a lightweight tag ``ellx-sync/<branch>``
that points at the last commit the sync service accepted. Release branches
(``release/<version>``) are published under a versioned URL, so negotiation
for them goes to ``/sync/<repo>@<version>``.

============================  ==========================  ==========
ref                           tag name                    URL suffix
============================  ==========================  ==========
``refs/heads/master``         ``ellx-sync/master``        ``""``
``refs/heads/feature/login``  ``ellx-sync/feature/login`` ``""``
``refs/heads/release/2.1``    ``ellx-sync/release/2.1``   ``"@2.1"``
============================  ==========================  ==========
"""

from __future__ import annotations

import re


TAG_PREFIX = "ellx-sync/"
BRANCH_REF_PREFIX = "refs/heads/"
RELEASE_BRANCH_RE = re.compile(r"^release/(?P<version>[^/]+)$")


def branch_name(ref_name: str) -> str:
    ref = (ref_name or "").strip()
    if ref.startswith(BRANCH_REF_PREFIX):
        branch = ref[len(BRANCH_REF_PREFIX):]
    elif ref.startswith("refs/"):
        raise ValueError(f"Only branch refs can be synced, got: {ref}")
    else:
        branch = ref
    branch = branch.strip("/")
    if not branch:
        raise ValueError(f"Cannot derive a branch name from ref: {ref_name!r}")
    return branch


def derive_tag_and_suffix(ref_name: str) -> tuple[str, str]:
    branch = branch_name(ref_name)
    match = RELEASE_BRANCH_RE.match(branch)
    suffix = f"@{match.group('version')}" if match else ""
    return TAG_PREFIX + branch, suffix
