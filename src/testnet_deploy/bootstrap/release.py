"""Release classification.

Decides whether a version under deployment can be rolled out in place or
needs the network rebuilt from a fresh genesis.
"""

from __future__ import annotations

import re
from enum import Enum

# "v" followed by dot-separated non-negative integers, e.g. v0.51.2
VERSION_PATTERN = re.compile(r"v[0-9]+(?:\.[0-9]+)*")


class ReleaseKind(Enum):
    """Classification of a version token."""

    PATCH = "patch"  # Same topology, bump the image in place
    FULL_REBUILD = "full_rebuild"  # Regenerate genesis and redeploy
    MALFORMED = "malformed"  # Unparsable, treated as a full rebuild


def classify_release(version: str) -> ReleaseKind:
    """Classify a version token.

    Only the final numeric component is inspected: zero means a minor (or
    major) release, anything else a patch release. ``v1.9.9 -> v2.0.0`` is
    therefore a rebuild only because the last component is zero.

    Args:
        version: Image version string, e.g. ``v0.51.2``.

    Returns:
        The release kind.
    """
    if not VERSION_PATTERN.fullmatch(version):
        return ReleaseKind.MALFORMED

    final = version.rsplit(".", 1)[-1].lstrip("v")
    if int(final) == 0:
        return ReleaseKind.FULL_REBUILD
    return ReleaseKind.PATCH


def requires_rebuild(kind: ReleaseKind) -> bool:
    """Whether a release kind must take the full rebuild path."""
    return kind is not ReleaseKind.PATCH
