"""Utility functions for the Qumulo CSI controller."""

import re
from typing import Optional

from packaging.version import InvalidVersion, Version

from .exceptions import Internal, InvalidArgument

_REPEATED_SEPARATORS = re.compile(r"//+")
_REVISION_RE = re.compile(r"^Qumulo Core (.*)$")


def canonicalize_path(path: str) -> str:
    """Strip leading/trailing separators and collapse repeated ones.

    Args:
        path: Cluster path (e.g., /foo//bar/)

    Returns:
        Canonical form (e.g., foo/bar); root becomes the empty string
    """
    return _REPEATED_SEPARATORS.sub("/", path.strip("/"))


def join_cluster_path(*segments: str) -> str:
    """Join segments into an absolute cluster path."""
    parts = [canonicalize_path(s) for s in segments]
    return "/" + "/".join(p for p in parts if p)


def get_quota_limit(capacity_range) -> int:
    """Pick the quota limit from a CSI capacity range.

    ``required_bytes`` wins over ``limit_bytes`` when both are non-zero.

    Args:
        capacity_range: Object with ``required_bytes`` and ``limit_bytes``

    Returns:
        Quota limit in bytes

    Raises:
        InvalidArgument: If the range is missing, negative or all zero
    """
    if capacity_range is None:
        raise InvalidArgument("CapacityRange must be provided")

    required = capacity_range.required_bytes or 0
    if required != 0:
        if required < 0:
            raise InvalidArgument("RequiredBytes must be positive")
        return required

    limit = capacity_range.limit_bytes or 0
    if limit != 0:
        if limit < 0:
            raise InvalidArgument("LimitBytes must be positive")
        return limit

    raise InvalidArgument("RequiredBytes or LimitBytes must be provided")


def parse_cluster_version(revision: Optional[str]) -> Version:
    """Extract the release from a revision string like ``Qumulo Core 4.2.4``.

    Raises:
        Internal: If the revision cannot be decoded
    """
    match = _REVISION_RE.match(revision or "")
    if not match:
        raise Internal(f"Could not decode version {revision!r}")
    try:
        return Version(match.group(1))
    except InvalidVersion:
        raise Internal(f"Could not decode version {revision!r}")
