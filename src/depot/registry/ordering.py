"""Version ordering for Depot.

Versions are dot-separated numeric tuples of any length. Comparison is
segment by segment, missing trailing segments count as 0, so ``"1.0"`` and
``"1.0.0"`` compare equal. Nothing here raises: a segment that does not start
with digits is read as 0, which makes garbage sort low instead of breaking the
registry.
"""

import re
from functools import cmp_to_key
from typing import Iterable

from depot.models import VersionRecord


_LEADING_DIGITS = re.compile(r"\s*(\d+)")
STRICT_VERSION_PATTERN = re.compile(r"^\d+(\.\d+)*$")


def parse_segment(segment: str) -> int:
    """Read the leading integer of a segment, 0 if there is none."""
    match = _LEADING_DIGITS.match(segment)
    return int(match.group(1)) if match else 0


def parse_version(version: str) -> tuple[int, ...]:
    """Split a version string into its numeric segments."""
    return tuple(parse_segment(segment) for segment in (version or "").split("."))


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings.

    Returns:
        -1 if ``a`` is older, 1 if ``a`` is newer, 0 if they are equal
    """
    left = parse_version(a)
    right = parse_version(b)
    width = max(len(left), len(right))
    left += (0,) * (width - len(left))
    right += (0,) * (width - len(right))

    for x, y in zip(left, right):
        if x != y:
            return 1 if x > y else -1
    return 0


def sort_records(records: Iterable[VersionRecord]) -> list[VersionRecord]:
    """Sort records newest first.

    The sort is stable: records with equal versions keep their relative order,
    so the one stored first wins the "latest" slot on a tie.
    """
    # sorted(reverse=True) keeps ties in original order
    return sorted(
        records,
        key=cmp_to_key(lambda r1, r2: compare_versions(r1.version, r2.version)),
        reverse=True,
    )


def is_valid_version(version: str, strict: bool = True) -> bool:
    """Check whether a version string may be published.

    Strict mode allows digits and dots only. Permissive mode accepts any
    non-empty token that is safe to embed in a file name and a URL segment.
    """
    if not version:
        return False
    if strict:
        return STRICT_VERSION_PATTERN.match(version) is not None
    if version in (".", "..") or version.lower() == "latest":
        return False
    return not any(ch in version for ch in "/\\") and not any(ch.isspace() for ch in version)
