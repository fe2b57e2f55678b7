"""
Semantic version helpers.

Versions look like ``v1.2.3``, ``1.2.3-beta.1`` or ``v2.0.0+build.7``.
The leading ``v`` is optional and build metadata never affects ordering.
Pre-release versions sort before the matching release.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass

_SEMVER_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


@dataclass(frozen=True)
class SemVer:
    """A parsed semantic version."""

    major: int
    minor: int
    patch: int
    pre: tuple[str, ...] = ()
    build: str = ""

    @property
    def is_pre_release(self) -> bool:
        return bool(self.pre)


def parse_version(version: str) -> SemVer:
    """Parse a version string.

    Raises:
        ValueError: If the string is not a semantic version.
    """
    match = _SEMVER_RE.match(version.strip()) if version else None
    if match is None:
        raise ValueError(f"invalid semantic version: {version!r}")
    pre = match.group("pre")
    return SemVer(
        major=int(match.group("major")),
        minor=int(match.group("minor")),
        patch=int(match.group("patch")),
        pre=tuple(pre.split(".")) if pre else (),
        build=match.group("build") or "",
    )


def _compare_pre(a: tuple[str, ...], b: tuple[str, ...]) -> int:
    # A release (no identifiers) has higher precedence than any pre-release
    if not a and not b:
        return 0
    if not a:
        return 1
    if not b:
        return -1

    for x, y in zip(a, b):
        if x == y:
            continue
        x_num, y_num = x.isdigit(), y.isdigit()
        if x_num and y_num:
            return -1 if int(x) < int(y) else 1
        if x_num:
            return -1
        if y_num:
            return 1
        return -1 if x < y else 1

    if len(a) == len(b):
        return 0
    return -1 if len(a) < len(b) else 1


def compare_versions(a: str, b: str) -> int:
    """Compare two version strings; returns -1, 0 or 1."""
    va, vb = parse_version(a), parse_version(b)
    core_a = (va.major, va.minor, va.patch)
    core_b = (vb.major, vb.minor, vb.patch)
    if core_a != core_b:
        return -1 if core_a < core_b else 1
    return _compare_pre(va.pre, vb.pre)


def sort_versions(versions: list[str]) -> None:
    """Sort a list of version strings in place, ascending.

    Raises:
        ValueError: If any entry is not a semantic version. The list is
            left untouched in that case.
    """
    for v in versions:
        parse_version(v)
    versions.sort(key=functools.cmp_to_key(compare_versions))


def highest_version(versions: list[str]) -> str:
    """Return the highest version of the list, or "" if it is empty."""
    if not versions:
        return ""
    return max(versions, key=functools.cmp_to_key(compare_versions))


def is_pre_release(version: str) -> bool:
    try:
        return parse_version(version).is_pre_release
    except ValueError:
        return False


def is_same_major(a: str, b: str) -> bool:
    try:
        return parse_version(a).major == parse_version(b).major
    except ValueError:
        return False


def is_same_minor(a: str, b: str) -> bool:
    """True if both versions share major and minor."""
    try:
        va, vb = parse_version(a), parse_version(b)
    except ValueError:
        return False
    return (va.major, va.minor) == (vb.major, vb.minor)


def is_new_version(new: str, current: str) -> bool:
    """True if ``new`` is strictly greater than ``current``."""
    try:
        return compare_versions(new, current) > 0
    except ValueError:
        return False
