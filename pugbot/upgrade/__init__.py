"""Declarative, rollback-capable upgrade documents."""

from __future__ import annotations


def parse_version(ver: str) -> tuple[int, int, int]:
    """Parse a semantic version string into integer parts.

    Accepts either ``1.2.3`` or ``v1.2.3``.
    """
    normalized = str(ver).strip()
    if normalized.startswith("v"):
        normalized = normalized[1:]

    parts = normalized.split(".")
    if len(parts) != 3 or any(not part.isdigit() for part in parts):
        raise ValueError(f"Invalid semantic version: {ver!r}")

    major, minor, patch = parts
    return (int(major), int(minor), int(patch))


def version_cmp(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` is older than, equal to or newer than ``b``."""
    left, right = parse_version(a), parse_version(b)
    return (left > right) - (left < right)
