"""
Device path parser for varserver field identifiers.

Device-scoped varserver fields are named ``<prefix>/devices/<category>/<index>/<field>``,
e.g. ``/sys/devices/inverter/11/p3phsumKw``.  Anything else (``/sys/livedata/pv_p``,
legacy flat keys) is not device-scoped and parses to ``None``.

Pure functions: no I/O, no failure modes.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_DEVICE_PATH_RE = re.compile(
    r"(?:^|/)devices/(?P<category>[^/]+)/(?P<index>[^/]+)/(?P<field>[^/]+)$"
)

INDEX_WIDTH = 2
"""Numeric device indices are zero-padded to this width when used as tags."""


@dataclass(frozen=True, slots=True)
class DevicePath:
    """Parsed identity of a device-scoped field.

    Attributes:
        category: Device category segment (e.g. ``"inverter"``, ``"meter"``).
        index: Device index segment, kept as the opaque raw label.
        field: Bare field name (last path segment).
    """

    category: str
    index: str
    field: str


def parse(identifier: str) -> DevicePath | None:
    """Decode *identifier* into a :class:`DevicePath`.

    Returns:
        The parsed path, or ``None`` when *identifier* is not device-scoped.
    """
    match = _DEVICE_PATH_RE.search(identifier)
    if match is None:
        return None
    return DevicePath(
        category=match.group("category"),
        index=match.group("index"),
        field=match.group("field"),
    )


def format_index(index: str) -> str:
    """Render a device index for use as a tag value.

    Numeric indices are zero-padded to :data:`INDEX_WIDTH` digits; other
    labels are returned unchanged.
    """
    if index.isdigit():
        return index.zfill(INDEX_WIDTH)
    return index


def bare_name(identifier: str) -> str:
    """Return the last path segment of *identifier* (itself if not path-like)."""
    return identifier.rstrip("/").rsplit("/", 1)[-1] or identifier
