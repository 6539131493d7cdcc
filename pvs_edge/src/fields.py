"""
Raw field streams: flatten gateway payloads into ``RawField`` sequences.

Both gateway API generations are reduced to the same stream of
identifier/value string pairs so the record builder has exactly one grouping
algorithm:

- varserver payloads are already flat; device identity is encoded in the
  identifier path and recovered later by the path parser.
- legacy device-list payloads are split per device entry; every field of an
  entry carries the entry's group label so the builder keeps the entry
  together without looking at the keys.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

from pvs_edge.src.models import DeviceListResponse, RawField, VarsResponse


def stringify(value: Any) -> str:
    """Render a JSON value as the raw string the registry coercions expect.

    Strings pass through; other scalars use their JSON spelling so that
    ``True`` becomes ``"true"`` and ``None`` becomes ``"null"``.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value)


def varserver_fields(payload: VarsResponse) -> Iterator[RawField]:
    """Yield one :class:`RawField` per ``/vars`` entry."""
    for entry in payload.values:
        yield RawField(entry.name, stringify(entry.value))


def legacy_group(index: int) -> str:
    """Group label of the *index*-th legacy device entry."""
    return f"device-{index}"


def legacy_fields(payload: DeviceListResponse) -> Iterator[RawField]:
    """Yield every key of every legacy device entry, grouped per entry."""
    for index, device in enumerate(payload.devices):
        group = legacy_group(index)
        for key, value in device.items():
            yield RawField(key, stringify(value), group=group)
