"""
Pure record builder that converts raw gateway fields into time-series points.

Takes a stream of :class:`~pvs_edge.src.models.RawField` (as produced by
``fields.py``), groups the fields into one :class:`DeviceRecord` per device,
classifies every field with the registry of the API generation that produced
it, and emits one :class:`~pvs_edge.src.models.Point` per metric field.

Grouping rules, in order:

1. A field with a source-assigned ``group`` label (legacy device list) joins
   the record of that label.  No path parsing, no implicit tags.
2. A field whose identifier parses as a device path joins the record of its
   ``(category, index)`` and gets ``device_type``/``device_index`` tags.
3. Any other field joins the single system record tagged
   ``device_type=system``.

Bad data never aborts a build: a value that fails coercion drops only that
field, and an unparseable timestamp leaves its record without a timestamp.
Both are logged as warnings.

This is a pure function: no side effects beyond logging, no I/O, no clock.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: Reject out-of-range and non-ASCII timestamps

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pvs_edge.src.errors import CoercionError, TimestampParseError
from pvs_edge.src.models import Point, RawField
from pvs_edge.src.paths import bare_name, format_index, parse
from pvs_edge.src.registry import Kind, Registry

logger = logging.getLogger(__name__)

SYSTEM_DEVICE_TYPE = "system"
TAG_DEVICE_TYPE = "device_type"
TAG_DEVICE_INDEX = "device_index"


# ---------------------------------------------------------------------------
# Timestamp parsing
# ---------------------------------------------------------------------------


def parse_timestamp(raw: str) -> int:
    """Convert a gateway timestamp string into epoch seconds.

    Accepted formats:

    - legacy date-time tuple ``"2020,11,30,04,25,00"`` (UTC),
    - plain epoch seconds ``"1710278707"``,
    - ISO-8601 ``"2024-03-12T21:25:08Z"`` (naive values are taken as UTC).

    Raises:
        TimestampParseError: If *raw* matches none of the formats.
    """
    text = raw.strip()
    if not text:
        raise TimestampParseError("empty timestamp")

    if "," in text:
        parts = text.split(",")
        if not 3 <= len(parts) <= 6:
            raise TimestampParseError(f"expected 3 to 6 date-time parts: {raw!r}")
        try:
            ts = datetime(*(int(part) for part in parts), tzinfo=UTC)
            return int(ts.timestamp())
        except (ValueError, OverflowError) as exc:
            raise TimestampParseError(f"invalid date-time tuple: {raw!r}") from exc

    # isdigit() alone also accepts superscripts and other non-ASCII digits.
    if text.isascii() and text.isdigit():
        return int(text)

    try:
        ts = datetime.fromisoformat(text)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=UTC)
        return int(ts.timestamp())
    except (ValueError, OverflowError) as exc:
        raise TimestampParseError(f"unrecognised timestamp: {raw!r}") from exc


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


@dataclass
class DeviceRecord:
    """Fields of one device collected during one poll.

    Attributes:
        label: Human-readable record name used in log messages.
        base_tags: Tags implied by where the record came from (device type
            and index).  These win over property tags with the same key.
        fields: Field name -> raw string value.  Device-scoped fields are
            stored under their bare name, system fields under the full
            identifier.
    """

    label: str
    base_tags: dict[str, str] = field(default_factory=dict)
    fields: dict[str, str] = field(default_factory=dict)


def group_fields(raw_fields: Iterable[RawField]) -> list[DeviceRecord]:
    """Partition *raw_fields* into device records, in first-seen order."""
    records: dict[tuple[str, ...], DeviceRecord] = {}

    for raw in raw_fields:
        if raw.group is not None:
            key: tuple[str, ...] = ("group", raw.group)
            if key not in records:
                records[key] = DeviceRecord(label=raw.group)
            name = raw.identifier
        else:
            path = parse(raw.identifier)
            if path is None:
                key = (SYSTEM_DEVICE_TYPE,)
                if key not in records:
                    records[key] = DeviceRecord(
                        label=SYSTEM_DEVICE_TYPE,
                        base_tags={TAG_DEVICE_TYPE: SYSTEM_DEVICE_TYPE},
                    )
                name = raw.identifier
            else:
                key = ("device", path.category, path.index)
                if key not in records:
                    records[key] = DeviceRecord(
                        label=f"{path.category}/{path.index}",
                        base_tags={
                            TAG_DEVICE_TYPE: path.category,
                            TAG_DEVICE_INDEX: format_index(path.index),
                        },
                    )
                name = path.field

        records[key].fields[name] = raw.value

    return list(records.values())


# ---------------------------------------------------------------------------
# Per-record finalization
# ---------------------------------------------------------------------------


def _resolve_timestamp(record: DeviceRecord, registry: Registry) -> int | None:
    """Return the first parseable timestamp field of *record*, if any."""
    for name, raw in record.fields.items():
        if registry.classify(name).kind is not Kind.TIMESTAMP:
            continue
        try:
            return parse_timestamp(raw)
        except TimestampParseError as exc:
            logger.warning(
                "Record '%s': dropping timestamp field '%s': %s",
                record.label,
                name,
                exc,
            )
    logger.debug("Record '%s': no timestamp, sink assigns ingestion time", record.label)
    return None


def _resolve_tags(record: DeviceRecord, registry: Registry) -> dict[str, str]:
    tags: dict[str, str] = {}
    for name, raw in record.fields.items():
        spec = registry.classify(name)
        if spec.kind is not Kind.PROPERTY:
            continue
        try:
            tags[spec.tag] = str(spec.coercion.convert(raw))
        except CoercionError as exc:
            logger.warning(
                "Record '%s': dropping property '%s': %s", record.label, name, exc
            )
    tags.update(record.base_tags)
    return tags


def _finalize(record: DeviceRecord, registry: Registry) -> list[Point]:
    """Turn one device record into its points."""
    timestamp = _resolve_timestamp(record, registry)
    tags = _resolve_tags(record, registry)

    points: list[Point] = []
    for name, raw in record.fields.items():
        spec = registry.classify(name)
        if spec.kind is not Kind.METRIC:
            continue
        try:
            value = spec.coercion.convert(raw)
        except CoercionError as exc:
            logger.warning(
                "Record '%s': dropping metric '%s': %s", record.label, name, exc
            )
            continue
        points.append(
            Point(series=bare_name(name), value=value, tags=tags, timestamp=timestamp)
        )
    return points


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_batches(
    raw_fields: Iterable[RawField],
    registry: Registry,
) -> list[list[Point]]:
    """Convert raw fields into one point batch per device record.

    Args:
        raw_fields: Raw fields from a single gateway payload.
        registry: Registry of the API generation that produced the fields.

    Returns:
        Non-empty point batches, one per device record, in the order the
        records were first seen.
    """
    batches: list[list[Point]] = []
    for record in group_fields(raw_fields):
        points = _finalize(record, registry)
        if points:
            batches.append(points)
        else:
            logger.debug("Record '%s': no metrics", record.label)
    return batches


def build(raw_fields: Iterable[RawField], registry: Registry) -> list[Point]:
    """Convert raw fields into a flat list of points.

    Same as :func:`build_batches` with the batches concatenated.
    """
    return [point for batch in build_batches(raw_fields, registry) for point in batch]
