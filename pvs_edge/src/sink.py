"""
Point sinks: where normalized points are written.

The orchestrator only depends on the :class:`PointSink` protocol: one
``write`` call per device batch, which either accepts the batch or raises.
:class:`InfluxSink` is the production implementation on top of the InfluxDB 3
Python client.  Each point becomes one line-protocol record with the series
name as measurement, a single ``value`` field, the point's tags, and a
second-precision timestamp (omitted when the point has none, so the server
assigns ingestion time).

The InfluxDB client is synchronous; writes run in a worker thread so the
event loop (and the shutdown signal handler) stays responsive.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from influxdb_client_3 import InfluxDBClient3, WritePrecision
from influxdb_client_3 import Point as InfluxPoint

from pvs_edge.src.models import Point

logger = logging.getLogger(__name__)

VALUE_FIELD = "value"


class PointSink(Protocol):
    """Anything that can persist a batch of points."""

    async def write(self, points: Sequence[Point]) -> None:
        """Write *points*; raise on failure."""
        ...


def to_influx(point: Point) -> InfluxPoint:
    """Convert a :class:`~pvs_edge.src.models.Point` into an InfluxDB record."""
    record = InfluxPoint(point.series).field(VALUE_FIELD, point.value)
    for key, value in point.tags.items():
        record = record.tag(key, value)
    if point.timestamp is not None:
        record = record.time(point.timestamp, write_precision=WritePrecision.S)
    return record


class InfluxSink:
    """Writes point batches to an InfluxDB database.

    Args:
        url: InfluxDB server URL.
        token: API token (may be empty for unauthenticated servers).
        database: Target database / bucket.

    Usage::

        sink = InfluxSink(url="http://influxdb:8181", token="", database="pvs")
        await sink.write(points)
        sink.close()
    """

    def __init__(self, *, url: str, token: str, database: str) -> None:
        self._database = database
        self._client = InfluxDBClient3(host=url, token=token, database=database)

    async def write(self, points: Sequence[Point]) -> None:
        """Write one batch of points.  An empty batch is a no-op."""
        if not points:
            return
        records = [to_influx(point) for point in points]
        await asyncio.to_thread(
            self._client.write,
            record=records,
            write_precision=WritePrecision.S,
        )
        logger.debug("Wrote %d points to database '%s'", len(records), self._database)

    def close(self) -> None:
        """Flush and close the underlying client."""
        self._client.close()
