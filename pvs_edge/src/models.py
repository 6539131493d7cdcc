"""
Data models for gateway payloads, credentials, raw fields, and output points.

Pydantic models validate what crosses a process boundary (gateway JSON
payloads, the credential, the points handed to the sink).  ``RawField`` is a
plain frozen dataclass: it is produced and consumed in-process once per poll.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict

SERIAL_SUFFIX_LENGTH = 5
"""The gateway password is the last five characters of its serial number."""


# ---------------------------------------------------------------------------
# Raw field stream
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawField:
    """A single identifier/value pair as emitted by the gateway.

    Attributes:
        identifier: Raw field identifier (flat key or path-like name).
        value: Raw value, always a string.
        group: Source-assigned group label.  Set by sources whose payload is
            already split per device (the legacy device list); ``None`` when
            the device must be derived from the identifier.
    """

    identifier: str
    value: str
    group: str | None = None


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class Point(BaseModel):
    """One typed, tagged time-series sample ready for the sink.

    Attributes:
        series: Series (measurement) name, the bare field name.
        value: Coerced numeric value.
        tags: Tag mapping shared by every point of the same device record.
        timestamp: Epoch seconds, or ``None`` to let the sink assign
            ingestion time.
    """

    series: str
    value: int | float
    tags: dict[str, str]
    timestamp: int | None = None


# ---------------------------------------------------------------------------
# Credential
# ---------------------------------------------------------------------------


class GatewayCredential(BaseModel):
    """Credential used for the gateway handshake.

    Attributes:
        serial: Gateway serial number, or just its last five characters.
    """

    model_config = ConfigDict(frozen=True)

    serial: str = ""

    @property
    def suffix(self) -> str:
        """Last five characters of the serial, the gateway password."""
        return self.serial.strip()[-SERIAL_SUFFIX_LENGTH:]


# ---------------------------------------------------------------------------
# Gateway payloads
# ---------------------------------------------------------------------------


class VarEntry(BaseModel):
    """One ``{"name": ..., "value": ...}`` entry of a varserver response."""

    name: str
    value: Any = None


class VarsResponse(BaseModel):
    """Body of ``GET /vars?match=...``."""

    count: int = 0
    values: list[VarEntry]


class DeviceListResponse(BaseModel):
    """Body of the legacy ``dl_cgi?Command=DeviceList`` endpoint."""

    result: str = ""
    devices: list[dict[str, Any]]
