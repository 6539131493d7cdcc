"""
Exception taxonomy for the PVS edge collector.

Cycle-level errors (configuration, authentication, exhausted or fatal
transport failures) abort the current poll cycle and are reported by the
orchestrator.  Field-level errors (coercion, timestamp parsing) are absorbed
by the record builder, which drops the offending field or timestamp and keeps
going.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations


class PvsError(Exception):
    """Base class for every error raised by the collector."""


class ConfigError(PvsError):
    """Missing or invalid configuration, e.g. an empty gateway credential.

    Never retried: the same configuration fails the same way next cycle.
    """


class AuthError(PvsError):
    """The gateway handshake completed but yielded no usable session."""


class TransportError(PvsError):
    """Base class for gateway transport failures.

    Attributes:
        url: The request URL that failed, when known.
    """

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class TransientTransportError(TransportError):
    """Retryable failure: refused/unreachable host, connect timeout, 5xx overload."""


class FatalTransportError(TransportError):
    """Non-retryable transport failure (other HTTP errors, malformed payloads)."""


class SessionExpiredError(FatalTransportError):
    """The gateway rejected the session token (HTTP 401/403) on a data fetch."""


class CoercionError(PvsError, ValueError):
    """A raw value could not be converted with its registry coercion."""


class TimestampParseError(PvsError, ValueError):
    """A timestamp field matched none of the accepted formats."""
