"""
Poll orchestrator: drives one authenticate-fetch-normalize-write cycle.

A cycle walks ``IDLE -> AUTHENTICATING -> FETCHING -> NORMALIZING -> WRITING``
and ends in ``IDLE`` (success) or ``FAILED``.  Strict ordering rules:

- Every payload is fetched before anything is normalized, and normalized
  before anything is written, so a cycle that fails while fetching writes
  nothing.
- Transient transport failures are retried with exponential backoff up to
  ``fetch_attempts`` attempts per request, reusing the cycle's session.
  Anything else fails the cycle immediately.
- A session rejected mid-cycle triggers one re-authentication and one more
  fetch of the same payload.
- Each device batch is written with its own sink call; a failed write is
  logged and the remaining batches are still attempted.

Cycle-level errors never escape :meth:`PollOrchestrator.run_cycle`: they are
logged and reported in the returned :class:`CycleResult` so that the caller's
schedule decides when to try again.

CHANGELOG:
- 2026-10-18: Initial creation
- 2026-10-19: Report unexpected cycle errors as FAILED; name legacy devices in write failures

TODO:
- None
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING, TypeVar

from pvs_edge.src.builder import (
    TAG_DEVICE_INDEX,
    TAG_DEVICE_TYPE,
    build_batches,
)
from pvs_edge.src.errors import (
    ConfigError,
    PvsError,
    SessionExpiredError,
    TransientTransportError,
)
from pvs_edge.src.fields import legacy_fields, varserver_fields
from pvs_edge.src.gateway import DEFAULT_TIMEOUT_S, GatewayClient
from pvs_edge.src.registry import ApiGeneration, registry_for
from pvs_edge.src.session import Session, SessionManager

if TYPE_CHECKING:
    import httpx

    from pvs_edge.src.models import GatewayCredential, Point, RawField, VarsResponse
    from pvs_edge.src.sink import PointSink

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_BACKOFF_S: float = 30.0
"""Cap for the exponential backoff between fetch attempts."""

LIVEDATA_MATCH = "livedata"

LEGACY_TAG_DEVICE_TYPE = "DEVICE_TYPE"
LEGACY_TAG_SERIAL = "SERIAL"


# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------


class CycleState(enum.Enum):
    """Poll cycle state."""

    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    WRITING = "writing"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class PollOptions:
    """Per-run options, passed in explicitly rather than read from globals.

    Attributes:
        generation: Gateway API generation to poll.
        device_categories: Varserver device categories fetched after the
            system livedata (ignored for the legacy API).
        fetch_attempts: Total attempts per request on transient failures.
        retry_backoff_s: Backoff before the second attempt; doubles per
            attempt, capped at :data:`MAX_BACKOFF_S`.
        dry_run: Fetch and normalize but never write to the sink.
        verbose: Log every point that is built.
    """

    generation: ApiGeneration = ApiGeneration.VARSERVER
    device_categories: tuple[str, ...] = ("inverter", "meter")
    fetch_attempts: int = 3
    retry_backoff_s: float = 1.0
    dry_run: bool = False
    verbose: bool = False


@dataclass
class CycleResult:
    """Outcome of one poll cycle.

    Attributes:
        state: Final state, ``IDLE`` on success or ``FAILED``.
        failed_in: State the cycle was in when it failed, if it failed.
        error: Error text of the failure, if any.
        points_built: Points produced by normalization.
        batches_written: Device batches accepted by the sink.
        batches_failed: Device batches the sink raised on.
        points_written: Points in the accepted batches.
    """

    state: CycleState = CycleState.IDLE
    failed_in: CycleState | None = None
    error: str | None = None
    points_built: int = 0
    batches_written: int = 0
    batches_failed: int = 0
    points_written: int = 0

    @property
    def ok(self) -> bool:
        """True when the cycle completed without any failure."""
        return self.state is CycleState.IDLE


@dataclass
class _Payload:
    """Raw fields fetched from one gateway request."""

    source: str
    fields: list[RawField] = field(default_factory=list)


def varserver_queries(categories: Iterable[str]) -> list[tuple[str, str]]:
    """Return ``(source, match)`` pairs: system livedata, then each category."""
    queries = [("livedata", LIVEDATA_MATCH)]
    queries.extend((category, f"/sys/devices/{category}/") for category in categories)
    return queries


def _describe(batch: list[Point]) -> str:
    tags = batch[0].tags
    # Legacy batches carry only their property tags.
    device_type = tags.get(TAG_DEVICE_TYPE) or tags.get(LEGACY_TAG_DEVICE_TYPE, "device")
    index = tags.get(TAG_DEVICE_INDEX) or tags.get(LEGACY_TAG_SERIAL)
    return f"{device_type}/{index}" if index else device_type


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class PollOrchestrator:
    """Runs poll cycles against one gateway.

    Args:
        host: Gateway hostname or IP address.
        credential: Gateway credential (required for the varserver API).
        sink: Point sink.  May be ``None`` only in dry-run mode.
        options: Run options.
        timeout_s: Per-request gateway timeout in seconds.
        transport: Optional httpx transport for the gateway client (tests).

    Raises:
        ConfigError: If no sink is given outside dry-run mode.
    """

    def __init__(
        self,
        *,
        host: str,
        credential: GatewayCredential | None,
        sink: PointSink | None,
        options: PollOptions,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if sink is None and not options.dry_run:
            raise ConfigError("a point sink is required unless running in dry-run mode")
        self._host = host
        self._credential = credential
        self._sink = sink
        self._options = options
        self._timeout_s = timeout_s
        self._transport = transport
        self._state = CycleState.IDLE

    @property
    def state(self) -> CycleState:
        """Current cycle state."""
        return self._state

    def _enter(self, state: CycleState) -> None:
        logger.debug("Cycle state: %s -> %s", self._state.value, state.value)
        self._state = state

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleResult:
        """Execute one full poll cycle.

        Returns:
            The cycle outcome.  Cycle-level errors are reported here rather
            than raised.
        """
        result = CycleResult()
        self._state = CycleState.IDLE
        try:
            async with GatewayClient(
                self._host, timeout_s=self._timeout_s, transport=self._transport
            ) as gateway:
                payloads = await self._fetch_all(gateway)

            self._enter(CycleState.NORMALIZING)
            batches = self._normalize(payloads)
            result.points_built = sum(len(batch) for batch in batches)

            self._enter(CycleState.WRITING)
            await self._write_all(batches, result)
        except PvsError as exc:
            self._fail(result, exc)
            logger.error(
                "Poll cycle failed while %s: %s", result.failed_in.value, result.error
            )
            return result
        except Exception as exc:
            self._fail(result, exc)
            logger.error(
                "Unexpected error while %s: %s",
                result.failed_in.value,
                result.error,
                exc_info=True,
            )
            return result

        if result.batches_failed:
            result.failed_in = CycleState.WRITING
            result.error = (
                f"{result.batches_failed} of "
                f"{result.batches_failed + result.batches_written} batches "
                "failed to write"
            )
            self._enter(CycleState.FAILED)
            result.state = CycleState.FAILED
        else:
            self._enter(CycleState.IDLE)
            result.state = CycleState.IDLE

        logger.info(
            "Poll cycle complete: built=%d written=%d batches_failed=%d dry_run=%s",
            result.points_built,
            result.points_written,
            result.batches_failed,
            self._options.dry_run,
        )
        return result

    def _fail(self, result: CycleResult, exc: Exception) -> None:
        result.failed_in = self._state
        result.error = f"{type(exc).__name__}: {exc}"
        self._enter(CycleState.FAILED)
        result.state = CycleState.FAILED

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    async def _fetch_all(self, gateway: GatewayClient) -> list[_Payload]:
        if self._options.generation is ApiGeneration.LEGACY:
            self._enter(CycleState.FETCHING)
            device_list = await self._with_retry(
                "device list", gateway.fetch_device_list
            )
            return [_Payload("device-list", list(legacy_fields(device_list)))]

        sessions = SessionManager(gateway)
        self._enter(CycleState.AUTHENTICATING)
        session = await sessions.authenticate(self._credential)

        self._enter(CycleState.FETCHING)
        payloads: list[_Payload] = []
        for source, match in varserver_queries(self._options.device_categories):
            try:
                body = await self._fetch_vars(gateway, source, match, session)
            except SessionExpiredError as exc:
                logger.warning(
                    "Session rejected while fetching %s (%s), re-authenticating",
                    source,
                    exc,
                )
                self._enter(CycleState.AUTHENTICATING)
                session = await sessions.authenticate(self._credential)
                self._enter(CycleState.FETCHING)
                body = await self._fetch_vars(gateway, source, match, session)
            payloads.append(_Payload(source, list(varserver_fields(body))))
        return payloads

    async def _fetch_vars(
        self,
        gateway: GatewayClient,
        source: str,
        match: str,
        session: Session,
    ) -> VarsResponse:
        return await self._with_retry(
            source, partial(gateway.fetch_vars, match, session=session)
        )

    async def _with_retry(
        self, description: str, fetch: Callable[[], Awaitable[T]]
    ) -> T:
        """Await *fetch*, retrying transient transport failures.

        Raises:
            TransientTransportError: When every attempt failed transiently.
            PvsError: Any non-transient failure, immediately.
        """
        attempts = max(1, self._options.fetch_attempts)
        attempt = 1
        while True:
            try:
                return await fetch()
            except TransientTransportError as exc:
                if attempt >= attempts:
                    logger.error(
                        "Giving up on %s after %d attempts: %s",
                        description,
                        attempts,
                        exc,
                    )
                    raise
                delay = min(
                    self._options.retry_backoff_s * (2 ** (attempt - 1)),
                    MAX_BACKOFF_S,
                )
                logger.warning(
                    "Transient error fetching %s (attempt %d/%d): %s; "
                    "retrying in %.1fs",
                    description,
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                if delay > 0:
                    await asyncio.sleep(delay)
                attempt += 1

    # ------------------------------------------------------------------
    # Normalizing and writing
    # ------------------------------------------------------------------

    def _normalize(self, payloads: list[_Payload]) -> list[list[Point]]:
        registry = registry_for(self._options.generation)
        batches: list[list[Point]] = []
        for payload in payloads:
            payload_batches = build_batches(payload.fields, registry)
            logger.info(
                "Normalized %s: %d fields -> %d points in %d batches",
                payload.source,
                len(payload.fields),
                sum(len(batch) for batch in payload_batches),
                len(payload_batches),
            )
            batches.extend(payload_batches)

        if self._options.verbose:
            for batch in batches:
                for point in batch:
                    logger.info("Point: %s", point.model_dump_json())
        return batches

    async def _write_all(self, batches: list[list[Point]], result: CycleResult) -> None:
        if self._options.dry_run:
            logger.info(
                "Dry run: discarding %d points in %d batches",
                result.points_built,
                len(batches),
            )
            return

        assert self._sink is not None
        for batch in batches:
            try:
                await self._sink.write(batch)
            except Exception:
                logger.error(
                    "Failed to write %d points for %s",
                    len(batch),
                    _describe(batch),
                    exc_info=True,
                )
                result.batches_failed += 1
                continue
            result.batches_written += 1
            result.points_written += len(batch)
