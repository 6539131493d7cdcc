"""
Async HTTP transport for the PVS gateway.

Wraps one :class:`httpx.AsyncClient` per poll cycle and translates every
transport failure into the collector's error taxonomy so the orchestrator can
decide what to retry:

- ``TransientTransportError``: connection refused, host unreachable, connect
  timeout, HTTP 500/502/503/504.  The gateway is rebooting or overloaded.
- ``SessionExpiredError``: HTTP 401/403 on an authenticated fetch.
- ``FatalTransportError``: everything else (other HTTP errors, read
  timeouts, bodies that are not the expected JSON shape).

Trust boundary: the gateway serves HTTPS with a self-signed certificate that
cannot be validated, so certificate verification is disabled for this client.
The gateway is only reachable on the local LAN.  Never point this client at a
host outside that network.

Supports async context manager protocol; the client (and the session cookie
jar it holds) is released on exit whatever the outcome of the cycle.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from pvs_edge.src.errors import (
    FatalTransportError,
    SessionExpiredError,
    TransientTransportError,
)
from pvs_edge.src.models import DeviceListResponse, VarsResponse

if TYPE_CHECKING:
    from pvs_edge.src.session import Session

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VARS_PATH = "/vars"
DEVICE_LIST_PATH = "/cgi-bin/dl_cgi?Command=DeviceList"

TRANSIENT_STATUS_CODES: frozenset[int] = frozenset({500, 502, 503, 504})
"""Gateway overload / restart responses that are worth retrying."""

SESSION_REJECTED_STATUS_CODES: frozenset[int] = frozenset({401, 403})

DEFAULT_TIMEOUT_S: float = 10.0


class GatewayClient:
    """HTTP client bound to one gateway host for the duration of a cycle.

    Args:
        host: Gateway hostname or IP address on the local LAN.
        timeout_s: Per-request timeout in seconds.
        transport: Optional httpx transport, used by tests to stub the
            gateway.

    Usage::

        async with GatewayClient("pvs-gateway.local") as gateway:
            payload = await gateway.fetch_vars("livedata", session=session)
    """

    def __init__(
        self,
        host: str,
        *,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.host = host
        self._timeout_s = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        """Create the underlying HTTP client and its cookie jar."""
        self._client = httpx.AsyncClient(
            verify=False,
            timeout=self._timeout_s,
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the HTTP client, discarding any session cookies."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> GatewayClient:
        """Enter async context manager: open the client."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit async context manager: close the client."""
        await self.close()

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    def varserver_url(self, path: str) -> str:
        """Absolute HTTPS URL of a varserver *path*."""
        return f"https://{self.host}{path}"

    def legacy_url(self, path: str) -> str:
        """Absolute HTTP URL of a legacy CGI *path*."""
        return f"http://{self.host}{path}"

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def get(
        self,
        url: str,
        *,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Issue a GET and classify transport-level failures.

        Returns the response for any status outside
        :data:`TRANSIENT_STATUS_CODES`; the caller interprets the rest.

        Raises:
            TransientTransportError: Refused/unreachable host, connect
                timeout, or a transient 5xx status.
            FatalTransportError: Any other httpx error.
        """
        assert self._client is not None, (
            "GatewayClient not opened. Call open() or use async with."
        )
        try:
            response = await self._client.get(url, params=params, headers=headers)
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            raise TransientTransportError(
                f"cannot connect to gateway: {exc}", url=url
            ) from exc
        except httpx.HTTPError as exc:
            raise FatalTransportError(f"request failed: {exc!r}", url=url) from exc

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientTransportError(
                f"gateway unavailable (HTTP {response.status_code})", url=url
            )
        return response

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, str] | None = None,
        session: Session | None = None,
    ) -> Any:
        """GET *url* and decode its JSON body.

        Raises:
            SessionExpiredError: HTTP 401/403 on a request made with *session*.
            FatalTransportError: Any other error status or a non-JSON body.
            TransientTransportError: See :meth:`get`.
        """
        headers = session.headers() if session is not None else None
        response = await self.get(url, params=params, headers=headers)

        status = response.status_code
        if status in SESSION_REJECTED_STATUS_CODES and session is not None:
            raise SessionExpiredError(f"session rejected (HTTP {status})", url=url)
        if response.is_error:
            raise FatalTransportError(f"gateway returned HTTP {status}", url=url)

        try:
            return response.json()
        except ValueError as exc:
            raise FatalTransportError(f"response is not JSON: {exc}", url=url) from exc

    async def fetch_vars(self, match: str, *, session: Session) -> VarsResponse:
        """Fetch every varserver variable whose name matches *match*."""
        url = self.varserver_url(VARS_PATH)
        body = await self.get_json(url, params={"match": match}, session=session)
        try:
            payload = VarsResponse.model_validate(body)
        except ValidationError as exc:
            raise FatalTransportError(
                f"unexpected /vars payload: {exc.error_count()} errors", url=url
            ) from exc
        logger.debug("Fetched %d vars matching '%s'", len(payload.values), match)
        return payload

    async def fetch_device_list(self) -> DeviceListResponse:
        """Fetch the legacy unauthenticated device list."""
        url = self.legacy_url(DEVICE_LIST_PATH)
        body = await self.get_json(url)
        try:
            payload = DeviceListResponse.model_validate(body)
        except ValidationError as exc:
            raise FatalTransportError(
                f"unexpected DeviceList payload: {exc.error_count()} errors", url=url
            ) from exc
        logger.debug(
            "Fetched device list (result=%s, devices=%d)",
            payload.result,
            len(payload.devices),
        )
        return payload
