"""
Gateway session manager.

Performs the varserver login handshake: ``GET https://<host>/auth?login`` with
HTTP Basic credentials ``ssm_owner:<last five characters of the gateway
serial>``.  The gateway answers with a ``session`` cookie which is then sent
on every request of the cycle, so a cycle authenticates once.

Sessions are never persisted: the cookie lives in the cycle's
:class:`~pvs_edge.src.gateway.GatewayClient` and in the returned
:class:`Session`, both discarded when the cycle ends.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pvs_edge.src.errors import AuthError, ConfigError, FatalTransportError
from pvs_edge.src.gateway import SESSION_REJECTED_STATUS_CODES

if TYPE_CHECKING:
    from pvs_edge.src.gateway import GatewayClient
    from pvs_edge.src.models import GatewayCredential

logger = logging.getLogger(__name__)

AUTH_PATH = "/auth?login"
PRINCIPAL = "ssm_owner"
SESSION_COOKIE = "session"


def basic_authorization(suffix: str) -> str:
    """Return the ``Authorization`` header value for a serial *suffix*."""
    token = base64.b64encode(f"{PRINCIPAL}:{suffix}".encode()).decode("ascii")
    return f"Basic {token}"


@dataclass(frozen=True, slots=True)
class Session:
    """Authenticated gateway session.

    Attributes:
        token: Value of the ``session`` cookie.
        authorization: Basic authorization header used for the handshake.
    """

    token: str = field(repr=False)
    authorization: str = field(repr=False)

    def headers(self) -> dict[str, str]:
        """Request headers that present this session to the gateway."""
        return {
            "Cookie": f"{SESSION_COOKIE}={self.token}",
            "Authorization": self.authorization,
        }


class SessionManager:
    """Obtains sessions from one gateway.

    Args:
        gateway: An opened :class:`~pvs_edge.src.gateway.GatewayClient`.
    """

    def __init__(self, gateway: GatewayClient) -> None:
        self._gateway = gateway

    async def authenticate(self, credential: GatewayCredential | None) -> Session:
        """Log in to the gateway and return a new session.

        Raises:
            ConfigError: If *credential* is missing or has no serial.  Raised
                before any request is made.
            AuthError: If the gateway rejects the credential or its response
                carries no session cookie.
            TransientTransportError: See
                :meth:`~pvs_edge.src.gateway.GatewayClient.get`.
            FatalTransportError: Any other error status.
        """
        if credential is None or not credential.suffix:
            raise ConfigError("gateway serial is not configured (PVS_SERIAL)")

        authorization = basic_authorization(credential.suffix)
        url = self._gateway.varserver_url(AUTH_PATH)
        response = await self._gateway.get(
            url, headers={"Authorization": authorization}
        )

        status = response.status_code
        if status in SESSION_REJECTED_STATUS_CODES:
            raise AuthError(f"gateway rejected the credential (HTTP {status})")
        if response.is_error:
            raise FatalTransportError(f"login returned HTTP {status}", url=url)

        token = response.cookies.get(SESSION_COOKIE)
        if not token:
            raise AuthError("login response carried no session cookie")

        logger.info("Authenticated with gateway %s", self._gateway.host)
        return Session(token=token, authorization=authorization)
