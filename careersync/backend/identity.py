"""Identity collaborator contract and a refresh-token implementation.

The sync orchestrator never talks to an identity provider SDK directly.  It
depends on the small :class:`IdentityProvider` protocol:

* ``get_credential(force_fresh=...)`` returns a short-lived bearer credential,
  ``None`` when the session cannot mint one yet, or raises on failure.
  ``force_fresh=True`` must bypass any cached credential.
* ``sign_out()`` ends the provider session.

:class:`RefreshEndpointIdentity` implements the protocol against the backend
token-refresh endpoint, which is what the CLI uses.  Browser front-ends plug
their own session object in instead.
"""

from __future__ import annotations

import logging
from typing import Protocol

from careersync.backend.http_client import BackendHttpClient
from careersync.core.exceptions import ConfigError

__all__ = ["IdentityProvider", "RefreshEndpointIdentity"]

logger = logging.getLogger(__name__)


class IdentityProvider(Protocol):
    """Source of bearer credentials for the current user session."""

    async def get_credential(self, *, force_fresh: bool = False) -> str | None:
        """Return a bearer credential, or ``None`` if none is available yet."""
        ...

    async def sign_out(self) -> None:
        """Terminate the session with the identity provider."""
        ...


class RefreshEndpointIdentity:
    """Mint access tokens by exchanging a refresh token with the backend.

    The last access token is cached and returned when ``force_fresh`` is
    false.  Signing out forgets both tokens; later calls return ``None``.

    Args:
        client: Open :class:`BackendHttpClient`.
        refresh_token: Long-lived refresh token.
        refresh_endpoint: Path of the refresh endpoint.
        logout_endpoint: Path notified on sign-out, or ``None`` to skip.

    Raises:
        ConfigError: If *refresh_token* is empty.
    """

    def __init__(
        self,
        client: BackendHttpClient,
        refresh_token: str,
        *,
        refresh_endpoint: str = "/api/auth/token/refresh/",
        logout_endpoint: str | None = "/api/auth/logout/",
    ) -> None:
        if not refresh_token:
            raise ConfigError("A refresh token is required (set BACKEND_REFRESH_TOKEN).")
        self._client = client
        self._refresh_token: str | None = refresh_token
        self._refresh_endpoint = refresh_endpoint
        self._logout_endpoint = logout_endpoint
        self._access_token: str | None = None

    async def get_credential(self, *, force_fresh: bool = False) -> str | None:
        if self._refresh_token is None:
            return None
        if self._access_token and not force_fresh:
            return self._access_token

        response = await self._client.post(
            self._refresh_endpoint, {"refresh": self._refresh_token}
        )
        data = response.json if isinstance(response.json, dict) else {}
        access = data.get("access") or data.get("access_token") or data.get("token")
        if not isinstance(access, str) or not access:
            logger.debug("Refresh endpoint answered without an access token.")
            return None

        # Rotating refresh tokens are replaced on every exchange.
        rotated = data.get("refresh")
        if isinstance(rotated, str) and rotated:
            self._refresh_token = rotated

        self._access_token = access
        return access

    async def sign_out(self) -> None:
        refresh_token = self._refresh_token
        self._refresh_token = None
        self._access_token = None
        if self._logout_endpoint and refresh_token:
            await self._client.post(self._logout_endpoint, {"refresh": refresh_token})
        logger.info("Identity session signed out.")
