"""Async HTTP client for the careersync backend API.

Wraps :class:`httpx.AsyncClient` with:

* **Bearer credentials** — an optional per-request credential is sent as an
  ``Authorization: Bearer`` header, so callers can pass the freshest token on
  every retry attempt.
* **Lenient JSON decoding** — empty, non-JSON or malformed bodies degrade to
  ``{}`` instead of raising.
* **Structured error mapping** — non-2xx responses raise
  :class:`~careersync.core.exceptions.BackendRequestError` with a readable
  message extracted from the body; authentication-related 401s raise
  :class:`~careersync.core.exceptions.SessionExpiredError`; network failures
  raise :class:`~careersync.core.exceptions.BackendUnavailableError`.

The client performs exactly **one** attempt per call.  Retrying is the job of
the orchestration layer, which owns the retry budget.

Typical usage::

    from careersync.backend.http_client import BackendHttpClient

    async with BackendHttpClient(base_url="https://api.example.com") as client:
        response = await client.send_request(
            "/api/auth/clerk-sync/",
            "POST",
            {"clerk_user_id": "user_1", "email": "a@b.c", "token": token},
            credential=token,
        )
        print(response.status, response.json)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Final

import httpx

from careersync.core.exceptions import (
    BackendRequestError,
    BackendUnavailableError,
    SessionExpiredError,
)

__all__ = ["BackendHttpClient", "BackendResponse", "extract_error_message"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default total timeout for one request in seconds.
_DEFAULT_TIMEOUT: Final[float] = 20.0

#: Default connection timeout in seconds.
_DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0

#: Phrases that mark a 401 as an expired/missing session rather than a
#: permission problem.
_AUTH_PHRASES: Final[tuple[str, ...]] = (
    "authentication",
    "credentials",
    "not provided",
    "unauthorized",
    "session expired",
    "login required",
)


# ---------------------------------------------------------------------------
# Response type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BackendResponse:
    """Status code plus decoded JSON body of a successful request.

    Attributes:
        status: HTTP status code (always 2xx when returned by the client).
        json: Decoded body; ``{}`` when the body was empty or not JSON.
    """

    status: int
    json: Any = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Error-message extraction
# ---------------------------------------------------------------------------


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool | int | float):
        return str(value)
    if isinstance(value, list):
        return ", ".join(part for part in (_stringify(v) for v in value) if part)
    return ""


def extract_error_message(data: Any, fallback: str) -> str:
    """Turn a backend error body into a single human-readable line.

    Resolution order:

    1. A plain string body is returned as-is.
    2. The first non-empty string among ``detail``, ``error``, ``message``.
    3. Field errors joined as ``"field: msg. other: msg"``.
    4. *fallback*.

    Args:
        data: Decoded JSON body.
        fallback: Message to use when nothing useful is found.

    Returns:
        A non-empty message.
    """
    if not data:
        return fallback
    if isinstance(data, str):
        return data
    if not isinstance(data, dict):
        return fallback

    for key in ("detail", "error", "message"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value

    entries = []
    for name, value in data.items():
        text = _stringify(value)
        if text:
            entries.append(f"{name}: {text}")
    return ". ".join(entries) if entries else fallback


def _is_authentication_error(message: str, status: int) -> bool:
    if status != 401:
        return False
    lowered = message.lower()
    return any(phrase in lowered for phrase in _AUTH_PHRASES)


def _decode_json(response: httpx.Response) -> Any:
    """Decode *response* as JSON, degrading to ``{}`` on any failure."""
    if response.status_code == 204 or not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        logger.debug(
            "Non-JSON body from %s %s (%d bytes); treating as {}.",
            response.request.method,
            response.request.url,
            len(response.content),
        )
        return {}


# ---------------------------------------------------------------------------
# Public client
# ---------------------------------------------------------------------------


class BackendHttpClient:
    """Async client implementing the generic "send request" contract.

    Use as an ``async with`` context manager (preferred) to guarantee the
    underlying connection pool is closed on exit::

        async with BackendHttpClient(base_url=settings.backend_base_url) as c:
            resp = await c.send_request("/api/jobs/42/ranking-data/")

    Args:
        base_url: Base URL prepended to every endpoint path.
        headers: Additional default headers merged into every request.
        timeout: Default total timeout per request in seconds.  Individual
            calls may override it.
        transport: Optional custom :mod:`httpx` transport (tests pass an
            :class:`httpx.MockTransport`).
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._default_headers: dict[str, str] = headers or {}
        self._timeout = httpx.Timeout(timeout, connect=min(timeout, _DEFAULT_CONNECT_TIMEOUT))
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self._default_credential: str | None = None

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> BackendHttpClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public request methods
    # ------------------------------------------------------------------

    def set_credential(self, credential: str | None) -> None:
        """Use *credential* for every request that does not pass its own."""
        self._default_credential = credential or None

    async def send_request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any | None = None,
        *,
        credential: str | None = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> BackendResponse:
        """Perform exactly one HTTP request against the backend.

        Args:
            endpoint: Path relative to ``base_url`` (or a full URL).
            method: HTTP verb.
            body: JSON-serialisable request body, or ``None``.
            credential: Bearer token for this request only.  Falls back to
                the credential given to :meth:`set_credential`.
            params: Optional query-string parameters.
            timeout: Per-call total timeout overriding the client default.

        Returns:
            :class:`BackendResponse` on HTTP 2xx.

        Raises:
            SessionExpiredError: HTTP 401 with an authentication message.
            BackendRequestError: Any other non-2xx status.
            BackendUnavailableError: Network-level failure.
        """
        client = await self._ensure_client()

        headers: dict[str, str] = {}
        credential = credential or self._default_credential
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        request_timeout = httpx.Timeout(timeout) if timeout is not None else httpx.USE_CLIENT_DEFAULT

        logger.debug("HTTP %s %s", method, endpoint)

        try:
            response = await client.request(
                method=method,
                url=endpoint,
                params=params,
                json=body,
                headers=headers,
                timeout=request_timeout,
            )
        except httpx.TransportError as exc:
            logger.debug("Transport error on %s %s.", method, endpoint, exc_info=True)
            raise BackendUnavailableError(
                f"Could not reach the server ({type(exc).__name__})."
            ) from exc

        data = _decode_json(response)

        logger.debug(
            "HTTP %s %s → %d (%d bytes)",
            method,
            endpoint,
            response.status_code,
            len(response.content),
        )

        if response.is_success:
            return BackendResponse(status=response.status_code, json=data)

        message = extract_error_message(data, response.reason_phrase or "Request failed")
        if _is_authentication_error(message, response.status_code):
            raise SessionExpiredError(message, response.status_code, data)
        raise BackendRequestError(message, response.status_code, data)

    async def get(
        self,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        credential: str | None = None,
    ) -> BackendResponse:
        """Shorthand for a ``GET`` :meth:`send_request`."""
        return await self.send_request(endpoint, "GET", params=params, credential=credential)

    async def post(
        self,
        endpoint: str,
        body: Any | None = None,
        *,
        credential: str | None = None,
        timeout: float | None = None,
    ) -> BackendResponse:
        """Shorthand for a ``POST`` :meth:`send_request`."""
        return await self.send_request(
            endpoint, "POST", body, credential=credential, timeout=timeout
        )

    async def patch(
        self,
        endpoint: str,
        body: Any | None = None,
        *,
        credential: str | None = None,
    ) -> BackendResponse:
        """Shorthand for a ``PATCH`` :meth:`send_request`."""
        return await self.send_request(endpoint, "PATCH", body, credential=credential)

    async def close(self) -> None:
        """Close the underlying HTTP client and release pooled connections.

        Safe to call multiple times or when no requests have been made yet.
        """
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("BackendHttpClient session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Return the open HTTP client, creating it lazily if needed."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                follow_redirects=True,
                headers={
                    "Accept": "application/json",
                    **self._default_headers,
                },
            )
            logger.debug(
                "BackendHttpClient session opened (base_url=%r).", self._base_url or "(none)"
            )
        return self._http
