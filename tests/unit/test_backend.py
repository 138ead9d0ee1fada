"""Tests for the backend HTTP client and the refresh-token identity.

All HTTP traffic goes through :class:`httpx.MockTransport`; no network I/O
occurs in this test suite.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from careersync.backend.http_client import BackendHttpClient, extract_error_message
from careersync.backend.identity import RefreshEndpointIdentity
from careersync.core.exceptions import (
    BackendRequestError,
    BackendUnavailableError,
    ConfigError,
    SessionExpiredError,
)

BASE_URL = "https://api.example.test"


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> BackendHttpClient:
    return BackendHttpClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# extract_error_message
# ---------------------------------------------------------------------------


class TestExtractErrorMessage:
    def test_prefers_detail(self) -> None:
        data = {"detail": "Token invalid", "error": "other"}
        assert extract_error_message(data, "fallback") == "Token invalid"

    def test_falls_through_to_error_then_message(self) -> None:
        assert extract_error_message({"error": "Nope"}, "fb") == "Nope"
        assert extract_error_message({"message": "Broken"}, "fb") == "Broken"

    def test_joins_field_errors(self) -> None:
        data = {"email": ["This field is required."], "clerk_user_id": ["Invalid."]}
        assert (
            extract_error_message(data, "fb")
            == "email: This field is required.. clerk_user_id: Invalid."
        )

    def test_plain_string_body(self) -> None:
        assert extract_error_message("Service down", "fb") == "Service down"

    @pytest.mark.parametrize("data", [None, {}, [], {"nested": {"a": 1}}])
    def test_fallback_when_nothing_useful(self, data: Any) -> None:
        assert extract_error_message(data, "Bad Request") == "Bad Request"


# ---------------------------------------------------------------------------
# BackendHttpClient
# ---------------------------------------------------------------------------


class TestBackendHttpClient:
    @pytest.mark.asyncio
    async def test_posts_json_with_bearer_header(self) -> None:
        seen: dict[str, Any] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            seen["path"] = request.url.path
            return httpx.Response(200, json={"ok": True})

        async with _client(handler) as client:
            response = await client.post("/api/auth/clerk-sync/", {"email": "a@b.c"}, credential="tok")

        assert response.status == 200
        assert response.json == {"ok": True}
        assert seen == {
            "auth": "Bearer tok",
            "body": {"email": "a@b.c"},
            "path": "/api/auth/clerk-sync/",
        }

    @pytest.mark.asyncio
    async def test_default_credential_used_when_none_passed(self) -> None:
        headers: list[str | None] = []

        def handler(request: httpx.Request) -> httpx.Response:
            headers.append(request.headers.get("Authorization"))
            return httpx.Response(200, json={})

        async with _client(handler) as client:
            await client.get("/a")
            client.set_credential("default")
            await client.get("/b")
            await client.get("/c", credential="explicit")

        assert headers == [None, "Bearer default", "Bearer explicit"]

    @pytest.mark.asyncio
    async def test_query_params_forwarded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["include_resume"] == "true"
            return httpx.Response(200, json={"parsing_status": "parsing"})

        async with _client(handler) as client:
            response = await client.get("/status/", params={"include_resume": "true"})
        assert response.json["parsing_status"] == "parsing"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(204),
            httpx.Response(200, content=b""),
            httpx.Response(200, content=b"<html>not json</html>"),
        ],
    )
    async def test_unparseable_body_degrades_to_empty_dict(self, response: httpx.Response) -> None:
        async with _client(lambda request: response) as client:
            result = await client.get("/anything")
        assert result.json == {}

    @pytest.mark.asyncio
    async def test_non_2xx_raises_request_error_with_message(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"email": ["Enter a valid email."]})

        async with _client(handler) as client:
            with pytest.raises(BackendRequestError) as exc_info:
                await client.post("/api/auth/clerk-sync/", {})

        err = exc_info.value
        assert err.status == 400
        assert str(err) == "email: Enter a valid email."
        assert err.data == {"email": ["Enter a valid email."]}
        assert not isinstance(err, SessionExpiredError)

    @pytest.mark.asyncio
    async def test_auth_401_raises_session_expired(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                401, json={"detail": "Authentication credentials were not provided."}
            )

        async with _client(handler) as client:
            with pytest.raises(SessionExpiredError) as exc_info:
                await client.get("/api/users/profile/")
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_non_auth_401_is_plain_request_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"detail": "Account disabled."})

        async with _client(handler) as client:
            with pytest.raises(BackendRequestError) as exc_info:
                await client.get("/api/users/profile/")
        assert type(exc_info.value) is BackendRequestError

    @pytest.mark.asyncio
    async def test_error_without_body_uses_reason_phrase(self) -> None:
        async with _client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(BackendRequestError, match="Service Unavailable"):
                await client.get("/x")

    @pytest.mark.asyncio
    async def test_transport_error_raises_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(BackendUnavailableError) as exc_info:
                await client.get("/x")
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self) -> None:
        client = _client(lambda request: httpx.Response(200))
        await client.get("/x")
        await client.close()
        await client.close()


# ---------------------------------------------------------------------------
# RefreshEndpointIdentity
# ---------------------------------------------------------------------------


class TestRefreshEndpointIdentity:
    def test_empty_refresh_token_is_config_error(self) -> None:
        with pytest.raises(ConfigError):
            RefreshEndpointIdentity(_client(lambda r: httpx.Response(200)), "")

    @pytest.mark.asyncio
    async def test_force_fresh_bypasses_cache_and_rotates_refresh(self) -> None:
        bodies: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            n = len(bodies)
            return httpx.Response(200, json={"access": f"access-{n}", "refresh": f"refresh-{n}"})

        async with _client(handler) as client:
            identity = RefreshEndpointIdentity(client, "refresh-0")
            assert await identity.get_credential() == "access-1"
            assert await identity.get_credential() == "access-1"
            assert await identity.get_credential(force_fresh=True) == "access-2"

        assert bodies == [{"refresh": "refresh-0"}, {"refresh": "refresh-1"}]

    @pytest.mark.asyncio
    async def test_missing_access_token_returns_none(self) -> None:
        async with _client(lambda r: httpx.Response(200, json={})) as client:
            identity = RefreshEndpointIdentity(client, "refresh")
            assert await identity.get_credential(force_fresh=True) is None

    @pytest.mark.asyncio
    async def test_refresh_failure_propagates(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"detail": "Token is invalid or expired"})

        async with _client(handler) as client:
            identity = RefreshEndpointIdentity(client, "refresh")
            with pytest.raises(BackendRequestError):
                await identity.get_credential(force_fresh=True)

    @pytest.mark.asyncio
    async def test_sign_out_posts_logout_and_forgets_tokens(self) -> None:
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(200, json={"access": "a"})

        async with _client(handler) as client:
            identity = RefreshEndpointIdentity(client, "refresh")
            await identity.get_credential()
            await identity.sign_out()
            assert await identity.get_credential(force_fresh=True) is None

        assert paths == ["/api/auth/token/refresh/", "/api/auth/logout/"]
