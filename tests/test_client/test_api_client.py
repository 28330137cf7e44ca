"""
Tests for the remote ledger HTTP client.

Covers the token store, the context-manager requirement, each endpoint
wrapper and the mapping of HTTP failures onto APIError and
AuthenticationError. Uses respx for mocking HTTP requests.
"""

import json

import httpx
import pytest
import respx
from httpx import Response

from be_better.client.api_client import (
    TOKEN_KEY,
    APIError,
    AuthenticationError,
    RemoteLedgerClient,
    TokenStore,
)
from be_better.client.storage import MemoryStorage, StorageError
from be_better.config import ClientSettings
from tests.constants import TEST_SERVER_URL

USER = {"id": "u1", "username": "alice", "email": None, "xp": 10, "coins": 55, "level": 1}


class BrokenStorage:
    def get(self, key):
        raise StorageError("read failed")

    def set(self, key, value):
        raise StorageError("write failed")

    def delete(self, key):
        raise StorageError("delete failed")


# =============================================================================
# ERROR TYPES
# =============================================================================


class TestAPIError:
    """Tests for the exception types."""

    @pytest.mark.unit
    def test_str_includes_detail(self):
        assert str(APIError("Login failed", 500, "boom")) == "Login failed: boom"
        assert str(APIError("Login failed")) == "Login failed"

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("status_code", "transient"), [(0, True), (500, True), (503, True), (400, False), (409, False)]
    )
    def test_is_transient(self, status_code, transient):
        assert APIError("x", status_code).is_transient is transient

    @pytest.mark.unit
    def test_authentication_error_is_api_error(self):
        assert isinstance(AuthenticationError("x", 401), APIError)


# =============================================================================
# TOKEN STORE
# =============================================================================


class TestTokenStore:
    """Tests for TokenStore."""

    @pytest.mark.unit
    def test_set_get_clear(self):
        storage = MemoryStorage()
        tokens = TokenStore(storage)
        assert tokens.is_authenticated is False

        tokens.set("abc")
        assert tokens.get() == "abc"
        assert storage.get(TOKEN_KEY) == "abc"
        assert tokens.is_authenticated is True

        tokens.clear()
        assert tokens.get() is None

    @pytest.mark.unit
    def test_empty_token_counts_as_missing(self):
        tokens = TokenStore(MemoryStorage({TOKEN_KEY: ""}))

        assert tokens.get() is None

    @pytest.mark.unit
    def test_storage_failures_mean_logged_out(self):
        tokens = TokenStore(BrokenStorage())

        tokens.set("abc")
        tokens.clear()

        assert tokens.get() is None
        assert tokens.is_authenticated is False


# =============================================================================
# CLIENT LIFECYCLE
# =============================================================================


class TestClientInit:
    """Tests for RemoteLedgerClient initialization."""

    @pytest.mark.unit
    def test_client_requires_context_manager(self, client_settings: ClientSettings, tokens):
        client = RemoteLedgerClient(client_settings, tokens)

        with pytest.raises(RuntimeError, match="async context manager"):
            _ = client.http_client

    @pytest.mark.asyncio
    async def test_client_context_manager(self, client_settings: ClientSettings, tokens):
        async with RemoteLedgerClient(client_settings, tokens) as client:
            assert str(client.http_client.base_url).rstrip("/") == TEST_SERVER_URL
            assert client.http_client.timeout.read == 10.0
        assert client._http_client is None


# =============================================================================
# ACCOUNT METHODS
# =============================================================================


class TestAccount:
    """register, login and logout."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_register(self, api_client: RemoteLedgerClient):
        route = respx.post(f"{TEST_SERVER_URL}/register").mock(
            return_value=Response(200, json={"ok": True, "id": "u1"})
        )

        result = await api_client.register("alice", "pw", email="a@example.com")

        assert result == {"ok": True, "id": "u1"}
        assert json.loads(route.calls.last.request.content) == {
            "username": "alice",
            "password": "pw",
            "email": "a@example.com",
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_register_conflict(self, api_client: RemoteLedgerClient):
        respx.post(f"{TEST_SERVER_URL}/register").mock(
            return_value=Response(409, json={"error": "username already taken"})
        )

        with pytest.raises(APIError) as exc_info:
            await api_client.register("alice", "pw")

        assert exc_info.value.status_code == 409
        assert exc_info.value.detail == "username already taken"

    @pytest.mark.asyncio
    @respx.mock
    async def test_login_stores_token(self, api_client: RemoteLedgerClient):
        respx.post(f"{TEST_SERVER_URL}/login").mock(
            return_value=Response(200, json={"ok": True, "token": "tok-1"})
        )

        await api_client.login("alice", "pw")

        assert api_client.tokens.get() == "tok-1"
        assert api_client.is_authenticated is True

    @pytest.mark.asyncio
    @respx.mock
    async def test_login_invalid_credentials(self, api_client: RemoteLedgerClient):
        respx.post(f"{TEST_SERVER_URL}/login").mock(
            return_value=Response(401, json={"error": "invalid credentials"})
        )

        with pytest.raises(AuthenticationError) as exc_info:
            await api_client.login("alice", "wrong")

        assert exc_info.value.status_code == 401
        assert "invalid credentials" in exc_info.value.detail
        assert api_client.is_authenticated is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_login_without_token_in_response(self, api_client: RemoteLedgerClient):
        respx.post(f"{TEST_SERVER_URL}/login").mock(return_value=Response(200, json={"ok": True}))

        with pytest.raises(APIError, match="No token"):
            await api_client.login("alice", "pw")

    @pytest.mark.asyncio
    @respx.mock
    async def test_logout(self, api_client: RemoteLedgerClient):
        api_client.tokens.set("tok-1")
        route = respx.post(f"{TEST_SERVER_URL}/logout").mock(
            return_value=Response(200, json={"ok": True})
        )

        assert await api_client.logout() is True

        assert route.calls.last.request.headers["Authorization"] == "Bearer tok-1"
        assert api_client.is_authenticated is False

    @pytest.mark.asyncio
    @respx.mock
    async def test_logout_clears_token_when_server_fails(self, api_client: RemoteLedgerClient):
        api_client.tokens.set("tok-1")
        respx.post(f"{TEST_SERVER_URL}/logout").mock(side_effect=httpx.ConnectError("down"))

        assert await api_client.logout() is True
        assert api_client.is_authenticated is False

    @pytest.mark.asyncio
    async def test_logout_when_logged_out(self, api_client: RemoteLedgerClient):
        assert await api_client.logout() is False


# =============================================================================
# LEDGER METHODS
# =============================================================================


class TestLedgerCalls:
    """get_user and modify."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_user(self, api_client: RemoteLedgerClient):
        api_client.tokens.set("tok-1")
        route = respx.get(f"{TEST_SERVER_URL}/user").mock(
            return_value=Response(200, json={"user": USER})
        )

        assert await api_client.get_user() == USER
        assert route.calls.last.request.headers["Authorization"] == "Bearer tok-1"

    @pytest.mark.asyncio
    async def test_authenticated_call_without_token_fails_fast(
        self, api_client: RemoteLedgerClient
    ):
        with pytest.raises(AuthenticationError, match="Not logged in"):
            await api_client.get_user()

    @pytest.mark.asyncio
    @respx.mock
    async def test_modify_sends_only_given_deltas(self, api_client: RemoteLedgerClient):
        api_client.tokens.set("tok-1")
        route = respx.post(f"{TEST_SERVER_URL}/user/modify").mock(
            return_value=Response(200, json={"ok": True, "user": USER})
        )

        user = await api_client.modify(xp_delta=10)

        assert user == USER
        assert json.loads(route.calls.last.request.content) == {"xpDelta": 10}

    @pytest.mark.asyncio
    @respx.mock
    async def test_modify_missing_user_record(self, api_client: RemoteLedgerClient):
        api_client.tokens.set("tok-1")
        respx.post(f"{TEST_SERVER_URL}/user/modify").mock(
            return_value=Response(200, json={"ok": True})
        )

        with pytest.raises(APIError, match="Missing user record"):
            await api_client.modify(coins_delta=-5)


# =============================================================================
# FAILURE MAPPING
# =============================================================================


class TestFailures:
    """Transport and protocol failures."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_error(self, api_client: RemoteLedgerClient):
        respx.post(f"{TEST_SERVER_URL}/login").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(APIError) as exc_info:
            await api_client.login("alice", "pw")

        assert exc_info.value.status_code == 0
        assert "Cannot connect" in exc_info.value.detail
        assert exc_info.value.is_transient

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self, api_client: RemoteLedgerClient):
        api_client.tokens.set("tok-1")
        respx.get(f"{TEST_SERVER_URL}/user").mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(APIError) as exc_info:
            await api_client.get_user()

        assert exc_info.value.status_code == 0

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_response(self, api_client: RemoteLedgerClient):
        respx.post(f"{TEST_SERVER_URL}/login").mock(return_value=Response(502, text="Bad Gateway"))

        with pytest.raises(APIError) as exc_info:
            await api_client.login("alice", "pw")

        assert exc_info.value.status_code == 502
        assert "invalid response" in exc_info.value.detail

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_object_payload(self, api_client: RemoteLedgerClient):
        respx.post(f"{TEST_SERVER_URL}/register").mock(return_value=Response(200, json=[1, 2]))

        with pytest.raises(APIError, match="non-object"):
            await api_client.register("alice", "pw")

    @pytest.mark.asyncio
    @respx.mock
    async def test_expired_session(self, api_client: RemoteLedgerClient):
        api_client.tokens.set("stale")
        respx.get(f"{TEST_SERVER_URL}/user").mock(
            return_value=Response(401, json={"error": "invalid token"})
        )

        with pytest.raises(AuthenticationError) as exc_info:
            await api_client.get_user()

        assert exc_info.value.detail == "invalid token"
