"""
HTTP API client for the Be Better server.

Async client for the remote ledger endpoints. It is used as an async
context manager so the underlying connection pool is always closed:

    async with RemoteLedgerClient(config.client, TokenStore(storage)) as client:
        await client.login("ana", "password")
        user = await client.modify(xp_delta=10)

The bearer token is kept in durable client storage through ``TokenStore``,
so a login survives restarts. Every failed request raises ``APIError``
(status 0 for transport failures) or its subclass ``AuthenticationError``
for 401 responses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from be_better.client.storage import Storage, StorageError
from be_better.config import ClientSettings

logger = logging.getLogger(__name__)

# Storage key of the session token.
TOKEN_KEY = "be_better_token"

# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


@dataclass
class APIError(Exception):
    """
    Exception raised when an API request fails.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code, or 0 when the server was unreachable.
        detail: The server's ``error`` text, if available.
    """

    message: str
    status_code: int = 0
    detail: str = ""

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message

    @property
    def is_transient(self) -> bool:
        """True for failures worth retrying: unreachable server or 5xx."""
        return self.status_code == 0 or self.status_code >= 500


class AuthenticationError(APIError):
    """Missing, invalid or expired credentials (HTTP 401)."""


# =============================================================================
# TOKEN STORE
# =============================================================================


class TokenStore:
    """
    Session token persisted in client storage.

    Storage failures are logged and treated as "no token", which makes the
    client behave as logged out rather than crash.
    """

    def __init__(self, storage: Storage, key: str = TOKEN_KEY) -> None:
        self.storage = storage
        self.key = key

    def get(self) -> str | None:
        try:
            return self.storage.get(self.key) or None
        except StorageError as exc:
            logger.warning("Could not read session token: %s", exc)
            return None

    def set(self, token: str) -> None:
        try:
            self.storage.set(self.key, token)
        except StorageError as exc:
            logger.warning("Could not persist session token: %s", exc)

    def clear(self) -> None:
        try:
            self.storage.delete(self.key)
        except StorageError as exc:
            logger.warning("Could not clear session token: %s", exc)

    @property
    def is_authenticated(self) -> bool:
        return self.get() is not None


# =============================================================================
# API CLIENT
# =============================================================================


@dataclass
class RemoteLedgerClient:
    """
    Async HTTP client for the remote ledger.

    Attributes:
        settings: Client settings (server URL and timeout).
        tokens: Where the bearer token is read from and written to.
    """

    settings: ClientSettings
    tokens: TokenStore

    _http_client: httpx.AsyncClient | None = field(default=None, repr=False)

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> RemoteLedgerClient:
        self._http_client = httpx.AsyncClient(
            base_url=self.settings.server_url,
            timeout=self.settings.timeout_seconds,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """
        The underlying httpx client.

        Raises:
            RuntimeError: If accessed outside of the async context manager.
        """
        if self._http_client is None:
            raise RuntimeError(
                "RemoteLedgerClient must be used as an async context manager. "
                "Use 'async with RemoteLedgerClient(...) as client:'"
            )
        return self._http_client

    @property
    def is_authenticated(self) -> bool:
        return self.tokens.is_authenticated

    # -------------------------------------------------------------------------
    # Request plumbing
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        json: dict[str, Any] | None = None,
        authenticated: bool = False,
    ) -> dict[str, Any]:
        """
        Send one request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to the server URL.
            action: Short description used in error messages ("Login").
            json: Optional JSON body.
            authenticated: Attach the bearer token; fail fast without one.

        Raises:
            AuthenticationError: No token, or the server answered 401.
            APIError: Transport failure, non-JSON body or any other non-2xx.
        """
        headers: dict[str, str] = {}
        if authenticated:
            token = self.tokens.get()
            if token is None:
                raise AuthenticationError(message=f"{action} failed", detail="Not logged in")
            headers["Authorization"] = f"Bearer {token}"

        try:
            response = await self.http_client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise APIError(
                message=f"{action} failed",
                status_code=0,
                detail=f"Cannot connect to server at {self.settings.server_url}: {e}",
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise APIError(
                message=f"{action} failed",
                status_code=response.status_code,
                detail=f"Server returned invalid response (status {response.status_code})",
            ) from e

        if not isinstance(data, dict):
            raise APIError(
                message=f"{action} failed",
                status_code=response.status_code,
                detail="Server returned a non-object payload",
            )

        if response.status_code == 401:
            raise AuthenticationError(
                message=f"{action} failed",
                status_code=401,
                detail=str(data.get("error", "Invalid or expired session")),
            )

        if not response.is_success:
            raise APIError(
                message=f"{action} failed",
                status_code=response.status_code,
                detail=str(data.get("error", "Unknown error")),
            )

        return dict(data)

    # -------------------------------------------------------------------------
    # Account Methods
    # -------------------------------------------------------------------------

    async def register(
        self, username: str, password: str, email: str | None = None
    ) -> dict[str, Any]:
        """
        Create an account.

        Returns:
            ``{"ok": True, "id": ...}``
        """
        body: dict[str, Any] = {"username": username, "password": password}
        if email:
            body["email"] = email
        return await self._request("POST", "/register", action="Registration", json=body)

    async def login(self, username: str, password: str) -> dict[str, Any]:
        """
        Authenticate and store the returned token.

        Raises:
            AuthenticationError: If credentials are invalid.
        """
        data = await self._request(
            "POST",
            "/login",
            action="Login",
            json={"username": username, "password": password},
        )
        token = data.get("token")
        if not token:
            raise APIError(message="Login failed", status_code=200, detail="No token returned")
        self.tokens.set(str(token))
        return data

    async def logout(self) -> bool:
        """
        End the session.

        The local token is always cleared, even if the server request fails;
        the server expires stale sessions on its own.

        Returns:
            False if there was no session to end.
        """
        if not self.tokens.is_authenticated:
            return False
        try:
            await self._request("POST", "/logout", action="Logout", authenticated=True)
        except APIError as e:
            logger.info("Server-side logout failed, clearing local token anyway: %s", e)
        finally:
            self.tokens.clear()
        return True

    # -------------------------------------------------------------------------
    # Ledger Methods
    # -------------------------------------------------------------------------

    async def get_user(self) -> dict[str, Any]:
        """Fetch the authenticated user's record (``id, username, xp, coins, level, ...``)."""
        data = await self._request("GET", "/user", action="Fetch user", authenticated=True)
        return _extract_user(data, "Fetch user")

    async def modify(
        self, *, xp_delta: int | None = None, coins_delta: int | None = None
    ) -> dict[str, Any]:
        """
        Apply signed deltas to the remote totals.

        Only the deltas that are given are sent.

        Returns:
            The user record with the server's new absolute totals.
        """
        body: dict[str, int] = {}
        if xp_delta is not None:
            body["xpDelta"] = xp_delta
        if coins_delta is not None:
            body["coinsDelta"] = coins_delta
        data = await self._request(
            "POST", "/user/modify", action="Modify user", json=body, authenticated=True
        )
        return _extract_user(data, "Modify user")


def _extract_user(data: dict[str, Any], action: str) -> dict[str, Any]:
    user = data.get("user")
    if not isinstance(user, dict):
        raise APIError(message=f"{action} failed", status_code=200, detail="Missing user record")
    return dict(user)
