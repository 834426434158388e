"""HTTP client for the interaction-resolution backend.

This module provides the BackendClient class, which handles:
1. Logging in with email/password and keeping the returned bearer token
2. Authenticated requests to any backend REST endpoint
3. The interaction check call (POST /interactions/check)
4. Turning transport failures and non-2xx responses into BackendAPIError

Concept: server-supplied error messages
    The backend answers failures with an optional JSON body of the form
    {"message": "..."} (login failures use {"error": "..."}). The client
    keeps that text separately from the raw response so callers can show
    the server's wording first and fall back to transport details.

Usage:
    client = BackendClient()
    await client.login("nurse@example.org", "secret")
    body = await client.check_interactions(request)
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from interaction_checker.config import BACKEND_BASE_URL, CHECK_TIMEOUT_SECONDS
from interaction_checker.models import InteractionCheckRequest

logger = logging.getLogger(__name__)


class BackendAuthError(Exception):
    """Raised when login fails."""


class BackendAPIError(Exception):
    """Raised when a request fails in transport or returns a non-2xx status.

    status_code is 0 for transport failures (connection refused, timeout).
    """

    def __init__(self, status_code: int, detail: str, server_message: str | None = None) -> None:
        self.status_code = status_code
        self.detail = detail
        self.server_message = server_message
        super().__init__(f"HTTP {status_code}: {detail}")


def _server_message(response: httpx.Response, *fields: str) -> str | None:
    """Pull a human-readable message out of a JSON error body, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    for field in fields:
        value = body.get(field)
        if isinstance(value, str) and value.strip():
            return value
    return None


class LoginResult:
    """What a successful login hands back to the session layer."""

    def __init__(self, token: str, user: dict[str, Any]) -> None:
        self.token = token
        self.user = user

    @property
    def is_admin(self) -> bool:
        if "is_admin" in self.user:
            return bool(self.user["is_admin"])
        return str(self.user.get("role", "")).lower() == "admin"


class BackendClient:
    """Async HTTP client for the interaction-resolution backend.

    Attributes:
        base_url: The API root (e.g., "http://127.0.0.1:8000/api").
        token: Bearer token from the last login, or "" when logged out.
    """

    def __init__(
        self,
        base_url: str = BACKEND_BASE_URL,
        token: str = "",
        timeout: float = CHECK_TIMEOUT_SECONDS,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token

        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    def fork(self) -> BackendClient:
        """A client with its own token that shares this connection pool."""
        return BackendClient(base_url=self.base_url, http=self._http)

    # --- Auth ---

    async def login(self, email: str, password: str) -> LoginResult:
        """Log in and remember the bearer token for later requests.

        Raises:
            BackendAuthError: If the credentials are rejected or the
                backend cannot be reached.
        """
        url = f"{self.base_url}/users/login"
        try:
            response = await self._http.post(url, json={"email": email, "password": password})
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            message = _server_message(exc.response, "error", "message") or "Login failed"
            raise BackendAuthError(message) from exc
        except httpx.HTTPError as exc:
            raise BackendAuthError(f"Login request failed: {exc}") from exc

        data = response.json()
        result = LoginResult(token=data["token"], user=data.get("user") or {})
        self.token = result.token
        logger.info("Logged in as %s", result.user.get("email", email))
        return result

    def logout(self) -> None:
        """Forget the bearer token. The backend keeps no session to end."""
        self.token = ""

    # --- API Request Methods ---

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """Make a GET request to the backend and return the JSON body."""
        return await self._request("GET", endpoint, params=params)

    async def post(self, endpoint: str, json_data: dict[str, Any] | None = None) -> Any:
        """Make a POST request to the backend and return the JSON body."""
        return await self._request("POST", endpoint, json_data=json_data)

    async def check_interactions(self, request: InteractionCheckRequest) -> Any:
        """Ask the backend for every known interaction among the given ids.

        Returns:
            The raw JSON body; shape validation is left to the caller so a
            malformed body can be reported like any other failure.

        Raises:
            BackendAPIError: On transport failure or a non-2xx response.
        """
        return await self.post("/interactions/check", json_data=request.model_dump())

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request, attaching the bearer token when logged in.

        Raises:
            BackendAPIError: If the request fails or returns a non-2xx status.
        """
        url = f"{self.base_url}{endpoint}"
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = await self._http.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_data,
            )
        except httpx.HTTPError as exc:
            raise BackendAPIError(
                status_code=0,
                detail=f"Request to {url} failed: {exc}",
            ) from exc

        if response.status_code >= 400:
            raise BackendAPIError(
                status_code=response.status_code,
                detail=response.text,
                server_message=_server_message(response, "message"),
            )

        try:
            return response.json()
        except ValueError as exc:
            raise BackendAPIError(
                status_code=response.status_code,
                detail=f"Response from {url} is not valid JSON",
            ) from exc
