"""Thin Mattermost REST v4 client (httpx). Uses tenacity for GET retries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from matterbridge.errors import AuthenticationError, DeliveryError, TransientConnectionError

DEFAULT_RETRY = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(
        (
            httpx.ConnectError,
            httpx.ConnectTimeout,
            httpx.ReadTimeout,
            httpx.WriteTimeout,
            httpx.PoolTimeout,
            httpx.ReadError,
            httpx.WriteError,
        )
    ),
    reraise=True,
)

API_PREFIX = "/api/v4"
PER_PAGE = 200


@dataclass(frozen=True)
class PasswordCredentials:
    """Log in with login id (username or email) and password."""

    login: str
    password: str


@dataclass(frozen=True)
class TokenCredentials:
    """Use a pre-obtained session or personal access token."""

    token: str


Credentials = PasswordCredentials | TokenCredentials


class MattermostClient:
    """Async client for the Mattermost REST API."""

    def __init__(
        self,
        server: str,
        *,
        no_tls: bool = False,
        tls_verify: bool = True,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        server = server.rstrip("/")
        scheme = "http" if no_tls else "https"
        ws_scheme = "ws" if no_tls else "wss"
        self.server = server
        self.base_url = f"{scheme}://{server}"
        self.ws_url = f"{ws_scheme}://{server}{API_PREFIX}/websocket"
        self.tls_verify = tls_verify
        self._token: str | None = None
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            verify=tls_verify,
            transport=transport,
        )

    @property
    def token(self) -> str | None:
        return self._token

    def _headers(self) -> dict[str, str]:
        h: dict[str, str] = {"Accept": "application/json", "X-Requested-With": "XMLHttpRequest"}
        if self._token:
            h["Authorization"] = f"Bearer {self._token}"
        return h

    async def login(self, credentials: Credentials) -> dict[str, Any]:
        """Authenticate and return the current user.

        Transport failures and 5xx answers raise TransientConnectionError;
        any other rejection raises AuthenticationError.
        """
        try:
            if isinstance(credentials, TokenCredentials):
                self._token = credentials.token
                resp = await self._http.get(f"{API_PREFIX}/users/me", headers=self._headers())
            else:
                self._token = None
                resp = await self._http.post(
                    f"{API_PREFIX}/users/login",
                    json={"login_id": credentials.login, "password": credentials.password},
                    headers=self._headers(),
                )
        except httpx.TransportError as exc:
            raise TransientConnectionError(
                f"login transport error: {exc}",
                code="login_transport",
                original_error=exc,
            ) from exc

        if resp.status_code >= 500:
            raise TransientConnectionError(
                f"login failed with HTTP {resp.status_code}",
                code="login_server_error",
                details={"status": resp.status_code},
            )
        if resp.status_code >= 400:
            self._token = None
            raise AuthenticationError(
                _error_message(resp) or "login rejected",
                code="login_rejected",
                details={"status": resp.status_code},
            )

        if isinstance(credentials, PasswordCredentials):
            token = resp.headers.get("Token")
            if not token:
                raise AuthenticationError("login response carried no session token", code="login_no_token")
            self._token = token
        user = _json(resp)
        if not isinstance(user, dict) or not user.get("id"):
            raise AuthenticationError("login response carried no user", code="login_no_user")
        logger.debug("Mattermost: authenticated as {}", user.get("username"))
        return user

    @DEFAULT_RETRY
    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        resp = await self._http.get(f"{API_PREFIX}{path}", params=params, headers=self._headers())
        resp.raise_for_status()
        return _json(resp)

    async def _get_paged(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        page = 0
        while True:
            batch = await self._get(path, {**(params or {}), "page": page, "per_page": PER_PAGE})
            if not isinstance(batch, list):
                break
            items.extend(b for b in batch if isinstance(b, dict))
            if len(batch) < PER_PAGE:
                break
            page += 1
        return items

    async def _bootstrap_get(self, path: str) -> Any:
        """GET used while logging in: 5xx is transient, 401/403 is fatal."""
        try:
            return await self._get(path)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status >= 500:
                raise TransientConnectionError(
                    f"{path} failed with HTTP {status}",
                    code="bootstrap_server_error",
                    details={"status": status, "path": path},
                    original_error=exc,
                ) from exc
            if status in (401, 403):
                self._token = None
                raise AuthenticationError(
                    _error_message(exc.response) or f"{path} rejected",
                    code="bootstrap_rejected",
                    details={"status": status, "path": path},
                    original_error=exc,
                ) from exc
            raise

    async def get_me(self) -> dict[str, Any]:
        return await self._bootstrap_get("/users/me")

    async def get_my_teams(self) -> list[dict[str, Any]]:
        teams = await self._bootstrap_get("/users/me/teams")
        return teams if isinstance(teams, list) else []

    async def get_team_users(self, team_id: str) -> list[dict[str, Any]]:
        return await self._get_paged("/users", {"in_team": team_id})

    async def get_my_channels(self, team_id: str) -> list[dict[str, Any]]:
        """Channels the current user is a member of, DMs included."""
        channels = await self._get(f"/users/me/teams/{team_id}/channels")
        return channels if isinstance(channels, list) else []

    async def get_public_channels(self, team_id: str) -> list[dict[str, Any]]:
        """Public channels of the team (the "more channels" list)."""
        return await self._get_paged(f"/teams/{team_id}/channels")

    async def get_channel_usernames(self, channel_id: str) -> list[str]:
        users = await self._get_paged("/users", {"in_channel": channel_id})
        return [str(u["username"]) for u in users if u.get("username")]

    async def create_post(self, channel_id: str, message: str) -> dict[str, Any]:
        try:
            resp = await self._http.post(
                f"{API_PREFIX}/posts",
                json={"channel_id": channel_id, "message": message},
                headers=self._headers(),
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise DeliveryError(
                f"create post failed: {exc}",
                code="create_post",
                details={"channel_id": channel_id},
                original_error=exc,
            ) from exc
        return _json(resp)

    async def join_channel(self, channel_id: str, user_id: str) -> None:
        try:
            resp = await self._http.post(
                f"{API_PREFIX}/channels/{channel_id}/members",
                json={"user_id": user_id},
                headers=self._headers(),
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise DeliveryError(
                f"join channel failed: {exc}",
                code="join_channel",
                details={"channel_id": channel_id},
                original_error=exc,
            ) from exc

    async def aclose(self) -> None:
        await self._http.aclose()


def _json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def _error_message(resp: httpx.Response) -> str:
    data = _json(resp)
    if isinstance(data, dict):
        return str(data.get("message") or "")
    return ""
