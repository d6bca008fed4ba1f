"""Mattermost API-client session: login, WebSocket event stream, reconnect with backoff."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import aiohttp
import httpx
from loguru import logger

from matterbridge.adapters.base import RemoteSession, SessionState
from matterbridge.adapters.mattermost.client import Credentials, MattermostClient
from matterbridge.adapters.mattermost.directory import Directory
from matterbridge.backoff import Backoff
from matterbridge.errors import ChannelNotFoundError, DeliveryError, TeamNotFoundError, TransientConnectionError
from matterbridge.events import MessageKind, RawRemoteEvent, raw_remote

# Network-level failures while dialing or reading the WebSocket
_WS_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)

WSConnect = Callable[[str, dict[str, str]], Awaitable[Any]]


class APISession(RemoteSession):
    """Persistent REST + WebSocket session.

    ``connect()`` logs in (password or token), selects the team, dials the
    WebSocket and fills the directory. Transport failures during login or
    dial are retried forever with ``backoff``; rejected credentials and an
    unknown team are fatal. ``events()`` reads frames until ``close()`` and
    re-runs ``connect()`` on any read failure.
    """

    def __init__(
        self,
        client: MattermostClient,
        credentials: Credentials,
        team: str,
        *,
        backoff: Backoff | None = None,
        ws_connect: WSConnect | None = None,
    ) -> None:
        self._client = client
        self._credentials = credentials
        self._team_name = team
        self.backoff = backoff or Backoff()
        self._ws_connect = ws_connect
        self._http: aiohttp.ClientSession | None = None
        self._ws: Any = None
        self._closing = asyncio.Event()
        self._user: dict[str, Any] = {}
        self._team: dict[str, Any] = {}
        self._directory: Directory | None = None
        self.state = SessionState.DISCONNECTED
        self.reconnects = 0

    @property
    def name(self) -> str:
        return "api"

    @property
    def self_user_id(self) -> str | None:
        return self._user.get("id")

    @property
    def self_username(self) -> str | None:
        return self._user.get("username")

    @property
    def team_id(self) -> str | None:
        return self._team.get("id")

    @property
    def directory(self) -> Directory | None:
        return self._directory

    async def _sleep(self, delay: float) -> None:
        """Wait ``delay`` seconds or until close()."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._closing.wait(), timeout=delay)

    async def connect(self) -> None:
        if self._closing.is_set():
            return
        if self.state != SessionState.RECONNECTING:
            self.state = SessionState.CONNECTING
        await self._login_with_backoff()
        if self._closing.is_set():
            return
        await self._dial_with_backoff()
        if self._closing.is_set():
            return
        await self._populate_directory()
        self.state = SessionState.CONNECTED
        logger.info(
            "Mattermost connected to {} as {} (team {})",
            self._client.server,
            self.self_username,
            self._team_name,
        )

    async def _login_with_backoff(self) -> None:
        """Log in and select the team, retrying transport failures forever."""
        log_msg = "trying login"
        while not self._closing.is_set():
            logger.debug("Mattermost: {} {} {}", log_msg, self._team_name, self._client.server)
            try:
                self._user = await self._client.login(self._credentials)
                teams = await self._client.get_my_teams()
            except TransientConnectionError as exc:
                await self._wait_retry("login", exc)
                log_msg = "retrying login"
                continue
            except httpx.TransportError as exc:
                await self._wait_retry("bootstrap", exc)
                log_msg = "retrying login"
                continue
            self.backoff.reset()
            break
        else:
            return

        team = next((t for t in teams if t.get("name") == self._team_name), None)
        if team is None:
            raise TeamNotFoundError(
                f"team {self._team_name} not found",
                code="team_not_found",
                details={"team": self._team_name, "available": [t.get("name") for t in teams]},
            )
        self._team = team
        if self._directory is None or self._directory.team_id != team.get("id"):
            self._directory = Directory(self._client, str(team["id"]))
        logger.debug("Mattermost: found id {} for team {}", team.get("id"), self._team_name)

    async def _wait_retry(self, step: str, exc: BaseException) -> None:
        delay = self.backoff.duration()
        logger.warning(
            "Mattermost {} failed (attempt {}): {}, retrying in {:.1f}s",
            step,
            self.backoff.attempt,
            exc,
            delay,
        )
        await self._sleep(delay)

    async def _open_ws(self) -> Any:
        headers = {"Authorization": f"Bearer {self._client.token}"}
        if self._ws_connect is not None:
            return await self._ws_connect(self._client.ws_url, headers)
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
        return await self._http.ws_connect(
            self._client.ws_url,
            headers=headers,
            ssl=self._client.tls_verify,
            autoping=False,
        )

    async def _dial_with_backoff(self) -> None:
        logger.debug("Mattermost: opening WebSocket {}", self._client.ws_url)
        while not self._closing.is_set():
            try:
                self._ws = await self._open_ws()
            except _WS_ERRORS as exc:
                await self._wait_retry("WebSocket dial", exc)
                continue
            self.backoff.reset()
            return

    async def _populate_directory(self) -> None:
        if self._directory is None:
            return
        try:
            await self._directory.refresh()
        except httpx.HTTPError as exc:
            # Lookups refresh again on miss
            logger.warning("Mattermost: directory refresh failed: {}", exc)

    async def _reconnect(self, reason: object) -> None:
        logger.warning("Mattermost WebSocket lost ({}), reconnecting", reason)
        self.state = SessionState.RECONNECTING
        self.reconnects += 1
        await self._close_ws()
        await self.connect()

    async def _close_ws(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None and not getattr(ws, "closed", True):
            with contextlib.suppress(*_WS_ERRORS):
                await ws.close()

    async def events(self) -> AsyncIterator[RawRemoteEvent]:
        while not self._closing.is_set():
            if self._ws is None or self._ws.closed:
                await self._reconnect("not connected")
                continue
            try:
                msg = await self._ws.receive()
            except _WS_ERRORS as exc:
                if self._closing.is_set():
                    break
                await self._reconnect(exc)
                continue

            if msg.type == aiohttp.WSMsgType.PING:
                logger.debug("Mattermost: WS PING")
                with contextlib.suppress(*_WS_ERRORS):
                    await self._ws.pong(msg.data)
                continue
            if msg.type == aiohttp.WSMsgType.PONG:
                continue
            if msg.type in (
                aiohttp.WSMsgType.CLOSE,
                aiohttp.WSMsgType.CLOSING,
                aiohttp.WSMsgType.CLOSED,
                aiohttp.WSMsgType.ERROR,
            ):
                if self._closing.is_set():
                    break
                await self._reconnect(msg.type.name)
                continue
            if msg.type != aiohttp.WSMsgType.TEXT:
                logger.debug("Mattermost: ignoring WS frame type {}", msg.type)
                continue

            evt = self._decode(msg.data)
            if evt is not None:
                yield evt

    def _decode(self, data: str) -> RawRemoteEvent | None:
        try:
            frame = json.loads(data)
        except ValueError:
            logger.debug("Mattermost: undecodable frame {!r}", data[:200])
            return None
        if not isinstance(frame, dict):
            return None
        action = frame.get("event") or frame.get("action")
        if not action:
            # seq_reply acknowledgements
            return None
        if action == "ping":
            logger.debug("Mattermost: keepalive event")
            return None
        if action != "posted":
            logger.debug("Mattermost: unhandled event {}", action)
            _, evt = raw_remote(str(action), raw=frame)
            return evt

        post: Any = (frame.get("data") or {}).get("post") or {}
        if isinstance(post, str):
            try:
                post = json.loads(post)
            except ValueError:
                logger.debug("Mattermost: undecodable post body")
                return None
        if not isinstance(post, dict):
            return None
        post_type = str(post.get("type") or "")
        if post_type.startswith("system_"):
            logger.debug("Mattermost: skipping system post {}", post_type)
            return None
        _, evt = raw_remote(
            "posted",
            text=str(post.get("message") or ""),
            user_id=post.get("user_id"),
            channel_id=post.get("channel_id"),
            raw=frame,
        )
        return evt

    async def _require_channel_id(self, name: str) -> str:
        if self._directory is None:
            raise ChannelNotFoundError(f"not connected; cannot resolve {name}", code="not_connected")
        try:
            channel_id = await self._directory.channel_id(name)
        except httpx.HTTPError as exc:
            raise ChannelNotFoundError(
                f"cannot resolve channel {name}: {exc}",
                code="directory_unavailable",
                details={"channel": name},
                original_error=exc,
            ) from exc
        if not channel_id:
            raise ChannelNotFoundError(
                f"channel {name} not found",
                code="channel_not_found",
                details={"channel": name},
            )
        return channel_id

    async def send(self, channel: str, author: str, text: str, kind: MessageKind = MessageKind.NORMAL) -> None:
        channel_id = await self._require_channel_id(channel)
        logger.debug("-> Mattermost channel {} ({}): {}", channel, kind.value, text)
        await self._client.create_post(channel_id, text)

    async def join_channel(self, name: str) -> bool:
        clean = name.replace("#", "", 1)
        channel_id = await self._require_channel_id(clean)
        assert self._directory is not None
        if self._directory.is_member(channel_id):
            logger.debug("Mattermost: not joining {}, already joined", clean)
            return False
        logger.info("Mattermost: joining {}", clean)
        await self._client.join_channel(channel_id, str(self.self_user_id))
        self._directory.mark_joined(channel_id)
        return True

    async def usernames_in_channel(self, name: str) -> list[str]:
        channel_id = await self._require_channel_id(name)
        try:
            return await self._client.get_channel_usernames(channel_id)
        except httpx.HTTPError as exc:
            raise DeliveryError(
                f"member listing for {name} failed: {exc}",
                code="channel_members",
                details={"channel": name},
                original_error=exc,
            ) from exc

    async def close(self) -> None:
        self._closing.set()
        self.state = SessionState.CLOSED
        await self._close_ws()
        if self._http is not None:
            await self._http.close()
            self._http = None
        await self._client.aclose()
