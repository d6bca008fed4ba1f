"""Webhook session: incoming-webhook POSTs out, outgoing-webhook payloads in."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
from aiohttp import web
from loguru import logger

from matterbridge.adapters.base import RemoteSession, SessionState
from matterbridge.errors import DeliveryError, UnsupportedOperationError
from matterbridge.events import MessageKind, RawRemoteEvent, raw_remote

WEBHOOK_PATH = "/"


def parse_bind_address(address: str) -> tuple[str, int]:
    """``host:port`` -> (host, port); an empty host listens everywhere."""
    host, _, port = address.rpartition(":")
    return host.strip("[]") or "0.0.0.0", int(port)


class WebhookSession(RemoteSession):
    """Legacy delivery mode.

    Outbound posts go to the incoming-webhook URL and are not retried. Inbound
    outgoing-webhook payloads are decoded as they arrive and queued for
    ``events()``; a configured token picks the Mattermost channel.
    """

    def __init__(
        self,
        url: str,
        *,
        bind_address: str = "0.0.0.0:9999",
        tokens: dict[str, str] | None = None,
        icon_url: str = "",
        tls_verify: bool = True,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        queue_size: int = 0,
    ) -> None:
        self._url = url
        self._bind_address = bind_address
        self._tokens = dict(tokens or {})
        self._icon_url = icon_url
        self._http = httpx.AsyncClient(timeout=timeout, verify=tls_verify, transport=transport)
        self._queue: asyncio.Queue[RawRemoteEvent] = asyncio.Queue(maxsize=queue_size)
        self._closing = asyncio.Event()
        self.app = web.Application()
        self.app.router.add_post(WEBHOOK_PATH, self.handle_post)
        self._runner: web.AppRunner | None = None
        self.state = SessionState.DISCONNECTED

    @property
    def name(self) -> str:
        return "webhook"

    async def connect(self) -> None:
        """Start the listener for outgoing-webhook payloads."""
        self.state = SessionState.CONNECTING
        host, port = parse_bind_address(self._bind_address)
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        self.state = SessionState.CONNECTED
        logger.info("Mattermost webhook listener on http://{}:{}{}", host, port, WEBHOOK_PATH)

    async def _read_payload(self, request: web.Request) -> dict[str, Any]:
        if request.content_type == "application/json":
            data = await request.json()
            return data if isinstance(data, dict) else {}
        form = await request.post()
        return {k: v for k, v in form.items() if isinstance(v, str)}

    async def handle_post(self, request: web.Request) -> web.Response:
        """POST / from a Mattermost outgoing webhook."""
        try:
            data = await self._read_payload(request)
        except (json.JSONDecodeError, ValueError):
            return web.json_response({"error": "invalid payload"}, status=400)

        token = str(data.get("token") or "")
        if self._tokens and token not in self._tokens:
            logger.warning("Webhook: rejecting payload with unknown token")
            return web.json_response({"error": "invalid token"}, status=403)

        channel = self._tokens.get(token) or str(data.get("channel_name") or "")
        _, evt = raw_remote(
            "posted",
            text=str(data.get("text") or ""),
            user_id=data.get("user_id") or None,
            username=data.get("user_name") or None,
            channel_id=data.get("channel_id") or None,
            channel_name=channel or None,
            raw=data,
        )
        logger.debug("<- Mattermost webhook {} {}: {}", channel, evt.username, evt.text)
        await self._queue.put(evt)
        return web.json_response({})

    async def events(self) -> AsyncIterator[RawRemoteEvent]:
        while not self._closing.is_set():
            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closing.wait())
            done, _ = await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                closer.cancel()
                yield getter.result()
                continue
            getter.cancel()
            break

    async def send(self, channel: str, author: str, text: str, kind: MessageKind = MessageKind.NORMAL) -> None:
        payload = {
            "channel": channel,
            "username": author,
            "icon_url": self._icon_url,
            "text": text,
            "type": "",
        }
        logger.debug("-> Mattermost webhook {} as {}: {}", channel, author, text)
        try:
            resp = await self._http.post(self._url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise DeliveryError(
                f"webhook post failed: {exc}",
                code="webhook_post",
                details={"channel": channel},
                original_error=exc,
            ) from exc

    async def join_channel(self, name: str) -> bool:
        # Incoming webhooks post anywhere the hook is allowed; nothing to join
        return False

    async def usernames_in_channel(self, name: str) -> list[str]:
        raise UnsupportedOperationError(
            "member listing needs the API mode",
            code="unsupported_in_webhook_mode",
            details={"channel": name},
        )

    async def close(self) -> None:
        self._closing.set()
        self.state = SessionState.CLOSED
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        await self._http.aclose()
