"""Tests for the webhook session variant."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from matterbridge.adapters.base import SessionState
from matterbridge.adapters.mattermost.webhook import WebhookSession, parse_bind_address
from matterbridge.errors import DeliveryError, UnsupportedOperationError


def _json_request(payload) -> MagicMock:
    request = MagicMock()
    request.content_type = "application/json"
    request.json = AsyncMock(return_value=payload)
    return request


def _form_request(payload) -> MagicMock:
    request = MagicMock()
    request.content_type = "application/x-www-form-urlencoded"
    request.post = AsyncMock(return_value=payload)
    return request


def _session(handler=None, **kwargs) -> WebhookSession:
    transport = httpx.MockTransport(handler or (lambda r: httpx.Response(200)))
    return WebhookSession("https://chat.example.com/hooks/abc", transport=transport, **kwargs)


class TestParseBindAddress:
    def test_host_and_port(self):
        assert parse_bind_address("127.0.0.1:9999") == ("127.0.0.1", 9999)

    def test_empty_host_listens_everywhere(self):
        assert parse_bind_address(":8080") == ("0.0.0.0", 8080)

    def test_ipv6(self):
        assert parse_bind_address("[::1]:9999") == ("::1", 9999)


class TestSend:
    @pytest.mark.asyncio
    async def test_posts_incoming_webhook_payload(self):
        # Arrange
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, text="ok")

        session = _session(handler, icon_url="https://img/irc.png")

        # Act
        await session.send("team-dev", "irc-alice", "hello world")

        # Assert
        assert seen["url"] == "https://chat.example.com/hooks/abc"
        assert seen["body"] == {
            "channel": "team-dev",
            "username": "irc-alice",
            "icon_url": "https://img/irc.png",
            "text": "hello world",
            "type": "",
        }

    @pytest.mark.asyncio
    async def test_failure_is_delivery_error_without_retry(self):
        # Arrange
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        session = _session(handler)

        # Act / Assert
        with pytest.raises(DeliveryError):
            await session.send("team-dev", "irc-alice", "hello")
        assert len(calls) == 1


class TestInbound:
    @pytest.mark.asyncio
    async def test_json_payload_becomes_event(self):
        # Arrange
        session = _session()
        request = _json_request({"token": "t", "user_name": "bob", "channel_name": "team-dev", "text": "hi"})

        # Act
        resp = await session.handle_post(request)
        events = session.events()
        evt = await events.__anext__()
        await events.aclose()

        # Assert
        assert resp.status == 200
        assert (evt.action, evt.username, evt.channel_name, evt.text) == ("posted", "bob", "team-dev", "hi")

    @pytest.mark.asyncio
    async def test_form_payload_routed_by_token(self):
        # Arrange
        session = _session(tokens={"tok-dev": "team-dev"})
        request = _form_request({"token": "tok-dev", "user_name": "bob", "channel_name": "ignored", "text": "hi"})

        # Act
        resp = await session.handle_post(request)
        events = session.events()
        evt = await events.__anext__()
        await events.aclose()

        # Assert
        assert resp.status == 200
        assert evt.channel_name == "team-dev"

    @pytest.mark.asyncio
    async def test_unknown_token_rejected(self):
        session = _session(tokens={"tok-dev": "team-dev"})
        resp = await session.handle_post(_json_request({"token": "wrong", "user_name": "bob", "text": "hi"}))
        assert resp.status == 403
        assert session._queue.empty()

    @pytest.mark.asyncio
    async def test_invalid_json_rejected(self):
        session = _session()
        request = _json_request(None)
        request.json = AsyncMock(side_effect=json.JSONDecodeError("bad", "", 0))
        resp = await session.handle_post(request)
        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_events_end_after_close(self):
        session = _session()
        await session.close()
        assert [evt async for evt in session.events()] == []
        assert session.state == SessionState.CLOSED


class TestCapabilities:
    @pytest.mark.asyncio
    async def test_join_is_a_no_op(self):
        assert await _session().join_channel("team-dev") is False

    @pytest.mark.asyncio
    async def test_member_listing_unsupported(self):
        with pytest.raises(UnsupportedOperationError):
            await _session().usernames_in_channel("team-dev")

    @pytest.mark.asyncio
    async def test_connect_starts_listener(self):
        # Arrange
        session = _session(bind_address="127.0.0.1:0")

        # Act
        await session.connect()
        state = session.state
        await session.close()

        # Assert
        assert state == SessionState.CONNECTED
        assert session.state == SessionState.CLOSED
