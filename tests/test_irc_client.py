"""Tests for IRCClient (matterbridge/adapters/irc.py)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from matterbridge.adapters.irc import IRCClient, IRCState, NamesAccumulator, _connect_with_backoff
from matterbridge.backoff import Backoff
from matterbridge.events import MessageKind
from matterbridge.gateway.router import ChannelMap, ChannelMapping

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_client(
    show_join_part: bool = False,
    nickserv_password: str = "",
) -> tuple[IRCClient, MagicMock]:
    channel_map = ChannelMap(
        [ChannelMapping(irc_channel="#dev", remote_channel="team-dev")],
        default_irc="#main",
        default_remote="town-square",
    )
    sink = MagicMock()
    sink.handle_irc = AsyncMock()
    sink.handle_names = AsyncMock()
    client = IRCClient(
        "matterbot",
        channel_map=channel_map,
        sink=sink,
        show_join_part=show_join_part,
        nickserv_password=nickserv_password,
    )
    client.nickname = "matterbot"
    return client, sink


def _mock_message(params=None):
    msg = MagicMock()
    msg.params = params or []
    return msg


def _base():
    return IRCClient.__mro__[1]


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestWelcome:
    @pytest.mark.asyncio
    async def test_joins_all_channels_with_assigned_nick(self):
        # Arrange
        client, _ = _make_client()
        client.join = AsyncMock()

        # Act
        with patch.object(_base(), "on_raw_001", AsyncMock()):
            await client.on_raw_001(_mock_message(params=["matterbot_", "Welcome"]))

        # Assert
        assert client.nickname == "matterbot_"
        assert [c.args[0] for c in client.join.await_args_list] == ["#main", "#dev"]
        assert client.state == IRCState.READY

    @pytest.mark.asyncio
    async def test_disconnect_resets_state(self):
        client, _ = _make_client()
        client.state = IRCState.READY
        with patch.object(_base(), "on_disconnect", AsyncMock()):
            await client.on_disconnect(expected=False)
        assert client.state == IRCState.DISCONNECTED


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class TestOnMessage:
    @pytest.mark.asyncio
    async def test_channel_message_dispatched(self):
        # Arrange
        client, sink = _make_client()

        # Act
        with patch.object(_base(), "on_message", AsyncMock()):
            await client.on_message("#dev", "alice", "hello world")

        # Assert
        msg = sink.handle_irc.await_args.args[0]
        assert (msg.channel, msg.sender, msg.text) == ("team-dev", "alice", "hello world")

    @pytest.mark.asyncio
    async def test_private_message_ignored(self):
        client, sink = _make_client()
        with patch.object(_base(), "on_message", AsyncMock()):
            await client.on_message("matterbot", "alice", "hi")
        sink.handle_irc.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_own_message_ignored(self):
        client, sink = _make_client()
        with patch.object(_base(), "on_message", AsyncMock()):
            await client.on_message("#dev", "matterbot", "echo")
        sink.handle_irc.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_propagate(self):
        client, sink = _make_client()
        sink.handle_irc.side_effect = RuntimeError("boom")
        with patch.object(_base(), "on_message", AsyncMock()):
            await client.on_message("#dev", "alice", "hello")
        sink.handle_irc.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_action(self):
        client, sink = _make_client()
        base_handler = AsyncMock()
        with patch.object(_base(), "on_ctcp_action", base_handler, create=True):
            await client.on_ctcp_action("alice", "#dev", "waves")
        base_handler.assert_awaited_once_with("alice", "#dev", "waves")
        msg = sink.handle_irc.await_args.args[0]
        assert msg.text == "alice waves"
        assert msg.kind == MessageKind.ACTION


class TestJoinPart:
    @pytest.mark.asyncio
    async def test_disabled_by_default(self):
        client, sink = _make_client()
        with patch.object(_base(), "on_join", AsyncMock()):
            await client.on_join("#dev", "alice")
        sink.handle_irc.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_join_and_part_announced_when_enabled(self):
        # Arrange
        client, sink = _make_client(show_join_part=True)

        # Act
        with patch.object(_base(), "on_join", AsyncMock()), patch.object(_base(), "on_part", AsyncMock()):
            await client.on_join("#dev", "alice")
            await client.on_part("#dev", "alice", "bye")
            await client.on_join("#dev", "matterbot")

        # Assert
        texts = [c.args[0].text for c in sink.handle_irc.await_args_list]
        assert texts == ["joins", "parts bye"]


class TestNickServ:
    @pytest.mark.asyncio
    async def test_identifies_on_registered_notice(self):
        client, _ = _make_client(nickserv_password="pw")
        client.message = AsyncMock()
        with patch.object(_base(), "on_notice", AsyncMock()):
            await client.on_notice("matterbot", "NickServ", "This nickname is registered. Please identify.")
        client.message.assert_awaited_once_with("NickServ", "IDENTIFY pw")

    @pytest.mark.asyncio
    async def test_no_password_no_identify(self):
        client, _ = _make_client()
        client.message = AsyncMock()
        with patch.object(_base(), "on_notice", AsyncMock()):
            await client.on_notice("matterbot", "NickServ", "This nickname is registered.")
        client.message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_notices_ignored(self):
        client, _ = _make_client(nickserv_password="pw")
        client.message = AsyncMock()
        with patch.object(_base(), "on_notice", AsyncMock()):
            await client.on_notice("matterbot", "server", "*** Looking up your hostname")
        client.message.assert_not_awaited()


# ---------------------------------------------------------------------------
# NAMES
# ---------------------------------------------------------------------------


class TestNames:
    @pytest.mark.asyncio
    async def test_requested_names_flushed_once_sorted(self):
        # Arrange
        client, sink = _make_client()
        client.rawmsg = AsyncMock()
        await client.request_names("#dev")

        # Act
        with (
            patch.object(_base(), "on_raw_353", AsyncMock()),
            patch.object(_base(), "on_raw_366", AsyncMock(), create=True),
        ):
            await client.on_raw_353(_mock_message(["matterbot", "=", "#dev", "bob alice"]))
            await client.on_raw_353(_mock_message(["matterbot", "=", "#dev", "@carol"]))
            await client.on_raw_366(_mock_message(["matterbot", "#dev", "End of /NAMES list."]))

        # Assert
        client.rawmsg.assert_awaited_once_with("NAMES", "#dev")
        sink.handle_names.assert_awaited_once_with("#dev", ["alice", "bob", "carol"])
        assert client.names.pending("#dev") == []
        assert len(client.names) == 0

    @pytest.mark.asyncio
    async def test_join_time_names_flushed_without_request(self):
        # Arrange
        client, sink = _make_client()

        # Act
        with (
            patch.object(_base(), "on_raw_353", AsyncMock()),
            patch.object(_base(), "on_raw_366", AsyncMock(), create=True),
        ):
            await client.on_raw_353(_mock_message(["matterbot", "=", "#dev", "alice bob"]))
            await client.on_raw_353(_mock_message(["matterbot", "=", "#dev", "carol"]))
            await client.on_raw_366(_mock_message(["matterbot", "#dev", "End of /NAMES list."]))

        # Assert
        sink.handle_names.assert_awaited_once_with("#dev", ["alice", "bob", "carol"])
        assert len(client.names) == 0

    @pytest.mark.asyncio
    async def test_end_without_names_posts_nothing(self):
        client, sink = _make_client()
        with patch.object(_base(), "on_raw_366", AsyncMock(), create=True):
            await client.on_raw_366(_mock_message(["matterbot", "#dev", "End of /NAMES list."]))
        sink.handle_names.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_overlapping_channels_do_not_mix(self):
        # Arrange
        client, sink = _make_client()
        client.rawmsg = AsyncMock()
        await client.request_names("#dev")
        await client.request_names("#ops")

        # Act
        with (
            patch.object(_base(), "on_raw_353", AsyncMock()),
            patch.object(_base(), "on_raw_366", AsyncMock(), create=True),
        ):
            await client.on_raw_353(_mock_message(["matterbot", "=", "#dev", "alice"]))
            await client.on_raw_353(_mock_message(["matterbot", "=", "#ops", "zed"]))
            await client.on_raw_366(_mock_message(["matterbot", "#dev", "End of /NAMES list."]))

        # Assert
        sink.handle_names.assert_awaited_once_with("#dev", ["alice"])
        assert client.names.pending("#ops") == ["zed"]


class TestNamesAccumulator:
    def test_flush_empty_is_none(self):
        assert NamesAccumulator().flush("#dev") is None

    def test_channel_keys_are_case_insensitive(self):
        acc = NamesAccumulator()
        acc.add("#Dev", ["bob"])
        acc.add("#dev", ["alice"])
        assert acc.flush("#DEV") == ["alice", "bob"]


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


class TestPrivmsg:
    @pytest.mark.asyncio
    async def test_long_line_split(self):
        client, _ = _make_client()
        client.message = AsyncMock()
        await client.privmsg("#dev", "x" * 900)
        sizes = [len(c.args[1]) for c in client.message.await_args_list]
        assert sizes == [400, 400, 100]


class TestConnectWithBackoff:
    @pytest.mark.asyncio
    async def test_retries_until_connected(self):
        # Arrange
        stop = asyncio.Event()
        calls = []

        async def connect(**kwargs):
            calls.append(kwargs)
            if len(calls) == 1:
                raise OSError("connection refused")
            stop.set()

        client = MagicMock()
        client.connect = connect
        backoff = Backoff(0.01, 0.01, jitter=False)

        # Act
        await _connect_with_backoff(client, "irc.example.net", 6697, True, False, stop=stop, backoff=backoff)

        # Assert
        assert len(calls) == 2
        assert calls[1] == {
            "hostname": "irc.example.net",
            "port": 6697,
            "tls": True,
            "tls_verify": False,
            "password": None,
        }
        assert backoff.attempt == 0

    @pytest.mark.asyncio
    async def test_returns_immediately_when_stopped(self):
        stop = asyncio.Event()
        stop.set()
        client = MagicMock()
        client.connect = AsyncMock()
        await _connect_with_backoff(client, "irc.example.net", 6667, False, stop=stop)
        client.connect.assert_not_awaited()
