"""Test harness for bridge testing - simulates message flow without real connections."""

from __future__ import annotations

from typing import Any

from matterbridge.adapters.irc import NamesAccumulator
from matterbridge.events import CanonicalMessage, raw_remote
from matterbridge.gateway.normalize import RemoteNormalizer, normalize_irc_message
from matterbridge.gateway.relay import Relay
from matterbridge.gateway.router import ChannelMap, ChannelMapping
from tests.mocks import FakeIRC, FakeRemoteSession


class BridgeTestHarness:
    """Wires a Relay between a FakeIRC and a FakeRemoteSession."""

    def __init__(
        self,
        mappings: list[ChannelMapping],
        *,
        default_irc: str = "#main",
        default_remote: str = "town-square",
        media: Any = None,
        remote: FakeRemoteSession | None = None,
        **relay_kwargs: Any,
    ) -> None:
        self.channel_map = ChannelMap(mappings, default_irc=default_irc, default_remote=default_remote)
        self.irc = FakeIRC()
        self.remote = remote or FakeRemoteSession()
        self.normalizer = RemoteNormalizer(self.channel_map, self.remote)
        self.names = NamesAccumulator()
        self.relay = Relay(
            self.channel_map,
            self.irc,
            self.remote,
            normalizer=self.normalizer,
            media=media,
            **relay_kwargs,
        )

    async def simulate_irc_message(self, nick: str, channel: str, text: str, *, is_action: bool = False) -> None:
        """IRC user ``nick`` says ``text`` in ``channel``."""
        msg = normalize_irc_message(
            nick,
            channel,
            text,
            own_nick=self.irc.nickname,
            channel_map=self.channel_map,
            is_action=is_action,
        )
        if msg is not None:
            await self.relay.handle_irc(msg)

    async def simulate_remote_post(
        self,
        username: str,
        channel: str,
        text: str,
        *,
        user_id: str | None = None,
    ) -> list[CanonicalMessage]:
        """Mattermost user posts ``text``; every normalized line goes through the consumer path."""
        _, evt = raw_remote("posted", text=text, user_id=user_id, username=username, channel_name=channel)
        messages = await self.normalizer.normalize(evt)
        for msg in messages:
            await self.relay.handle_remote(msg)
        return messages

    async def simulate_names(self, channel: str, batches: list[list[str]]) -> None:
        """RPL_NAMREPLY batches followed by RPL_ENDOFNAMES for ``channel``."""
        for batch in batches:
            self.names.add(channel, batch)
        nicks = self.names.flush(channel)
        await self.relay.handle_names(channel, nicks or [])

    def clear(self) -> None:
        self.irc.clear()
        self.remote.sent.clear()
