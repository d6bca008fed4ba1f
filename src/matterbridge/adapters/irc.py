"""IRC session: pydle client, NAMES accumulator, connect with backoff."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

import pydle
from cachetools import TTLCache
from loguru import logger

from matterbridge.backoff import Backoff
from matterbridge.events import CanonicalMessage
from matterbridge.formatting.irc_message_split import split_irc_message
from matterbridge.formatting.nicks import sort_nicks
from matterbridge.gateway.normalize import normalize_irc_join_part, normalize_irc_message

if TYPE_CHECKING:
    from matterbridge.gateway.router import ChannelMap

# Backoff: min 2s, max 60s, jitter; retried until stopped
_BACKOFF_MIN = 2
_BACKOFF_MAX = 60

# Pending NAMES replies older than this are dropped
NAMES_TTL = 60.0
NAMES_MAX_CHANNELS = 256

NICKSERV_TRIGGER = "This nickname is registered"

# Leaves headroom under the 512 byte line for "PRIVMSG #chan :" and the prefix
MAX_MESSAGE_BYTES = 400


class IRCState(str, Enum):
    DISCONNECTED = "disconnected"
    REGISTERING = "registering"
    JOINING = "joining"
    READY = "ready"


class IRCSink(Protocol):
    """Receiver of IRC-origin traffic (the Relay)."""

    async def handle_irc(self, msg: CanonicalMessage) -> None: ...

    async def handle_names(self, irc_channel: str, nicks: list[str]) -> None: ...


class NamesAccumulator:
    """Per-channel buffer for RPL_NAMREPLY lines until RPL_ENDOFNAMES."""

    def __init__(self, ttl: float = NAMES_TTL, maxsize: int = NAMES_MAX_CHANNELS) -> None:
        self._pending: TTLCache[str, list[str]] = TTLCache(maxsize=maxsize, ttl=ttl)

    def add(self, channel: str, nicks: list[str]) -> None:
        key = channel.lower()
        self._pending[key] = [*self._pending.get(key, []), *nicks]

    def flush(self, channel: str) -> list[str] | None:
        """Sorted nicks collected for ``channel``; None when nothing is pending."""
        nicks = self._pending.pop(channel.lower(), None)
        if nicks is None:
            return None
        return sort_nicks(nicks)

    def pending(self, channel: str) -> list[str]:
        return list(self._pending.get(channel.lower(), []))

    def __len__(self) -> int:
        return len(self._pending)


class IRCClient(pydle.Client):
    """Pydle client that joins every mapped channel and feeds the Relay."""

    def __init__(
        self,
        nick: str,
        *,
        channel_map: ChannelMap,
        sink: IRCSink | None = None,
        show_join_part: bool = False,
        nickserv_nick: str = "NickServ",
        nickserv_password: str = "",
        **kwargs: Any,
    ) -> None:
        super().__init__(nick, **kwargs)
        self._channel_map = channel_map
        self.sink = sink
        self._show_join_part = show_join_part
        self._nickserv_nick = nickserv_nick
        self._nickserv_password = nickserv_password
        self._names = NamesAccumulator()
        self.state = IRCState.DISCONNECTED

    @property
    def names(self) -> NamesAccumulator:
        return self._names

    @property
    def channels_to_join(self) -> list[str]:
        return self._channel_map.irc_channels()

    async def on_connect(self) -> None:
        await super().on_connect()
        if self.state == IRCState.DISCONNECTED:
            self.state = IRCState.REGISTERING

    async def on_raw_001(self, message) -> None:
        """Welcome: take the server-assigned nick, then join every channel."""
        await super().on_raw_001(message)
        params = getattr(message, "params", [])
        if params:
            self.nickname = params[0]
        logger.info("IRC registered as {}", self.nickname)
        self.state = IRCState.JOINING
        for channel in self.channels_to_join:
            logger.info("IRC joining {} as {}", channel, self.nickname)
            await self.join(channel)
        self.state = IRCState.READY

    async def on_disconnect(self, expected: bool) -> None:
        await super().on_disconnect(expected)
        self.state = IRCState.DISCONNECTED
        logger.info("IRC disconnected (expected={})", expected)

    async def _dispatch(self, msg: CanonicalMessage | None) -> None:
        if msg is None or self.sink is None:
            return
        try:
            await self.sink.handle_irc(msg)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("IRC: relaying message from {} in {} failed", msg.sender, msg.source_channel)

    async def on_message(self, target, source, message):
        """Handle channel message."""
        await super().on_message(target, source, message)
        if not target.startswith("#"):
            return
        if source == self.nickname:
            return
        logger.debug("<- IRC {} {}: {}", target, source, message)
        await self._dispatch(
            normalize_irc_message(
                source,
                target,
                message,
                own_nick=self.nickname,
                channel_map=self._channel_map,
            )
        )

    async def on_ctcp_action(self, by, target, message):
        """Handle /me action."""
        # Not every pydle release defines a base handler for CTCP ACTION
        base = getattr(super(), "on_ctcp_action", None)
        if base is not None:
            await base(by, target, message)
        if not target.startswith("#"):
            return
        if by == self.nickname:
            return
        await self._dispatch(
            normalize_irc_message(
                by,
                target,
                message,
                own_nick=self.nickname,
                channel_map=self._channel_map,
                is_action=True,
            )
        )

    async def on_join(self, channel, user):
        await super().on_join(channel, user)
        if not self._show_join_part or user == self.nickname:
            return
        await self._dispatch(
            normalize_irc_join_part(
                user,
                channel,
                joined=True,
                own_nick=self.nickname,
                channel_map=self._channel_map,
            )
        )

    async def on_part(self, channel, user, message=None):
        await super().on_part(channel, user, message)
        if not self._show_join_part or user == self.nickname:
            return
        await self._dispatch(
            normalize_irc_join_part(
                user,
                channel,
                joined=False,
                reason=message or "",
                own_nick=self.nickname,
                channel_map=self._channel_map,
            )
        )

    async def on_notice(self, target, by, message):
        await super().on_notice(target, by, message)
        if NICKSERV_TRIGGER not in (message or ""):
            return
        if not self._nickserv_password:
            logger.warning("IRC: nick {} is registered but no NickServ password is configured", self.nickname)
            return
        logger.info("IRC: identifying with {}", self._nickserv_nick)
        await self.message(self._nickserv_nick, f"IDENTIFY {self._nickserv_password}")

    async def on_raw_353(self, message) -> None:
        """RPL_NAMREPLY: me [symbol] channel :nick nick ..."""
        await super().on_raw_353(message)
        params = list(getattr(message, "params", []))
        if len(params) < 3:
            return
        channel, names = params[-2], params[-1]
        self._names.add(channel, str(names).split())

    async def on_raw_366(self, message) -> None:
        """RPL_ENDOFNAMES: flush the matching channel's accumulator."""
        # Not every pydle release defines a base handler for 366
        base = getattr(super(), "on_raw_366", None)
        if base is not None:
            await base(message)
        params = list(getattr(message, "params", []))
        if len(params) < 2:
            return
        channel = params[1]
        nicks = self._names.flush(channel)
        if nicks is None:
            logger.debug("IRC: end of NAMES for {} with no names collected", channel)
            return
        if self.sink is None:
            return
        try:
            await self.sink.handle_names(channel, nicks)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("IRC: relaying NAMES for {} failed", channel)

    async def request_names(self, channel: str) -> None:
        """Ask the server for ``channel``'s member list; the reply is relayed on 366."""
        logger.debug("-> IRC NAMES {}", channel)
        await self.rawmsg("NAMES", channel)

    async def privmsg(self, channel: str, text: str) -> None:
        for chunk in split_irc_message(text, max_bytes=MAX_MESSAGE_BYTES):
            logger.debug("-> IRC {}: {}", channel, chunk)
            await self.message(channel, chunk)


async def _connect_with_backoff(
    client: pydle.Client,
    hostname: str,
    port: int,
    tls: bool,
    tls_verify: bool = True,
    *,
    password: str | None = None,
    stop: asyncio.Event | None = None,
    backoff: Backoff | None = None,
) -> None:
    """Connect with exponential backoff and jitter on failure.

    Once connected, pydle owns reconnection; this returns when ``stop`` is set.
    """
    stop = stop or asyncio.Event()
    backoff = backoff or Backoff(_BACKOFF_MIN, _BACKOFF_MAX)
    while not stop.is_set():
        try:
            if isinstance(client, IRCClient):
                client.state = IRCState.REGISTERING
            await client.connect(
                hostname=hostname,
                port=port,
                tls=tls,
                tls_verify=tls_verify,
                password=password or None,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            wait = backoff.duration()
            logger.warning(
                "IRC connect failed (attempt {}): {}, retrying in {:.1f}s",
                backoff.attempt,
                exc,
                wait,
            )
            if isinstance(client, IRCClient):
                client.state = IRCState.DISCONNECTED
            try:
                await asyncio.wait_for(stop.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass
            continue
        backoff.reset()
        logger.info("IRC connected to {}:{} (tls={})", hostname, port, tls)
        await stop.wait()
