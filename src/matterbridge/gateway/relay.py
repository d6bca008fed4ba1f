"""Relay: IRC -> Mattermost inline, Mattermost -> IRC through a queue and one consumer."""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Protocol

from loguru import logger

from matterbridge.errors import BridgeError, MediaLookupError
from matterbridge.events import CanonicalMessage, MessageKind
from matterbridge.formatting.irc_message_split import split_irc_message
from matterbridge.formatting.nicks import (
    format_irc_author,
    format_nicks,
    format_remote_author,
    prefix_with_nick,
    sort_nicks,
)
from matterbridge.gateway.normalize import RemoteNormalizer

if TYPE_CHECKING:
    from matterbridge.adapters.base import RemoteSession
    from matterbridge.gateway.router import ChannelMap
    from matterbridge.media import GiphyClient

HELP_TEXT = "Valid commands are: [!users, !help]"
USERS_PREFIX = "Users on Mattermost: "
GIF_ERROR = "error"

# Same budget the IRC client splits at
MAX_LINE_BYTES = 400


class IRCOutput(Protocol):
    """What the Relay needs from the IRC session."""

    nickname: str

    async def privmsg(self, channel: str, text: str) -> None: ...

    async def request_names(self, channel: str) -> None: ...


class Relay:
    """Moves CanonicalMessages between the IRC session and the remote session.

    IRC -> Mattermost runs inline on the IRC callback. Mattermost -> IRC is
    fed from ``remote.events()`` into a bounded queue drained by a single
    consumer, so posts from one origin keep their order. A failing message
    is logged and skipped; neither pump stops for it.
    """

    def __init__(
        self,
        channel_map: ChannelMap,
        irc: IRCOutput,
        remote: RemoteSession,
        *,
        normalizer: RemoteNormalizer | None = None,
        media: GiphyClient | None = None,
        remote_nick_format: str | None = None,
        prefix_messages_with_nick: bool = False,
        irc_remote_nick_format: str | None = None,
        slack_circumfix: bool = False,
        nick_formatter: str = "plain",
        nicks_per_row: int = 4,
        queue_size: int = 100,
    ) -> None:
        self._channel_map = channel_map
        self._irc = irc
        self._remote = remote
        self._normalizer = normalizer or RemoteNormalizer(channel_map, remote)
        self._media = media
        self._remote_nick_format = remote_nick_format
        self._prefix_messages_with_nick = prefix_messages_with_nick
        self._irc_remote_nick_format = irc_remote_nick_format
        self._slack_circumfix = slack_circumfix
        self._nick_formatter = nick_formatter
        self._nicks_per_row = nicks_per_row
        self._queue: asyncio.Queue[CanonicalMessage] = asyncio.Queue(maxsize=queue_size)

    @property
    def queue(self) -> asyncio.Queue[CanonicalMessage]:
        return self._queue

    @property
    def own_nick(self) -> str:
        return self._irc.nickname

    # --- IRC -> Mattermost ---

    async def handle_irc(self, msg: CanonicalMessage) -> None:
        """Relay one IRC-origin message, or answer a command addressed to the bridge."""
        if msg.kind == MessageKind.COMMAND:
            await self._irc_command(msg)
            return

        author = format_irc_author(msg.sender, self.own_nick, self._remote_nick_format)
        text = msg.text
        if msg.kind == MessageKind.JOIN_PART:
            text = f"{author} {msg.text}"
            author = self.own_nick
        elif self._prefix_messages_with_nick:
            text = prefix_with_nick(author, text)
        await self._send_remote(msg.channel, author, text, msg.kind)

    async def _irc_command(self, msg: CanonicalMessage) -> None:
        if msg.text != "!users":
            await self._irc.privmsg(msg.source_channel, HELP_TEXT)
            return
        try:
            usernames = await self._remote.usernames_in_channel(msg.channel)
        except BridgeError as exc:
            logger.warning("Relay: cannot list members of {}: {}", msg.channel, exc)
            return
        logger.info("Relay: {} asked for Mattermost users of {}", msg.sender, msg.channel)
        await self._irc.privmsg(msg.source_channel, USERS_PREFIX + ", ".join(sort_nicks(usernames)))

    async def handle_names(self, irc_channel: str, nicks: list[str]) -> None:
        """Post a flushed NAMES reply to the mapped Mattermost channel."""
        text = format_nicks(nicks, self._nick_formatter, self._nicks_per_row)
        await self._send_remote(
            self._channel_map.resolve_remote(irc_channel),
            self.own_nick,
            text,
            MessageKind.NORMAL,
        )

    async def _send_remote(self, channel: str, author: str, text: str, kind: MessageKind) -> None:
        try:
            await self._remote.send(channel, author, text, kind)
        except BridgeError as exc:
            logger.warning("Relay: dropping message for Mattermost {}: {}", channel, exc)

    # --- Mattermost -> IRC ---

    async def enqueue_remote(self, msg: CanonicalMessage) -> None:
        await self._queue.put(msg)

    async def handle_remote(self, msg: CanonicalMessage) -> None:
        """Deliver one Mattermost-origin line to IRC."""
        text = msg.text
        if msg.kind == MessageKind.COMMAND:
            command, _, rest = text.partition(" ")
            if command == "!users":
                logger.info("Relay: {} asked for IRC users of {}", msg.sender, msg.channel)
                await self._irc.request_names(msg.channel)
                return
            if command == "!gif":
                text = await self._random_gif(rest)

        prefix = format_remote_author(
            msg.sender,
            self._irc_remote_nick_format,
            slack_circumfix=self._slack_circumfix,
        )
        budget = max(1, MAX_LINE_BYTES - len(prefix.encode("utf-8")))
        for chunk in split_irc_message(text, max_bytes=budget):
            await self._irc.privmsg(msg.channel, prefix + chunk)

    async def _random_gif(self, keywords: str) -> str:
        if self._media is None:
            return GIF_ERROR
        try:
            return await self._media.random(keywords)
        except MediaLookupError as exc:
            logger.warning("Relay: !gif {} failed: {}", keywords, exc)
            return GIF_ERROR

    async def _feed(self) -> None:
        """Normalize every remote event into the queue."""
        async for evt in self._remote.events():
            try:
                messages = await self._normalizer.normalize(evt)
            except asyncio.CancelledError:
                raise
            except BridgeError as exc:
                logger.warning("Relay: cannot normalize {} event: {}", evt.action, exc)
                continue
            except Exception:
                logger.exception("Relay: normalizing {} event failed", evt.action)
                continue
            for msg in messages:
                await self.enqueue_remote(msg)

    async def _pump(self) -> None:
        """Single consumer: relays queued messages in order."""
        while True:
            msg = await self._queue.get()
            try:
                await self.handle_remote(msg)
            except asyncio.CancelledError:
                raise
            except BridgeError as exc:
                logger.warning("Relay: dropping message for IRC {}: {}", msg.channel, exc)
            except Exception:
                logger.exception("Relay: relaying to IRC {} failed", msg.channel)
            finally:
                self._queue.task_done()

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Run both remote-side tasks until ``stop`` is set or the event stream ends.

        A fatal error from the remote session (rejected credentials on
        reconnect) propagates.
        """
        stop = stop or asyncio.Event()
        feed = asyncio.create_task(self._feed(), name="relay-feed")
        pump = asyncio.create_task(self._pump(), name="relay-pump")
        stopper = asyncio.create_task(stop.wait(), name="relay-stop")
        done, pending = await asyncio.wait({feed, pump, stopper}, return_when=asyncio.FIRST_COMPLETED)
        if feed in done and feed.exception() is None and not stop.is_set():
            # Stream ended; deliver what is already queued
            await self._queue.join()
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for task in done:
            if task is not stopper and task.exception() is not None:
                raise task.exception()  # type: ignore[misc]
        logger.info("Relay stopped")
