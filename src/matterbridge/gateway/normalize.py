"""Turn IRC callbacks and raw Mattermost events into CanonicalMessages."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from loguru import logger

from matterbridge.events import CanonicalMessage, MessageKind, RawRemoteEvent, canonical
from matterbridge.formatting.irc_codes import strip_irc_codes
from matterbridge.formatting.irc_message_split import split_lines

if TYPE_CHECKING:
    from matterbridge.adapters.base import RemoteSession
    from matterbridge.gateway.router import ChannelMap

REMOTE_COMMANDS = ("!users", "!gif")

_ADDRESS_SUFFIX = re.compile(r"[:,]+$")


def parse_bot_command(text: str, own_nick: str) -> str | None:
    """Command word when ``text`` is addressed to ``own_nick``, else None.

    ``bot: !users`` and ``bot, !users`` yield ``"!users"``. A bare ``bot:``
    or anything longer than two words yields ``""``, which gets the help
    text. Only trailing colons and commas are stripped from the first word,
    and the remainder must equal the nick exactly.
    """
    parts = text.split()
    if not parts or not own_nick:
        return None
    if _ADDRESS_SUFFIX.sub("", parts[0]) != own_nick:
        return None
    return parts[1] if len(parts) == 2 else ""


def normalize_irc_message(
    nick: str,
    target: str,
    text: str,
    *,
    own_nick: str,
    channel_map: ChannelMap,
    is_action: bool = False,
) -> CanonicalMessage | None:
    """PRIVMSG or CTCP ACTION in ``target`` from ``nick``."""
    channel = channel_map.resolve_remote(target)
    if not is_action:
        command = parse_bot_command(text, own_nick)
        if command is not None:
            _, msg = canonical(
                "irc",
                command,
                channel,
                nick,
                kind=MessageKind.COMMAND,
                source_channel=target,
            )
            return msg

    body = strip_irc_codes(text)
    if is_action:
        body = f"{nick} {body}"
    if not body.strip():
        return None
    _, msg = canonical(
        "irc",
        body,
        channel,
        nick,
        kind=MessageKind.ACTION if is_action else MessageKind.NORMAL,
        source_channel=target,
    )
    return msg


def normalize_irc_join_part(
    nick: str,
    target: str,
    *,
    joined: bool,
    own_nick: str,
    channel_map: ChannelMap,
    reason: str = "",
) -> CanonicalMessage | None:
    if nick == own_nick:
        return None
    text = "joins" if joined else f"parts {strip_irc_codes(reason)}".rstrip()
    _, msg = canonical(
        "irc",
        text,
        channel_map.resolve_remote(target),
        nick,
        kind=MessageKind.JOIN_PART,
        source_channel=target,
    )
    return msg


def _is_remote_command(line: str) -> bool:
    words = line.split(maxsplit=1)
    return bool(words) and words[0] in REMOTE_COMMANDS


def dm_partner(channel_name: str, self_user_id: str | None) -> str | None:
    """Other participant's user id in a ``<id>__<id>`` direct-message channel name."""
    if "__" not in channel_name:
        return None
    first, _, second = channel_name.partition("__")
    if not first or not second:
        return None
    return first if second == self_user_id else second


class RemoteNormalizer:
    """Normalizes raw Mattermost events; owns the lookups that need the session directory."""

    def __init__(self, channel_map: ChannelMap, session: RemoteSession) -> None:
        self._channel_map = channel_map
        self._session = session

    def _is_own(self, evt: RawRemoteEvent) -> bool:
        own_id = self._session.self_user_id
        if own_id and evt.user_id == own_id:
            return True
        own_name = self._session.self_username
        return bool(own_name) and evt.username == own_name

    async def _resolve_username(self, evt: RawRemoteEvent) -> str | None:
        if evt.username:
            return evt.username
        directory = self._session.directory
        if directory is None or not evt.user_id:
            return None
        return await directory.username(evt.user_id)

    async def _resolve_channel(self, evt: RawRemoteEvent) -> str | None:
        name = evt.channel_name
        if not name:
            directory = self._session.directory
            if directory is None or not evt.channel_id:
                return None
            name = await directory.channel_name(evt.channel_id)
            if not name:
                return None
        partner = dm_partner(name, self._session.self_user_id)
        if partner is None:
            return name
        directory = self._session.directory
        if directory is None:
            return name
        return await directory.username(partner) or None

    async def normalize(self, evt: RawRemoteEvent) -> list[CanonicalMessage]:
        """Zero or more messages, one per non-empty line, in order."""
        if evt.action != "posted":
            logger.debug("Normalizer: ignoring remote event {}", evt.action)
            return []
        if self._is_own(evt):
            return []

        username = await self._resolve_username(evt)
        if not username:
            logger.warning("Normalizer: dropping post from unknown user {}", evt.user_id)
            return []
        # Webhook payloads can name the bridge itself once resolved
        if self._session.self_username and username == self._session.self_username:
            return []
        channel = await self._resolve_channel(evt)
        if not channel:
            logger.warning("Normalizer: dropping post in unknown channel {}", evt.channel_id)
            return []

        lines = split_lines(evt.text)
        if not lines:
            return []
        irc_channel = self._channel_map.resolve_irc(channel)
        messages: list[CanonicalMessage] = []
        for i, line in enumerate(lines):
            kind = MessageKind.COMMAND if i == 0 and _is_remote_command(line) else MessageKind.NORMAL
            _, msg = canonical(
                "mattermost",
                line,
                irc_channel,
                username,
                kind=kind,
                source_channel=channel,
            )
            messages.append(msg)
        return messages
