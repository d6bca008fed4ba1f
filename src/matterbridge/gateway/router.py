"""Channel map: IRC channel <-> Mattermost channel, with default fallback."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from loguru import logger


@dataclass(frozen=True)
class ChannelMapping:
    """One configured channel pair."""

    irc_channel: str
    remote_channel: str


class ChannelMap:
    """Bidirectional lookup built once from the ordered mapping list.

    Unmapped channels route to the configured default on the other side.
    Duplicate keys resolve last-wins in configuration order. Read-only after
    construction.
    """

    def __init__(
        self,
        mappings: Iterable[ChannelMapping],
        *,
        default_irc: str,
        default_remote: str,
    ) -> None:
        self._default_irc = default_irc
        self._default_remote = default_remote
        self._to_remote: dict[str, str] = {}
        self._to_irc: dict[str, str] = {}
        self._mappings: list[ChannelMapping] = []
        for m in mappings:
            if m.irc_channel in self._to_remote:
                logger.warning(
                    "Router: IRC channel {} mapped twice; {} overrides {}",
                    m.irc_channel,
                    m.remote_channel,
                    self._to_remote[m.irc_channel],
                )
            if m.remote_channel in self._to_irc:
                logger.warning(
                    "Router: Mattermost channel {} mapped twice; {} overrides {}",
                    m.remote_channel,
                    m.irc_channel,
                    self._to_irc[m.remote_channel],
                )
            self._to_remote[m.irc_channel] = m.remote_channel
            self._to_irc[m.remote_channel] = m.irc_channel
            self._mappings.append(m)

    @classmethod
    def from_config(
        cls,
        raw: Any,
        *,
        default_irc: str,
        default_remote: str,
    ) -> ChannelMap:
        """Build from the ``mappings`` list of the config dict."""
        if not isinstance(raw, list):
            logger.warning("Router: no mappings list in config; routing everything to defaults")
            raw = []
        mappings: list[ChannelMapping] = []
        skipped = 0
        for item in raw:
            if not isinstance(item, dict):
                skipped += 1
                continue
            irc_channel = str(item.get("irc") or "")
            remote_channel = str(item.get("mattermost") or "")
            if not irc_channel or not remote_channel:
                skipped += 1
                continue
            mappings.append(ChannelMapping(irc_channel=irc_channel, remote_channel=remote_channel))
        logger.info(
            "Router: loaded {} mappings (default {} <-> {}){}",
            len(mappings),
            default_irc,
            default_remote,
            f", skipped {skipped}" if skipped else "",
        )
        return cls(mappings, default_irc=default_irc, default_remote=default_remote)

    @property
    def default_irc(self) -> str:
        return self._default_irc

    @property
    def default_remote(self) -> str:
        return self._default_remote

    def resolve_remote(self, irc_channel: str) -> str:
        """Mattermost channel for an IRC channel; default when unmapped."""
        return self._to_remote.get(irc_channel, self._default_remote)

    def resolve_irc(self, remote_channel: str) -> str:
        """IRC channel for a Mattermost channel; default when unmapped."""
        return self._to_irc.get(remote_channel, self._default_irc)

    def irc_channels(self) -> list[str]:
        """Every IRC channel the bridge must sit in, default first, no duplicates."""
        return list(dict.fromkeys([self._default_irc, *(m.irc_channel for m in self._mappings)]))

    def remote_channels(self) -> list[str]:
        """Every Mattermost channel the bridge must join, default first, no duplicates."""
        return list(dict.fromkeys([self._default_remote, *(m.remote_channel for m in self._mappings)]))

    def all_mappings(self) -> list[ChannelMapping]:
        """Return all configured mappings in order."""
        return list(self._mappings)
