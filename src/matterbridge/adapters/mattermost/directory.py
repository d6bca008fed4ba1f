"""User and channel directory with refresh-once-on-miss lookups."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from matterbridge.adapters.mattermost.client import MattermostClient


class Directory:
    """Cached id <-> name maps for one team.

    A lookup that misses triggers exactly one refresh of that map before
    giving up. Owned by the session; no locking.
    """

    def __init__(self, client: MattermostClient, team_id: str) -> None:
        self._client = client
        self.team_id = team_id
        self.users: dict[str, str] = {}
        self.channels: dict[str, str] = {}
        self.joined: set[str] = set()
        self.user_refreshes = 0
        self.channel_refreshes = 0

    async def refresh_users(self) -> None:
        self.user_refreshes += 1
        users = await self._client.get_team_users(self.team_id)
        self.users = {str(u["id"]): str(u.get("username", "")) for u in users if u.get("id")}
        logger.debug("Directory: {} users", len(self.users))

    async def refresh_channels(self) -> None:
        self.channel_refreshes += 1
        mine = await self._client.get_my_channels(self.team_id)
        public = await self._client.get_public_channels(self.team_id)
        channels: dict[str, str] = {}
        for c in [*public, *mine]:
            if c.get("id"):
                channels[str(c["id"])] = str(c.get("name", ""))
        self.channels = channels
        self.joined = {str(c["id"]) for c in mine if c.get("id")}
        logger.debug("Directory: {} channels ({} joined)", len(self.channels), len(self.joined))

    async def refresh(self) -> None:
        await self.refresh_users()
        await self.refresh_channels()

    async def username(self, user_id: str) -> str | None:
        name = self.users.get(user_id)
        if name:
            return name
        logger.debug("Directory: user {} not cached, refreshing", user_id)
        await self.refresh_users()
        return self.users.get(user_id) or None

    async def channel_name(self, channel_id: str) -> str | None:
        name = self.channels.get(channel_id)
        if name:
            return name
        logger.debug("Directory: channel {} not cached, refreshing", channel_id)
        await self.refresh_channels()
        return self.channels.get(channel_id) or None

    def _find_channel_id(self, name: str) -> str | None:
        return next((cid for cid, cname in self.channels.items() if cname == name), None)

    async def channel_id(self, name: str) -> str | None:
        cid = self._find_channel_id(name)
        if cid:
            return cid
        logger.debug("Directory: channel name {} not cached, refreshing", name)
        await self.refresh_channels()
        return self._find_channel_id(name)

    def is_member(self, channel_id: str) -> bool:
        return channel_id in self.joined

    def mark_joined(self, channel_id: str) -> None:
        self.joined.add(channel_id)
