"""Remote session interface: one capability set, two variants (API client, webhooks)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import Enum
from typing import TYPE_CHECKING

from matterbridge.events import MessageKind, RawRemoteEvent

if TYPE_CHECKING:
    from matterbridge.adapters.mattermost.directory import Directory


class SessionState(str, Enum):
    """Lifecycle of a remote session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class RemoteSession(ABC):
    """Mattermost side of the bridge. Selected once from config, never swapped."""

    state: SessionState = SessionState.DISCONNECTED

    @property
    @abstractmethod
    def name(self) -> str:
        """Variant identifier ('api' or 'webhook')."""
        ...

    @property
    def self_user_id(self) -> str | None:
        """Id of the bridge's own Mattermost user, when the variant has one."""
        return None

    @property
    def self_username(self) -> str | None:
        """Username of the bridge's own Mattermost user, when the variant has one."""
        return None

    @property
    def directory(self) -> Directory | None:
        """User/channel directory for resolving ids, when the variant has one."""
        return None

    @abstractmethod
    async def connect(self) -> None:
        """Establish the session. Raises only on fatal errors."""
        ...

    @abstractmethod
    async def send(self, channel: str, author: str, text: str, kind: MessageKind = MessageKind.NORMAL) -> None:
        """Post ``text`` to the named channel. Raises DeliveryError/ChannelNotFoundError."""
        ...

    @abstractmethod
    def events(self) -> AsyncIterator[RawRemoteEvent]:
        """Long-lived stream of raw events; ends only after close()."""
        ...

    @abstractmethod
    async def join_channel(self, name: str) -> bool:
        """Join a channel if not already a member. True when a join call was made."""
        ...

    @abstractmethod
    async def usernames_in_channel(self, name: str) -> list[str]:
        """Usernames of the channel's members."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Stop every loop and release sockets."""
        ...
