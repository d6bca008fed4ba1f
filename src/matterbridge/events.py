"""Event types: canonical relay message and raw remote event."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

Origin = Literal["irc", "mattermost"]


class MessageKind(str, Enum):
    """What a canonical message represents."""

    NORMAL = "normal"
    ACTION = "action"
    JOIN_PART = "join_part"
    COMMAND = "command"


@dataclass(frozen=True)
class CanonicalMessage:
    """Transport-agnostic message consumed once by the Relay.

    ``channel`` is already in destination naming (Mattermost channel name for
    IRC-origin messages, IRC channel for Mattermost-origin messages).
    ``source_channel`` keeps the origin-side name for replies and logging.
    """

    origin: Origin
    text: str
    channel: str
    sender: str
    kind: MessageKind = MessageKind.NORMAL
    source_channel: str = ""


@dataclass
class RawRemoteEvent:
    """One decoded event from the Mattermost side (WebSocket frame or webhook payload).

    API events carry opaque ids (``user_id``, ``channel_id``) that need a
    directory lookup; webhook payloads already carry names.
    """

    action: str
    text: str = ""
    user_id: str | None = None
    username: str | None = None
    channel_id: str | None = None
    channel_name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def event(type_name: str):
    """Decorator to mark a factory as producing an event with a given type."""

    def decorator(f: Any) -> Any:
        @functools.wraps(f)
        def wrapper(*args: Any, **kwargs: Any) -> tuple[str, object]:
            evt = f(*args, **kwargs)
            return (type_name, evt)

        wrapper.TYPE = type_name
        return wrapper

    return decorator


@event("canonical")
def canonical(
    origin: Origin,
    text: str,
    channel: str,
    sender: str,
    *,
    kind: MessageKind = MessageKind.NORMAL,
    source_channel: str = "",
) -> CanonicalMessage:
    return CanonicalMessage(
        origin=origin,
        text=text,
        channel=channel,
        sender=sender,
        kind=kind,
        source_channel=source_channel,
    )


@event("raw_remote")
def raw_remote(
    action: str,
    *,
    text: str = "",
    user_id: str | None = None,
    username: str | None = None,
    channel_id: str | None = None,
    channel_name: str | None = None,
    raw: dict[str, Any] | None = None,
) -> RawRemoteEvent:
    return RawRemoteEvent(
        action=action,
        text=text,
        user_id=user_id,
        username=username,
        channel_id=channel_id,
        channel_name=channel_name,
        raw=raw or {},
    )
