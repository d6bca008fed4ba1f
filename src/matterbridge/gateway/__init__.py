"""Gateway: channel map, normalization, relay pumps."""

from matterbridge.gateway.normalize import RemoteNormalizer, normalize_irc_message, parse_bot_command
from matterbridge.gateway.relay import Relay
from matterbridge.gateway.router import ChannelMap, ChannelMapping

__all__ = [
    "ChannelMap",
    "ChannelMapping",
    "Relay",
    "RemoteNormalizer",
    "normalize_irc_message",
    "parse_bot_command",
]
