"""Message formatting and splitting for IRC <-> Mattermost."""

from matterbridge.formatting.irc_codes import strip_irc_codes
from matterbridge.formatting.irc_message_split import split_irc_message, split_lines
from matterbridge.formatting.nicks import (
    format_irc_author,
    format_nicks,
    format_remote_author,
    is_markup,
    prefix_with_nick,
    sort_nicks,
)

__all__ = [
    "format_irc_author",
    "format_nicks",
    "format_remote_author",
    "is_markup",
    "prefix_with_nick",
    "sort_nicks",
    "split_irc_message",
    "split_lines",
    "strip_irc_codes",
]
