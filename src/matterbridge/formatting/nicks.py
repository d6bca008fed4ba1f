"""Nick templates and NAMES-list rendering."""

from __future__ import annotations

from collections.abc import Iterable

NICK_PLACEHOLDER = "{NICK}"

# Leading characters Mattermost renders as markup; a nick prefix would break them
_MARKUP_LEADERS = frozenset("|#_*~-:>=")

# Channel membership prefixes in RPL_NAMREPLY
_MEMBERSHIP_PREFIXES = "~&@%+"


def format_irc_author(nick: str, own_nick: str, template: str | None = None) -> str:
    """Display name for an IRC author on Mattermost.

    The bridge's own nick passes through untouched. Otherwise ``template``
    has ``{NICK}`` replaced, or the default ``irc-<nick>`` is used.
    """
    if nick == own_nick:
        return nick
    if template is None:
        return f"irc-{nick}"
    return template.replace(NICK_PLACEHOLDER, nick)


def format_remote_author(username: str, template: str | None = None, *, slack_circumfix: bool = False) -> str:
    """Prefix put before each line a Mattermost user sends to IRC."""
    if template:
        return template.replace(NICK_PLACEHOLDER, username)
    if slack_circumfix:
        return f"<{username}> "
    return f"{username}: "


def is_markup(text: str) -> bool:
    """True when the message starts with a Markdown construct."""
    return bool(text) and text[0] in _MARKUP_LEADERS


def prefix_with_nick(nick: str, text: str) -> str:
    """Put the sender in front of the body; markup gets its own paragraph."""
    if is_markup(text):
        return f"{nick}\n\n{text}"
    return f"{nick} {text}"


def strip_membership_prefix(nick: str) -> str:
    return nick.lstrip(_MEMBERSHIP_PREFIXES)


def sort_nicks(nicks: Iterable[str]) -> list[str]:
    """Strip membership prefixes, drop blanks and duplicates, sort case-insensitively."""
    cleaned = {strip_membership_prefix(n.strip()) for n in nicks}
    cleaned.discard("")
    return sorted(cleaned, key=lambda n: (n.casefold(), n))


def plain_formatter(nicks: list[str], nicks_per_row: int = 4) -> str:
    return ", ".join(nicks) + " currently on IRC"


def table_formatter(nicks: list[str], nicks_per_row: int = 4) -> str:
    """Markdown table with ``nicks_per_row`` columns."""
    if not nicks:
        return plain_formatter(nicks)
    columns = max(1, min(nicks_per_row, len(nicks)))
    header = "|IRC users" + "|" * columns
    separator = "|" + ":-|" * columns
    rows = []
    for start in range(0, len(nicks), columns):
        rows.append("|" + "|".join(nicks[start : start + columns]) + "|")
    return "\n".join([header, separator, *rows])


FORMATTERS = {
    "plain": plain_formatter,
    "table": table_formatter,
}


def format_nicks(nicks: Iterable[str], style: str = "plain", nicks_per_row: int = 4) -> str:
    """Render a NAMES reply for Mattermost using the configured formatter."""
    formatter = FORMATTERS.get(style, plain_formatter)
    return formatter(sort_nicks(nicks), nicks_per_row)
