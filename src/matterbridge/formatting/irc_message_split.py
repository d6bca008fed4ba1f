"""Split Mattermost text into IRC-sized lines."""

from __future__ import annotations


def split_lines(content: str) -> list[str]:
    """One entry per non-empty line; IRC has no multi-line messages."""
    return [line for line in content.replace("\r", "").split("\n") if line.strip()]


def split_irc_message(content: str, max_bytes: int = 400) -> list[str]:
    """Split one line into chunks of at most ``max_bytes`` UTF-8 bytes.

    Prefers breaking at the last space in the second half of a chunk and
    never cuts a multi-byte character.
    """
    if not content:
        return []
    if len(content.encode("utf-8")) <= max_bytes:
        return [content]

    chunks: list[str] = []
    rest = content
    while rest:
        if len(rest.encode("utf-8")) <= max_bytes:
            chunks.append(rest)
            break
        # Longest character prefix that fits
        cut = 0
        size = 0
        for ch in rest:
            size += len(ch.encode("utf-8"))
            if size > max_bytes:
                break
            cut += 1
        cut = max(cut, 1)
        space = rest.rfind(" ", 0, cut)
        if space > cut // 2:
            cut = space + 1
        chunks.append(rest[:cut].rstrip(" ") or rest[:cut])
        rest = rest[cut:].lstrip(" ")
    return chunks
