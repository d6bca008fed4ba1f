"""Strip IRC control codes before text reaches Mattermost."""

from __future__ import annotations

import re

BOLD = "\x02"
ITALIC = "\x1d"
UNDERLINE = "\x1f"
STRIKETHROUGH = "\x1e"
MONOSPACE = "\x11"
REVERSE = "\x16"
RESET = "\x0f"

# \x03NN[,NN] mIRC colours, \x04RRGGBB[,RRGGBB] hex colours
_COLOR_RE = re.compile(r"\x03(?:\d{1,2}(?:,\d{1,2})?)?")
_HEX_COLOR_RE = re.compile(r"\x04(?:[0-9a-fA-F]{6}(?:,[0-9a-fA-F]{6})?)?")
_TOGGLES = str.maketrans("", "", BOLD + ITALIC + UNDERLINE + STRIKETHROUGH + MONOSPACE + REVERSE + RESET)


def strip_irc_codes(content: str) -> str:
    """Remove colour and formatting control codes, keep the text."""
    if not content:
        return content
    content = _COLOR_RE.sub("", content)
    content = _HEX_COLOR_RE.sub("", content)
    return content.translate(_TOGGLES)
