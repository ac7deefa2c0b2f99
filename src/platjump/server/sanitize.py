from __future__ import annotations

import re

from ..constants import MAX_NAME_LENGTH, MIN_NAME_LENGTH

_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_SCRIPT_RE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.DOTALL | re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
# ASCII word characters, any whitespace, dashes and dots.
_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9_\s\-.]")


def sanitize_player_name(raw: str) -> str:
    """Strip markup and anything outside `[A-Za-z0-9_ -.]` from a display name."""
    text = raw.strip()
    text = _COMMENT_RE.sub("", text)
    text = _SCRIPT_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = _DISALLOWED_RE.sub("", text)
    return text.strip()


def is_valid_player_name(name: str) -> bool:
    return MIN_NAME_LENGTH <= len(name) <= MAX_NAME_LENGTH
