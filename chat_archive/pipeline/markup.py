"""Markup handling for chat record text.

Record bodies arrive as HTML fragments. Matching rules run on the stripped
text; a few presentation hints (CSS classes) are only visible in the raw
markup, so callers keep both.
"""

import html
import re

_SCRIPT_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_HANDLER_ATTR_RE = re.compile(r"\s+on[a-z]+\s*=\s*(\"[^\"]*\"|'[^']*'|[^\s>]+)", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def strip_markup(text: str | None) -> str:
    """Drop tags and entities, collapse whitespace.

    Tags become spaces so adjacent blocks ("Hit</div><div>5") stay separate words.
    """
    if not text:
        return ""
    text = _SCRIPT_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text)
    return _SPACE_RE.sub(" ", text).strip()


def sanitize_markup(text: str | None) -> str:
    """Remove script blocks and inline event handlers but keep the structure."""
    if not text:
        return ""
    return _HANDLER_ATTR_RE.sub("", _SCRIPT_RE.sub("", text))


def preview(text: str, limit: int = 80) -> str:
    """First `limit` characters, with an ellipsis when truncated."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
