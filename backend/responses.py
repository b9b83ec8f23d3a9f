"""
Helpers for reading HTTP bodies that are supposed to be JSON but may not be.
"""

import re
from typing import Any

_HTML_RE = re.compile(r"<!doctype\s+html|<html[\s>]", re.IGNORECASE)


def looks_like_html(text: str) -> bool:
    """True if *text* contains an HTML doctype or root tag (gateway error pages)."""
    return bool(_HTML_RE.search(text))


def preview(text: str, limit: int) -> str:
    """First *limit* characters of *text*, for error messages."""
    return text[:limit]


def message_from(payload: Any, *keys: str) -> str:
    """Return the first non-empty string under *keys* in a JSON object, else ``""``."""
    if not isinstance(payload, dict):
        return ""
    for key in keys:
        value = payload.get(key)
        if value:
            return value if isinstance(value, str) else str(value)
    return ""
