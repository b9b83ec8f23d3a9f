"""
File validation — MIME allow-list and size cap.

The same rules run twice: in the browser-side session before a batch is built,
and again in the relay, which cannot assume the first check happened.
"""

from typing import Iterable, Optional

from backend.config import ALLOWED_TYPES, MAX_FILE_SIZE
from backend.models import FileHandle


def rejection_reason(content_type: str, size: int) -> Optional[str]:
    """Return a user-facing reason the file is refused, or ``None`` if it is fine."""
    if size > MAX_FILE_SIZE:
        return "ファイルサイズが大きすぎます (最大15MB)"
    if content_type not in ALLOWED_TYPES:
        return f"サポートされていないファイル形式です: {content_type}"
    return None


def is_allowed(content_type: str, size: int) -> bool:
    return rejection_reason(content_type, size) is None


def validate_files(candidates: Iterable[FileHandle]) -> list[FileHandle]:
    """
    Keep the candidates that pass both checks, in selection order.

    Rejected files are dropped without a record; callers only see that fewer
    files came back than went in.
    """
    return [f for f in candidates if is_allowed(f.content_type, f.size)]
