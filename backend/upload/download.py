"""
Renamed copies of completed files: single download names and a zip of all.
"""

import io
import os
import zipfile
from typing import Iterable

from backend.config import FALLBACK_FILENAME
from backend.models import FileStatus, TrackedFile


def download_name(record: TrackedFile) -> str:
    """The suggested filename for a completed record."""
    if record.status != FileStatus.COMPLETED or record.result is None:
        raise ValueError(f"{record.name} has not completed processing")
    name = os.path.basename(record.result.renamed_filename)
    return FALLBACK_FILENAME if name in ("", ".", "..") else name


def unique_name(name: str, taken: set[str]) -> str:
    """Return *name*, or ``stem (n).ext`` if *name* is already in *taken*."""
    if name not in taken:
        return name
    stem, ext = os.path.splitext(name)
    n = 2
    while f"{stem} ({n}){ext}" in taken:
        n += 1
    return f"{stem} ({n}){ext}"


def archive_completed(records: Iterable[TrackedFile]) -> bytes:
    """Zip every completed record under its renamed filename."""
    buf = io.BytesIO()
    taken: set[str] = set()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for record in records:
            if record.status != FileStatus.COMPLETED:
                continue
            name = unique_name(download_name(record), taken)
            taken.add(name)
            zf.writestr(name, record.file.data)
    return buf.getvalue()
