"""
Session-scoped result store: ordered ``id → TrackedFile`` plus the processing flag.

Nothing here is persisted; a store lives as long as the UI session (or CLI run)
that owns it.
"""

import logging
import time
from typing import Iterable, Optional

from backend.models import (
    BatchStats,
    ExtractionResult,
    FileHandle,
    FileStatus,
    TrackedFile,
)
from backend.validation import validate_files

logger = logging.getLogger(__name__)

# Legal moves of the per-file state machine; completed / error are terminal.
_TRANSITIONS = {
    FileStatus.PENDING: {FileStatus.PROCESSING},
    FileStatus.PROCESSING: {FileStatus.COMPLETED, FileStatus.ERROR},
    FileStatus.COMPLETED: set(),
    FileStatus.ERROR: set(),
}


class ResultStore:
    def __init__(self):
        self._files: dict[str, TrackedFile] = {}
        self._seq = 0
        self.processing = False

    # ── selection ────────────────────────────────────────────────────────────

    def add_files(self, candidates: Iterable[FileHandle]) -> list[TrackedFile]:
        """Validate *candidates* and append the accepted ones as pending records."""
        accepted = validate_files(candidates)
        stamp = int(time.time() * 1000)
        added = []
        for handle in accepted:
            record = TrackedFile(id=f"{stamp}-{self._seq}", name=handle.name, file=handle)
            self._seq += 1
            self._files[record.id] = record
            added.append(record)
        logger.info("Added %d file(s) to the batch", len(added))
        return added

    def remove(self, file_id: str) -> bool:
        return self._files.pop(file_id, None) is not None

    def clear(self) -> None:
        self._files.clear()

    # ── queries ──────────────────────────────────────────────────────────────

    def get(self, file_id: str) -> Optional[TrackedFile]:
        return self._files.get(file_id)

    def records(self) -> list[TrackedFile]:
        return list(self._files.values())

    def pending_ids(self) -> list[str]:
        return [f.id for f in self._files.values() if f.status == FileStatus.PENDING]

    def completed(self) -> list[TrackedFile]:
        return [f for f in self._files.values() if f.status == FileStatus.COMPLETED]

    def stats(self) -> BatchStats:
        files = self._files.values()
        return BatchStats(
            total=len(self._files),
            processed=sum(1 for f in files if f.status != FileStatus.PENDING),
            completed=sum(1 for f in files if f.status == FileStatus.COMPLETED),
            errors=sum(1 for f in files if f.status == FileStatus.ERROR),
        )

    def __len__(self) -> int:
        return len(self._files)

    # ── transitions ──────────────────────────────────────────────────────────

    def mark_processing(self, file_id: str) -> TrackedFile:
        return self._transition(file_id, FileStatus.PROCESSING, progress=50)

    def mark_completed(self, file_id: str, result: ExtractionResult) -> TrackedFile:
        return self._transition(file_id, FileStatus.COMPLETED, progress=100, result=result)

    def mark_error(self, file_id: str, message: str) -> TrackedFile:
        return self._transition(file_id, FileStatus.ERROR, progress=0, error=message)

    def requeue_interrupted(self) -> list[str]:
        """Reset records left in ``processing`` by an interrupted run back to ``pending``."""
        file_ids = [f.id for f in self._files.values() if f.status == FileStatus.PROCESSING]
        for file_id in file_ids:
            current = self._files[file_id]
            self._files[file_id] = TrackedFile(
                **{**dict(current), "status": FileStatus.PENDING, "progress": 0}
            )
        return file_ids

    def _transition(self, file_id: str, status: FileStatus, **changes) -> TrackedFile:
        current = self._files.get(file_id)
        if current is None:
            raise KeyError(file_id)
        if status not in _TRANSITIONS[current.status]:
            raise ValueError(
                f"Illegal transition for {file_id}: {current.status.value} → {status.value}"
            )
        updated = TrackedFile(**{**dict(current), "status": status, **changes})
        self._files[file_id] = updated
        return updated
