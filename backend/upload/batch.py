"""
Batch orchestrator — walks the pending files of a ResultStore one at a time.

    pending → processing (50) → completed (100, result) | error (0, message)

A failure is terminal for its file only; the walk always moves on to the next
pending file after waiting ``interval`` seconds.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from backend import config
from backend.errors import UploadError
from backend.models import BatchStats, ExtractionResult, FileHandle
from backend.upload.store import ResultStore

logger = logging.getLogger(__name__)

Submitter = Callable[[FileHandle], Awaitable[ExtractionResult]]
UpdateCallback = Callable[[ResultStore], None]


class BatchOrchestrator:
    def __init__(
        self,
        store: ResultStore,
        submit: Submitter,
        interval: float | None = None,
        on_update: Optional[UpdateCallback] = None,
    ):
        self.store = store
        self.submit = submit
        self.interval = config.REQUEST_INTERVAL if interval is None else interval
        self.on_update = on_update

    async def run(self) -> BatchStats:
        """Process every file that is pending right now, in batch order."""
        if self.store.processing:
            raise RuntimeError("A batch is already running for this session")

        # no run is active, so anything still "processing" was abandoned mid-flight
        requeued = self.store.requeue_interrupted()
        if requeued:
            logger.info("Requeued %d interrupted file(s)", len(requeued))

        file_ids = self.store.pending_ids()
        if not file_ids:
            return self.store.stats()

        self.store.processing = True
        logger.info("[BATCH STARTED] %d pending file(s)", len(file_ids))
        try:
            for position, file_id in enumerate(file_ids):
                if position:
                    await asyncio.sleep(self.interval)
                await self._process_one(file_id)
        finally:
            self.store.processing = False

        stats = self.store.stats()
        logger.info(
            "[BATCH COMPLETED] %d completed, %d error(s)", stats.completed, stats.errors
        )
        return stats

    async def _process_one(self, file_id: str) -> None:
        record = self.store.get(file_id)
        if record is None:
            # removed from the session after the batch started
            return

        self.store.mark_processing(file_id)
        self._notify()

        try:
            result = await self.submit(record.file)
        except UploadError as e:
            logger.warning("[FAILED] %s | %s", record.name, e)
            error = str(e)
        except Exception as e:
            logger.exception("[FAILED] %s", record.name)
            error = str(e) or "Unknown error"
        else:
            error = None

        if self.store.get(file_id) is None:
            logger.info("[SKIP] %s was removed while in flight", record.name)
            return

        if error is None:
            logger.info("[DONE] %s → %s", record.name, result.renamed_filename)
            self.store.mark_completed(file_id, result)
        else:
            self.store.mark_error(file_id, error)
        self._notify()

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.store)
