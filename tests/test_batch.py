"""
Tests for backend.upload.batch — sequential processing and the status machine.
"""

import pytest

from backend.errors import NetworkError
from backend.models import ExtractionResult, FileHandle, FileStatus
from backend.upload.batch import BatchOrchestrator
from backend.upload.store import ResultStore


def _handle(name: str) -> FileHandle:
    return FileHandle(name=name, content_type="application/pdf", data=b"%PDF " + name.encode())


@pytest.fixture
def store():
    s = ResultStore()
    s.add_files([_handle("a.pdf"), _handle("b.pdf"), _handle("c.pdf")])
    return s


@pytest.fixture
def sleeps(monkeypatch):
    """Record pacing delays instead of actually sleeping."""
    recorded = []

    async def fake_sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr("backend.upload.batch.asyncio.sleep", fake_sleep)
    return recorded


class FakeSubmitter:
    """Succeeds for every file except those named in *fail*."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, handle: FileHandle) -> ExtractionResult:
        self.calls.append(handle.name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if handle.name in self.fail:
                raise NetworkError("ネットワークエラー: サーバーに接続できません")
            return ExtractionResult(renamed_filename=f"renamed_{handle.name}", amount="10")
        finally:
            self.in_flight -= 1


class TestRun:
    @pytest.mark.asyncio
    async def test_all_succeed_in_order(self, store, sleeps):
        submit = FakeSubmitter()
        stats = await BatchOrchestrator(store, submit, interval=0.5).run()

        assert submit.calls == ["a.pdf", "b.pdf", "c.pdf"]
        assert stats.completed == 3 and stats.errors == 0
        for record in store.records():
            assert record.status == FileStatus.COMPLETED
            assert record.progress == 100
            assert record.result.renamed_filename == f"renamed_{record.name}"
            assert record.error is None

    @pytest.mark.asyncio
    async def test_failure_does_not_abort_batch(self, store, sleeps):
        submit = FakeSubmitter(fail={"b.pdf"})
        stats = await BatchOrchestrator(store, submit, interval=0).run()

        assert submit.calls == ["a.pdf", "b.pdf", "c.pdf"]
        assert stats.completed == 2 and stats.errors == 1
        failed = store.records()[1]
        assert failed.status == FileStatus.ERROR
        assert failed.progress == 0
        assert failed.error == "ネットワークエラー: サーバーに接続できません"
        assert failed.result is None

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_recorded(self, store, sleeps):
        async def broken(handle):
            raise RuntimeError("socket closed")

        await BatchOrchestrator(store, broken, interval=0).run()
        assert [r.error for r in store.records()] == ["socket closed"] * 3

    @pytest.mark.asyncio
    async def test_strictly_sequential(self, store, sleeps):
        submit = FakeSubmitter()
        await BatchOrchestrator(store, submit, interval=0).run()
        assert submit.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_pacing_between_files(self, store, sleeps):
        await BatchOrchestrator(store, FakeSubmitter(), interval=0.5).run()
        assert sleeps == [0.5, 0.5]

    def test_interval_defaults_to_config(self, store, monkeypatch):
        monkeypatch.setattr("backend.config.REQUEST_INTERVAL", 1.5)
        orchestrator = BatchOrchestrator(store, FakeSubmitter())
        assert orchestrator.interval == 1.5

    @pytest.mark.asyncio
    async def test_terminal_transitions_equal_pending_count(self, store, sleeps, monkeypatch):
        await BatchOrchestrator(store, FakeSubmitter(fail={"a.pdf"}), interval=0).run()
        store.add_files([_handle("d.pdf"), _handle("e.pdf")])
        pending_before = len(store.pending_ids())

        finished = []
        mark_completed, mark_error = store.mark_completed, store.mark_error
        monkeypatch.setattr(store, "mark_completed", lambda i, r: finished.append(i) or mark_completed(i, r))
        monkeypatch.setattr(store, "mark_error", lambda i, m: finished.append(i) or mark_error(i, m))

        await BatchOrchestrator(store, FakeSubmitter(fail={"e.pdf"}), interval=0).run()
        assert len(finished) == pending_before == 2

    @pytest.mark.asyncio
    async def test_rerun_leaves_terminal_files_unchanged(self, store, sleeps):
        await BatchOrchestrator(store, FakeSubmitter(fail={"b.pdf"}), interval=0).run()
        snapshot = {r.id: (r.status, r.result, r.error) for r in store.records()}

        submit = FakeSubmitter()
        stats = await BatchOrchestrator(store, submit, interval=0).run()

        assert submit.calls == []
        assert {r.id: (r.status, r.result, r.error) for r in store.records()} == snapshot
        assert stats.completed == 2 and stats.errors == 1

    @pytest.mark.asyncio
    async def test_only_pending_files_are_submitted(self, store, sleeps):
        await BatchOrchestrator(store, FakeSubmitter(), interval=0).run()
        store.add_files([_handle("new.pdf")])

        submit = FakeSubmitter()
        await BatchOrchestrator(store, submit, interval=0).run()
        assert submit.calls == ["new.pdf"]

    @pytest.mark.asyncio
    async def test_on_update_sees_processing_state(self, store, sleeps):
        seen = []

        def on_update(s):
            seen.append([(r.status, r.progress) for r in s.records()])

        await BatchOrchestrator(store, FakeSubmitter(), interval=0, on_update=on_update).run()

        assert len(seen) == 6  # two transitions per file
        assert seen[0][0] == (FileStatus.PROCESSING, 50)
        assert seen[0][1] == (FileStatus.PENDING, 0)
        assert seen[1][0] == (FileStatus.COMPLETED, 100)

    @pytest.mark.asyncio
    async def test_processing_flag(self, store, sleeps):
        flags = []

        async def submit(handle):
            flags.append(store.processing)
            return ExtractionResult()

        await BatchOrchestrator(store, submit, interval=0).run()
        assert flags == [True, True, True]
        assert store.processing is False

    @pytest.mark.asyncio
    async def test_rejects_concurrent_run(self, store, sleeps):
        store.processing = True
        with pytest.raises(RuntimeError):
            await BatchOrchestrator(store, FakeSubmitter(), interval=0).run()

    @pytest.mark.asyncio
    async def test_empty_store(self, sleeps):
        stats = await BatchOrchestrator(ResultStore(), FakeSubmitter(), interval=0).run()
        assert stats.total == 0
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_file_removed_mid_batch_is_skipped(self, store, sleeps):
        third = store.records()[2].id
        submit = FakeSubmitter()

        async def submit_and_remove(handle):
            store.remove(third)
            return await submit(handle)

        await BatchOrchestrator(store, submit_and_remove, interval=0).run()
        assert submit.calls == ["a.pdf", "b.pdf"]
        assert store.get(third) is None

    @pytest.mark.asyncio
    async def test_file_removed_while_in_flight(self, store, sleeps):
        first = store.records()[0].id
        submit = FakeSubmitter(fail={"b.pdf"})

        async def remove_current(handle):
            if handle.name == "a.pdf":
                store.remove(first)
            return await submit(handle)

        stats = await BatchOrchestrator(store, remove_current, interval=0).run()
        assert submit.calls == ["a.pdf", "b.pdf", "c.pdf"]
        assert store.get(first) is None
        assert [r.status for r in store.records()] == [FileStatus.ERROR, FileStatus.COMPLETED]
        assert stats.total == 2

    @pytest.mark.asyncio
    async def test_failed_file_removed_while_in_flight(self, store, sleeps):
        second = store.records()[1].id
        submit = FakeSubmitter(fail={"b.pdf"})

        async def remove_current(handle):
            if handle.name == "b.pdf":
                store.remove(second)
            return await submit(handle)

        await BatchOrchestrator(store, remove_current, interval=0).run()
        assert submit.calls == ["a.pdf", "b.pdf", "c.pdf"]
        assert [r.name for r in store.records()] == ["a.pdf", "c.pdf"]

    @pytest.mark.asyncio
    async def test_interrupted_file_is_requeued(self, store, sleeps):
        a = store.records()[0].id
        store.mark_processing(a)  # left behind by an interrupted run

        submit = FakeSubmitter()
        stats = await BatchOrchestrator(store, submit, interval=0).run()
        assert submit.calls == ["a.pdf", "b.pdf", "c.pdf"]
        assert stats.completed == 3
