"""Unit tests for the per-document task tracker."""

import asyncio

import pytest

from slr_index.document_pipeline import DocumentTaskTracker
from slr_index.models import ProcessResult


async def finish(document_id: str, gate: asyncio.Event, success: bool = True) -> ProcessResult:
    await gate.wait()
    if success:
        return ProcessResult(success=True, document_id=document_id, chunks_created=1)
    return ProcessResult.failure(document_id, "extraction_failed", "empty")


class TestDocumentTaskTracker:
    @pytest.mark.asyncio
    async def test_unknown_document_is_idle(self) -> None:
        tracker = DocumentTaskTracker()
        assert tracker.state("doc-1") == "idle"
        assert await tracker.wait("doc-1") is None

    @pytest.mark.asyncio
    async def test_running_then_succeeded(self) -> None:
        tracker = DocumentTaskTracker()
        gate = asyncio.Event()

        tracker.submit("doc-1", finish("doc-1", gate))
        assert tracker.state("doc-1") == "running"

        gate.set()
        result = await tracker.wait("doc-1")
        assert result is not None and result.success
        assert tracker.state("doc-1") == "succeeded"

    @pytest.mark.asyncio
    async def test_failed_result(self) -> None:
        tracker = DocumentTaskTracker()
        gate = asyncio.Event()
        gate.set()

        tracker.submit("doc-1", finish("doc-1", gate, success=False))
        await tracker.wait("doc-1")

        assert tracker.state("doc-1") == "failed"

    @pytest.mark.asyncio
    async def test_raised_exception_is_failed(self) -> None:
        async def boom() -> ProcessResult:
            raise RuntimeError("boom")

        tracker = DocumentTaskTracker()
        task = tracker.submit("doc-1", boom())
        with pytest.raises(RuntimeError):
            await task

        assert tracker.state("doc-1") == "failed"

    @pytest.mark.asyncio
    async def test_single_flight_reuses_running_task(self) -> None:
        tracker = DocumentTaskTracker()
        gate = asyncio.Event()

        first = tracker.submit("doc-1", finish("doc-1", gate))
        second_coro = finish("doc-1", gate)
        second = tracker.submit("doc-1", second_coro)

        assert second is first
        assert second_coro.cr_frame is None  # closed without running
        gate.set()
        await first

    @pytest.mark.asyncio
    async def test_lock_is_per_document(self) -> None:
        tracker = DocumentTaskTracker()
        assert tracker.lock("doc-1") is tracker.lock("doc-1")
        assert tracker.lock("doc-1") is not tracker.lock("doc-2")

    @pytest.mark.asyncio
    async def test_forget_drops_finished_task_and_idle_lock(self) -> None:
        tracker = DocumentTaskTracker()
        gate = asyncio.Event()
        gate.set()
        tracker.lock("doc-1")
        await tracker.submit("doc-1", finish("doc-1", gate))

        tracker.forget("doc-1")

        assert tracker.state("doc-1") == "idle"
        assert tracker._tasks == {}
        assert tracker._locks == {}

    @pytest.mark.asyncio
    async def test_forget_keeps_running_task_and_held_lock(self) -> None:
        tracker = DocumentTaskTracker()
        gate = asyncio.Event()
        task = tracker.submit("doc-1", finish("doc-1", gate))

        async with tracker.lock("doc-1"):
            tracker.forget("doc-1")
            assert "doc-1" in tracker._locks

        assert tracker.state("doc-1") == "running"
        gate.set()
        await task
