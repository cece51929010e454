"""Tests for the async operation registry."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from core.constants import OperationStatus
from core.exceptions import ConflictError, OperationNotFoundError
from workflow.async_registry import AsyncOperationHandle, AsyncOperationRegistry


def handle(operation_id="op-1", callback=None):
    return AsyncOperationHandle(
        operation_id=operation_id,
        node_id="review",
        execution_id="ex-1",
        resume_callback=callback,
    )


@pytest.mark.unit
class TestAsyncOperationRegistry:

    async def test_register_and_status(self):
        registry = AsyncOperationRegistry()
        await registry.register(handle())
        assert registry.get_status("op-1").status == OperationStatus.PENDING
        assert [h.operation_id for h in registry.list_pending("ex-1")] == ["op-1"]
        assert registry.list_pending("other") == []

    async def test_duplicate_registration_rejected(self):
        registry = AsyncOperationRegistry()
        await registry.register(handle())
        with pytest.raises(ConflictError):
            await registry.register(handle())

    async def test_complete_invokes_resume_callback(self):
        resumed = []

        async def on_resume(h):
            resumed.append((h.operation_id, h.status, h.result))

        registry = AsyncOperationRegistry()
        await registry.register(handle(callback=on_resume))
        done = await registry.complete("op-1", {"decision": "approved"})

        assert done.status == OperationStatus.COMPLETED
        assert done.completed_at is not None
        assert resumed == [("op-1", OperationStatus.COMPLETED, {"decision": "approved"})]

    async def test_fail_and_expire(self):
        registry = AsyncOperationRegistry()
        await registry.register(handle("op-1"))
        await registry.register(handle("op-2"))

        failed = await registry.fail("op-1", "underwriter rejected file")
        expired = await registry.expire("op-2")

        assert failed.status == OperationStatus.FAILED
        assert failed.error == "underwriter rejected file"
        assert expired.status == OperationStatus.TIMEOUT

    async def test_cancel_does_not_resume(self):
        resumed = []

        async def on_resume(h):
            resumed.append(h.operation_id)

        registry = AsyncOperationRegistry()
        await registry.register(handle(callback=on_resume))
        cancelled = await registry.cancel("op-1", "execution cancelled")

        assert cancelled.status == OperationStatus.CANCELLED
        assert cancelled.status.is_terminal
        assert resumed == []
        assert registry.list_pending() == []

    async def test_second_completion_conflicts(self):
        registry = AsyncOperationRegistry()
        await registry.register(handle())
        await registry.complete("op-1")
        with pytest.raises(ConflictError):
            await registry.fail("op-1", "late")

    async def test_concurrent_completion_resolves_exactly_once(self):
        calls = []

        async def on_resume(h):
            calls.append(h.operation_id)

        registry = AsyncOperationRegistry()
        await registry.register(handle(callback=on_resume))
        results = await asyncio.gather(
            registry.complete("op-1", {"n": 1}),
            registry.complete("op-1", {"n": 2}),
            registry.fail("op-1", "x"),
            return_exceptions=True,
        )
        assert sum(1 for r in results if isinstance(r, AsyncOperationHandle)) == 1
        assert sum(1 for r in results if isinstance(r, ConflictError)) == 2
        assert calls == ["op-1"]

    async def test_unknown_operation(self):
        registry = AsyncOperationRegistry()
        with pytest.raises(OperationNotFoundError):
            registry.get_status("missing")
        with pytest.raises(OperationNotFoundError):
            await registry.complete("missing")

    async def test_cleanup_evicts_only_old_terminal_handles(self):
        registry = AsyncOperationRegistry()
        await registry.register(handle("old"))
        await registry.register(handle("recent"))
        await registry.register(handle("pending"))
        await registry.complete("old")
        await registry.complete("recent")
        registry.get_status("old").completed_at = datetime.now(timezone.utc) - timedelta(hours=2)

        removed = await registry.cleanup(timedelta(hours=1))

        assert removed == 1
        with pytest.raises(OperationNotFoundError):
            registry.get_status("old")
        assert registry.get_status("recent").status == OperationStatus.COMPLETED
        assert registry.get_status("pending").status == OperationStatus.PENDING

    async def test_cleanup_accepts_seconds(self):
        registry = AsyncOperationRegistry()
        await registry.register(handle())
        await registry.complete("op-1")
        assert await registry.cleanup(0) == 1

    def test_to_dict(self):
        data = handle().to_dict()
        assert data["status"] == "pending"
        assert data["completed_at"] is None
