"""
Async operation registry.

Tracks operations a suspended workflow is waiting on (manual review,
third-party callbacks). Completing or failing an operation updates the
handle under a per-operation lock, then invokes the handle's resume
callback outside the lock so the resumed execution can register new
operations freely.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from core.constants import OperationStatus
from core.exceptions import ConflictError, OperationNotFoundError

logger = structlog.get_logger(__name__)

ResumeCallback = Callable[["AsyncOperationHandle"], Awaitable[Any]]


@dataclass
class AsyncOperationHandle:
    operation_id: str
    node_id: str
    execution_id: str
    status: OperationStatus = OperationStatus.PENDING
    result: Any = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    resume_callback: Optional[ResumeCallback] = field(default=None, repr=False, compare=False)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "node_id": self.node_id,
            "execution_id": self.execution_id,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "metadata": self.metadata,
        }


class AsyncOperationRegistry:
    """In-memory registry of pending async operations."""

    def __init__(self):
        self._operations: dict[str, AsyncOperationHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._map_lock = asyncio.Lock()

    async def register(self, handle: AsyncOperationHandle) -> AsyncOperationHandle:
        async with self._map_lock:
            if handle.operation_id in self._operations:
                raise ConflictError(f"Operation {handle.operation_id} already registered")
            self._operations[handle.operation_id] = handle
            self._locks[handle.operation_id] = asyncio.Lock()
        logger.info(
            "Async operation registered",
            operation_id=handle.operation_id,
            execution_id=handle.execution_id,
            node_id=handle.node_id,
        )
        return handle

    async def complete(self, operation_id: str, result: Any = None) -> AsyncOperationHandle:
        """Mark a pending operation completed and resume its execution."""
        handle = await self._transition(operation_id, OperationStatus.COMPLETED, result=result)
        await self._resume(handle)
        return handle

    async def fail(self, operation_id: str, error: str) -> AsyncOperationHandle:
        """Mark a pending operation failed; the execution resumes on its error path."""
        handle = await self._transition(operation_id, OperationStatus.FAILED, error=error)
        await self._resume(handle)
        return handle

    async def expire(self, operation_id: str) -> AsyncOperationHandle:
        handle = await self._transition(
            operation_id, OperationStatus.TIMEOUT, error="Operation timed out"
        )
        await self._resume(handle)
        return handle

    async def cancel(self, operation_id: str, reason: str = "Operation cancelled") -> AsyncOperationHandle:
        """Retire a pending operation whose execution is gone. Nothing is resumed."""
        return await self._transition(operation_id, OperationStatus.CANCELLED, error=reason)

    def get_status(self, operation_id: str) -> AsyncOperationHandle:
        handle = self._operations.get(operation_id)
        if handle is None:
            raise OperationNotFoundError(operation_id)
        return handle

    def list_pending(self, execution_id: Optional[str] = None) -> list[AsyncOperationHandle]:
        return [
            h for h in self._operations.values()
            if h.status == OperationStatus.PENDING
            and (execution_id is None or h.execution_id == execution_id)
        ]

    async def cleanup(self, older_than: Union[datetime, timedelta, float]) -> int:
        """Evict terminal handles finished before the cutoff.

        ``older_than`` is an absolute cutoff, or an age as a timedelta or
        in seconds.
        """
        if isinstance(older_than, datetime):
            cutoff = older_than
        elif isinstance(older_than, timedelta):
            cutoff = datetime.now(timezone.utc) - older_than
        else:
            cutoff = datetime.now(timezone.utc) - timedelta(seconds=older_than)

        async with self._map_lock:
            stale = [
                op_id for op_id, h in self._operations.items()
                if h.status.is_terminal and (h.completed_at or h.created_at) < cutoff
            ]
            for op_id in stale:
                del self._operations[op_id]
                self._locks.pop(op_id, None)

        if stale:
            logger.info("Async operations cleaned up", count=len(stale))
        return len(stale)

    # ─── Internals ───────────────────────────────────────────

    async def _transition(
        self,
        operation_id: str,
        status: OperationStatus,
        result: Any = None,
        error: Optional[str] = None,
    ) -> AsyncOperationHandle:
        lock = self._locks.get(operation_id)
        if lock is None:
            raise OperationNotFoundError(operation_id)

        async with lock:
            handle = self._operations.get(operation_id)
            if handle is None:
                raise OperationNotFoundError(operation_id)
            if handle.status != OperationStatus.PENDING:
                raise ConflictError(
                    f"Operation {operation_id} is already {handle.status.value}"
                )
            handle.status = status
            handle.result = result
            handle.error = error
            handle.completed_at = datetime.now(timezone.utc)

        logger.info(
            "Async operation finished",
            operation_id=operation_id,
            execution_id=handle.execution_id,
            status=status.value,
        )
        return handle

    async def _resume(self, handle: AsyncOperationHandle) -> None:
        if handle.resume_callback is None:
            return
        await handle.resume_callback(handle)
