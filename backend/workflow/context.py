"""Runtime state threaded through a single workflow execution."""

import asyncio
import copy
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from core.constants import ConnectorType, ErrorCode, ExecutionMode, ExecutionStatus


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ─── Errors ───────────────────────────────────────────────────

@dataclass
class ExecutionError:
    """An error or warning recorded against an execution."""

    code: ErrorCode
    message: str
    node_id: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "message": self.message,
            "node_id": self.node_id,
            "timestamp": self.timestamp,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionError":
        return cls(
            code=ErrorCode(data["code"]),
            message=data["message"],
            node_id=data.get("node_id"),
            timestamp=data.get("timestamp") or utc_now_iso(),
            context=data.get("context") or {},
        )


# ─── Node results ─────────────────────────────────────────────

class NodeResultStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SUSPENDED = "suspended"


@dataclass
class NodeExecutionResult:
    """Outcome of running one node. Build through the classmethods."""

    status: NodeResultStatus
    output: dict[str, Any] = field(default_factory=dict)
    next_connector: ConnectorType = ConnectorType.DEFAULT
    error: Optional[ExecutionError] = None
    operation_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def succeeded(
        cls,
        output: Optional[dict[str, Any]] = None,
        next_connector: ConnectorType = ConnectorType.DEFAULT,
    ) -> "NodeExecutionResult":
        return cls(NodeResultStatus.SUCCEEDED, output or {}, next_connector)

    @classmethod
    def failed(
        cls,
        error: ExecutionError,
        output: Optional[dict[str, Any]] = None,
    ) -> "NodeExecutionResult":
        return cls(NodeResultStatus.FAILED, output or {}, ConnectorType.ERROR, error=error)

    @classmethod
    def suspended(
        cls,
        operation_id: str,
        output: Optional[dict[str, Any]] = None,
    ) -> "NodeExecutionResult":
        return cls(
            NodeResultStatus.SUSPENDED,
            output or {},
            ConnectorType.MANUAL,
            operation_id=operation_id,
        )

    @property
    def success(self) -> bool:
        return self.status == NodeResultStatus.SUCCEEDED

    @property
    def execution_time_ms(self) -> float:
        return self.metadata.get("execution_time_ms", 0)


# ─── Cancellation ─────────────────────────────────────────────

class CancellationToken:
    """Cooperative cancellation flag checked at node boundaries and awaits."""

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Execution cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


# ─── Options ──────────────────────────────────────────────────

@dataclass
class ExecutionOptions:
    timeout_ms: Optional[int] = None
    variable_overrides: dict[str, Any] = field(default_factory=dict)
    mode: ExecutionMode = ExecutionMode.SYNC
    max_iterations: Optional[int] = None
    parallel_branches: Optional[bool] = None
    execution_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ExecutionOptions":
        data = data or {}
        return cls(
            timeout_ms=data.get("timeout_ms"),
            variable_overrides=dict(data.get("variable_overrides") or {}),
            mode=ExecutionMode(data.get("mode", ExecutionMode.SYNC.value)),
            max_iterations=data.get("max_iterations"),
            parallel_branches=data.get("parallel_branches"),
            execution_id=data.get("execution_id"),
        )


# ─── Execution Context ────────────────────────────────────────

@dataclass
class ExecutionContext:
    """Per-execution state. Owned by exactly one in-flight execution."""

    execution_id: str
    workflow_id: str
    input_data: dict[str, Any] = field(default_factory=dict)
    variables: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    errors: list[ExecutionError] = field(default_factory=list)
    warnings: list[ExecutionError] = field(default_factory=list)
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: str = field(default_factory=utc_now_iso)
    cancellation: CancellationToken = field(default_factory=CancellationToken, repr=False, compare=False)
    pause_requested: Optional[str] = None
    _clock_start: float = field(default_factory=time.monotonic, repr=False, compare=False)

    def __post_init__(self):
        self.input_data = copy.deepcopy(self.input_data)
        self.metadata.setdefault("execution_path", [])

    @property
    def execution_path(self) -> list[str]:
        return self.metadata["execution_path"]

    def set_variable(self, key: str, value: Any) -> None:
        self.variables[key] = value

    def get_variable(self, key: str, default: Any = None) -> Any:
        return self.variables.get(key, default)

    def add_error(self, error: ExecutionError) -> None:
        self.errors.append(error)

    def add_warning(self, warning: ExecutionError) -> None:
        self.warnings.append(warning)

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self._clock_start) * 1000

    def condition_namespace(self, node_output: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Namespace connector and condition expressions are evaluated against."""
        namespace = dict(self.variables)
        namespace["output"] = node_output or {}
        namespace["input"] = self.input_data
        return namespace

    def to_dict(self) -> dict:
        """Serialize for pause persistence."""
        return {
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "input_data": self.input_data,
            "variables": self.variables,
            "metadata": self.metadata,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "status": self.status.value,
            "started_at": self.started_at,
            "elapsed_ms": self.elapsed_ms(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionContext":
        """Restore a paused context; the wall clock continues from elapsed_ms."""
        ctx = cls(
            execution_id=data["execution_id"],
            workflow_id=data["workflow_id"],
            input_data=data.get("input_data", {}),
            variables=dict(data.get("variables", {})),
            metadata=copy.deepcopy(data.get("metadata", {})),
            errors=[ExecutionError.from_dict(e) for e in data.get("errors", [])],
            warnings=[ExecutionError.from_dict(w) for w in data.get("warnings", [])],
            status=ExecutionStatus(data.get("status", ExecutionStatus.PAUSED.value)),
            started_at=data.get("started_at") or utc_now_iso(),
        )
        ctx._clock_start = time.monotonic() - data.get("elapsed_ms", 0) / 1000
        return ctx


# ─── Workflow result ──────────────────────────────────────────

@dataclass
class WorkflowExecutionResult:
    execution_id: str
    workflow_id: str
    status: ExecutionStatus
    output: dict[str, Any] = field(default_factory=dict)
    decision: Any = None
    execution_path: list[str] = field(default_factory=list)
    duration_ms: float = 0
    errors: list[ExecutionError] = field(default_factory=list)
    warnings: list[ExecutionError] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)
    input_data: dict[str, Any] = field(default_factory=dict)
    pending_operation_id: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "execution_id": self.execution_id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "success": self.success,
            "output": self.output,
            "decision": self.decision,
            "execution_path": list(self.execution_path),
            "duration_ms": round(self.duration_ms, 2),
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "variables": self.variables,
            "pending_operation_id": self.pending_operation_id,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }
