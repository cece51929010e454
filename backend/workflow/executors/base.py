"""
Base node executor interface.

Every node type the orchestrator can run has an executor that inherits
from BaseNodeExecutor and implements execute(). The orchestrator only
ever calls run(), which adds timing and turns exceptions into failed
results.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import structlog

from core.constants import ErrorCode, NodeType
from workflow.context import ExecutionContext, ExecutionError, NodeExecutionResult

logger = structlog.get_logger(__name__)


@dataclass
class NodeValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def to_dict(self) -> dict:
        return {"is_valid": self.is_valid, "errors": self.errors, "warnings": self.warnings}


class BaseNodeExecutor(ABC):
    """
    Abstract base class for node executors.

    Subclasses must implement:
    - execute(node, context) -> NodeExecutionResult
    - node_type (class property)
    """

    node_type: NodeType

    @abstractmethod
    async def execute(self, node, context: ExecutionContext) -> NodeExecutionResult:
        """Run the node against the execution context.

        Executors may read context.variables but must not mutate them; the
        orchestrator merges the returned output.
        """

    async def run(self, node, context: ExecutionContext) -> NodeExecutionResult:
        """Execute with timing and error capture. Never raises."""
        start = time.monotonic()
        try:
            result = await self.execute(node, context)
        except Exception as e:
            logger.error(
                "Node execution failed",
                node_id=node.id,
                node_type=node.type,
                execution_id=context.execution_id,
                error=str(e),
            )
            result = NodeExecutionResult.failed(
                ExecutionError(
                    code=ErrorCode.NODE_EXECUTION_FAILED,
                    message=str(e) or type(e).__name__,
                    node_id=node.id,
                    context={"exception": type(e).__name__},
                )
            )

        result.metadata["execution_time_ms"] = round((time.monotonic() - start) * 1000, 3)
        return result

    def validate(self, node) -> NodeValidationResult:
        result = NodeValidationResult()
        if not node.id:
            result.add_error("Node id is required")
        if not node.data.label:
            result.add_warning(f"Node {node.id or '<unnamed>'} has no label")
        self.validate_node_specific(node, result)
        return result

    def validate_node_specific(self, node, result: NodeValidationResult) -> None:
        """Hook for per-type configuration checks."""
