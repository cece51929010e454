from typing import Optional
from uuid import uuid4

import structlog

from actions.registry import BusinessActionInvoker
from core.constants import ConnectorType, ErrorCode, NodeType
from workflow.context import ExecutionContext, ExecutionError, NodeExecutionResult, utc_now_iso
from workflow.executors.base import BaseNodeExecutor, NodeValidationResult

logger = structlog.get_logger(__name__)


class ActionNodeExecutor(BaseNodeExecutor):
    """Dispatches a business action through the invoker."""

    node_type = NodeType.ACTION

    def __init__(self, invoker: Optional[BusinessActionInvoker] = None):
        self.invoker = invoker or BusinessActionInvoker()

    async def execute(self, node, context: ExecutionContext) -> NodeExecutionResult:
        data = node.data
        action = await self.invoker.invoke(data.action_type, data.action_config, context.variables)

        if not action.success:
            return NodeExecutionResult.failed(
                ExecutionError(
                    code=ErrorCode.NODE_EXECUTION_FAILED,
                    message=action.error or f"Action {data.action_type} failed",
                    node_id=node.id,
                    context={"action_type": data.action_type},
                ),
                output={f"action_{node.id}_status": "failed"},
            )

        output = {
            f"action_{node.id}_result": action.output,
            f"action_{node.id}_status": "pending" if action.suspend else "completed",
            f"action_{node.id}_timestamp": utc_now_iso(),
            **action.variable_updates,
        }

        if action.suspend:
            operation_id = str(uuid4())
            logger.info(
                "Action suspended execution",
                node_id=node.id,
                action_type=data.action_type,
                operation_id=operation_id,
            )
            return NodeExecutionResult.suspended(operation_id, output)

        return NodeExecutionResult.succeeded(output, action.next_connector or ConnectorType.DEFAULT)

    def validate_node_specific(self, node, result: NodeValidationResult) -> None:
        action_type = node.data.action_type
        if not action_type:
            result.add_error(f"Action node {node.id} has no action_type")
        elif not self.invoker.has(action_type):
            result.add_warning(
                f"Action node {node.id} uses unknown action type {action_type}; the default action will run"
            )
