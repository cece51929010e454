import structlog

from core.constants import ConnectorType, ErrorCode, NodeType
from core.exceptions import ExpressionError
from workflow.context import ExecutionContext, ExecutionError, NodeExecutionResult
from workflow.executors.base import BaseNodeExecutor, NodeValidationResult
from workflow.expressions import compile_expression

logger = structlog.get_logger(__name__)


class ConditionNodeExecutor(BaseNodeExecutor):
    """Evaluates a boolean expression and routes true/false."""

    node_type = NodeType.CONDITION

    async def execute(self, node, context: ExecutionContext) -> NodeExecutionResult:
        expression = node.data.condition
        try:
            passed = compile_expression(expression).evaluate_bool(context.condition_namespace())
        except ExpressionError as e:
            logger.warning(
                "Condition evaluation failed",
                node_id=node.id,
                expression=expression,
                error=e.message,
            )
            context.add_warning(
                ExecutionError(
                    code=ErrorCode.INVALID_CONDITION,
                    message=e.message,
                    node_id=node.id,
                    context={"expression": expression},
                )
            )
            passed = False

        return NodeExecutionResult.succeeded(
            {f"condition_{node.id}_result": passed},
            ConnectorType.TRUE if passed else ConnectorType.FALSE,
        )

    def validate_node_specific(self, node, result: NodeValidationResult) -> None:
        if not node.data.condition.strip():
            result.add_error(f"Condition node {node.id} has no condition")
            return
        try:
            compile_expression(node.data.condition)
        except ExpressionError as e:
            result.add_error(f"Condition node {node.id}: {e.message}")
