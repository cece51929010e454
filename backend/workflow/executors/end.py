from core.constants import NodeType
from workflow.context import ExecutionContext, NodeExecutionResult, utc_now_iso
from workflow.executors.base import BaseNodeExecutor


class EndNodeExecutor(BaseNodeExecutor):
    """Terminal node. Captures the final decision and a variables snapshot."""

    node_type = NodeType.END

    async def execute(self, node, context: ExecutionContext) -> NodeExecutionResult:
        output = {
            "message": node.data.message,
            "completed_at": utc_now_iso(),
            "duration_ms": round(context.elapsed_ms(), 2),
            "execution_path": list(context.execution_path),
            "final_variables": dict(context.variables),
        }
        if node.data.decision is not None:
            output["decision"] = node.data.decision
        return NodeExecutionResult.succeeded(output)
