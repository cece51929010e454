from core.constants import ConnectorType, NodeType
from workflow.context import ExecutionContext, NodeExecutionResult, utc_now_iso
from workflow.executors.base import BaseNodeExecutor

VARIABLE_OVERRIDES_KEY = "variable_overrides"


class StartNodeExecutor(BaseNodeExecutor):
    """Seeds the variables with the input data and any overrides."""

    node_type = NodeType.START

    async def execute(self, node, context: ExecutionContext) -> NodeExecutionResult:
        output = dict(context.input_data)
        output.update(context.metadata.get(VARIABLE_OVERRIDES_KEY) or {})
        output["started_at"] = context.started_at or utc_now_iso()
        output["execution_id"] = context.execution_id
        return NodeExecutionResult.succeeded(output, ConnectorType.SUCCESS)
