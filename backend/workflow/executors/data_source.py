from typing import Optional

import structlog

from core.constants import NodeType
from datasources.registry import DataSourceRegistry
from workflow.context import ExecutionContext, NodeExecutionResult
from workflow.executors.base import BaseNodeExecutor, NodeValidationResult

logger = structlog.get_logger(__name__)


class DataSourceNodeExecutor(BaseNodeExecutor):
    """Fetches external applicant data through the data source registry."""

    node_type = NodeType.DATA_SOURCE

    def __init__(self, registry: Optional[DataSourceRegistry] = None):
        self.registry = registry or DataSourceRegistry.with_defaults()

    async def execute(self, node, context: ExecutionContext) -> NodeExecutionResult:
        data = node.data
        payload = await self.registry.fetch(
            data.source_type,
            data.source_config,
            context.variables,
            cancellation=context.cancellation,
        )
        logger.debug("Data source fetched", node_id=node.id, source_type=data.source_type)

        output = {
            f"datasource_{node.id}_data": payload,
            f"datasource_{node.id}_status": "success",
        }
        if data.output_key:
            output[data.output_key] = payload
        return NodeExecutionResult.succeeded(output)

    def validate_node_specific(self, node, result: NodeValidationResult) -> None:
        source_type = node.data.source_type
        if not source_type:
            result.add_error(f"Data source node {node.id} has no source_type")
        elif self.registry.get(source_type) is None:
            result.add_warning(
                f"Data source node {node.id} uses unknown source type {source_type}; static data will be returned"
            )
        if source_type == "api" and not (
            node.data.source_config.get("endpoint") or node.data.source_config.get("url")
        ):
            result.add_error(f"Data source node {node.id} requires an endpoint for api sources")
