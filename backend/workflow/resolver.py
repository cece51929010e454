"""
Connector resolver: picks the next node from a node's outgoing connections.

Candidates are ranked by priority (stable, highest first). A candidate
passes when its connector type matches the node result (or is default)
and its condition, if any, evaluates truthy against the variables plus
``output`` and ``input``. A condition that fails to evaluate counts as
false and is recorded as a warning.
"""

from typing import Optional

import structlog

from core.constants import ConnectorType, ErrorCode
from core.exceptions import ExpressionError
from workflow.context import ExecutionContext, ExecutionError, NodeExecutionResult
from workflow.expressions import compile_expression
from workflow.models import WorkflowConnection

logger = structlog.get_logger(__name__)


class ConnectorResolver:

    def resolve(
        self,
        node_id: str,
        connections: list[WorkflowConnection],
        context: ExecutionContext,
        node_result: NodeExecutionResult,
    ) -> Optional[str]:
        """Target node id of the first passing connection, or None."""
        candidates = self._ranked(node_id, connections, include_handlers=False)
        namespace = context.condition_namespace(node_result.output)

        for conn in candidates:
            if conn.connector_type != node_result.next_connector and conn.connector_type != ConnectorType.DEFAULT:
                continue
            if self._condition_passes(conn, namespace, context, node_id):
                return conn.target
        return None

    def resolve_all(
        self,
        node_id: str,
        connections: list[WorkflowConnection],
        context: ExecutionContext,
        node_result: NodeExecutionResult,
    ) -> list[str]:
        """Every passing target, in rank order. Used for parallel fan-out."""
        namespace = context.condition_namespace(node_result.output)
        targets: list[str] = []
        for conn in self._ranked(node_id, connections, include_handlers=False):
            if conn.connector_type != node_result.next_connector and conn.connector_type != ConnectorType.DEFAULT:
                continue
            if conn.target in targets:
                continue
            if self._condition_passes(conn, namespace, context, node_id):
                targets.append(conn.target)
        return targets

    def resolve_error_handler(
        self,
        node_id: str,
        connections: list[WorkflowConnection],
        context: ExecutionContext,
        node_result: NodeExecutionResult,
    ) -> Optional[str]:
        """Target of the first passing error-handling connection, or None."""
        namespace = context.condition_namespace(node_result.output)
        for conn in self._ranked(node_id, connections):
            if conn.connector_type != ConnectorType.ERROR and not conn.is_error_handler:
                continue
            if self._condition_passes(conn, namespace, context, node_id):
                return conn.target
        return None

    @staticmethod
    def _ranked(
        node_id: str,
        connections: list[WorkflowConnection],
        include_handlers: bool = True,
    ) -> list[WorkflowConnection]:
        outgoing = [
            c for c in connections
            if c.source == node_id and (include_handlers or not c.is_error_handler)
        ]
        return sorted(outgoing, key=lambda c: c.priority, reverse=True)

    @staticmethod
    def _condition_passes(
        conn: WorkflowConnection,
        namespace: dict,
        context: ExecutionContext,
        node_id: str,
    ) -> bool:
        if not conn.condition:
            return True
        try:
            return compile_expression(conn.condition).evaluate_bool(namespace)
        except ExpressionError as e:
            logger.warning(
                "Connection condition failed",
                connection_id=conn.id,
                condition=conn.condition,
                error=e.message,
            )
            context.add_warning(
                ExecutionError(
                    code=ErrorCode.INVALID_CONDITION,
                    message=e.message,
                    node_id=node_id,
                    context={"connection_id": conn.id, "condition": conn.condition},
                )
            )
            return False
