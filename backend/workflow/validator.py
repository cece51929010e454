"""
Authoring-time workflow validation.

Structural checks (start/end nodes, reachability, cycles), mode checks
(node types allowed by the workflow mode), per-node checks delegated to
each executor's validate(), and syntax checks on connection conditions.
Errors make a workflow invalid; warnings do not.
"""

from dataclasses import dataclass, field
from typing import Optional

from core.constants import NODE_TYPES_BY_MODE, NodeType
from core.exceptions import ExpressionError
from workflow.executors.factory import NodeExecutorFactory
from workflow.expressions import compile_expression
from workflow.models import WorkflowDefinition


@dataclass
class WorkflowValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    node_results: dict[str, dict] = field(default_factory=dict)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "node_results": self.node_results,
        }


class WorkflowValidator:

    def __init__(self, executor_factory: Optional[NodeExecutorFactory] = None):
        self._executors = executor_factory or NodeExecutorFactory.with_defaults()

    def validate(self, definition: WorkflowDefinition) -> WorkflowValidationResult:
        result = WorkflowValidationResult()
        self._check_start_and_end(definition, result)
        self._check_mode(definition, result)
        self._check_nodes(definition, result)
        self._check_connections(definition, result)
        self._check_reachability(definition, result)
        self._check_cycles(definition, result)
        return result

    # ─── Checks ──────────────────────────────────────────────

    @staticmethod
    def _check_start_and_end(definition: WorkflowDefinition, result: WorkflowValidationResult) -> None:
        starts = definition.nodes_of_type(NodeType.START)
        if not starts:
            result.add_error("Workflow has no start node")
        elif len(starts) > 1:
            result.add_error(f"Workflow has {len(starts)} start nodes; exactly one is required")
        if not definition.nodes_of_type(NodeType.END):
            result.add_error("Workflow has no end node")

    @staticmethod
    def _check_mode(definition: WorkflowDefinition, result: WorkflowValidationResult) -> None:
        allowed = NODE_TYPES_BY_MODE[definition.mode]
        for node in definition.nodes:
            if NodeType(node.type) not in allowed:
                result.add_warning(
                    f"Node {node.id} of type {node.type} is not available in {definition.mode.value} mode"
                )

    def _check_nodes(self, definition: WorkflowDefinition, result: WorkflowValidationResult) -> None:
        for node in definition.nodes:
            if not self._executors.has_executor(node.type):
                result.add_warning(f"Node {node.id}: no executor registered for node type {node.type}")
                continue
            node_result = self._executors.create_executor(node.type).validate(node)
            result.node_results[node.id] = node_result.to_dict()
            for message in node_result.errors:
                result.add_error(message)
            for message in node_result.warnings:
                result.add_warning(message)

    @staticmethod
    def _check_connections(definition: WorkflowDefinition, result: WorkflowValidationResult) -> None:
        for conn in definition.connections:
            if conn.source == conn.target:
                result.add_warning(f"Connection {conn.id} loops node {conn.source} onto itself")
            if conn.condition:
                try:
                    compile_expression(conn.condition)
                except ExpressionError as e:
                    result.add_error(f"Connection {conn.id}: {e.message}")
        for node in definition.nodes_of_type(NodeType.END):
            if definition.outgoing(node.id):
                result.add_warning(f"End node {node.id} has outgoing connections that will never run")

    @staticmethod
    def _check_reachability(definition: WorkflowDefinition, result: WorkflowValidationResult) -> None:
        starts = definition.nodes_of_type(NodeType.START)
        if len(starts) != 1:
            return

        reachable = {starts[0].id}
        frontier = [starts[0].id]
        while frontier:
            node_id = frontier.pop()
            for conn in definition.outgoing(node_id):
                if conn.target not in reachable:
                    reachable.add(conn.target)
                    frontier.append(conn.target)

        for node in definition.nodes:
            if node.id in reachable:
                continue
            if node.type == NodeType.END.value:
                result.add_warning(f"End node {node.id} is unreachable from the start node")
            else:
                result.add_warning(f"Node {node.id} is orphaned (unreachable from the start node)")

    @staticmethod
    def _check_cycles(definition: WorkflowDefinition, result: WorkflowValidationResult) -> None:
        white, grey, black = 0, 1, 2
        color = {node.id: white for node in definition.nodes}
        reported: set[str] = set()

        for root in definition.nodes:
            if color[root.id] != white:
                continue
            stack = [(root.id, iter(definition.outgoing(root.id)))]
            color[root.id] = grey
            while stack:
                node_id, edges = stack[-1]
                conn = next(edges, None)
                if conn is None:
                    color[node_id] = black
                    stack.pop()
                    continue
                if color[conn.target] == grey and conn.target not in reported:
                    reported.add(conn.target)
                    result.add_warning(
                        f"Cycle detected through node {conn.target}; execution is bounded by the iteration cap"
                    )
                elif color[conn.target] == white:
                    color[conn.target] = grey
                    stack.append((conn.target, iter(definition.outgoing(conn.target))))
