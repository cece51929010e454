"""
Node executor factory.

Maps node type to executor instance. Executors that need collaborators
(rule sets, actions, data sources) receive them here, once, at startup.
"""

from typing import Optional, Union

from actions.registry import BusinessActionInvoker
from core.constants import NodeType
from core.exceptions import NodeExecutorNotFoundError
from datasources.registry import DataSourceRegistry
from workflow.executors.action import ActionNodeExecutor
from workflow.executors.base import BaseNodeExecutor
from workflow.executors.condition import ConditionNodeExecutor
from workflow.executors.data_source import DataSourceNodeExecutor
from workflow.executors.decision import DecisionNodeExecutor
from workflow.executors.end import EndNodeExecutor
from workflow.executors.rule_set import RuleSetNodeExecutor
from workflow.executors.start import StartNodeExecutor
from workflow.rules import RuleEngine, RuleSet


class NodeExecutorFactory:
    """Registry of node executors keyed by node type."""

    def __init__(self):
        self._executors: dict[str, BaseNodeExecutor] = {}

    @classmethod
    def with_defaults(
        cls,
        invoker: Optional[BusinessActionInvoker] = None,
        data_sources: Optional[DataSourceRegistry] = None,
        rule_sets: Optional[dict[str, RuleSet]] = None,
        rule_engine: Optional[RuleEngine] = None,
    ) -> "NodeExecutorFactory":
        factory = cls()
        factory.register_executor(NodeType.START, StartNodeExecutor())
        factory.register_executor(NodeType.CONDITION, ConditionNodeExecutor())
        factory.register_executor(NodeType.DECISION, DecisionNodeExecutor())
        factory.register_executor(NodeType.RULE_SET, RuleSetNodeExecutor(rule_engine, rule_sets))
        factory.register_executor(NodeType.ACTION, ActionNodeExecutor(invoker))
        factory.register_executor(NodeType.DATA_SOURCE, DataSourceNodeExecutor(data_sources))
        factory.register_executor(NodeType.END, EndNodeExecutor())
        return factory

    def register_executor(self, node_type: Union[NodeType, str], executor: BaseNodeExecutor) -> None:
        self._executors[NodeType(node_type).value] = executor

    def create_executor(self, node_type: Union[NodeType, str]) -> BaseNodeExecutor:
        key = node_type.value if isinstance(node_type, NodeType) else str(node_type)
        executor = self._executors.get(key)
        if executor is None:
            raise NodeExecutorNotFoundError(key)
        return executor

    def has_executor(self, node_type: Union[NodeType, str]) -> bool:
        key = node_type.value if isinstance(node_type, NodeType) else str(node_type)
        return key in self._executors

    def registered_node_types(self) -> list[str]:
        return list(self._executors.keys())
