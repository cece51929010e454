"""Workflow definition schema.

A WorkflowDefinition is a directed graph of typed nodes joined by typed
connections. Node configuration is a tagged union keyed by ``type`` so
every executor receives exactly the fields its node type declares.

Definition JSON shape:
{
    "id": "loan_underwriting",
    "name": "Loan underwriting",
    "mode": "enterprise",
    "nodes": [
        {"id": "start", "type": "start", "data": {"label": "Start"}},
        {"id": "dti_check", "type": "condition",
         "data": {"label": "DTI ok?", "condition": "debt_to_income_ratio <= 0.4"}},
        {"id": "done", "type": "end", "data": {"decision": "approved"}}
    ],
    "connections": [
        {"source": "start", "target": "dti_check", "connector_type": "success"},
        {"source": "dti_check", "target": "done", "connector_type": "true"}
    ]
}
"""

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from pydantic import ValidationError as PydanticValidationError

from core.constants import ConnectorType, NodeType, WorkflowMode
from core.exceptions import ValidationError
from workflow.rules import Rule, RuleSet


# ─── Node data variants ───────────────────────────────────────

class NodeData(BaseModel):
    """Fields shared by every node type."""

    model_config = ConfigDict(extra="allow")

    label: str = ""
    description: str = ""


class StartNodeData(NodeData):
    pass


class ConditionNodeData(NodeData):
    condition: str = ""


class DecisionType(str, Enum):
    SIMPLE = "simple"
    COMPLEX = "complex"
    MULTIPLE = "multiple"
    SCORE_BASED = "score_based"
    THRESHOLD = "threshold"


class DecisionLogic(str, Enum):
    AND = "AND"
    OR = "OR"
    CUSTOM = "CUSTOM"


class DecisionCondition(BaseModel):
    variable: str
    operator: str = "=="
    value: Any = None


class DecisionOption(BaseModel):
    condition: DecisionCondition
    outcome: str


class ScoreThresholds(BaseModel):
    excellent: float = 800
    good: float = 700
    fair: float = 600


class DecisionNodeData(NodeData):
    decision_type: DecisionType = DecisionType.SIMPLE
    # simple
    condition: Optional[DecisionCondition] = None
    # complex
    conditions: list[DecisionCondition] = Field(default_factory=list)
    logic: DecisionLogic = DecisionLogic.AND
    custom_logic: Optional[str] = None
    # multiple
    options: list[DecisionOption] = Field(default_factory=list)
    default_outcome: str = "default"
    # score_based
    score_variable: str = "score"
    thresholds: ScoreThresholds = Field(default_factory=ScoreThresholds)
    # threshold
    variable: Optional[str] = None
    threshold: Optional[float] = None
    operator: str = ">="

    connector_map: dict[str, ConnectorType] = Field(default_factory=dict)


class RuleSetNodeData(NodeData):
    rule_set: Optional[RuleSet] = None
    rules: list[Rule] = Field(default_factory=list)
    rule_set_id: Optional[str] = None


class ActionNodeData(NodeData):
    action_type: str = ""
    action_config: dict[str, Any] = Field(default_factory=dict)


class DataSourceNodeData(NodeData):
    source_type: str = ""
    source_config: dict[str, Any] = Field(default_factory=dict)
    output_key: Optional[str] = None


class EndNodeData(NodeData):
    decision: Any = None
    message: str = "Workflow completed"


class GenericNodeData(NodeData):
    config: dict[str, Any] = Field(default_factory=dict)


# ─── Nodes ────────────────────────────────────────────────────

class BaseWorkflowNode(BaseModel):
    id: str
    position: Optional[dict[str, float]] = None

    @property
    def node_type(self) -> NodeType:
        return NodeType(self.type)

    @property
    def label(self) -> str:
        return self.data.label or self.id


class StartNode(BaseWorkflowNode):
    type: Literal["start"]
    data: StartNodeData = Field(default_factory=StartNodeData)


class ConditionNode(BaseWorkflowNode):
    type: Literal["condition"]
    data: ConditionNodeData = Field(default_factory=ConditionNodeData)


class DecisionNode(BaseWorkflowNode):
    type: Literal["decision"]
    data: DecisionNodeData = Field(default_factory=DecisionNodeData)


class RuleSetNode(BaseWorkflowNode):
    type: Literal["rule_set"]
    data: RuleSetNodeData = Field(default_factory=RuleSetNodeData)


class ActionNode(BaseWorkflowNode):
    type: Literal["action"]
    data: ActionNodeData = Field(default_factory=ActionNodeData)


class DataSourceNode(BaseWorkflowNode):
    type: Literal["data_source"]
    data: DataSourceNodeData = Field(default_factory=DataSourceNodeData)


class EndNode(BaseWorkflowNode):
    type: Literal["end"]
    data: EndNodeData = Field(default_factory=EndNodeData)


class GenericNode(BaseWorkflowNode):
    type: Literal[
        "validation", "integration", "notification",
        "ai_decision", "batch_process", "audit_log",
    ]
    data: GenericNodeData = Field(default_factory=GenericNodeData)


WorkflowNode = Annotated[
    Union[
        StartNode, ConditionNode, DecisionNode, RuleSetNode,
        ActionNode, DataSourceNode, EndNode, GenericNode,
    ],
    Field(discriminator="type"),
]


# ─── Connections & definition ─────────────────────────────────

class WorkflowConnection(BaseModel):
    id: str = Field(default_factory=lambda: f"conn_{uuid4().hex[:8]}")
    source: str
    target: str
    connector_type: ConnectorType = ConnectorType.DEFAULT
    condition: Optional[str] = None
    priority: int = 0
    is_error_handler: bool = False
    label: Optional[str] = None


class WorkflowDefinition(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = ""
    description: str = ""
    version: str = "1.0.0"
    mode: WorkflowMode = WorkflowMode.ENTERPRISE
    nodes: list[WorkflowNode] = Field(default_factory=list)
    connections: list[WorkflowConnection] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    _node_index: dict[str, Any] = PrivateAttr(default_factory=dict)
    _outgoing: dict[str, list[WorkflowConnection]] = PrivateAttr(default_factory=dict)
    _incoming_count: dict[str, int] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def _check_graph_references(self) -> "WorkflowDefinition":
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                raise ValueError(f"Duplicate node id: {node.id}")
            seen.add(node.id)
        for conn in self.connections:
            if conn.source not in seen:
                raise ValueError(f"Connection {conn.id} references unknown source node: {conn.source}")
            if conn.target not in seen:
                raise ValueError(f"Connection {conn.id} references unknown target node: {conn.target}")
        return self

    def model_post_init(self, __context: Any) -> None:
        self._node_index = {node.id: node for node in self.nodes}
        self._outgoing = {}
        self._incoming_count = {}
        for conn in self.connections:
            self._outgoing.setdefault(conn.source, []).append(conn)
            self._incoming_count[conn.target] = self._incoming_count.get(conn.target, 0) + 1

    def get_node(self, node_id: str):
        return self._node_index.get(node_id)

    def outgoing(self, node_id: str) -> list[WorkflowConnection]:
        return list(self._outgoing.get(node_id, []))

    def incoming_count(self, node_id: str) -> int:
        return self._incoming_count.get(node_id, 0)

    def nodes_of_type(self, node_type: NodeType) -> list:
        return [node for node in self.nodes if node.type == node_type.value]


def load_workflow_definition(data: Union[dict[str, Any], str]) -> WorkflowDefinition:
    """Parse a definition from a dict or JSON text, raising the domain ValidationError."""
    try:
        if isinstance(data, str):
            return WorkflowDefinition.model_validate_json(data)
        return WorkflowDefinition.model_validate(data)
    except PydanticValidationError as e:
        messages = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError("Invalid workflow definition: " + "; ".join(messages))
