"""Constants and enums for the decisioning workflow runtime."""

from enum import Enum


class ExecutionStatus(str, Enum):
    """Workflow execution status."""

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.TIMED_OUT,
            ExecutionStatus.CANCELLED,
        )


class ExecutionMode(str, Enum):
    """How execute_workflow hands back control."""

    SYNC = "sync"
    ASYNC = "async"
    STEP = "step"


class WorkflowMode(str, Enum):
    """Authoring mode; restricts selectable node types."""

    SIMPLE = "simple"
    ENHANCED = "enhanced"
    ENTERPRISE = "enterprise"


class NodeType(str, Enum):
    """Closed set of workflow node types."""

    START = "start"
    CONDITION = "condition"
    ACTION = "action"
    END = "end"
    DATA_SOURCE = "data_source"
    RULE_SET = "rule_set"
    DECISION = "decision"
    VALIDATION = "validation"
    INTEGRATION = "integration"
    NOTIFICATION = "notification"
    AI_DECISION = "ai_decision"
    BATCH_PROCESS = "batch_process"
    AUDIT_LOG = "audit_log"


class ConnectorType(str, Enum):
    """Typed outgoing edge slot on a node."""

    DEFAULT = "default"
    SUCCESS = "success"
    FAILURE = "failure"
    TRUE = "true"
    FALSE = "false"
    ERROR = "error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    MANUAL = "manual"
    # Rule-set outcomes
    APPROVED = "approved"
    DECLINED = "declined"
    REVIEW = "review"


class ErrorCode(str, Enum):
    """Machine-readable error codes surfaced in execution results."""

    NODE_EXECUTION_FAILED = "NODE_EXECUTION_FAILED"
    WORKFLOW_EXECUTION_FAILED = "WORKFLOW_EXECUTION_FAILED"
    NO_START_NODE = "NO_START_NODE"
    MULTIPLE_START_NODES = "MULTIPLE_START_NODES"
    MAX_ITERATIONS_EXCEEDED = "MAX_ITERATIONS_EXCEEDED"
    TIMEOUT = "TIMEOUT"
    INVALID_CONDITION = "INVALID_CONDITION"
    CANCELLED = "CANCELLED"
    BRANCH_MERGE_CONFLICT = "BRANCH_MERGE_CONFLICT"
    NO_END_NODE_REACHED = "NO_END_NODE_REACHED"
    OPERATION_FAILED = "OPERATION_FAILED"


class OperationStatus(str, Enum):
    """Status of a suspended async operation."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not OperationStatus.PENDING


class RuleDecision(str, Enum):
    """Aggregate verdict of a rule set."""

    APPROVED = "approved"
    DECLINED = "declined"
    REVIEW = "review"


class ApplicantDecision(str, Enum):
    """Verdict of the underwriting decision policy."""

    APPROVED = "approved"
    DECLINED = "declined"
    MANUAL_REVIEW = "manual_review"


class RiskLevel(str, Enum):
    """Applicant risk bucket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


NODE_TYPES_BY_MODE: dict[WorkflowMode, frozenset[NodeType]] = {
    WorkflowMode.SIMPLE: frozenset({
        NodeType.START, NodeType.CONDITION, NodeType.ACTION, NodeType.END,
    }),
    WorkflowMode.ENHANCED: frozenset({
        NodeType.START, NodeType.CONDITION, NodeType.ACTION, NodeType.END,
        NodeType.DATA_SOURCE, NodeType.RULE_SET, NodeType.VALIDATION,
    }),
    WorkflowMode.ENTERPRISE: frozenset(NodeType),
}

DEFAULT_MAX_ITERATIONS = 1000
