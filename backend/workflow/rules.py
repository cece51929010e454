"""Business rule engine: conditions, rules and rule sets.

Rules are declarative pydantic models so they can be validated on load and
serialized to a canonical JSON form. Evaluation is pure: it reads from a
RuleExecutionContext and returns fresh result objects.
"""

import json
import math
import time
from dataclasses import dataclass, field as dc_field
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, model_validator

from core.constants import RuleDecision
from workflow.expressions import UNDEFINED, resolve_path, to_number

logger = structlog.get_logger(__name__)


# ─── Rule schema ──────────────────────────────────────────────

class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


class DataType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"


class LogicalOperator(str, Enum):
    AND = "AND"
    OR = "OR"


class RuleActionType(str, Enum):
    APPROVE = "approve"
    DECLINE = "decline"
    REVIEW = "review"
    SET_SCORE = "set_score"
    ADD_FLAG = "add_flag"
    REQUIRE_DOCUMENT = "require_document"


class ExecutionOrder(str, Enum):
    PRIORITY = "priority"
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class Condition(BaseModel):
    """A single field/operator/value test."""

    id: str = Field(min_length=1, description="Condition identifier")
    field: str = Field(min_length=1, description="Dotted path into the evaluation data")
    operator: ConditionOperator
    value: Any = None
    data_type: DataType = DataType.STRING
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_operand_shape(self) -> "Condition":
        if self.operator == ConditionOperator.BETWEEN:
            if not isinstance(self.value, list) or len(self.value) != 2:
                raise ValueError("between requires a [min, max] value")
        if self.operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            if not isinstance(self.value, list):
                raise ValueError(f"{self.operator.value} requires a list value")
        return self


class RuleAction(BaseModel):
    type: RuleActionType
    value: Any = None
    message: Optional[str] = None


class Rule(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    priority: int = 0
    enabled: bool = True
    conditions: list[Condition] = Field(default_factory=list)
    logical_operator: LogicalOperator = LogicalOperator.AND
    actions: list[RuleAction] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class RuleSet(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    rules: list[Rule] = Field(default_factory=list)
    execution_order: ExecutionOrder = ExecutionOrder.PRIORITY
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_canonical_json(self) -> str:
        """Stable JSON form: sorted keys, no insignificant whitespace."""
        return json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str) -> "RuleSet":
        return cls.model_validate_json(text)


# ─── Evaluation inputs / outputs ──────────────────────────────

_NAMESPACE_PREFIXES = {
    "application_data": "application_data",
    "applicationData": "application_data",
    "external_data": "external_data",
    "externalData": "external_data",
    "variables": "variables",
}


@dataclass
class RuleExecutionContext:
    """Data a rule set is evaluated against."""

    application_data: dict[str, Any] = dc_field(default_factory=dict)
    external_data: dict[str, Any] = dc_field(default_factory=dict)
    variables: dict[str, Any] = dc_field(default_factory=dict)
    metadata: dict[str, Any] = dc_field(default_factory=dict)


@dataclass(frozen=True)
class ConditionResult:
    condition_id: str
    field: str
    operator: str
    expected: Any
    actual_value: Any
    matched: bool

    def to_dict(self) -> dict:
        return {
            "condition_id": self.condition_id,
            "field": self.field,
            "operator": self.operator,
            "expected": self.expected,
            "actual_value": self.actual_value,
            "matched": self.matched,
        }


@dataclass
class RuleExecutionResult:
    rule_id: str
    rule_name: str
    matched: bool
    condition_results: list[ConditionResult] = dc_field(default_factory=list)
    actions: list[RuleAction] = dc_field(default_factory=list)
    duration_ms: float = 0

    def to_dict(self) -> dict:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "matched": self.matched,
            "condition_results": [c.to_dict() for c in self.condition_results],
            "actions": [a.model_dump(mode="json") for a in self.actions],
            "duration_ms": round(self.duration_ms, 3),
        }


@dataclass
class RuleSetExecutionResult:
    rule_set_id: str
    decision: RuleDecision
    score: Optional[float] = None
    flags: list[str] = dc_field(default_factory=list)
    required_documents: list[str] = dc_field(default_factory=list)
    messages: list[str] = dc_field(default_factory=list)
    rule_results: list[RuleExecutionResult] = dc_field(default_factory=list)
    duration_ms: float = 0

    @property
    def matched_rule_ids(self) -> list[str]:
        return [r.rule_id for r in self.rule_results if r.matched]

    def to_dict(self) -> dict:
        return {
            "rule_set_id": self.rule_set_id,
            "decision": self.decision.value,
            "score": self.score,
            "flags": list(self.flags),
            "required_documents": list(self.required_documents),
            "messages": list(self.messages),
            "matched_rule_ids": self.matched_rule_ids,
            "rule_results": [r.to_dict() for r in self.rule_results],
            "duration_ms": round(self.duration_ms, 3),
        }


@dataclass
class RuleValidation:
    is_valid: bool
    errors: list[str] = dc_field(default_factory=list)


# ─── Operator semantics ───────────────────────────────────────

def _as_bool(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return value


def _values_equal(actual: Any, expected: Any, data_type: DataType) -> bool:
    if data_type == DataType.NUMBER or (
        isinstance(actual, (int, float)) and isinstance(expected, (int, float))
        and not isinstance(actual, bool) and not isinstance(expected, bool)
    ):
        a, b = to_number(actual), to_number(expected)
        return not (math.isnan(a) or math.isnan(b)) and a == b
    if data_type == DataType.BOOLEAN:
        return _as_bool(actual) == _as_bool(expected)
    if isinstance(actual, str) and isinstance(expected, str):
        return actual.casefold() == expected.casefold()
    return actual == expected


def _numeric(op: ConditionOperator, actual: Any, expected: Any) -> bool:
    a, b = to_number(actual), to_number(expected)
    if math.isnan(a) or math.isnan(b):
        return False
    if op == ConditionOperator.GREATER_THAN:
        return a > b
    if op == ConditionOperator.LESS_THAN:
        return a < b
    if op == ConditionOperator.GREATER_THAN_OR_EQUAL:
        return a >= b
    return a <= b


def _contains(actual: Any, expected: Any, data_type: DataType) -> bool:
    if isinstance(actual, (list, tuple)):
        return any(_values_equal(item, expected, data_type) for item in actual)
    if actual is None or expected is None:
        return False
    return str(expected).casefold() in str(actual).casefold()


def apply_operator(
    operator: ConditionOperator,
    actual: Any,
    expected: Any,
    data_type: DataType = DataType.STRING,
) -> bool:
    """Apply a condition operator. ``actual`` may be UNDEFINED."""
    if operator == ConditionOperator.IS_NULL:
        return actual is UNDEFINED or actual is None
    if operator == ConditionOperator.IS_NOT_NULL:
        return not (actual is UNDEFINED or actual is None)
    if actual is UNDEFINED:
        return False

    if operator == ConditionOperator.EQUALS:
        return _values_equal(actual, expected, data_type)
    if operator == ConditionOperator.NOT_EQUALS:
        return not _values_equal(actual, expected, data_type)
    if operator in (
        ConditionOperator.GREATER_THAN,
        ConditionOperator.LESS_THAN,
        ConditionOperator.GREATER_THAN_OR_EQUAL,
        ConditionOperator.LESS_THAN_OR_EQUAL,
    ):
        return _numeric(operator, actual, expected)
    if operator == ConditionOperator.CONTAINS:
        return _contains(actual, expected, data_type)
    if operator == ConditionOperator.NOT_CONTAINS:
        return actual is not None and not _contains(actual, expected, data_type)
    if operator in (ConditionOperator.STARTS_WITH, ConditionOperator.ENDS_WITH):
        if actual is None or expected is None:
            return False
        text, affix = str(actual).casefold(), str(expected).casefold()
        if operator == ConditionOperator.STARTS_WITH:
            return text.startswith(affix)
        return text.endswith(affix)
    if operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        if not isinstance(expected, (list, tuple)):
            return False
        found = any(_values_equal(actual, item, data_type) for item in expected)
        return found if operator == ConditionOperator.IN else not found
    if operator == ConditionOperator.BETWEEN:
        if not isinstance(expected, (list, tuple)) or len(expected) != 2:
            return False
        a, low, high = to_number(actual), to_number(expected[0]), to_number(expected[1])
        if any(math.isnan(v) for v in (a, low, high)):
            return False
        return low <= a <= high
    return False


# ─── Aggregation helpers ──────────────────────────────────────

def _action_number(value: Any) -> Optional[float]:
    if isinstance(value, dict):
        value = value.get("score", value.get("value"))
    if isinstance(value, bool) or value is None:
        return None
    number = to_number(value)
    return None if math.isnan(number) else number


def _action_label(value: Any, key: str) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get(key, value.get("value"))
    if value is None or value == "":
        return None
    return str(value)


def aggregate_decision(rule_results: list[RuleExecutionResult]) -> dict[str, Any]:
    """Fold matched rule actions into a single verdict.

    Any decline wins; otherwise approve with no review is approved;
    otherwise review.
    """
    approve = decline = review = 0
    score: Optional[float] = None
    flags: list[str] = []
    documents: list[str] = []
    messages: list[str] = []

    for result in rule_results:
        if not result.matched:
            continue
        for action in result.actions:
            if action.type == RuleActionType.APPROVE:
                approve += 1
            elif action.type == RuleActionType.DECLINE:
                decline += 1
            elif action.type == RuleActionType.REVIEW:
                review += 1
            elif action.type == RuleActionType.SET_SCORE:
                number = _action_number(action.value)
                if number is not None:
                    score = number if score is None else max(score, number)
            elif action.type == RuleActionType.ADD_FLAG:
                flag = _action_label(action.value, "flag")
                if flag and flag not in flags:
                    flags.append(flag)
            elif action.type == RuleActionType.REQUIRE_DOCUMENT:
                document = _action_label(action.value, "document")
                if document and document not in documents:
                    documents.append(document)

            if action.message and action.type in (
                RuleActionType.APPROVE, RuleActionType.DECLINE, RuleActionType.REVIEW,
            ):
                messages.append(action.message)

    if decline > 0:
        decision = RuleDecision.DECLINED
    elif approve > 0 and review == 0:
        decision = RuleDecision.APPROVED
    else:
        decision = RuleDecision.REVIEW

    return {
        "decision": decision,
        "score": score,
        "flags": flags,
        "required_documents": documents,
        "messages": messages,
    }


# ─── Rule Engine ──────────────────────────────────────────────

class RuleEngine:
    """Evaluates conditions, rules and rule sets against a RuleExecutionContext."""

    def resolve_field(self, path: str, context: RuleExecutionContext) -> Any:
        """Look a dotted path up in application data, then external data, then variables.

        A leading namespace segment restricts the lookup to that namespace.
        Returns UNDEFINED when nothing resolves.
        """
        head, _, rest = path.partition(".")
        if rest and head in _NAMESPACE_PREFIXES:
            namespace = getattr(context, _NAMESPACE_PREFIXES[head])
            return resolve_path(namespace, rest)

        for namespace in (context.application_data, context.external_data, context.variables):
            value = resolve_path(namespace, path)
            if value is not UNDEFINED:
                return value
        return UNDEFINED

    def evaluate_condition(self, condition: Condition, context: RuleExecutionContext) -> ConditionResult:
        actual = self.resolve_field(condition.field, context)
        matched = apply_operator(condition.operator, actual, condition.value, condition.data_type)
        return ConditionResult(
            condition_id=condition.id,
            field=condition.field,
            operator=condition.operator.value,
            expected=condition.value,
            actual_value=None if actual is UNDEFINED else actual,
            matched=matched,
        )

    def evaluate_rule(self, rule: Rule, context: RuleExecutionContext) -> RuleExecutionResult:
        start = time.monotonic()
        condition_results = [self.evaluate_condition(c, context) for c in rule.conditions]
        matches = [c.matched for c in condition_results]

        if rule.logical_operator == LogicalOperator.AND:
            matched = all(matches)
        else:
            matched = any(matches)

        return RuleExecutionResult(
            rule_id=rule.id,
            rule_name=rule.name,
            matched=matched,
            condition_results=condition_results,
            actions=list(rule.actions) if matched else [],
            duration_ms=(time.monotonic() - start) * 1000,
        )

    def evaluate_rule_set(self, rule_set: RuleSet, context: RuleExecutionContext) -> RuleSetExecutionResult:
        start = time.monotonic()
        rules = [r for r in rule_set.rules if r.enabled]
        if rule_set.execution_order == ExecutionOrder.PRIORITY:
            rules = sorted(rules, key=lambda r: r.priority, reverse=True)

        rule_results = [self.evaluate_rule(rule, context) for rule in rules]
        aggregate = aggregate_decision(rule_results)

        result = RuleSetExecutionResult(
            rule_set_id=rule_set.id,
            rule_results=rule_results,
            duration_ms=(time.monotonic() - start) * 1000,
            **aggregate,
        )
        logger.debug(
            "Rule set evaluated",
            rule_set_id=rule_set.id,
            decision=result.decision.value,
            matched_rules=result.matched_rule_ids,
        )
        return result

    def evaluate_rules(
        self,
        rules: list[Rule],
        context: RuleExecutionContext,
        rule_set_id: str = "inline",
    ) -> RuleSetExecutionResult:
        """Evaluate a loose list of rules as an ad hoc priority-ordered rule set."""
        rule_set = RuleSet(id=rule_set_id, name=rule_set_id, rules=rules)
        return self.evaluate_rule_set(rule_set, context)

    # ─── Validation ──────────────────────────────────────────

    @staticmethod
    def validate_rule(data: Any) -> RuleValidation:
        return _validate(Rule, data)

    @staticmethod
    def validate_rule_set(data: Any) -> RuleValidation:
        return _validate(RuleSet, data)


def _validate(model: type[BaseModel], data: Any) -> RuleValidation:
    try:
        if isinstance(data, model):
            model.model_validate(data.model_dump())
        else:
            model.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        ]
        return RuleValidation(is_valid=False, errors=errors)
    return RuleValidation(is_valid=True)
