"""
Decision node executor.

Five decision modes:
- simple: one condition, outcome true/false
- complex: several conditions combined with AND, OR or a custom
  expression over C0..Cn
- multiple: first matching option wins, else default_outcome
- score_based: bucket a score into excellent/good/fair/poor
- threshold: compare a variable against a threshold, outcome above/below
"""

import math
from typing import Any

from core.constants import ConnectorType, NodeType
from core.exceptions import ExpressionError
from workflow.context import ExecutionContext, NodeExecutionResult, utc_now_iso
from workflow.executors.base import BaseNodeExecutor, NodeValidationResult
from workflow.expressions import (
    UNDEFINED,
    compare,
    compile_expression,
    loose_equals,
    resolve_path,
    strict_equals,
    to_number,
)
from workflow.models import DecisionCondition, DecisionLogic, DecisionType

DEFAULT_CONNECTOR_MAP: dict[str, ConnectorType] = {
    "true": ConnectorType.TRUE,
    "above": ConnectorType.TRUE,
    "excellent": ConnectorType.TRUE,
    "good": ConnectorType.TRUE,
    "false": ConnectorType.FALSE,
    "below": ConnectorType.FALSE,
    "poor": ConnectorType.FALSE,
    "fair": ConnectorType.REVIEW,
    "review": ConnectorType.REVIEW,
}

DECISION_OPERATORS = frozenset({
    "==", "===", "!=", "!==", ">", ">=", "<", "<=",
    "contains", "startsWith", "endsWith", "in", "notIn",
})


def apply_decision_operator(operator: str, actual: Any, expected: Any) -> bool:
    """Compare a resolved variable against a configured value.

    String operators are case-sensitive, matching `==` in condition
    expressions. Rule-set conditions casefold instead. An unresolved
    variable only satisfies the inequality operators.
    """
    if actual is UNDEFINED:
        return operator in ("!=", "!==")

    if operator == "==":
        return loose_equals(actual, expected)
    if operator == "===":
        return strict_equals(actual, expected)
    if operator == "!=":
        return not loose_equals(actual, expected)
    if operator == "!==":
        return not strict_equals(actual, expected)
    if operator in (">", ">=", "<", "<="):
        return compare(operator, actual, expected)
    if operator == "contains":
        if isinstance(actual, str):
            return str(expected) in actual
        if isinstance(actual, (list, tuple, set)):
            return expected in actual
        return False
    if operator == "startsWith":
        return isinstance(actual, str) and actual.startswith(str(expected))
    if operator == "endsWith":
        return isinstance(actual, str) and actual.endswith(str(expected))
    if operator in ("in", "notIn"):
        found = isinstance(expected, (list, tuple, set)) and actual in expected
        return found if operator == "in" else not found
    raise ValueError(f"Unsupported decision operator: {operator}")


class DecisionNodeExecutor(BaseNodeExecutor):
    node_type = NodeType.DECISION

    async def execute(self, node, context: ExecutionContext) -> NodeExecutionResult:
        data = node.data
        variables = context.variables

        handlers = {
            DecisionType.SIMPLE: self._simple,
            DecisionType.COMPLEX: self._complex,
            DecisionType.MULTIPLE: self._multiple,
            DecisionType.SCORE_BASED: self._score_based,
            DecisionType.THRESHOLD: self._threshold,
        }
        outcome, confidence, details = handlers[data.decision_type](data, variables)

        result = {
            "decision_type": data.decision_type.value,
            "outcome": outcome,
            "confidence": confidence,
            **details,
        }
        output = {
            f"decision_{node.id}_outcome": outcome,
            f"decision_{node.id}_confidence": confidence,
            f"decision_{node.id}_result": result,
            f"decision_{node.id}_timestamp": utc_now_iso(),
        }
        return NodeExecutionResult.succeeded(output, self.connector_for(data, outcome))

    @staticmethod
    def connector_for(data, outcome: str) -> ConnectorType:
        if outcome in data.connector_map:
            return data.connector_map[outcome]
        if outcome in DEFAULT_CONNECTOR_MAP:
            return DEFAULT_CONNECTOR_MAP[outcome]
        try:
            return ConnectorType(outcome)
        except ValueError:
            return ConnectorType.DEFAULT

    # ─── Modes ───────────────────────────────────────────────

    def _check(self, condition: DecisionCondition, variables: dict) -> tuple[bool, bool]:
        actual = resolve_path(variables, condition.variable)
        return apply_decision_operator(condition.operator, actual, condition.value), actual is not UNDEFINED

    def _simple(self, data, variables):
        if data.condition is None:
            raise ValueError("Simple decision requires a condition")
        passed, _ = self._check(data.condition, variables)
        return ("true" if passed else "false"), 1.0, {"condition_met": passed}

    def _complex(self, data, variables):
        checks = [self._check(c, variables) for c in data.conditions]
        results = [passed for passed, _ in checks]
        resolved = sum(1 for _, found in checks if found)
        confidence = resolved / len(checks) if checks else 0.0

        if data.logic == DecisionLogic.CUSTOM:
            if not data.custom_logic:
                raise ValueError("Custom decision logic requires an expression")
            namespace = {f"C{i}": value for i, value in enumerate(results)}
            passed = compile_expression(data.custom_logic).evaluate_bool(namespace)
        elif data.logic == DecisionLogic.OR:
            passed = any(results)
        else:
            passed = bool(results) and all(results)

        return ("true" if passed else "false"), round(confidence, 4), {"condition_results": results}

    def _multiple(self, data, variables):
        for index, option in enumerate(data.options):
            passed, _ = self._check(option.condition, variables)
            if passed:
                return option.outcome, 1.0, {"matched_option": index}
        return data.default_outcome, 0.5, {"matched_option": None}

    def _score_based(self, data, variables):
        score = to_number(resolve_path(variables, data.score_variable) if data.score_variable else UNDEFINED)
        thresholds = data.thresholds
        if math.isnan(score):
            outcome = "poor"
        elif score >= thresholds.excellent:
            outcome = "excellent"
        elif score >= thresholds.good:
            outcome = "good"
        elif score >= thresholds.fair:
            outcome = "fair"
        else:
            outcome = "poor"
        return outcome, 1.0, {"score": None if math.isnan(score) else score}

    def _threshold(self, data, variables):
        if not data.variable or data.threshold is None:
            raise ValueError("Threshold decision requires variable and threshold")
        actual = resolve_path(variables, data.variable)
        passed = apply_decision_operator(data.operator, actual, data.threshold)
        return ("above" if passed else "below"), 1.0, {
            "value": None if actual is UNDEFINED else actual,
            "threshold": data.threshold,
        }

    # ─── Validation ──────────────────────────────────────────

    def validate_node_specific(self, node, result: NodeValidationResult) -> None:
        data = node.data
        conditions: list[DecisionCondition] = []

        if data.decision_type == DecisionType.SIMPLE:
            if data.condition is None:
                result.add_error(f"Decision node {node.id} requires a condition")
            else:
                conditions.append(data.condition)
        elif data.decision_type == DecisionType.COMPLEX:
            if not data.conditions:
                result.add_error(f"Decision node {node.id} requires at least one condition")
            conditions.extend(data.conditions)
            if data.logic == DecisionLogic.CUSTOM:
                if not data.custom_logic:
                    result.add_error(f"Decision node {node.id} uses CUSTOM logic without an expression")
                else:
                    try:
                        compile_expression(data.custom_logic)
                    except ExpressionError as e:
                        result.add_error(f"Decision node {node.id}: {e.message}")
        elif data.decision_type == DecisionType.MULTIPLE:
            if not data.options:
                result.add_error(f"Decision node {node.id} requires at least one option")
            conditions.extend(option.condition for option in data.options)
        elif data.decision_type == DecisionType.THRESHOLD:
            if not data.variable or data.threshold is None:
                result.add_error(f"Decision node {node.id} requires variable and threshold")
            if data.operator not in DECISION_OPERATORS:
                result.add_error(f"Decision node {node.id} has unknown operator {data.operator}")

        for condition in conditions:
            if condition.operator not in DECISION_OPERATORS:
                result.add_error(f"Decision node {node.id} has unknown operator {condition.operator}")
