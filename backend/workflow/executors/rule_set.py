from typing import Any, Optional

import structlog

from core.constants import ConnectorType, NodeType
from workflow.context import ExecutionContext, NodeExecutionResult
from workflow.executors.base import BaseNodeExecutor, NodeValidationResult
from workflow.rules import RuleEngine, RuleExecutionContext, RuleSet

logger = structlog.get_logger(__name__)

PERSONAL_FIELDS = ("name", "email", "phone", "date_of_birth", "ssn")
FINANCIAL_FIELDS = (
    "annual_income", "employment_status", "employer_name",
    "monthly_debt_payments", "debt_to_income_ratio",
)
EXTERNAL_FIELDS = ("credit_score", "credit_history", "income_verification", "kyc_status", "fraud_score")


def build_application_data(variables: dict[str, Any]) -> dict[str, Any]:
    return {
        "personal_info": {key: variables.get(key) for key in PERSONAL_FIELDS},
        "financial_info": {key: variables.get(key) for key in FINANCIAL_FIELDS},
        "address": variables.get("address") or {},
        **variables,
    }


def build_external_data(variables: dict[str, Any]) -> dict[str, Any]:
    return {
        **{key: variables.get(key) for key in EXTERNAL_FIELDS},
        **variables,
    }


class RuleSetNodeExecutor(BaseNodeExecutor):
    """Evaluates a rule set and routes on its aggregate decision."""

    node_type = NodeType.RULE_SET

    def __init__(
        self,
        rule_engine: Optional[RuleEngine] = None,
        rule_sets: Optional[dict[str, RuleSet]] = None,
    ):
        self.rule_engine = rule_engine or RuleEngine()
        self.rule_sets = dict(rule_sets or {})

    def register_rule_set(self, rule_set: RuleSet) -> None:
        self.rule_sets[rule_set.id] = rule_set

    async def execute(self, node, context: ExecutionContext) -> NodeExecutionResult:
        data = node.data
        variables = context.variables
        rule_context = RuleExecutionContext(
            application_data=build_application_data(variables),
            external_data=build_external_data(variables),
            variables=dict(variables),
            metadata={"execution_id": context.execution_id, "node_id": node.id},
        )

        if data.rule_set is not None:
            result = self.rule_engine.evaluate_rule_set(data.rule_set, rule_context)
        elif data.rules:
            result = self.rule_engine.evaluate_rules(data.rules, rule_context, rule_set_id=f"{node.id}_rules")
        else:
            rule_set = self.rule_sets.get(data.rule_set_id or "")
            if rule_set is None:
                raise ValueError(f"Rule set not found: {data.rule_set_id}")
            result = self.rule_engine.evaluate_rule_set(rule_set, rule_context)

        logger.info(
            "Rule set node evaluated",
            node_id=node.id,
            rule_set_id=result.rule_set_id,
            decision=result.decision.value,
            score=result.score,
        )
        output = {
            f"ruleset_{node.id}_decision": result.decision.value,
            f"ruleset_{node.id}_score": result.score,
            f"ruleset_{node.id}_result": result.to_dict(),
        }
        return NodeExecutionResult.succeeded(output, ConnectorType(result.decision.value))

    def validate_node_specific(self, node, result: NodeValidationResult) -> None:
        data = node.data
        if data.rule_set is None and not data.rules and not data.rule_set_id:
            result.add_error(f"Rule set node {node.id} has no rule set, rules or rule_set_id")
        elif data.rule_set is None and not data.rules and data.rule_set_id not in self.rule_sets:
            result.add_error(f"Rule set node {node.id} references unknown rule set {data.rule_set_id}")
        elif data.rule_set is not None and not data.rule_set.rules:
            result.add_warning(f"Rule set node {node.id} has an empty rule set")
