"""Built-in rule templates, rule sets and the default loan workflow."""

from typing import Callable

from underwriting import thresholds as t
from workflow.models import WorkflowDefinition
from workflow.rules import (
    Condition,
    ConditionOperator,
    DataType,
    LogicalOperator,
    Rule,
    RuleAction,
    RuleActionType,
    RuleSet,
)

DEFAULT_UNDERWRITING_RULE_SET_ID = "default_underwriting"
CREDIT_TEMPLATES_RULE_SET_ID = "credit_templates"


def _number(cid: str, path: str, operator: ConditionOperator, value: float) -> Condition:
    return Condition(id=cid, field=path, operator=operator, value=value, data_type=DataType.NUMBER)


# ─── Rule templates ───────────────────────────────────────────

def high_credit_rule() -> Rule:
    return Rule(
        id="high_credit",
        name="High Credit Score Approval",
        description="Approve applicants with an excellent bureau score",
        priority=100,
        conditions=[
            _number("high_credit_score", "external_data.credit_score",
                    ConditionOperator.GREATER_THAN_OR_EQUAL, 750),
        ],
        actions=[
            RuleAction(type=RuleActionType.APPROVE, message="High credit score"),
            RuleAction(type=RuleActionType.SET_SCORE, value=95),
        ],
    )


def low_credit_rule() -> Rule:
    return Rule(
        id="low_credit",
        name="Low Credit Score Decline",
        description="Decline applicants with a very low bureau score",
        priority=90,
        conditions=[
            _number("low_credit_score", "external_data.credit_score",
                    ConditionOperator.LESS_THAN, 500),
        ],
        actions=[
            RuleAction(type=RuleActionType.DECLINE, message="Credit score too low"),
            RuleAction(type=RuleActionType.ADD_FLAG, value="low_credit_score"),
        ],
    )


def debt_to_income_rule() -> Rule:
    return Rule(
        id="debt_to_income",
        name="High Debt-to-Income Review",
        description="Route applicants with a high DTI to manual review",
        priority=80,
        conditions=[
            _number("high_dti", "debt_to_income_ratio",
                    ConditionOperator.GREATER_THAN, t.DTI_ACCEPTABLE),
        ],
        actions=[
            RuleAction(type=RuleActionType.REVIEW, message="Debt-to-income ratio above 40%"),
            RuleAction(type=RuleActionType.REQUIRE_DOCUMENT, value="income_verification"),
            RuleAction(type=RuleActionType.ADD_FLAG, value="high_dti"),
        ],
    )


def velocity_check_rule() -> Rule:
    return Rule(
        id="velocity_check",
        name="Application Velocity Check",
        description="Flag applicants submitting many applications in 24 hours",
        priority=95,
        conditions=[
            _number("velocity_24h", "external_data.application_count_24h",
                    ConditionOperator.GREATER_THAN, 3),
        ],
        actions=[
            RuleAction(type=RuleActionType.REVIEW, message="Multiple applications in 24 hours"),
            RuleAction(type=RuleActionType.ADD_FLAG, value="velocity_fraud"),
            RuleAction(type=RuleActionType.REQUIRE_DOCUMENT, value="identity_verification"),
        ],
    )


RULE_TEMPLATES: dict[str, Callable[[], Rule]] = {
    "high_credit": high_credit_rule,
    "low_credit": low_credit_rule,
    "debt_to_income": debt_to_income_rule,
    "velocity_check": velocity_check_rule,
}


# ─── Rule sets ────────────────────────────────────────────────

def default_underwriting_rule_set() -> RuleSet:
    """Auto-approve / auto-decline thresholds expressed as rules."""
    approve, decline = t.AUTO_APPROVE, t.AUTO_DECLINE
    return RuleSet(
        id=DEFAULT_UNDERWRITING_RULE_SET_ID,
        name="Default Underwriting",
        description="Decline below the floor, approve above the bar, review in between",
        rules=[
            Rule(
                id="auto_decline",
                name="Auto Decline",
                priority=100,
                logical_operator=LogicalOperator.OR,
                conditions=[
                    _number("decline_credit", "credit_score",
                            ConditionOperator.LESS_THAN, decline.min_credit_score),
                    _number("decline_dti", "debt_to_income_ratio",
                            ConditionOperator.GREATER_THAN, decline.max_debt_to_income),
                    _number("decline_income", "annual_income",
                            ConditionOperator.LESS_THAN, decline.min_income),
                ],
                actions=[
                    RuleAction(type=RuleActionType.DECLINE, message="Applicant below minimum lending criteria"),
                    RuleAction(type=RuleActionType.ADD_FLAG, value="below_minimum_criteria"),
                ],
            ),
            Rule(
                id="auto_approve",
                name="Auto Approve",
                priority=90,
                logical_operator=LogicalOperator.AND,
                conditions=[
                    _number("approve_credit", "credit_score",
                            ConditionOperator.GREATER_THAN_OR_EQUAL, approve.min_credit_score),
                    _number("approve_dti", "debt_to_income_ratio",
                            ConditionOperator.LESS_THAN_OR_EQUAL, approve.max_debt_to_income),
                    _number("approve_income", "annual_income",
                            ConditionOperator.GREATER_THAN_OR_EQUAL, approve.min_income),
                ],
                actions=[
                    RuleAction(type=RuleActionType.APPROVE, message="Applicant meets auto-approval criteria"),
                    RuleAction(type=RuleActionType.SET_SCORE, value=95),
                ],
            ),
            Rule(
                id="needs_review",
                name="Manual Review",
                priority=80,
                logical_operator=LogicalOperator.OR,
                conditions=[
                    _number("review_credit", "credit_score",
                            ConditionOperator.LESS_THAN, approve.min_credit_score),
                    _number("review_dti", "debt_to_income_ratio",
                            ConditionOperator.GREATER_THAN, approve.max_debt_to_income),
                    _number("review_income", "annual_income",
                            ConditionOperator.LESS_THAN, approve.min_income),
                ],
                actions=[
                    RuleAction(type=RuleActionType.REVIEW, message="Applicant requires underwriter review"),
                    RuleAction(type=RuleActionType.REQUIRE_DOCUMENT, value="income_verification"),
                ],
            ),
        ],
    )


def credit_templates_rule_set() -> RuleSet:
    return RuleSet(
        id=CREDIT_TEMPLATES_RULE_SET_ID,
        name="Credit Rule Templates",
        rules=[factory() for factory in RULE_TEMPLATES.values()],
    )


def default_rule_set_library() -> dict[str, RuleSet]:
    return {
        DEFAULT_UNDERWRITING_RULE_SET_ID: default_underwriting_rule_set(),
        CREDIT_TEMPLATES_RULE_SET_ID: credit_templates_rule_set(),
    }


# ─── Workflow template ────────────────────────────────────────

def default_loan_workflow(workflow_id: str = "default_loan_workflow") -> WorkflowDefinition:
    """Start, run the default underwriting rule set, end on its verdict."""
    return WorkflowDefinition.model_validate({
        "id": workflow_id,
        "name": "Default Loan Workflow",
        "description": "Automated underwriting with manual review fallback",
        "mode": "enhanced",
        "nodes": [
            {"id": "start", "type": "start", "data": {"label": "Application received"}},
            {
                "id": "underwriting",
                "type": "rule_set",
                "data": {"label": "Underwriting rules", "rule_set_id": DEFAULT_UNDERWRITING_RULE_SET_ID},
            },
            {"id": "approved", "type": "end",
             "data": {"label": "Approved", "decision": "approved", "message": "Application approved"}},
            {"id": "declined", "type": "end",
             "data": {"label": "Declined", "decision": "declined", "message": "Application declined"}},
            {"id": "manual_review", "type": "end",
             "data": {"label": "Manual review", "decision": "manual_review",
                      "message": "Application referred for manual review"}},
        ],
        "connections": [
            {"id": "c_start", "source": "start", "target": "underwriting", "connector_type": "success"},
            {"id": "c_approved", "source": "underwriting", "target": "approved", "connector_type": "approved"},
            {"id": "c_declined", "source": "underwriting", "target": "declined", "connector_type": "declined"},
            {"id": "c_review", "source": "underwriting", "target": "manual_review", "connector_type": "review"},
        ],
    })
