"""Underwriting actions.

Bureau, income and notification calls are simulated: they derive what they
can from the execution variables and fill the rest from the action's
random generator, which is seeded in tests for repeatable output.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import structlog

from actions.base_action import ActionResult, BaseAction
from core.exceptions import ValidationError
from underwriting.decision_policy import DecisionPolicy

logger = structlog.get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CreditCheckAction(BaseAction):
    action_type = "credit_check"
    display_name = "Credit Check"
    description = "Pull a credit report for the applicant"

    async def execute(self, config: Dict[str, Any], variables: Dict[str, Any]) -> ActionResult:
        score = config.get("score")
        if score is None:
            score = self.rng.randint(300, 850)
        return ActionResult(
            success=True,
            output={
                "credit_score": score,
                "credit_history": {
                    "accounts": self.rng.randint(1, 10),
                    "delinquencies": self.rng.randint(0, 2),
                    "inquiries": self.rng.randint(0, 4),
                },
                "provider": config.get("provider", "default_bureau"),
                "applicant_id": variables.get("applicant_id", "unknown"),
                "checked_at": _now(),
            },
        )


class IncomeVerificationAction(BaseAction):
    action_type = "income_verification"
    display_name = "Income Verification"
    description = "Verify stated income against payroll or documents"

    async def execute(self, config: Dict[str, Any], variables: Dict[str, Any]) -> ActionResult:
        stated = float(variables.get("annual_income") or variables.get("stated_income") or 50_000)
        return ActionResult(
            success=True,
            output={
                "verified_income": round(stated * self.rng.uniform(0.8, 1.2), 2),
                "verification_method": config.get("method", "document_review"),
                "confidence": round(self.rng.uniform(0.7, 1.0), 3),
                "documents": ["pay_stub", "tax_return"],
                "verified_at": _now(),
            },
        )


class DebtCalculationAction(BaseAction):
    action_type = "debt_calculation"
    display_name = "Debt Calculation"
    description = "Compute monthly debt load and debt-to-income ratio"

    async def execute(self, config: Dict[str, Any], variables: Dict[str, Any]) -> ActionResult:
        income = float(
            variables.get("verified_income")
            or variables.get("annual_income")
            or variables.get("stated_income")
            or 50_000
        )
        monthly_debt = variables.get("monthly_debt_payments")
        if monthly_debt is None:
            monthly_debt = self.rng.uniform(0, income * 0.5) * 0.03
        monthly_debt = float(monthly_debt)
        ratio = round(monthly_debt * 12 / income, 4) if income > 0 else 1.0

        return ActionResult(
            success=True,
            output={
                "monthly_debt_payments": round(monthly_debt, 2),
                "monthly_income": round(income / 12, 2),
                "debt_to_income_ratio": ratio,
                "calculated_at": _now(),
            },
        )


class RiskAssessmentAction(BaseAction):
    action_type = "risk_assessment"
    display_name = "Risk Assessment"
    description = "Score applicant risk; uses the decision policy when inputs are complete"

    def __init__(self, rng=None, policy: DecisionPolicy = None):
        super().__init__(rng)
        self.policy = policy or DecisionPolicy()

    async def execute(self, config: Dict[str, Any], variables: Dict[str, Any]) -> ActionResult:
        credit = variables.get("credit_score")
        dti = variables.get("debt_to_income_ratio")
        income = variables.get("annual_income")

        if credit is not None and dti is not None and income is not None:
            try:
                evaluation = self.policy.evaluate_applicant(float(credit), float(dti), float(income))
            except ValidationError as e:
                return ActionResult(success=False, error=e.message)
            output = evaluation.to_dict()
            output["assessed_at"] = _now()
            return ActionResult(success=True, output=output)

        credit = float(credit if credit is not None else 650)
        dti = float(dti if dti is not None else 0.3)
        risk_score = 0.5
        if credit > 700:
            risk_score -= 0.2
        if credit < 600:
            risk_score += 0.3
        if dti > 0.4:
            risk_score += 0.2
        if dti < 0.2:
            risk_score -= 0.1
        risk_score = round(max(0.0, min(1.0, risk_score)), 4)

        return ActionResult(
            success=True,
            output={
                "risk_score": risk_score,
                "risk_level": "high" if risk_score > 0.7 else "medium" if risk_score > 0.4 else "low",
                "factors": {"credit_score": credit, "debt_to_income_ratio": dti},
                "assessed_at": _now(),
            },
        )


class DocumentRequestAction(BaseAction):
    action_type = "document_request"
    display_name = "Document Request"
    description = "Ask the applicant for supporting documents"

    async def execute(self, config: Dict[str, Any], variables: Dict[str, Any]) -> ActionResult:
        now = datetime.now(timezone.utc)
        return ActionResult(
            success=True,
            output={
                "documents_requested": config.get("documents", ["income_verification", "identity_proof"]),
                "request_method": config.get("method", "email"),
                "deadline": (now + timedelta(days=7)).isoformat(),
                "status": "sent",
                "requested_at": now.isoformat(),
            },
        )


class NotificationAction(BaseAction):
    action_type = "notification"
    display_name = "Notification"
    description = "Notify the applicant of a status change"

    async def execute(self, config: Dict[str, Any], variables: Dict[str, Any]) -> ActionResult:
        recipient = config.get("recipient") or variables.get("email") or "applicant@example.com"
        logger.info("Notification queued", channel=config.get("type", "email"), recipient=recipient)
        return ActionResult(
            success=True,
            output={
                "notification_type": config.get("type", "email"),
                "message": config.get("message", "Application status update"),
                "recipient": recipient,
                "status": "sent",
                "sent_at": _now(),
            },
        )


class DataUpdateAction(BaseAction):
    action_type = "data_update"
    display_name = "Data Update"
    description = "Write fixed values into the execution variables"

    async def execute(self, config: Dict[str, Any], variables: Dict[str, Any]) -> ActionResult:
        updates = dict(config.get("updates") or {})
        return ActionResult(
            success=True,
            output={"updated_fields": list(updates), "updated_at": _now()},
            variable_updates=updates,
        )


class ManualReviewAction(BaseAction):
    action_type = "manual_review"
    display_name = "Manual Review"
    description = "Suspend the workflow until an underwriter completes the review"

    async def execute(self, config: Dict[str, Any], variables: Dict[str, Any]) -> ActionResult:
        return ActionResult(
            success=True,
            output={
                "queue": config.get("queue", "underwriting"),
                "assignee": config.get("assignee"),
                "status": "pending",
                "requested_at": _now(),
            },
            suspend=True,
        )


class DefaultAction(BaseAction):
    action_type = "default"
    display_name = "Generic Action"
    description = "No-op action that echoes its configuration"

    async def execute(self, config: Dict[str, Any], variables: Dict[str, Any]) -> ActionResult:
        return ActionResult(
            success=True,
            output={"action": "completed", "config": dict(config), "completed_at": _now()},
        )


UNDERWRITING_ACTION_TYPES = {
    "credit_check": CreditCheckAction,
    "income_verification": IncomeVerificationAction,
    "debt_calculation": DebtCalculationAction,
    "risk_assessment": RiskAssessmentAction,
    "document_request": DocumentRequestAction,
    "notification": NotificationAction,
    "data_update": DataUpdateAction,
    "manual_review": ManualReviewAction,
    "default": DefaultAction,
}
