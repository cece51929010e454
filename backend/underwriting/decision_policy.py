"""Applicant decision policy.

Scores an applicant on credit score, debt-to-income ratio and annual income,
buckets the combined risk, and returns approved / declined / manual_review
with a confidence estimate and human-readable reasons.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from core.constants import ApplicantDecision, RiskLevel
from core.exceptions import ValidationError
from underwriting import thresholds as t

logger = structlog.get_logger(__name__)


@dataclass
class ApplicantEvaluation:
    decision: ApplicantDecision
    risk_level: RiskLevel
    risk_points: int
    confidence: float
    reasons: list[str] = field(default_factory=list)
    recommended_actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.value,
            "risk_level": self.risk_level.value,
            "risk_points": self.risk_points,
            "confidence": self.confidence,
            "reasons": list(self.reasons),
            "recommended_actions": list(self.recommended_actions),
        }


class DecisionPolicy:
    """Threshold-based underwriting policy."""

    def __init__(
        self,
        auto_approve: t.DecisionRule = t.AUTO_APPROVE,
        auto_decline: t.DecisionRule = t.AUTO_DECLINE,
    ):
        self.auto_approve = auto_approve
        self.auto_decline = auto_decline

    def evaluate_applicant(
        self,
        credit_score: float,
        debt_to_income_ratio: float,
        annual_income: float,
    ) -> ApplicantEvaluation:
        self._validate_inputs(credit_score, debt_to_income_ratio, annual_income)

        risk_points = self.risk_points(credit_score, debt_to_income_ratio, annual_income)
        risk_level = self.risk_level(risk_points)
        decision = self._decide(credit_score, debt_to_income_ratio, annual_income, risk_level)
        confidence = self.confidence(credit_score, debt_to_income_ratio, annual_income)

        evaluation = ApplicantEvaluation(
            decision=decision,
            risk_level=risk_level,
            risk_points=risk_points,
            confidence=confidence,
            reasons=self._reasons(credit_score, debt_to_income_ratio, annual_income),
            recommended_actions=self._recommended_actions(decision, risk_level),
        )
        logger.info(
            "Applicant evaluated",
            decision=decision.value,
            risk_level=risk_level.value,
            risk_points=risk_points,
            confidence=confidence,
        )
        return evaluation

    # ─── Scoring ─────────────────────────────────────────────

    @staticmethod
    def _validate_inputs(credit_score: float, dti: float, income: float) -> None:
        if not t.CREDIT_SCORE_MIN <= credit_score <= t.CREDIT_SCORE_MAX:
            raise ValidationError(
                f"Credit score must be between {t.CREDIT_SCORE_MIN} and {t.CREDIT_SCORE_MAX}"
            )
        if not 0 <= dti <= t.DTI_MAX:
            raise ValidationError(f"Debt-to-income ratio must be between 0 and {t.DTI_MAX}")
        if income < 0:
            raise ValidationError("Annual income cannot be negative")

    @staticmethod
    def risk_points(credit_score: float, dti: float, income: float) -> int:
        points = 0

        if credit_score >= t.CREDIT_SCORE_EXCELLENT:
            points += 0
        elif credit_score >= t.CREDIT_SCORE_GOOD:
            points += 100
        elif credit_score >= t.CREDIT_SCORE_FAIR:
            points += 300
        else:
            points += 500

        if dti <= t.DTI_EXCELLENT:
            points += 0
        elif dti <= t.DTI_GOOD:
            points += 100
        elif dti <= t.DTI_ACCEPTABLE:
            points += 200
        else:
            points += 400

        if income >= t.INCOME_HIGH:
            points += 0
        elif income >= t.INCOME_MEDIUM:
            points += 50
        elif income >= t.INCOME_LOW:
            points += 150
        else:
            points += 300

        return points

    @staticmethod
    def risk_level(points: int) -> RiskLevel:
        if points <= t.RISK_LOW:
            return RiskLevel.LOW
        if points <= t.RISK_MEDIUM:
            return RiskLevel.MEDIUM
        if points <= t.RISK_HIGH:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL

    def _decide(self, credit_score: float, dti: float, income: float, risk: RiskLevel) -> ApplicantDecision:
        approve = self.auto_approve
        if (
            credit_score >= approve.min_credit_score
            and dti <= approve.max_debt_to_income
            and income >= approve.min_income
            and risk == RiskLevel.LOW
        ):
            return ApplicantDecision.APPROVED

        decline = self.auto_decline
        if (
            credit_score < decline.min_credit_score
            or dti > decline.max_debt_to_income
            or income < decline.min_income
            or risk == RiskLevel.CRITICAL
        ):
            return ApplicantDecision.DECLINED

        return ApplicantDecision.MANUAL_REVIEW

    @staticmethod
    def confidence(credit_score: float, dti: float, income: float) -> float:
        """Distance of each input from its decision boundary, capped per factor."""
        confidence = 0.5
        confidence += min(abs(credit_score - t.CREDIT_SCORE_FAIR) / 100 * 0.2, 0.3)
        confidence += min(abs(dti - t.DTI_ACCEPTABLE) * 2 * 0.15, 0.2)
        confidence += min(abs(income - t.INCOME_MEDIUM) / 50_000 * 0.1, 0.15)
        return round(max(0.1, min(0.95, confidence)), 4)

    # ─── Explanations ────────────────────────────────────────

    @staticmethod
    def _reasons(credit_score: float, dti: float, income: float) -> list[str]:
        reasons = []

        if credit_score >= t.CREDIT_SCORE_EXCELLENT:
            reasons.append("Excellent credit score")
        elif credit_score >= t.CREDIT_SCORE_GOOD:
            reasons.append("Good credit score")
        elif credit_score >= t.CREDIT_SCORE_FAIR:
            reasons.append("Fair credit score")
        else:
            reasons.append("Credit score below acceptable threshold")

        if dti <= t.DTI_GOOD:
            reasons.append("Low debt-to-income ratio")
        elif dti <= t.DTI_ACCEPTABLE:
            reasons.append("Acceptable debt-to-income ratio")
        else:
            reasons.append("High debt-to-income ratio")

        if income >= t.INCOME_MEDIUM:
            reasons.append("Strong income level")
        elif income >= t.INCOME_LOW:
            reasons.append("Moderate income level")
        else:
            reasons.append("Income below preferred level")

        return reasons

    @staticmethod
    def _recommended_actions(decision: ApplicantDecision, risk: RiskLevel) -> list[str]:
        if decision == ApplicantDecision.APPROVED:
            return ["Proceed with loan origination", "Send approval notification"]
        if decision == ApplicantDecision.DECLINED:
            return ["Send adverse action notice", "Provide credit counseling resources"]
        actions = ["Request additional documentation", "Assign to underwriter"]
        if risk in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            actions.append("Verify income and employment")
        return actions
