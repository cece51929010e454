"""Tests for the threshold-based applicant decision policy."""

import pytest

from core.constants import ApplicantDecision, RiskLevel
from core.exceptions import ValidationError
from underwriting.decision_policy import DecisionPolicy


@pytest.mark.unit
class TestDecisionPolicy:

    def test_strong_applicant_is_approved(self, strong_applicant):
        evaluation = DecisionPolicy().evaluate_applicant(**strong_applicant)
        assert evaluation.decision == ApplicantDecision.APPROVED
        assert evaluation.risk_level == RiskLevel.LOW
        assert evaluation.risk_points == 250

    def test_weak_applicant_is_declined(self, weak_applicant):
        evaluation = DecisionPolicy().evaluate_applicant(**weak_applicant)
        assert evaluation.decision == ApplicantDecision.DECLINED
        assert "Send adverse action notice" in evaluation.recommended_actions

    def test_borderline_applicant_goes_to_review(self, borderline_applicant):
        evaluation = DecisionPolicy().evaluate_applicant(**borderline_applicant)
        assert evaluation.decision == ApplicantDecision.MANUAL_REVIEW
        assert evaluation.risk_level == RiskLevel.HIGH
        assert "Verify income and employment" in evaluation.recommended_actions

    def test_confidence_is_bounded(self):
        policy = DecisionPolicy()
        for args in [(850, 0.0, 1_000_000), (650, 0.4, 75_000), (300, 1.0, 0)]:
            assert 0.1 <= policy.evaluate_applicant(*args).confidence <= 0.95

    def test_confidence_lowest_at_boundaries(self):
        assert DecisionPolicy.confidence(650, 0.4, 75_000) == 0.5

    def test_reasons_describe_each_factor(self, strong_applicant):
        reasons = DecisionPolicy().evaluate_applicant(**strong_applicant).reasons
        assert reasons == ["Good credit score", "Low debt-to-income ratio", "Strong income level"]

    @pytest.mark.parametrize(
        "credit_score, dti, income",
        [(250, 0.3, 50_000), (900, 0.3, 50_000), (700, -0.1, 50_000), (700, 1.5, 50_000), (700, 0.3, -1)],
    )
    def test_invalid_inputs_rejected(self, credit_score, dti, income):
        with pytest.raises(ValidationError):
            DecisionPolicy().evaluate_applicant(credit_score, dti, income)

    def test_to_dict(self, strong_applicant):
        data = DecisionPolicy().evaluate_applicant(**strong_applicant).to_dict()
        assert data["decision"] == "approved"
        assert data["risk_level"] == "low"
