"""Underwriting thresholds shared by the decision policy and rule templates."""

# Credit score bands
CREDIT_SCORE_EXCELLENT = 800
CREDIT_SCORE_GOOD = 700
CREDIT_SCORE_FAIR = 650
CREDIT_SCORE_POOR = 600
CREDIT_SCORE_MIN = 300
CREDIT_SCORE_MAX = 850

# Debt-to-income ratio bands
DTI_EXCELLENT = 0.2
DTI_GOOD = 0.3
DTI_ACCEPTABLE = 0.4
DTI_HIGH_RISK = 0.5
DTI_MAX = 1.0

# Risk point buckets
RISK_LOW = 300
RISK_MEDIUM = 500
RISK_HIGH = 650
RISK_CRITICAL = 800
RISK_MAX = 1000

# Annual income bands
INCOME_MIN_ANNUAL = 25_000
INCOME_LOW = 40_000
INCOME_MEDIUM = 75_000
INCOME_HIGH = 150_000


class DecisionRule:
    """Minimum credit, maximum DTI and minimum income for one verdict."""

    def __init__(self, min_credit_score: int, max_debt_to_income: float, min_income: int):
        self.min_credit_score = min_credit_score
        self.max_debt_to_income = max_debt_to_income
        self.min_income = min_income

    def to_dict(self) -> dict:
        return {
            "min_credit_score": self.min_credit_score,
            "max_debt_to_income": self.max_debt_to_income,
            "min_income": self.min_income,
        }


AUTO_APPROVE = DecisionRule(CREDIT_SCORE_GOOD, DTI_GOOD, INCOME_MEDIUM)
MANUAL_REVIEW = DecisionRule(CREDIT_SCORE_FAIR, DTI_ACCEPTABLE, INCOME_LOW)
AUTO_DECLINE = DecisionRule(CREDIT_SCORE_POOR, DTI_HIGH_RISK, INCOME_MIN_ANNUAL)
