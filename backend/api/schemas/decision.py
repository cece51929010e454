"""Applicant evaluation schemas."""

from pydantic import BaseModel, Field
from typing import List, Optional


class EvaluateApplicantRequest(BaseModel):
    credit_score: float = Field(description="Bureau credit score (300-850)")
    debt_to_income_ratio: float = Field(description="Monthly debt over monthly income, as a fraction")
    annual_income: float = Field(description="Gross annual income")


class ApplicantEvaluationResponse(BaseModel):
    decision: str = Field(description="approved, declined or manual_review")
    risk_level: str = Field(description="low, medium, high or critical")
    risk_points: int
    confidence: float
    reasons: List[str]
    recommended_actions: List[str]


MAX_BATCH_SIZE = 100


class BatchApplicant(EvaluateApplicantRequest):
    applicant_id: str = Field(description="Caller's reference for this applicant")


class BatchEvaluateRequest(BaseModel):
    batch_id: Optional[str] = Field(default=None, description="Generated when omitted")
    applicants: List[BatchApplicant] = Field(min_length=1, max_length=MAX_BATCH_SIZE)


class BatchEvaluationResult(BaseModel):
    applicant_id: str
    evaluation: ApplicantEvaluationResponse


class BatchStatistics(BaseModel):
    total: int
    approved: int
    declined: int
    manual_review: int
    average_risk_points: float


class BatchEvaluateResponse(BaseModel):
    batch_id: str
    status: str = "completed"
    results: List[BatchEvaluationResult]
    statistics: BatchStatistics
    duration_ms: float
