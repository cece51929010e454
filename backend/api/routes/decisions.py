"""Stand-alone applicant evaluation, single and batched."""

import time
from uuid import uuid4

import structlog
from fastapi import APIRouter, Depends

from api.schemas.decision import (
    ApplicantEvaluationResponse,
    BatchEvaluateRequest,
    BatchEvaluateResponse,
    BatchEvaluationResult,
    BatchStatistics,
    EvaluateApplicantRequest,
)
from app.dependencies import get_runtime
from app.runtime import DecisioningRuntime

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["decisions"])


def _evaluate(runtime: DecisioningRuntime, request: EvaluateApplicantRequest) -> ApplicantEvaluationResponse:
    evaluation = runtime.policy.evaluate_applicant(
        credit_score=request.credit_score,
        debt_to_income_ratio=request.debt_to_income_ratio,
        annual_income=request.annual_income,
    )
    return ApplicantEvaluationResponse(**evaluation.to_dict())


@router.post("/evaluate", response_model=ApplicantEvaluationResponse)
async def evaluate_applicant(
    request: EvaluateApplicantRequest,
    runtime: DecisioningRuntime = Depends(get_runtime),
) -> ApplicantEvaluationResponse:
    """
    Score an applicant against the underwriting policy without running
    a workflow.
    """
    return _evaluate(runtime, request)


@router.post("/batch", response_model=BatchEvaluateResponse)
async def evaluate_batch(
    request: BatchEvaluateRequest,
    runtime: DecisioningRuntime = Depends(get_runtime),
) -> BatchEvaluateResponse:
    """Evaluate up to 100 applicants. One invalid applicant rejects the batch."""
    started = time.monotonic()
    batch_id = request.batch_id or f"batch-{uuid4().hex[:12]}"

    results = [
        BatchEvaluationResult(applicant_id=applicant.applicant_id, evaluation=_evaluate(runtime, applicant))
        for applicant in request.applicants
    ]
    decisions = [r.evaluation.decision for r in results]
    statistics = BatchStatistics(
        total=len(results),
        approved=decisions.count("approved"),
        declined=decisions.count("declined"),
        manual_review=decisions.count("manual_review"),
        average_risk_points=round(sum(r.evaluation.risk_points for r in results) / len(results), 2),
    )
    duration_ms = round((time.monotonic() - started) * 1000, 2)

    logger.info(
        "Batch evaluated",
        batch_id=batch_id,
        total=statistics.total,
        approved=statistics.approved,
        declined=statistics.declined,
        manual_review=statistics.manual_review,
        duration_ms=duration_ms,
    )
    return BatchEvaluateResponse(
        batch_id=batch_id,
        results=results,
        statistics=statistics,
        duration_ms=duration_ms,
    )
