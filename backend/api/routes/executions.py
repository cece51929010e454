"""Execution endpoints: status, in-flight listing, pause, resume and cancel."""

from fastapi import APIRouter, HTTPException, status, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from api.schemas.common import CONFLICT, NOT_FOUND, MessageResponse
from api.schemas.execution import (
    CancelRequest,
    ExecutionRecordResponse,
    ExecutionResultResponse,
    PauseRequest,
    ResumeRequest,
    RunningExecutionsResponse,
)
from app.dependencies import get_db, get_engine
from services.workflow_service import ExecutionHistoryService
from workflow.engine import WorkflowEngine

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["executions"])


@router.get("/running", response_model=RunningExecutionsResponse)
async def list_running(
    engine: WorkflowEngine = Depends(get_engine),
) -> RunningExecutionsResponse:
    """
    Executions currently running or paused in this process.
    """
    executions = engine.get_running_executions()
    return RunningExecutionsResponse(executions=executions, total=len(executions))


@router.get("/{execution_id}/result", response_model=ExecutionResultResponse, responses=NOT_FOUND)
async def get_result(
    execution_id: str,
    engine: WorkflowEngine = Depends(get_engine),
) -> ExecutionResultResponse:
    """
    Latest in-memory result of an execution, including variables.
    """
    result = engine.get_execution_result(execution_id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Execution not found",
        )
    return ExecutionResultResponse(**result.to_dict())


@router.get("/{execution_id}", response_model=ExecutionRecordResponse, responses=NOT_FOUND)
async def get_execution(
    execution_id: str,
    db: AsyncSession = Depends(get_db),
) -> ExecutionRecordResponse:
    """
    Persisted execution record.
    """
    record = await ExecutionHistoryService(db).get_by_id(execution_id)
    if not record:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Execution not found",
        )
    return ExecutionRecordResponse.model_validate(record)


@router.post("/{execution_id}/pause", response_model=MessageResponse, responses=NOT_FOUND)
async def pause_execution(
    execution_id: str,
    request: PauseRequest = PauseRequest(),
    engine: WorkflowEngine = Depends(get_engine),
) -> MessageResponse:
    """
    Request a pause at the next node boundary.
    """
    if not await engine.pause_execution(execution_id, request.reason):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Execution is not running",
        )
    return MessageResponse(message="Pause requested", resource_id=execution_id)


@router.post("/{execution_id}/resume", response_model=ExecutionResultResponse, responses={**NOT_FOUND, **CONFLICT})
async def resume_execution(
    execution_id: str,
    request: ResumeRequest = ResumeRequest(),
    engine: WorkflowEngine = Depends(get_engine),
) -> ExecutionResultResponse:
    """
    Resume a paused execution. For an execution suspended on an async
    operation, the body supplies the node output and connector.
    """
    result = await engine.resume_execution(execution_id, request.to_resume_data())
    logger.info(
        "Execution resumed via API",
        execution_id=execution_id,
        status=result.status.value,
    )
    return ExecutionResultResponse(**result.to_dict())


@router.post("/{execution_id}/cancel", response_model=MessageResponse, responses=NOT_FOUND)
async def cancel_execution(
    execution_id: str,
    request: CancelRequest = CancelRequest(),
    engine: WorkflowEngine = Depends(get_engine),
) -> MessageResponse:
    """
    Cancel a running or paused execution.
    """
    if not await engine.cancel_execution(execution_id, request.reason):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Execution is not running or paused",
        )
    return MessageResponse(message="Cancellation requested", resource_id=execution_id)
