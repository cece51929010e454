"""Workflow endpoints: list, create, get, update, delete, validate, execute and history."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, status, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from api.schemas.common import NOT_FOUND, MessageResponse, PaginationParams
from api.schemas.execution import (
    ExecuteRequest,
    ExecutionHistoryResponse,
    ExecutionRecordResponse,
    ExecutionResultResponse,
)
from api.schemas.workflow import (
    WorkflowCreate,
    WorkflowUpdate,
    WorkflowResponse,
    WorkflowListResponse,
    WorkflowValidationResponse,
)
from app.config import get_settings
from app.dependencies import get_db, get_runtime
from app.runtime import DecisioningRuntime, template_workflow_store
from core.constants import ExecutionStatus
from services.workflow_service import ExecutionHistoryService, WorkflowService
from workflow.models import load_workflow_definition

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["workflows"])


def _workflow_to_response(wf) -> WorkflowResponse:
    """Convert a Workflow ORM object to response schema."""
    return WorkflowResponse(
        id=wf.id,
        name=wf.name,
        description=wf.description or "",
        definition=wf.definition or {},
        version=wf.version,
        mode=wf.mode,
        is_enabled=wf.is_enabled,
        created_at=wf.created_at,
        updated_at=wf.updated_at,
    )


def _execution_response(result) -> JSONResponse:
    """202 while an async-mode execution is still running."""
    body = ExecutionResultResponse(**result.to_dict()).model_dump(mode="json")
    code = status.HTTP_202_ACCEPTED if result.status == ExecutionStatus.RUNNING else status.HTTP_200_OK
    return JSONResponse(status_code=code, content=body)


@router.get("/", response_model=WorkflowListResponse)
async def list_workflows(
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
) -> WorkflowListResponse:
    """
    List stored workflows (paginated).
    """
    svc = WorkflowService(db)
    workflows, total = await svc.list(offset=pagination.offset, limit=pagination.per_page)

    return WorkflowListResponse(
        workflows=[_workflow_to_response(wf) for wf in workflows],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/templates", response_model=list[Dict[str, Any]])
async def list_templates() -> list[Dict[str, Any]]:
    """
    Built-in workflow templates. These can be executed by id without
    being stored first.
    """
    return [wf.model_dump(mode="json") for wf in template_workflow_store().list_workflows()]


@router.post("/validate", response_model=WorkflowValidationResponse)
async def validate_definition(
    definition: Dict[str, Any],
    runtime: DecisioningRuntime = Depends(get_runtime),
) -> WorkflowValidationResponse:
    """
    Validate an unsaved workflow definition.
    """
    parsed = load_workflow_definition(definition)
    return WorkflowValidationResponse(**runtime.validator.validate(parsed).to_dict())


@router.post("/", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    request: WorkflowCreate,
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    """
    Create a new workflow.
    """
    svc = WorkflowService(db)
    wf = await svc.create_workflow(
        name=request.name,
        definition=request.definition,
        description=request.description or "",
        is_enabled=request.is_enabled,
    )
    return _workflow_to_response(wf)


@router.get("/{workflow_id}", response_model=WorkflowResponse, responses=NOT_FOUND)
async def get_workflow(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    """
    Get workflow details by ID.
    """
    svc = WorkflowService(db)
    wf = await svc.get_by_id(workflow_id)

    if not wf:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Workflow not found",
        )

    return _workflow_to_response(wf)


@router.put("/{workflow_id}", response_model=WorkflowResponse, responses=NOT_FOUND)
async def update_workflow(
    workflow_id: str,
    request: WorkflowUpdate,
    db: AsyncSession = Depends(get_db),
) -> WorkflowResponse:
    """
    Update workflow metadata. A new definition increments the version.
    """
    svc = WorkflowService(db)
    wf = await svc.get_by_id(workflow_id)
    if not wf:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Workflow not found",
        )

    wf = await svc.update(workflow_id, {
        "name": request.name,
        "description": request.description,
        "is_enabled": request.is_enabled,
    })
    if request.definition is not None:
        wf = await svc.update_definition(workflow_id, request.definition)

    logger.info("Workflow updated", workflow_id=workflow_id, version=wf.version)
    return _workflow_to_response(wf)


@router.delete("/{workflow_id}", response_model=MessageResponse, responses=NOT_FOUND)
async def delete_workflow(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """
    Soft-delete a workflow.
    """
    svc = WorkflowService(db)
    if not await svc.soft_delete(workflow_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Workflow not found",
        )
    logger.info("Workflow deleted", workflow_id=workflow_id)
    return MessageResponse(message="Workflow deleted", resource_id=workflow_id)


@router.post("/{workflow_id}/validate", response_model=WorkflowValidationResponse, responses=NOT_FOUND)
async def validate_workflow(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
    runtime: DecisioningRuntime = Depends(get_runtime),
) -> WorkflowValidationResponse:
    """
    Validate a stored workflow definition.
    """
    definition = await WorkflowService(db).get_definition(workflow_id, enabled_only=False)
    if definition is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Workflow not found",
        )
    return WorkflowValidationResponse(**runtime.validator.validate(definition).to_dict())


@router.post(
    "/{workflow_id}/execute",
    response_model=ExecutionResultResponse,
    responses={202: {"model": ExecutionResultResponse}, **NOT_FOUND},
)
async def execute_workflow(
    workflow_id: str,
    request: ExecuteRequest,
    runtime: DecisioningRuntime = Depends(get_runtime),
):
    """
    Execute a stored or built-in workflow.

    Sync and step mode return the finished (or paused) result. Async mode
    returns 202 with status running; poll /executions/{id} for the result.
    """
    options = request.options.model_dump(mode="json")
    result = await runtime.engine.execute_workflow(workflow_id, request.input_data, options)
    logger.info(
        "Workflow executed via API",
        workflow_id=workflow_id,
        execution_id=result.execution_id,
        status=result.status.value,
    )
    return _execution_response(result)


@router.get("/{workflow_id}/executions", response_model=ExecutionHistoryResponse)
async def get_execution_history(
    workflow_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> ExecutionHistoryResponse:
    """
    Most recent executions of a workflow, newest first.
    """
    limit = limit or get_settings().EXECUTION_HISTORY_LIMIT
    rows = await ExecutionHistoryService(db).get_execution_history(workflow_id, limit)
    return ExecutionHistoryResponse(
        executions=[ExecutionRecordResponse.model_validate(r) for r in rows],
        total=len(rows),
    )
