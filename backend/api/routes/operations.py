"""Async operation endpoints: inspect, complete and fail pending operations.

Completing an operation resumes the execution suspended on it.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
import structlog

from api.schemas.common import CONFLICT, NOT_FOUND
from api.schemas.operation import (
    OperationCompleteRequest,
    OperationFailRequest,
    OperationListResponse,
    OperationResponse,
)
from app.dependencies import get_operation_registry
from workflow.async_registry import AsyncOperationRegistry

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["operations"])


@router.get("/", response_model=OperationListResponse)
async def list_pending(
    execution_id: Optional[str] = Query(default=None),
    registry: AsyncOperationRegistry = Depends(get_operation_registry),
) -> OperationListResponse:
    """
    Pending operations, optionally for one execution.
    """
    pending = registry.list_pending(execution_id)
    return OperationListResponse(
        operations=[OperationResponse(**h.to_dict()) for h in pending],
        total=len(pending),
    )


@router.get("/{operation_id}", response_model=OperationResponse, responses=NOT_FOUND)
async def get_operation(
    operation_id: str,
    registry: AsyncOperationRegistry = Depends(get_operation_registry),
) -> OperationResponse:
    return OperationResponse(**registry.get_status(operation_id).to_dict())


@router.post("/{operation_id}/complete", response_model=OperationResponse, responses={**NOT_FOUND, **CONFLICT})
async def complete_operation(
    operation_id: str,
    request: OperationCompleteRequest,
    registry: AsyncOperationRegistry = Depends(get_operation_registry),
) -> OperationResponse:
    """
    Complete a pending operation and resume its execution.
    """
    handle = await registry.complete(operation_id, request.result)
    logger.info("Operation completed via API", operation_id=operation_id)
    return OperationResponse(**handle.to_dict())


@router.post("/{operation_id}/fail", response_model=OperationResponse, responses={**NOT_FOUND, **CONFLICT})
async def fail_operation(
    operation_id: str,
    request: OperationFailRequest,
    registry: AsyncOperationRegistry = Depends(get_operation_registry),
) -> OperationResponse:
    """
    Fail a pending operation. The execution follows the suspended node's
    error handler, or fails.
    """
    handle = await registry.fail(operation_id, request.error)
    logger.info("Operation failed via API", operation_id=operation_id)
    return OperationResponse(**handle.to_dict())
