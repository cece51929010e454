"""Async operation schemas."""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class OperationCompleteRequest(BaseModel):
    """Completion payload for a pending operation.

    ``connector`` or ``decision`` select the branch taken after the
    suspended node; other keys of ``result`` are merged into variables.
    """

    result: Dict[str, Any] = Field(default_factory=dict)


class OperationFailRequest(BaseModel):
    error: str = Field(min_length=1, description="Failure reason")


class OperationResponse(BaseModel):
    operation_id: str
    node_id: str
    execution_id: str
    status: str
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: str
    completed_at: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class OperationListResponse(BaseModel):
    operations: List[OperationResponse]
    total: int
