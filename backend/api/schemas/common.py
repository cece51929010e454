"""Schemas shared by the workflow, execution and operation endpoints."""

from pydantic import BaseModel, Field
from typing import Optional


class PaginationParams(BaseModel):
    """Page selection for list endpoints."""

    page: int = Field(default=1, ge=1, description="Page number (1-indexed)")
    per_page: int = Field(default=20, ge=1, le=100, description="Items per page (max 100)")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


class MessageResponse(BaseModel):
    """Acknowledgement for control endpoints (delete, pause, cancel)."""

    message: str
    resource_id: Optional[str] = Field(default=None, description="Workflow or execution the action applied to")


class ErrorResponse(BaseModel):
    """Body of every error produced by the exception handlers."""

    detail: str = Field(description="Human-readable error message")
    request_id: Optional[str] = Field(default=None, description="Request ID for log correlation")
    code: Optional[str] = Field(default=None, description="Execution error code, for engine failures")
    node_id: Optional[str] = Field(default=None, description="Node that raised the error, if any")


NOT_FOUND = {404: {"model": ErrorResponse}}
CONFLICT = {409: {"model": ErrorResponse}}
