"""Workflow schemas."""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional, Dict, Any


class WorkflowCreate(BaseModel):
    """Request to create a workflow."""

    name: str = Field(min_length=1, description="Workflow name")
    description: Optional[str] = Field(default="", description="Workflow description")
    definition: Dict[str, Any] = Field(description="Workflow definition: mode, nodes and connections")
    is_enabled: bool = Field(default=True, description="Whether workflow can be executed")


class WorkflowUpdate(BaseModel):
    """Request to update a workflow."""

    name: Optional[str] = Field(default=None, min_length=1, description="Workflow name")
    description: Optional[str] = Field(default=None, description="Workflow description")
    definition: Optional[Dict[str, Any]] = Field(default=None, description="Replacement definition; bumps version")
    is_enabled: Optional[bool] = Field(default=None, description="Whether workflow is enabled")


class WorkflowResponse(BaseModel):
    """Workflow information response."""

    id: str = Field(description="Workflow ID")
    name: str = Field(description="Workflow name")
    description: str = Field(description="Workflow description")
    definition: Dict[str, Any] = Field(description="Workflow definition")
    version: int = Field(description="Workflow version number")
    mode: str = Field(description="Authoring mode (simple, enhanced, enterprise)")
    is_enabled: bool = Field(description="Whether workflow is enabled")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last update timestamp")

    class Config:
        from_attributes = True


class WorkflowListResponse(BaseModel):
    """Paginated list of workflows."""

    workflows: List[WorkflowResponse] = Field(description="List of workflows")
    total: int = Field(description="Total number of workflows")
    page: int = Field(description="Current page number")
    per_page: int = Field(description="Items per page")


class WorkflowValidationResponse(BaseModel):
    """Result of validating a workflow definition."""

    is_valid: bool = Field(description="False when any error was found")
    errors: List[str] = Field(default_factory=list, description="Blocking problems")
    warnings: List[str] = Field(default_factory=list, description="Non-blocking problems")
    node_results: Dict[str, Dict[str, Any]] = Field(default_factory=dict, description="Per-node validation")
