"""Execution and workflow run schemas."""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.constants import ConnectorType, ErrorCode, ExecutionMode


class ExecutionOptionsSchema(BaseModel):
    """Per-execution overrides of engine settings."""

    timeout_ms: Optional[int] = Field(default=None, gt=0, description="Wall-clock limit for the execution")
    variable_overrides: Dict[str, Any] = Field(default_factory=dict, description="Variables applied after start")
    mode: ExecutionMode = Field(default=ExecutionMode.SYNC, description="sync, async or step")
    max_iterations: Optional[int] = Field(default=None, gt=0, description="Node visit cap")
    parallel_branches: Optional[bool] = Field(default=None, description="Fan out on multiple matching connections")


class ExecuteRequest(BaseModel):
    """Request to execute a workflow."""

    input_data: Dict[str, Any] = Field(default_factory=dict, description="Application data")
    options: ExecutionOptionsSchema = Field(default_factory=ExecutionOptionsSchema)


class ExecutionErrorSchema(BaseModel):
    code: str
    message: str
    node_id: Optional[str] = None
    timestamp: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)


class ExecutionResultResponse(BaseModel):
    """Result of an execution as returned by the engine."""

    execution_id: str = Field(description="Execution ID")
    workflow_id: str = Field(description="Workflow ID")
    status: str = Field(description="running, paused, completed, failed, timed_out or cancelled")
    success: bool = Field(description="True only when the execution completed")
    output: Dict[str, Any] = Field(default_factory=dict)
    decision: Optional[Any] = Field(default=None, description="Final decision, if one was reached")
    execution_path: List[str] = Field(default_factory=list, description="Node ids in visit order")
    duration_ms: float = Field(default=0)
    errors: List[ExecutionErrorSchema] = Field(default_factory=list)
    warnings: List[ExecutionErrorSchema] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    pending_operation_id: Optional[str] = Field(default=None, description="Set while suspended on an operation")
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class ExecutionRecordResponse(BaseModel):
    """Persisted execution record."""

    id: str = Field(description="Execution ID")
    workflow_id: str = Field(description="Workflow ID")
    status: str = Field(description="Final or current status")
    success: bool
    decision: Optional[Any] = None
    execution_path: Optional[List[str]] = None
    errors: Optional[List[Dict[str, Any]]] = None
    warnings: Optional[List[Dict[str, Any]]] = None
    output: Optional[Dict[str, Any]] = None
    input_data: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    pending_operation_id: Optional[str] = None

    class Config:
        from_attributes = True


class ExecutionHistoryResponse(BaseModel):
    """Most recent executions of a workflow."""

    executions: List[ExecutionRecordResponse]
    total: int


class PauseRequest(BaseModel):
    reason: str = Field(default="Pause requested", description="Recorded on the paused execution")


class CancelRequest(BaseModel):
    reason: str = Field(default="Execution cancelled", description="Recorded as the CANCELLED error message")


class ResumeRequest(BaseModel):
    """Data supplied when resuming a paused execution."""

    output: Dict[str, Any] = Field(default_factory=dict, description="Merged into variables for a suspended node")
    connector: Optional[ConnectorType] = Field(default=None, description="Connector taken from the suspended node")
    error: Optional[str] = Field(default=None, description="Resume the suspended node as failed")
    error_code: Optional[ErrorCode] = Field(default=None)

    def to_resume_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"output": self.output}
        if self.connector is not None:
            data["connector"] = self.connector.value
        if self.error:
            data["error"] = self.error
            if self.error_code is not None:
                data["error_code"] = self.error_code.value
        return data


class RunningExecutionsResponse(BaseModel):
    executions: Dict[str, Dict[str, Any]]
    total: int
