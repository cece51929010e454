"""Execution model for the decisioning engine."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ExecutionStatus
from db.base import BaseModel


class Execution(BaseModel):
    """Persisted outcome of a workflow execution.

    One row per execution id; paused executions are updated in place
    when they resume and finish. workflow_id is not a foreign key because
    built-in template workflows have no row in the workflows table.
    """

    __tablename__ = "executions"

    workflow_id: Mapped[str] = mapped_column(nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        default=ExecutionStatus.PENDING.value, index=True
    )
    success: Mapped[bool] = mapped_column(default=False)
    decision: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    execution_path: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    errors: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    warnings: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    output: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    input_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(nullable=True)
    pending_operation_id: Mapped[Optional[str]] = mapped_column(nullable=True, index=True)
