"""Workflow service: CRUD, definition storage and execution history."""

from datetime import datetime
from typing import Any, Optional, Sequence, Union

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.execution import Execution
from db.models.workflow import Workflow
from services.base import BaseService
from workflow.context import WorkflowExecutionResult
from workflow.models import WorkflowDefinition, load_workflow_definition

logger = structlog.get_logger(__name__)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class WorkflowService(BaseService[Workflow]):
    """Service for workflow definition management."""

    def __init__(self, db: AsyncSession):
        super().__init__(Workflow, db)

    async def create_workflow(
        self,
        name: str,
        definition: Union[WorkflowDefinition, dict[str, Any]],
        description: str = "",
        is_enabled: bool = True,
    ) -> Workflow:
        """Create a workflow. The row id becomes the definition id."""
        parsed = self._parse(definition)
        workflow = await self.create({
            "name": name,
            "description": description or parsed.description,
            "mode": parsed.mode.value,
            "version": 1,
            "is_enabled": is_enabled,
        })
        workflow.definition = parsed.model_copy(update={"id": workflow.id, "name": name}).model_dump(mode="json")
        await self.db.flush()
        logger.info("Workflow created", workflow_id=workflow.id, name=name, mode=parsed.mode.value)
        return workflow

    async def update_definition(
        self,
        workflow_id: str,
        definition: Union[WorkflowDefinition, dict[str, Any]],
    ) -> Optional[Workflow]:
        """Replace the definition and bump version."""
        wf = await self.get_by_id(workflow_id)
        if not wf:
            return None
        parsed = self._parse(definition).model_copy(update={"id": workflow_id, "name": wf.name})
        return await self.update(workflow_id, {
            "definition": parsed.model_dump(mode="json"),
            "mode": parsed.mode.value,
            "version": wf.version + 1,
        })

    async def get_definition(
        self,
        workflow_id: str,
        enabled_only: bool = True,
    ) -> Optional[WorkflowDefinition]:
        wf = await self.get_by_id(workflow_id)
        if not wf or (enabled_only and not wf.is_enabled) or not wf.definition:
            return None
        return load_workflow_definition(wf.definition)

    @staticmethod
    def _parse(definition: Union[WorkflowDefinition, dict[str, Any]]) -> WorkflowDefinition:
        if isinstance(definition, WorkflowDefinition):
            return definition
        return load_workflow_definition(definition)


class ExecutionHistoryService(BaseService[Execution]):
    """Persisted execution results."""

    def __init__(self, db: AsyncSession):
        super().__init__(Execution, db)

    async def record_result(self, result: WorkflowExecutionResult) -> Execution:
        """Insert or update the row for result.execution_id."""
        values = {
            "workflow_id": result.workflow_id,
            "status": result.status.value,
            "success": result.success,
            "decision": result.decision,
            "execution_path": list(result.execution_path),
            "errors": [e.to_dict() for e in result.errors],
            "warnings": [w.to_dict() for w in result.warnings],
            "output": result.output,
            "input_data": result.input_data,
            "started_at": _parse_timestamp(result.started_at),
            "completed_at": _parse_timestamp(result.completed_at),
            "duration_ms": int(result.duration_ms),
            "pending_operation_id": result.pending_operation_id,
        }

        execution = await self.get_by_id(result.execution_id)
        if execution is None:
            execution = await self.create({"id": result.execution_id, **values})
        else:
            for key, value in values.items():
                setattr(execution, key, value)
            await self.db.flush()
        return execution

    async def get_execution_history(
        self,
        workflow_id: str,
        limit: int = 50,
    ) -> Sequence[Execution]:
        """Most recent executions of a workflow, newest first."""
        query = (
            select(Execution)
            .where(Execution.workflow_id == workflow_id, Execution.is_deleted == False)
            .order_by(Execution.created_at.desc())
            .limit(limit)
        )
        result = await self.db.execute(query)
        return result.scalars().all()


class DatabaseWorkflowStore:
    """WorkflowStore backed by the workflows table.

    Ids not found in the database are looked up in the optional fallback
    store, which holds the built-in workflow templates.
    """

    def __init__(self, session_factory, fallback=None):
        self._session_factory = session_factory
        self._fallback = fallback

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        async with self._session_factory() as session:
            definition = await WorkflowService(session).get_definition(workflow_id)
        if definition is None and self._fallback is not None:
            return await self._fallback.get_workflow(workflow_id)
        return definition


class ExecutionHistoryRecorder:
    """Engine completion callback that persists every result it is given."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def __call__(self, result: WorkflowExecutionResult) -> None:
        async with self._session_factory() as session:
            await ExecutionHistoryService(session).record_result(result)
            await session.commit()
        logger.debug(
            "Execution recorded",
            execution_id=result.execution_id,
            status=result.status.value,
        )
