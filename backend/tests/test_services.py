"""Tests for workflow persistence and execution history services."""

import pytest

from app.runtime import template_workflow_store
from core.constants import ErrorCode, ExecutionStatus, WorkflowMode
from services.workflow_service import (
    DatabaseWorkflowStore,
    ExecutionHistoryRecorder,
    ExecutionHistoryService,
    WorkflowService,
)
from underwriting.templates import default_loan_workflow
from workflow.context import ExecutionError, WorkflowExecutionResult, utc_now_iso


def execution_result(execution_id="ex-1", workflow_id="wf-1", status=ExecutionStatus.COMPLETED, **kwargs):
    values = {
        "decision": "approved" if status == ExecutionStatus.COMPLETED else None,
        "execution_path": ["start", "underwriting", "approved"],
        "duration_ms": 12.6,
        "started_at": utc_now_iso(),
        "completed_at": utc_now_iso() if status.is_terminal else None,
        "input_data": {"credit_score": 780},
    }
    values.update(kwargs)
    return WorkflowExecutionResult(execution_id=execution_id, workflow_id=workflow_id, status=status, **values)


@pytest.mark.unit
class TestWorkflowService:

    async def test_create_assigns_row_id_to_definition(self, db_session):
        svc = WorkflowService(db_session)
        wf = await svc.create_workflow("Retail loans", default_loan_workflow())

        assert wf.version == 1
        assert wf.mode == "enhanced"
        assert wf.definition["id"] == wf.id
        assert wf.definition["name"] == "Retail loans"
        assert wf.description == "Automated underwriting with manual review fallback"

    async def test_create_from_dict(self, db_session):
        svc = WorkflowService(db_session)
        wf = await svc.create_workflow(
            "Dict workflow",
            default_loan_workflow().model_dump(mode="json"),
            description="From JSON",
        )
        definition = await svc.get_definition(wf.id)
        assert definition.id == wf.id
        assert definition.get_node("underwriting").data.rule_set_id == "default_underwriting"
        assert wf.description == "From JSON"

    async def test_update_definition_bumps_version(self, db_session):
        svc = WorkflowService(db_session)
        wf = await svc.create_workflow("Retail loans", default_loan_workflow())

        changed = default_loan_workflow().model_copy(update={"mode": WorkflowMode.ENTERPRISE})
        updated = await svc.update_definition(wf.id, changed)

        assert updated.version == 2
        assert updated.mode == "enterprise"
        assert updated.definition["id"] == wf.id

    async def test_update_definition_missing(self, db_session):
        assert await WorkflowService(db_session).update_definition("missing", default_loan_workflow()) is None

    async def test_disabled_workflow_hidden_from_execution(self, db_session):
        svc = WorkflowService(db_session)
        wf = await svc.create_workflow("Paused product", default_loan_workflow(), is_enabled=False)

        assert await svc.get_definition(wf.id) is None
        assert (await svc.get_definition(wf.id, enabled_only=False)).id == wf.id

    async def test_soft_deleted_workflow_not_found(self, db_session):
        svc = WorkflowService(db_session)
        wf = await svc.create_workflow("Retired", default_loan_workflow())
        assert await svc.soft_delete(wf.id)
        assert await svc.get_definition(wf.id, enabled_only=False) is None

    async def test_list_paginates(self, db_session):
        svc = WorkflowService(db_session)
        for i in range(3):
            await svc.create_workflow(f"wf {i}", default_loan_workflow())
        items, total = await svc.list(offset=0, limit=2)
        assert total == 3
        assert len(items) == 2


@pytest.mark.unit
class TestExecutionHistoryService:

    async def test_record_and_read_back(self, db_session):
        svc = ExecutionHistoryService(db_session)
        result = execution_result(
            warnings=[ExecutionError(code=ErrorCode.NO_END_NODE_REACHED, message="dead end")],
        )
        row = await svc.record_result(result)

        assert row.id == "ex-1"
        assert row.status == "completed"
        assert row.success is True
        assert row.decision == "approved"
        assert row.duration_ms == 12
        assert row.warnings[0]["code"] == "NO_END_NODE_REACHED"
        assert row.input_data == {"credit_score": 780}

    async def test_record_upserts_paused_then_completed(self, db_session):
        svc = ExecutionHistoryService(db_session)
        await svc.record_result(execution_result(status=ExecutionStatus.PAUSED, pending_operation_id="op-1"))
        row = await svc.record_result(execution_result())

        history = await svc.get_execution_history("wf-1")
        assert len(history) == 1
        assert row.status == "completed"
        assert row.pending_operation_id is None
        assert row.completed_at is not None

    async def test_history_is_scoped_and_limited(self, db_session):
        svc = ExecutionHistoryService(db_session)
        for i in range(4):
            await svc.record_result(execution_result(execution_id=f"ex-{i}"))
        await svc.record_result(execution_result(execution_id="other", workflow_id="wf-2"))

        assert len(await svc.get_execution_history("wf-1")) == 4
        assert len(await svc.get_execution_history("wf-1", limit=2)) == 2
        assert [r.id for r in await svc.get_execution_history("wf-2")] == ["other"]


@pytest.mark.unit
class TestDatabaseWorkflowStore:

    async def test_stored_workflow_then_template_fallback(self, session_factory):
        async with session_factory() as session:
            wf = await WorkflowService(session).create_workflow("Stored", default_loan_workflow())
            await session.commit()

        store = DatabaseWorkflowStore(session_factory, fallback=template_workflow_store())

        stored = await store.get_workflow(wf.id)
        template = await store.get_workflow("default_loan_workflow")
        assert stored.name == "Stored"
        assert template.name == "Default Loan Workflow"
        assert await store.get_workflow("missing") is None

    async def test_without_fallback(self, session_factory):
        store = DatabaseWorkflowStore(session_factory)
        assert await store.get_workflow("default_loan_workflow") is None

    async def test_recorder_persists_results(self, session_factory):
        recorder = ExecutionHistoryRecorder(session_factory)
        await recorder(execution_result(execution_id="ex-rec"))

        async with session_factory() as session:
            row = await ExecutionHistoryService(session).get_by_id("ex-rec")
        assert row.decision == "approved"
        assert row.execution_path == ["start", "underwriting", "approved"]
