"""Tests for the workflow orchestrator."""

import asyncio

import pytest

from actions.registry import BusinessActionInvoker
from core.constants import ConnectorType, ErrorCode, ExecutionStatus, NodeType, OperationStatus
from core.exceptions import ConflictError, NotFoundError
from underwriting.templates import default_loan_workflow, default_rule_set_library
from workflow.context import NodeExecutionResult
from workflow.engine import InMemoryWorkflowStore, WorkflowEngine
from workflow.executors.base import BaseNodeExecutor
from workflow.executors.factory import NodeExecutorFactory
from workflow.models import WorkflowDefinition


def make_engine(*definitions, factory=None, **kwargs):
    factory = factory or NodeExecutorFactory.with_defaults(
        invoker=BusinessActionInvoker(seed=7),
        rule_sets=default_rule_set_library(),
    )
    store = InMemoryWorkflowStore([default_loan_workflow(), *definitions])
    return WorkflowEngine(workflow_store=store, executor_factory=factory, **kwargs)


def workflow(nodes, connections, workflow_id="wf_test"):
    return WorkflowDefinition.model_validate({
        "id": workflow_id,
        "nodes": nodes,
        "connections": connections,
    })


def codes(entries):
    return [entry.code for entry in entries]


START = {"id": "start", "type": "start", "data": {"label": "Start"}}


def end(node_id="end", decision=None):
    return {"id": node_id, "type": "end", "data": {"label": node_id, "decision": decision}}


class RaisingExecutor(BaseNodeExecutor):
    node_type = NodeType.INTEGRATION

    async def execute(self, node, context):
        raise RuntimeError("bureau unavailable")


class SlowExecutor(BaseNodeExecutor):
    node_type = NodeType.INTEGRATION

    async def execute(self, node, context):
        await asyncio.sleep(5)
        return NodeExecutionResult.succeeded()


class GateExecutor(BaseNodeExecutor):
    """Blocks until released; signals when entered."""

    node_type = NodeType.INTEGRATION

    def __init__(self):
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, node, context):
        self.entered.set()
        release = asyncio.ensure_future(self.release.wait())
        cancelled = asyncio.ensure_future(context.cancellation.wait())
        await asyncio.wait({release, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        release.cancel()
        cancelled.cancel()
        return NodeExecutionResult.succeeded({"gate": "passed"})


def factory_with(executor):
    factory = NodeExecutorFactory.with_defaults(rule_sets=default_rule_set_library())
    factory.register_executor(NodeType.INTEGRATION, executor)
    return factory


INTEGRATION_FLOW = (
    [START, {"id": "bureau", "type": "integration", "data": {"label": "Bureau"}}, end()],
    [
        {"source": "start", "target": "bureau"},
        {"source": "bureau", "target": "end", "connector_type": "default"},
    ],
)


# ─── Underwriting scenarios ───────────────────────────────────

@pytest.mark.unit
class TestLoanScenarios:

    @pytest.mark.parametrize("applicant,decision", [
        ("strong_applicant", "approved"),
        ("weak_applicant", "declined"),
        ("borderline_applicant", "manual_review"),
    ])
    async def test_default_workflow_decisions(self, request, applicant, decision):
        engine = make_engine()
        result = await engine.execute_workflow("default_loan_workflow", request.getfixturevalue(applicant))

        assert result.status == ExecutionStatus.COMPLETED
        assert result.success
        assert result.decision == decision
        assert result.execution_path == ["start", "underwriting", decision]
        assert result.output["decision"] == decision
        assert "decision" not in result.variables

    async def test_variable_overrides_win_over_input(self, borderline_applicant):
        engine = make_engine()
        result = await engine.execute_workflow(
            "default_loan_workflow",
            borderline_applicant,
            {"variable_overrides": {"credit_score": 760, "debt_to_income_ratio": 0.25, "annual_income": 90000}},
        )
        assert result.decision == "approved"
        assert result.variables["credit_score"] == 760
        assert result.input_data["credit_score"] == 680

    async def test_unknown_workflow(self):
        with pytest.raises(NotFoundError):
            await make_engine().execute_workflow("missing")

    async def test_input_is_not_mutated(self, strong_applicant):
        snapshot = dict(strong_applicant)
        await make_engine().execute_workflow("default_loan_workflow", strong_applicant)
        assert strong_applicant == snapshot


# ─── Graph structure ──────────────────────────────────────────

@pytest.mark.unit
class TestGraphTraversal:

    async def test_cycle_hits_iteration_cap(self):
        definition = workflow(
            [START, {"id": "loop", "type": "condition", "data": {"label": "Loop", "condition": "true"}}, end()],
            [
                {"source": "start", "target": "loop"},
                {"source": "loop", "target": "loop", "connector_type": "true"},
                {"source": "loop", "target": "end", "connector_type": "false"},
            ],
        )
        result = await make_engine(max_iterations=10).execute_definition(definition)

        assert result.status == ExecutionStatus.FAILED
        assert codes(result.errors) == [ErrorCode.MAX_ITERATIONS_EXCEEDED]
        assert len(result.execution_path) == 10

    async def test_max_iterations_option_overrides_engine_default(self):
        definition = workflow(
            [START, {"id": "loop", "type": "condition", "data": {"label": "Loop", "condition": "true"}}, end()],
            [
                {"source": "start", "target": "loop"},
                {"source": "loop", "target": "loop", "connector_type": "true"},
            ],
        )
        result = await make_engine().execute_definition(definition, options={"max_iterations": 4})
        assert len(result.execution_path) == 4
        assert result.errors[0].context["max_iterations"] == 4

    async def test_no_start_node(self):
        result = await make_engine().execute_definition(workflow([end()], []))
        assert result.status == ExecutionStatus.FAILED
        assert codes(result.errors) == [ErrorCode.NO_START_NODE]
        assert result.execution_path == []

    async def test_multiple_start_nodes(self):
        second = {"id": "start2", "type": "start", "data": {"label": "Again"}}
        result = await make_engine().execute_definition(workflow([START, second, end()], []))
        assert codes(result.errors) == [ErrorCode.MULTIPLE_START_NODES]

    async def test_dead_end_completes_with_warning(self):
        definition = workflow(
            [START, {"id": "check", "type": "condition", "data": {"label": "Check", "condition": "amount > 10"}}, end()],
            [
                {"source": "start", "target": "check"},
                {"source": "check", "target": "end", "connector_type": "true"},
            ],
        )
        result = await make_engine().execute_definition(definition, {"amount": 5})

        assert result.status == ExecutionStatus.COMPLETED
        assert codes(result.warnings) == [ErrorCode.NO_END_NODE_REACHED]
        assert result.warnings[0].node_id == "check"
        assert result.decision is None
        assert result.output["condition_check_result"] is False

    async def test_node_callback_sees_every_node(self, strong_applicant):
        seen = []
        engine = make_engine(on_node_complete=lambda ctx, node, result: seen.append((node.id, result.success)))
        result = await engine.execute_workflow("default_loan_workflow", strong_applicant)
        assert [node_id for node_id, _ in seen] == result.execution_path
        assert all(ok for _, ok in seen)

    async def test_completion_callback_failure_does_not_break_result(self, strong_applicant):
        def explode(result):
            raise RuntimeError("sink down")

        result = await make_engine(on_execution_complete=explode).execute_workflow(
            "default_loan_workflow", strong_applicant
        )
        assert result.success


# ─── Failures ─────────────────────────────────────────────────

@pytest.mark.unit
class TestFailureHandling:

    async def test_error_connector_recovers(self):
        definition = workflow(
            [START, {"id": "bureau", "type": "integration", "data": {"label": "Bureau"}},
             end("approved", "approved"), end("fallback", "manual_review")],
            [
                {"source": "start", "target": "bureau"},
                {"source": "bureau", "target": "approved", "connector_type": "success"},
                {"source": "bureau", "target": "fallback", "connector_type": "error"},
            ],
        )
        result = await make_engine(factory=factory_with(RaisingExecutor())).execute_definition(definition)

        assert result.status == ExecutionStatus.COMPLETED
        assert result.success
        assert result.decision == "manual_review"
        assert result.execution_path == ["start", "bureau", "fallback"]
        assert codes(result.errors) == [ErrorCode.NODE_EXECUTION_FAILED]
        assert result.errors[0].node_id == "bureau"
        assert "bureau unavailable" in result.errors[0].message

    async def test_unhandled_failure_fails_execution(self):
        definition = workflow(*INTEGRATION_FLOW)
        result = await make_engine(factory=factory_with(RaisingExecutor())).execute_definition(definition)

        assert result.status == ExecutionStatus.FAILED
        assert not result.success
        assert result.execution_path == ["start", "bureau"]

    async def test_node_type_without_executor_fails(self):
        definition = workflow(
            [START, {"id": "audit", "type": "audit_log", "data": {"label": "Audit"}}, end()],
            [{"source": "start", "target": "audit"}, {"source": "audit", "target": "end"}],
        )
        result = await make_engine().execute_definition(definition)
        assert result.status == ExecutionStatus.FAILED
        assert result.errors[0].code == ErrorCode.NODE_EXECUTION_FAILED

    async def test_timeout(self):
        definition = workflow(*INTEGRATION_FLOW)
        result = await make_engine(factory=factory_with(SlowExecutor())).execute_definition(
            definition, options={"timeout_ms": 50}
        )
        assert result.status == ExecutionStatus.TIMED_OUT
        assert codes(result.errors) == [ErrorCode.TIMEOUT]
        assert result.errors[0].node_id == "bureau"

    async def test_default_timeout_from_engine(self):
        definition = workflow(*INTEGRATION_FLOW)
        engine = make_engine(factory=factory_with(SlowExecutor()), default_timeout_ms=50)
        result = await engine.execute_definition(definition)
        assert result.status == ExecutionStatus.TIMED_OUT


# ─── Async mode, cancellation, pause ──────────────────────────

@pytest.mark.unit
class TestExecutionControl:

    async def test_async_mode_returns_running(self, strong_applicant):
        engine = make_engine()
        started = await engine.execute_workflow("default_loan_workflow", strong_applicant, {"mode": "async"})

        assert started.status == ExecutionStatus.RUNNING
        assert started.completed_at is None

        final = await engine.wait_for_execution(started.execution_id, timeout=5)
        assert final.status == ExecutionStatus.COMPLETED
        assert final.decision == "approved"
        assert engine.get_execution_result(started.execution_id).status == ExecutionStatus.COMPLETED

    async def test_cancel_running_execution(self):
        gate = GateExecutor()
        engine = make_engine(factory=factory_with(gate))
        started = await engine.execute_definition(workflow(*INTEGRATION_FLOW), options={"mode": "async"})
        await asyncio.wait_for(gate.entered.wait(), timeout=5)

        assert started.execution_id in engine.get_running_executions()
        assert await engine.cancel_execution(started.execution_id, "applicant withdrew")

        final = await engine.wait_for_execution(started.execution_id, timeout=5)
        assert final.status == ExecutionStatus.CANCELLED
        assert final.errors[-1].code == ErrorCode.CANCELLED
        assert final.errors[-1].message == "applicant withdrew"
        assert "end" not in final.execution_path

    async def test_cancel_unknown_execution(self):
        assert await make_engine().cancel_execution("nope") is False

    async def test_pause_and_resume(self):
        gate = GateExecutor()
        engine = make_engine(factory=factory_with(gate))
        started = await engine.execute_definition(workflow(*INTEGRATION_FLOW), options={"mode": "async"})
        execution_id = started.execution_id
        await asyncio.wait_for(gate.entered.wait(), timeout=5)

        assert await engine.pause_execution(execution_id)
        gate.release.set()
        paused = await engine.wait_for_execution(execution_id, timeout=5)

        assert paused.status == ExecutionStatus.PAUSED
        snapshot = engine.get_paused_snapshot(execution_id)
        assert snapshot["next_node_id"] == "end"
        assert snapshot["context"]["variables"]["gate"] == "passed"

        await engine.resume_execution(execution_id)
        final = await engine.wait_for_execution(execution_id, timeout=5)
        assert final.status == ExecutionStatus.COMPLETED
        assert final.execution_path == ["start", "bureau", "end"]

    async def test_pause_unknown_execution(self):
        assert await make_engine().pause_execution("nope") is False

    async def test_step_mode(self, strong_applicant):
        engine = make_engine()
        first = await engine.execute_workflow("default_loan_workflow", strong_applicant, {"mode": "step"})
        assert first.status == ExecutionStatus.PAUSED
        assert first.execution_path == ["start"]

        second = await engine.resume_execution(first.execution_id)
        assert second.status == ExecutionStatus.PAUSED
        assert second.execution_path == ["start", "underwriting"]

        final = await engine.resume_execution(first.execution_id)
        assert final.status == ExecutionStatus.COMPLETED
        assert final.decision == "approved"

    async def test_resume_unknown_execution(self):
        with pytest.raises(NotFoundError):
            await make_engine().resume_execution("nope")

    async def test_execution_id_reuse_while_paused(self, strong_applicant):
        engine = make_engine()
        first = await engine.execute_workflow(
            "default_loan_workflow", strong_applicant, {"mode": "step", "execution_id": "fixed"}
        )
        assert first.execution_id == "fixed"
        with pytest.raises(ConflictError):
            await engine.execute_workflow("default_loan_workflow", strong_applicant, {"execution_id": "fixed"})


# ─── Async operations (manual review) ─────────────────────────

REVIEW_FLOW = (
    [
        START,
        {"id": "review", "type": "action",
         "data": {"label": "Underwriter review", "action_type": "manual_review"}},
        end("approved", "approved"),
        end("declined", "declined"),
    ],
    [
        {"source": "start", "target": "review"},
        {"source": "review", "target": "approved", "connector_type": "approved"},
        {"source": "review", "target": "declined", "connector_type": "declined"},
    ],
)


@pytest.mark.unit
class TestAsyncOperations:

    async def test_suspend_then_complete(self, borderline_applicant):
        engine = make_engine()
        paused = await engine.execute_definition(workflow(*REVIEW_FLOW), borderline_applicant)

        assert paused.status == ExecutionStatus.PAUSED
        assert paused.pending_operation_id
        assert paused.variables["action_review_status"] == "pending"
        pending = engine.operation_registry.list_pending(paused.execution_id)
        assert [h.operation_id for h in pending] == [paused.pending_operation_id]

        await engine.operation_registry.complete(paused.pending_operation_id, {"decision": "approved"})

        final = engine.get_execution_result(paused.execution_id)
        assert final.status == ExecutionStatus.COMPLETED
        assert final.decision == "approved"
        assert final.variables["action_review_status"] == "completed"
        assert final.variables["operation_review_result"] == {"decision": "approved"}
        assert final.execution_path == ["start", "review", "approved"]

    async def test_operation_chooses_connector(self):
        engine = make_engine()
        paused = await engine.execute_definition(workflow(*REVIEW_FLOW))
        await engine.operation_registry.complete(paused.pending_operation_id, {"connector": "declined"})
        assert engine.get_execution_result(paused.execution_id).decision == "declined"

    async def test_failed_operation_without_handler(self):
        engine = make_engine()
        paused = await engine.execute_definition(workflow(*REVIEW_FLOW))
        handle = await engine.operation_registry.fail(paused.pending_operation_id, "file incomplete")

        final = engine.get_execution_result(paused.execution_id)
        assert handle.status == OperationStatus.FAILED
        assert final.status == ExecutionStatus.FAILED
        assert final.errors[-1].code == ErrorCode.OPERATION_FAILED
        assert final.errors[-1].message == "file incomplete"
        assert final.errors[-1].node_id == "review"

    async def test_expired_operation_routes_to_error_handler(self):
        nodes, connections = REVIEW_FLOW
        connections = connections + [{"source": "review", "target": "declined", "connector_type": "error"}]
        engine = make_engine()
        paused = await engine.execute_definition(workflow(nodes, connections))
        await engine.operation_registry.expire(paused.pending_operation_id)

        final = engine.get_execution_result(paused.execution_id)
        assert final.status == ExecutionStatus.COMPLETED
        assert final.decision == "declined"
        assert codes(final.errors) == [ErrorCode.TIMEOUT]

    async def test_cancel_suspended_execution(self):
        engine = make_engine()
        paused = await engine.execute_definition(workflow(*REVIEW_FLOW))

        assert await engine.cancel_execution(paused.execution_id)
        final = engine.get_execution_result(paused.execution_id)
        assert final.status == ExecutionStatus.CANCELLED
        assert final.errors[-1].node_id == "review"

    async def test_cancel_retires_pending_operation(self):
        engine = make_engine()
        paused = await engine.execute_definition(workflow(*REVIEW_FLOW))
        operation_id = paused.pending_operation_id

        await engine.cancel_execution(paused.execution_id, reason="Applicant withdrew")

        registry = engine.operation_registry
        assert registry.list_pending(paused.execution_id) == []
        assert registry.get_status(operation_id).status == OperationStatus.CANCELLED
        assert registry.get_status(operation_id).error == "Applicant withdrew"

        with pytest.raises(ConflictError):
            await registry.complete(operation_id, {"decision": "approved"})
        assert engine.get_execution_result(paused.execution_id).status == ExecutionStatus.CANCELLED

    async def test_direct_resume_retires_pending_operation(self):
        engine = make_engine()
        paused = await engine.execute_definition(workflow(*REVIEW_FLOW))

        final = await engine.resume_execution(paused.execution_id, {"connector": "approved"})

        assert final.decision == "approved"
        assert engine.operation_registry.list_pending() == []
        handle = engine.operation_registry.get_status(paused.pending_operation_id)
        assert handle.status == OperationStatus.CANCELLED

    async def test_late_completion_for_finished_execution_is_ignored(self):
        engine = make_engine()
        paused = await engine.execute_definition(workflow(*REVIEW_FLOW))
        handle = engine.operation_registry.get_status(paused.pending_operation_id)
        await engine.cancel_execution(paused.execution_id)

        assert await handle.resume_callback(handle) is None
        assert engine.get_execution_result(paused.execution_id).status == ExecutionStatus.CANCELLED

    async def test_completion_callback_sees_pause_and_finish(self):
        statuses = []
        engine = make_engine(on_execution_complete=lambda r: statuses.append(r.status))
        paused = await engine.execute_definition(workflow(*REVIEW_FLOW))
        await engine.operation_registry.complete(paused.pending_operation_id, {"decision": "approved"})
        assert statuses == [ExecutionStatus.PAUSED, ExecutionStatus.COMPLETED]


# ─── Parallel branches ────────────────────────────────────────

def parallel_flow():
    return workflow(
        [
            START,
            {"id": "a", "type": "action", "data": {
                "label": "Branch A", "action_type": "data_update",
                "action_config": {"updates": {"branch_a": 1, "shared": "a"}},
            }},
            {"id": "b", "type": "action", "data": {
                "label": "Branch B", "action_type": "data_update",
                "action_config": {"updates": {"branch_b": 2, "shared": "b"}},
            }},
            {"id": "merge", "type": "condition",
             "data": {"label": "Merge", "condition": "branch_a == 1 && branch_b == 2"}},
            end(),
        ],
        [
            {"source": "start", "target": "a"},
            {"source": "start", "target": "b"},
            {"source": "a", "target": "merge"},
            {"source": "b", "target": "merge"},
            {"source": "merge", "target": "end", "connector_type": "true"},
        ],
    )


@pytest.mark.unit
class TestParallelBranches:

    async def test_fan_out_and_join(self):
        result = await make_engine().execute_definition(parallel_flow(), options={"parallel_branches": True})

        assert result.status == ExecutionStatus.COMPLETED
        assert {"start", "a", "b", "merge", "end"} == set(result.execution_path)
        assert result.execution_path[-2:] == ["merge", "end"]
        assert result.variables["condition_merge_result"] is True
        assert result.variables["shared"] == "b"
        assert codes(result.warnings) == [ErrorCode.BRANCH_MERGE_CONFLICT]

    async def test_sequential_when_disabled(self):
        result = await make_engine().execute_definition(parallel_flow())

        assert "b" not in result.execution_path
        assert result.variables["shared"] == "a"
        assert result.variables["condition_merge_result"] is False
        assert codes(result.warnings) == [ErrorCode.NO_END_NODE_REACHED]

    async def test_engine_level_default(self):
        result = await make_engine(parallel_branches=True).execute_definition(parallel_flow())
        assert result.variables["branch_b"] == 2


@pytest.mark.unit
class TestRunningExecutions:

    async def test_paused_execution_listed(self):
        engine = make_engine()
        paused = await engine.execute_definition(workflow(*REVIEW_FLOW))
        running = engine.get_running_executions()
        assert running[paused.execution_id]["status"] == "paused"
        assert running[paused.execution_id]["current_node"] == "review"

    async def test_connector_validation_on_resume(self):
        engine = make_engine()
        paused = await engine.execute_definition(workflow(*REVIEW_FLOW))
        result = await engine.resume_execution(paused.execution_id, {"connector": ConnectorType.DECLINED.value})
        assert result.decision == "declined"
