"""Workflow Execution Engine: the loan decisioning orchestrator.

Takes a WorkflowDefinition (a graph of typed nodes and typed connections)
and walks it from its single start node, handling:

- Node dispatch through the executor factory
- Connector resolution (typed connectors, priorities, conditions)
- Error-handler routing for failed nodes
- Iteration cap, per-execution timeout and cooperative cancellation
- Suspension on async operations (manual review) and resume
- Pause/resume and step-by-step execution
- Optional parallel fan-out with branch merge at a join node

Every execution returns a WorkflowExecutionResult; node and workflow
failures are reported in the result rather than raised.
"""

import asyncio
import copy
import dataclasses
import inspect
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol, Union
from uuid import uuid4

import structlog

from core.constants import (
    DEFAULT_MAX_ITERATIONS,
    ConnectorType,
    ErrorCode,
    ExecutionMode,
    ExecutionStatus,
    NodeType,
    OperationStatus,
)
from core.exceptions import (
    ConflictError,
    NodeExecutorNotFoundError,
    NotFoundError,
    OperationNotFoundError,
    ValidationError,
    WorkflowExecutionError,
)
from core.logging_config import execution_log_context
from workflow.async_registry import AsyncOperationHandle, AsyncOperationRegistry
from workflow.context import (
    ExecutionContext,
    ExecutionError,
    ExecutionOptions,
    NodeExecutionResult,
    NodeResultStatus,
    WorkflowExecutionResult,
    utc_now_iso,
)
from workflow.executors.factory import NodeExecutorFactory
from workflow.executors.start import VARIABLE_OVERRIDES_KEY
from workflow.models import WorkflowDefinition
from workflow.resolver import ConnectorResolver

logger = structlog.get_logger(__name__)

NodeCallback = Callable[[ExecutionContext, Any, NodeExecutionResult], Any]
ExecutionCallback = Callable[[WorkflowExecutionResult], Any]

_STATUS_BY_CODE = {
    ErrorCode.TIMEOUT: ExecutionStatus.TIMED_OUT,
    ErrorCode.CANCELLED: ExecutionStatus.CANCELLED,
}

_CONNECTOR_VALUES = frozenset(c.value for c in ConnectorType)


# ─── Workflow Store ────────────────────────────────────────────

class WorkflowStore(Protocol):
    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        ...


class InMemoryWorkflowStore:
    """Dict-backed store; used by tests and embedded callers."""

    def __init__(self, workflows: Optional[list[WorkflowDefinition]] = None):
        self._workflows: dict[str, WorkflowDefinition] = {}
        for definition in workflows or []:
            self.save(definition)

    def save(self, definition: WorkflowDefinition) -> None:
        self._workflows[definition.id] = definition

    def delete(self, workflow_id: str) -> bool:
        return self._workflows.pop(workflow_id, None) is not None

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return self._workflows.get(workflow_id)

    def list_workflows(self) -> list[WorkflowDefinition]:
        return list(self._workflows.values())


# ─── Internal state ────────────────────────────────────────────

@dataclass
class _Outcome:
    """How a run of the node loop ended."""

    status: ExecutionStatus
    output: dict[str, Any] = field(default_factory=dict)
    decision: Any = None
    operation_id: Optional[str] = None


@dataclass
class _PausedExecution:
    definition: WorkflowDefinition
    context: ExecutionContext
    next_node_id: Optional[str] = None
    suspended_node_id: Optional[str] = None
    operation_id: Optional[str] = None


@dataclass
class _BranchOutcome:
    kind: str  # join | end | exhausted | failed
    node_id: Optional[str] = None
    variables: dict[str, Any] = field(default_factory=dict)
    end_output: dict[str, Any] = field(default_factory=dict)


# ─── Workflow Engine ───────────────────────────────────────────

class WorkflowEngine:
    """Executes loan decisioning workflows.

    All collaborators are injected. One engine instance serves every
    execution; per-execution state lives in the ExecutionContext.
    """

    DEFAULT_RESULTS_LIMIT = 1000

    def __init__(
        self,
        workflow_store: Optional[WorkflowStore] = None,
        executor_factory: Optional[NodeExecutorFactory] = None,
        resolver: Optional[ConnectorResolver] = None,
        operation_registry: Optional[AsyncOperationRegistry] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        default_timeout_ms: Optional[int] = None,
        parallel_branches: bool = False,
        on_node_complete: Optional[NodeCallback] = None,
        on_execution_complete: Optional[ExecutionCallback] = None,
        results_limit: int = DEFAULT_RESULTS_LIMIT,
    ):
        self._store = workflow_store or InMemoryWorkflowStore()
        self._executors = executor_factory or NodeExecutorFactory.with_defaults()
        self._resolver = resolver or ConnectorResolver()
        self._operations = operation_registry or AsyncOperationRegistry()
        self._max_iterations = max_iterations
        self._default_timeout_ms = default_timeout_ms
        self._parallel_branches = parallel_branches
        self._on_node_complete = on_node_complete
        self._on_execution_complete = on_execution_complete
        self._results_limit = results_limit

        self._running_executions: dict[str, ExecutionContext] = {}
        self._paused: dict[str, _PausedExecution] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._results: OrderedDict[str, WorkflowExecutionResult] = OrderedDict()

    @property
    def operation_registry(self) -> AsyncOperationRegistry:
        return self._operations

    @property
    def executor_factory(self) -> NodeExecutorFactory:
        return self._executors

    # ─── Entry points ─────────────────────────────────────────

    async def execute_workflow(
        self,
        workflow_id: str,
        input_data: Optional[dict[str, Any]] = None,
        options: Union[ExecutionOptions, dict, None] = None,
    ) -> WorkflowExecutionResult:
        """Load a workflow from the store and execute it."""
        definition = await self._store.get_workflow(workflow_id)
        if definition is None:
            raise NotFoundError(f"Workflow {workflow_id} not found")
        return await self.execute_definition(definition, input_data, options)

    async def execute_definition(
        self,
        definition: WorkflowDefinition,
        input_data: Optional[dict[str, Any]] = None,
        options: Union[ExecutionOptions, dict, None] = None,
    ) -> WorkflowExecutionResult:
        """Execute a definition.

        In sync and step mode the call returns once the execution finishes
        or pauses. In async mode it returns immediately with status
        running; use wait_for_execution() for the final result.
        """
        if not isinstance(options, ExecutionOptions):
            options = ExecutionOptions.from_dict(options)

        execution_id = options.execution_id or str(uuid4())
        if execution_id in self._running_executions or execution_id in self._paused:
            raise ConflictError(f"Execution {execution_id} is already in progress")

        timeout_ms = options.timeout_ms if options.timeout_ms is not None else self._default_timeout_ms
        parallel = options.parallel_branches if options.parallel_branches is not None else self._parallel_branches
        context = ExecutionContext(
            execution_id=execution_id,
            workflow_id=definition.id,
            input_data=input_data or {},
            metadata={
                "mode": options.mode.value,
                "max_iterations": options.max_iterations or self._max_iterations,
                "timeout_ms": timeout_ms,
                "parallel_branches": parallel,
                VARIABLE_OVERRIDES_KEY: dict(options.variable_overrides),
            },
        )

        logger.info(
            "Workflow execution starting",
            execution_id=execution_id,
            workflow_id=definition.id,
            mode=options.mode.value,
        )

        start_nodes = definition.nodes_of_type(NodeType.START)
        if len(start_nodes) != 1:
            code = ErrorCode.NO_START_NODE if not start_nodes else ErrorCode.MULTIPLE_START_NODES
            message = (
                "Workflow has no start node" if not start_nodes
                else f"Workflow has {len(start_nodes)} start nodes; exactly one is required"
            )
            context.add_error(ExecutionError(code=code, message=message))
            return await self._finish(context, _Outcome(ExecutionStatus.FAILED))

        return await self._launch(definition, context, start_nodes[0].id)

    async def _launch(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        node_id: Optional[str],
    ) -> WorkflowExecutionResult:
        context.status = ExecutionStatus.RUNNING
        self._running_executions[context.execution_id] = context

        if context.metadata.get("mode") != ExecutionMode.ASYNC.value:
            return await self._run(definition, context, node_id)

        task = asyncio.create_task(self._run(definition, context, node_id))
        self._tasks[context.execution_id] = task
        task.add_done_callback(lambda t, eid=context.execution_id: self._forget_task(eid, t))
        running = self._build_result(context, _Outcome(ExecutionStatus.RUNNING))
        self._store_result(running)
        return running

    def _forget_task(self, execution_id: str, task: asyncio.Task) -> None:
        if self._tasks.get(execution_id) is task:
            self._tasks.pop(execution_id, None)

    # ─── Run / loop ───────────────────────────────────────────

    async def _run(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        node_id: Optional[str],
    ) -> WorkflowExecutionResult:
        with execution_log_context(context.execution_id, context.workflow_id):
            return await self._drive(definition, context, node_id)

    async def _drive(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        node_id: Optional[str],
    ) -> WorkflowExecutionResult:
        """Drive the node loop under the timeout and turn fatals into a result."""
        timeout_ms = context.metadata.get("timeout_ms")
        try:
            if timeout_ms:
                remaining = (timeout_ms - context.elapsed_ms()) / 1000
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                outcome = await asyncio.wait_for(self._loop(definition, context, node_id), timeout=remaining)
            else:
                outcome = await self._loop(definition, context, node_id)

        except asyncio.TimeoutError:
            context.add_error(ExecutionError(
                code=ErrorCode.TIMEOUT,
                message=f"Execution exceeded timeout of {timeout_ms}ms",
                node_id=context.execution_path[-1] if context.execution_path else None,
            ))
            outcome = _Outcome(ExecutionStatus.TIMED_OUT)

        except WorkflowExecutionError as e:
            context.add_error(ExecutionError(
                code=e.code,
                message=e.message,
                node_id=e.node_id,
                context=e.context,
            ))
            outcome = _Outcome(_STATUS_BY_CODE.get(e.code, ExecutionStatus.FAILED))

        except Exception as e:
            logger.error(
                "Workflow execution crashed",
                execution_id=context.execution_id,
                error=str(e),
                exc_info=True,
            )
            context.add_error(ExecutionError(
                code=ErrorCode.WORKFLOW_EXECUTION_FAILED,
                message=str(e) or type(e).__name__,
            ))
            outcome = _Outcome(ExecutionStatus.FAILED)

        finally:
            self._running_executions.pop(context.execution_id, None)

        return await self._finish(context, outcome)

    async def _loop(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        node_id: Optional[str],
    ) -> _Outcome:
        step_mode = context.metadata.get("mode") == ExecutionMode.STEP.value

        while node_id is not None:
            if context.pause_requested:
                return self._pause(definition, context, next_node_id=node_id)

            node = self._enter_node(definition, context, node_id)
            result = await self._run_node(node, context)

            if context.cancellation.is_cancelled:
                raise WorkflowExecutionError(
                    ErrorCode.CANCELLED,
                    context.cancellation.reason or "Execution cancelled",
                    node_id=node.id,
                )

            if result.status == NodeResultStatus.FAILED:
                context.variables.update(result.output)
                node_id = self._handle_failure(definition, context, node, result)
                if node_id is None:
                    return _Outcome(ExecutionStatus.FAILED)
                continue

            if result.status == NodeResultStatus.SUSPENDED:
                context.variables.update(result.output)
                await self._suspend(definition, context, node, result)
                return _Outcome(ExecutionStatus.PAUSED, operation_id=result.operation_id)

            if node.type == NodeType.END.value:
                return self._complete(context, result.output)

            context.variables.update(result.output)

            if context.metadata.get("parallel_branches"):
                targets = self._resolver.resolve_all(node.id, definition.connections, context, result)
                if len(targets) > 1:
                    node_id, outcome = await self._fan_out(definition, context, targets)
                    if outcome is not None:
                        return outcome
                else:
                    node_id = targets[0] if targets else None
            else:
                node_id = self._resolver.resolve(node.id, definition.connections, context, result)

            if node_id is None:
                return self._complete_without_end(context, node.id)

            if step_mode:
                return self._pause(definition, context, next_node_id=node_id)

        return self._complete_without_end(context, None)

    def _enter_node(self, definition: WorkflowDefinition, context: ExecutionContext, node_id: str):
        """Cap check, path append, boundary checks. Returns the node."""
        max_iterations = context.metadata.get("max_iterations") or self._max_iterations
        if len(context.execution_path) >= max_iterations:
            raise WorkflowExecutionError(
                ErrorCode.MAX_ITERATIONS_EXCEEDED,
                f"Maximum iterations ({max_iterations}) exceeded",
                node_id=node_id,
                context={"max_iterations": max_iterations},
            )

        node = definition.get_node(node_id)
        if node is None:
            raise WorkflowExecutionError(
                ErrorCode.WORKFLOW_EXECUTION_FAILED,
                f"Node {node_id} not found in workflow {definition.id}",
                node_id=node_id,
            )
        context.execution_path.append(node_id)

        if context.cancellation.is_cancelled:
            raise WorkflowExecutionError(
                ErrorCode.CANCELLED,
                context.cancellation.reason or "Execution cancelled",
                node_id=node_id,
            )
        timeout_ms = context.metadata.get("timeout_ms")
        if timeout_ms and context.elapsed_ms() > timeout_ms:
            raise WorkflowExecutionError(
                ErrorCode.TIMEOUT,
                f"Execution exceeded timeout of {timeout_ms}ms",
                node_id=node_id,
            )
        return node

    async def _run_node(self, node, context: ExecutionContext) -> NodeExecutionResult:
        try:
            executor = self._executors.create_executor(node.type)
        except NodeExecutorNotFoundError as e:
            result = NodeExecutionResult.failed(ExecutionError(
                code=ErrorCode.NODE_EXECUTION_FAILED,
                message=e.message,
                node_id=node.id,
            ))
        else:
            result = await executor.run(node, context)

        logger.debug(
            "Node executed",
            execution_id=context.execution_id,
            node_id=node.id,
            node_type=node.type,
            status=result.status.value,
            connector=result.next_connector.value,
            duration_ms=result.execution_time_ms,
        )

        if self._on_node_complete:
            try:
                await _maybe_await(self._on_node_complete(context, node, result))
            except Exception as e:
                logger.error("on_node_complete callback failed", node_id=node.id, error=str(e))
        return result

    def _handle_failure(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        node,
        result: NodeExecutionResult,
    ) -> Optional[str]:
        """Record the node error; return the error handler target, if any."""
        error = result.error or ExecutionError(
            code=ErrorCode.NODE_EXECUTION_FAILED,
            message=f"Node {node.id} failed",
            node_id=node.id,
        )
        if error.node_id is None:
            error.node_id = node.id
        context.add_error(error)

        target = self._resolver.resolve_error_handler(node.id, definition.connections, context, result)
        if target is not None:
            logger.info(
                "Routing node failure to error handler",
                execution_id=context.execution_id,
                node_id=node.id,
                handler=target,
            )
        else:
            logger.warning(
                "Unhandled node failure",
                execution_id=context.execution_id,
                node_id=node.id,
                error=error.message,
            )
        return target

    def _complete(self, context: ExecutionContext, end_output: dict[str, Any]) -> _Outcome:
        return _Outcome(
            ExecutionStatus.COMPLETED,
            output={**context.variables, **end_output},
            decision=end_output.get("decision"),
        )

    def _complete_without_end(self, context: ExecutionContext, last_node_id: Optional[str]) -> _Outcome:
        context.add_warning(ExecutionError(
            code=ErrorCode.NO_END_NODE_REACHED,
            message="Execution finished without reaching an end node",
            node_id=last_node_id,
        ))
        return _Outcome(ExecutionStatus.COMPLETED, output=dict(context.variables))

    # ─── Suspension / pause ───────────────────────────────────

    def _pause(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        next_node_id: Optional[str],
    ) -> _Outcome:
        reason = context.pause_requested or "step"
        context.pause_requested = None
        context.metadata["pause_reason"] = reason
        self._paused[context.execution_id] = _PausedExecution(
            definition=definition,
            context=context,
            next_node_id=next_node_id,
        )
        logger.info(
            "Execution paused",
            execution_id=context.execution_id,
            next_node_id=next_node_id,
            reason=reason,
        )
        return _Outcome(ExecutionStatus.PAUSED)

    async def _suspend(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        node,
        result: NodeExecutionResult,
    ) -> None:
        context.metadata["pause_reason"] = "async_operation"
        self._paused[context.execution_id] = _PausedExecution(
            definition=definition,
            context=context,
            suspended_node_id=node.id,
            operation_id=result.operation_id,
        )
        await self._operations.register(AsyncOperationHandle(
            operation_id=result.operation_id,
            node_id=node.id,
            execution_id=context.execution_id,
            resume_callback=self._resume_from_operation,
            metadata={"workflow_id": context.workflow_id, "node_type": node.type},
        ))
        logger.info(
            "Execution suspended on async operation",
            execution_id=context.execution_id,
            node_id=node.id,
            operation_id=result.operation_id,
        )

    async def _release_operation(self, operation_id: Optional[str], reason: str) -> None:
        """Cancel a still-pending operation handle so no late callback resumes it."""
        if operation_id is None:
            return
        try:
            if self._operations.get_status(operation_id).status == OperationStatus.PENDING:
                await self._operations.cancel(operation_id, reason)
        except (OperationNotFoundError, ConflictError):
            # already evicted or transitioned concurrently
            return

    async def _resume_from_operation(
        self, handle: AsyncOperationHandle
    ) -> Optional[WorkflowExecutionResult]:
        paused = self._paused.get(handle.execution_id)
        if paused is None or paused.operation_id != handle.operation_id:
            logger.warning(
                "Operation finished for an execution that is no longer waiting",
                operation_id=handle.operation_id,
                execution_id=handle.execution_id,
                status=handle.status.value,
            )
            return None
        if handle.status == OperationStatus.COMPLETED:
            payload = handle.result if isinstance(handle.result, dict) else {"result": handle.result}
            connector = payload.get("connector") or payload.get("decision")
            resume_data = {
                "output": {f"operation_{handle.node_id}_result": payload, **payload},
                "connector": connector if connector in _CONNECTOR_VALUES else None,
            }
        else:
            resume_data = {
                "error": handle.error or f"Operation {handle.operation_id} {handle.status.value}",
                "error_code": (
                    ErrorCode.TIMEOUT.value if handle.status == OperationStatus.TIMEOUT
                    else ErrorCode.OPERATION_FAILED.value
                ),
            }
        return await self.resume_execution(handle.execution_id, resume_data)

    async def pause_execution(self, execution_id: str, reason: str = "Pause requested") -> bool:
        """Request a pause at the next node boundary."""
        context = self._running_executions.get(execution_id)
        if context is None:
            return False
        context.pause_requested = reason
        logger.info("Execution pause requested", execution_id=execution_id, reason=reason)
        return True

    async def resume_execution(
        self,
        execution_id: str,
        resume_data: Optional[dict[str, Any]] = None,
    ) -> WorkflowExecutionResult:
        """Continue a paused execution.

        Executions suspended on an async operation re-enter after the
        suspended node; resume_data may carry ``output``, ``connector`` or
        ``error`` (with optional ``error_code``). Other pauses re-enter at
        the stored next node.
        """
        paused = self._paused.get(execution_id)
        if paused is None:
            if execution_id in self._running_executions:
                raise ConflictError(f"Execution {execution_id} is not paused")
            raise NotFoundError(f"Paused execution {execution_id} not found")

        resume_data = resume_data or {}
        connector = ConnectorType.SUCCESS
        if resume_data.get("connector"):
            try:
                connector = ConnectorType(resume_data["connector"])
            except ValueError:
                raise ValidationError(f"Unknown connector type: {resume_data['connector']}")

        del self._paused[execution_id]
        await self._release_operation(paused.operation_id, "Execution resumed directly")
        definition, context = paused.definition, paused.context
        context.metadata.pop("pause_reason", None)
        logger.info("Execution resuming", execution_id=execution_id)

        if paused.suspended_node_id is None:
            return await self._launch(definition, context, paused.next_node_id)

        node_id = paused.suspended_node_id
        if resume_data.get("error"):
            error = ExecutionError(
                code=ErrorCode(resume_data.get("error_code", ErrorCode.OPERATION_FAILED.value)),
                message=str(resume_data["error"]),
                node_id=node_id,
                context={"operation_id": paused.operation_id},
            )
            node = definition.get_node(node_id)
            next_node_id = self._handle_failure(
                definition, context, node, NodeExecutionResult.failed(error)
            )
            if next_node_id is None:
                return await self._finish(context, _Outcome(ExecutionStatus.FAILED))
            return await self._launch(definition, context, next_node_id)

        output = dict(resume_data.get("output") or {})
        context.variables.update(output)
        context.variables[f"action_{node_id}_status"] = "completed"
        node_result = NodeExecutionResult.succeeded(output, connector)
        next_node_id = self._resolver.resolve(node_id, definition.connections, context, node_result)
        if next_node_id is None:
            return await self._finish(context, self._complete_without_end(context, node_id))
        return await self._launch(definition, context, next_node_id)

    def get_paused_snapshot(self, execution_id: str) -> dict[str, Any]:
        paused = self._paused.get(execution_id)
        if paused is None:
            raise NotFoundError(f"Paused execution {execution_id} not found")
        return {
            "context": paused.context.to_dict(),
            "next_node_id": paused.next_node_id,
            "suspended_node_id": paused.suspended_node_id,
            "operation_id": paused.operation_id,
        }

    # ─── Parallel branches ────────────────────────────────────

    async def _fan_out(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        targets: list[str],
    ) -> tuple[Optional[str], Optional[_Outcome]]:
        """Run each target as a branch, merge writes, pick the continuation.

        Returns (join_node_id, None) to continue the loop, or (None, outcome)
        when the fan-out ends the execution.
        """
        base = copy.deepcopy(context.variables)
        logger.info(
            "Fanning out parallel branches",
            execution_id=context.execution_id,
            branches=targets,
        )
        tasks = [
            asyncio.ensure_future(self._run_branch(definition, context, target, base))
            for target in targets
        ]
        try:
            branches: list[_BranchOutcome] = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        self._merge_branches(context, base, branches)

        if any(b.kind == "failed" for b in branches):
            return None, _Outcome(ExecutionStatus.FAILED)

        joins = {b.node_id for b in branches if b.kind == "join"}
        if len(joins) == 1 and all(b.kind == "join" for b in branches):
            return joins.pop(), None

        for branch in branches:
            if branch.kind == "end":
                return None, self._complete(context, branch.end_output)
        return None, self._complete_without_end(context, None)

    async def _run_branch(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        node_id: str,
        base: dict[str, Any],
    ) -> _BranchOutcome:
        branch = dataclasses.replace(context, variables=copy.deepcopy(base))

        while node_id is not None:
            if definition.incoming_count(node_id) > 1:
                return _BranchOutcome("join", node_id, branch.variables)

            node = self._enter_node(definition, branch, node_id)
            result = await self._run_node(node, branch)

            if branch.cancellation.is_cancelled:
                raise WorkflowExecutionError(
                    ErrorCode.CANCELLED,
                    branch.cancellation.reason or "Execution cancelled",
                    node_id=node.id,
                )

            if result.status == NodeResultStatus.FAILED:
                branch.variables.update(result.output)
                node_id = self._handle_failure(definition, branch, node, result)
                if node_id is None:
                    return _BranchOutcome("failed", node.id, branch.variables)
                continue

            if result.status == NodeResultStatus.SUSPENDED:
                branch.add_error(ExecutionError(
                    code=ErrorCode.NODE_EXECUTION_FAILED,
                    message="Async operations cannot suspend a parallel branch",
                    node_id=node.id,
                ))
                return _BranchOutcome("failed", node.id, branch.variables)

            if node.type == NodeType.END.value:
                return _BranchOutcome("end", node.id, branch.variables, result.output)

            branch.variables.update(result.output)
            node_id = self._resolver.resolve(node.id, definition.connections, branch, result)

        return _BranchOutcome("exhausted", None, branch.variables)

    @staticmethod
    def _merge_branches(
        context: ExecutionContext,
        base: dict[str, Any],
        branches: list[_BranchOutcome],
    ) -> None:
        """Merge branch writes in branch order; last writer wins."""
        written_by: dict[str, int] = {}
        for index, branch in enumerate(branches):
            for key, value in branch.variables.items():
                if key in base and base[key] == value:
                    continue
                if key in written_by and context.variables.get(key) != value:
                    context.add_warning(ExecutionError(
                        code=ErrorCode.BRANCH_MERGE_CONFLICT,
                        message=f"Variable '{key}' written by multiple branches; last writer wins",
                        context={"key": key, "branches": [written_by[key], index]},
                    ))
                context.variables[key] = value
                written_by[key] = index

    # ─── Finish / queries ─────────────────────────────────────

    def _build_result(self, context: ExecutionContext, outcome: _Outcome) -> WorkflowExecutionResult:
        return WorkflowExecutionResult(
            execution_id=context.execution_id,
            workflow_id=context.workflow_id,
            status=outcome.status,
            output=outcome.output,
            decision=outcome.decision,
            execution_path=list(context.execution_path),
            duration_ms=context.elapsed_ms(),
            errors=list(context.errors),
            warnings=list(context.warnings),
            variables=dict(context.variables),
            input_data=dict(context.input_data),
            pending_operation_id=outcome.operation_id,
            started_at=context.started_at,
            completed_at=utc_now_iso() if outcome.status.is_terminal else None,
        )

    async def _finish(self, context: ExecutionContext, outcome: _Outcome) -> WorkflowExecutionResult:
        context.status = outcome.status
        result = self._build_result(context, outcome)
        self._store_result(result)

        log = logger.info if result.success or result.status == ExecutionStatus.PAUSED else logger.warning
        log(
            "Workflow execution finished",
            execution_id=result.execution_id,
            workflow_id=result.workflow_id,
            status=result.status.value,
            decision=result.decision,
            nodes_executed=len(result.execution_path),
            errors=len(result.errors),
            duration_ms=round(result.duration_ms, 2),
        )

        if self._on_execution_complete:
            try:
                await _maybe_await(self._on_execution_complete(result))
            except Exception as e:
                logger.error(
                    "on_execution_complete callback failed",
                    execution_id=result.execution_id,
                    error=str(e),
                )
        return result

    def _store_result(self, result: WorkflowExecutionResult) -> None:
        self._results[result.execution_id] = result
        self._results.move_to_end(result.execution_id)
        while len(self._results) > self._results_limit:
            self._results.popitem(last=False)

    async def cancel_execution(self, execution_id: str, reason: str = "Execution cancelled") -> bool:
        """Cancel a running or paused execution.

        Returns:
            True if the execution was found, False otherwise
        """
        context = self._running_executions.get(execution_id)
        if context is not None:
            context.cancellation.cancel(reason)
            logger.info("Execution marked for cancellation", execution_id=execution_id)
            return True

        paused = self._paused.pop(execution_id, None)
        if paused is not None:
            await self._release_operation(paused.operation_id, reason)
            context = paused.context
            context.cancellation.cancel(reason)
            context.add_error(ExecutionError(
                code=ErrorCode.CANCELLED,
                message=reason,
                node_id=paused.suspended_node_id or paused.next_node_id,
            ))
            await self._finish(context, _Outcome(ExecutionStatus.CANCELLED))
            return True
        return False

    async def wait_for_execution(
        self,
        execution_id: str,
        timeout: Optional[float] = None,
    ) -> WorkflowExecutionResult:
        """Await an async-mode execution; returns the stored result otherwise."""
        task = self._tasks.get(execution_id)
        if task is not None:
            return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        result = self._results.get(execution_id)
        if result is None:
            raise NotFoundError(f"Execution {execution_id} not found")
        return result

    def get_execution_result(self, execution_id: str) -> Optional[WorkflowExecutionResult]:
        return self._results.get(execution_id)

    def get_running_executions(self) -> dict[str, dict]:
        """Status of all in-flight (running or paused) executions."""
        contexts = list(self._running_executions.values()) + [p.context for p in self._paused.values()]
        return {
            ctx.execution_id: {
                "workflow_id": ctx.workflow_id,
                "status": ctx.status.value,
                "current_node": ctx.execution_path[-1] if ctx.execution_path else None,
                "nodes_executed": len(ctx.execution_path),
                "errors": len(ctx.errors),
            }
            for ctx in contexts
        }

    async def shutdown(self) -> None:
        """Cancel outstanding async-mode tasks."""
        for context in list(self._running_executions.values()):
            context.cancellation.cancel("Engine shutting down")
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


async def _maybe_await(value: Union[Awaitable[Any], Any]) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value
