"""Runtime assembly: builds the engine and its collaborators from settings.

Built once by the application lifespan and stored on ``app.state.runtime``.
"""

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import Optional

import httpx
import structlog

from actions.registry import BusinessActionInvoker
from app.config import Settings
from datasources.http_source import HttpApiSource
from datasources.registry import DataSourceRegistry
from underwriting.decision_policy import DecisionPolicy
from underwriting.templates import default_loan_workflow, default_rule_set_library
from workflow.async_registry import AsyncOperationRegistry
from workflow.engine import InMemoryWorkflowStore, WorkflowEngine, WorkflowStore
from workflow.executors.factory import NodeExecutorFactory
from workflow.resolver import ConnectorResolver
from workflow.validator import WorkflowValidator

logger = structlog.get_logger(__name__)

CLEANUP_INTERVAL_SECONDS = 60


@dataclass
class DecisioningRuntime:
    engine: WorkflowEngine
    validator: WorkflowValidator
    operations: AsyncOperationRegistry
    data_sources: DataSourceRegistry
    actions: BusinessActionInvoker
    policy: DecisionPolicy
    http_client: httpx.AsyncClient
    retention_seconds: int = 3600
    _cleanup_task: Optional[asyncio.Task] = field(default=None, repr=False)

    def start_background_tasks(self) -> None:
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
            try:
                await self.operations.cleanup(self.retention_seconds)
            except Exception as e:
                logger.error("Async operation cleanup failed", error=str(e))

    async def shutdown(self) -> None:
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._cleanup_task
            self._cleanup_task = None
        await self.engine.shutdown()
        await self.data_sources.close()
        await self.http_client.aclose()


def template_workflow_store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore([default_loan_workflow()])


def build_runtime(
    settings: Settings,
    workflow_store: Optional[WorkflowStore] = None,
    on_execution_complete=None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> DecisioningRuntime:
    """Wire the engine, executors and registries from settings."""
    client = http_client or httpx.AsyncClient(
        base_url=settings.DATA_SOURCE_BASE_URL,
        timeout=httpx.Timeout(settings.DATA_SOURCE_TIMEOUT_SECONDS),
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
    )
    data_sources = DataSourceRegistry.with_defaults(
        seed=settings.MOCK_DATA_SEED,
        api_source=HttpApiSource(
            client=client,
            max_retries=settings.DATA_SOURCE_MAX_RETRIES,
            retry_delay_seconds=settings.DATA_SOURCE_RETRY_DELAY,
            cache_ttl_seconds=settings.DATA_SOURCE_CACHE_TTL_SECONDS,
        ),
    )
    policy = DecisionPolicy()
    actions = BusinessActionInvoker(seed=settings.MOCK_DATA_SEED)
    factory = NodeExecutorFactory.with_defaults(
        invoker=actions,
        data_sources=data_sources,
        rule_sets=default_rule_set_library(),
    )
    operations = AsyncOperationRegistry()
    engine = WorkflowEngine(
        workflow_store=workflow_store or template_workflow_store(),
        executor_factory=factory,
        resolver=ConnectorResolver(),
        operation_registry=operations,
        max_iterations=settings.WORKFLOW_MAX_ITERATIONS,
        default_timeout_ms=settings.WORKFLOW_DEFAULT_TIMEOUT_MS,
        parallel_branches=settings.WORKFLOW_PARALLEL_BRANCHES,
        on_execution_complete=on_execution_complete,
    )
    logger.info(
        "Decisioning runtime built",
        node_types=factory.registered_node_types(),
        action_types=actions.available_types,
        max_iterations=settings.WORKFLOW_MAX_ITERATIONS,
        parallel_branches=settings.WORKFLOW_PARALLEL_BRANCHES,
    )
    return DecisioningRuntime(
        engine=engine,
        validator=WorkflowValidator(factory),
        operations=operations,
        data_sources=data_sources,
        actions=actions,
        policy=policy,
        http_client=client,
        retention_seconds=settings.ASYNC_OPERATION_RETENTION_SECONDS,
    )
