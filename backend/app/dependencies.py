"""FastAPI dependency injection functions."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.runtime import DecisioningRuntime
from db import database
from workflow.async_registry import AsyncOperationRegistry
from workflow.engine import WorkflowEngine

logger = structlog.get_logger(__name__)


async def get_db() -> AsyncSession:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    async with database.AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error("Database error", error=str(e))
            await session.rollback()
            raise
        finally:
            await session.close()


def get_runtime(request: Request) -> DecisioningRuntime:
    """The runtime built by the application lifespan."""
    return request.app.state.runtime


def get_engine(runtime: DecisioningRuntime = Depends(get_runtime)) -> WorkflowEngine:
    return runtime.engine


def get_operation_registry(
    runtime: DecisioningRuntime = Depends(get_runtime),
) -> AsyncOperationRegistry:
    return runtime.operations
