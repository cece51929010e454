"""Shared pytest fixtures for the decisioning engine test suite.

Provides:
- In-memory async SQLite database (one per test)
- AsyncSession factory
- A fully wired DecisioningRuntime backed by that database
- FastAPI test client (httpx.AsyncClient)
- Loan application payloads for the standard underwriting scenarios
"""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("MOCK_DATA_SEED", "1234")


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database for each test."""
    from db.database import init_db

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    from db.database import create_session_factory

    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide a DB session that commits at the end of the test."""
    async with session_factory() as session:
        yield session
        await session.commit()


# ---------------------------------------------------------------------------
# Runtime / App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def runtime(session_factory):
    """Runtime wired the way the application lifespan wires it."""
    from app.config import get_settings
    from app.runtime import build_runtime, template_workflow_store
    from services.workflow_service import DatabaseWorkflowStore, ExecutionHistoryRecorder

    rt = build_runtime(
        get_settings(),
        workflow_store=DatabaseWorkflowStore(session_factory, fallback=template_workflow_store()),
        on_execution_complete=ExecutionHistoryRecorder(session_factory),
    )
    yield rt
    await rt.shutdown()


@pytest_asyncio.fixture
async def app(db_engine, session_factory, runtime):
    """Create a FastAPI app instance wired to the test database and runtime."""
    # Patch the database module to use our test engine
    import db.database as db_mod
    original_engine = db_mod.engine
    original_session = db_mod.AsyncSessionLocal

    db_mod.engine = db_engine
    db_mod.AsyncSessionLocal = session_factory

    from app.main import create_app
    test_app = create_app()
    # ASGITransport does not run the lifespan
    test_app.state.runtime = runtime

    yield test_app

    # Restore originals
    db_mod.engine = original_engine
    db_mod.AsyncSessionLocal = original_session


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def strong_applicant() -> dict:
    return {"credit_score": 780, "debt_to_income_ratio": 0.25, "annual_income": 85000}


@pytest.fixture
def weak_applicant() -> dict:
    return {"credit_score": 580, "debt_to_income_ratio": 0.55, "annual_income": 35000}


@pytest.fixture
def borderline_applicant() -> dict:
    return {"credit_score": 680, "debt_to_income_ratio": 0.35, "annual_income": 55000}
