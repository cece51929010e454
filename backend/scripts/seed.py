"""Database seed script: stores the built-in loan workflow templates as editable workflows.

Run: python -m scripts.seed
"""

import asyncio
import sys
import os

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


async def seed():
    """Seed the database with the default loan workflow."""
    from db.database import init_db
    from db.database import AsyncSessionLocal
    from db.models.workflow import Workflow
    from services.workflow_service import WorkflowService
    from underwriting.templates import default_loan_workflow
    from sqlalchemy import select

    # Initialize DB tables
    await init_db()

    template = default_loan_workflow()

    async with AsyncSessionLocal() as db:
        result = await db.execute(
            select(Workflow).where(
                Workflow.name == template.name,
                Workflow.is_deleted == False,
            )
        )
        existing = result.scalar_one_or_none()

        if not existing:
            wf = await WorkflowService(db).create_workflow(
                name=template.name,
                definition=template,
                description=template.description,
            )
            print(f"[seed] Created workflow: {wf.name} ({wf.id})")
        else:
            print(f"[seed] Workflow exists: {existing.name} ({existing.id})")

        await db.commit()

    print("[seed] Done.")


if __name__ == "__main__":
    asyncio.run(seed())
