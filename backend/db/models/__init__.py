"""Database models for the decisioning engine.

This module imports all models to ensure they are registered
with SQLAlchemy's declarative base.
"""

from db.models.workflow import Workflow
from db.models.execution import Execution

__all__ = [
    "Workflow",
    "Execution",
]
