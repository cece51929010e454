"""Workflow model for the decisioning engine."""

from typing import Optional

from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import WorkflowMode
from db.base import BaseModel


class Workflow(BaseModel):
    """A stored workflow definition.

    Attributes:
        id: Unique identifier (UUID string); also the definition id
        name: Workflow name
        description: Workflow description
        definition: JSON form of the WorkflowDefinition
        version: Incremented on every definition update
        mode: Authoring mode (simple, enhanced, enterprise)
        is_enabled: Whether workflow can be executed
    """

    __tablename__ = "workflows"

    name: Mapped[str] = mapped_column(nullable=False, index=True)
    description: Mapped[str] = mapped_column(nullable=False, default="")
    definition: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    version: Mapped[int] = mapped_column(default=1)
    mode: Mapped[str] = mapped_column(default=WorkflowMode.ENTERPRISE.value)
    is_enabled: Mapped[bool] = mapped_column(default=True, index=True)
