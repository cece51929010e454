"""
Base action interface for business operations invoked by action nodes.

Every action type (credit check, document request, notification, etc.)
inherits from BaseAction and implements the execute() method.
"""

import random
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog

from core.constants import ConnectorType

logger = structlog.get_logger(__name__)


class ActionResult:
    """Standardized result from an action invocation."""

    def __init__(
        self,
        success: bool,
        output: Any = None,
        error: Optional[str] = None,
        variable_updates: Optional[Dict[str, Any]] = None,
        next_connector: Optional[ConnectorType] = None,
        suspend: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        duration_ms: float = 0,
    ):
        self.success = success
        self.output = output
        self.error = error
        self.variable_updates = variable_updates or {}
        self.next_connector = next_connector
        self.suspend = suspend
        self.metadata = metadata or {}
        self.duration_ms = duration_ms
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "variable_updates": self.variable_updates,
            "next_connector": self.next_connector.value if self.next_connector else None,
            "suspend": self.suspend,
            "metadata": self.metadata,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }


class BaseAction(ABC):
    """
    Abstract base class for business actions.

    Subclasses must implement:
    - execute(config, variables) -> ActionResult
    - action_type (class property)
    - display_name (class property)
    """

    action_type: str = "base"
    display_name: str = "Base Action"
    description: str = "Abstract base action"

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    @abstractmethod
    async def execute(
        self,
        config: Dict[str, Any],
        variables: Dict[str, Any],
    ) -> ActionResult:
        """
        Execute the action.

        Args:
            config: Action-specific configuration (from the node's action_config)
            variables: Read-only view of the execution variables

        Returns:
            ActionResult with output or error
        """

    async def run(
        self,
        config: Dict[str, Any],
        variables: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        """
        Run the action with timing and error handling.

        This is the entry point the action invoker calls.
        """
        start = time.monotonic()
        try:
            result = await self.execute(config, variables or {})
            result.duration_ms = (time.monotonic() - start) * 1000
            logger.info(
                "Action completed",
                action_type=self.action_type,
                success=result.success,
                duration_ms=round(result.duration_ms, 2),
            )
            return result

        except Exception as e:
            duration_ms = (time.monotonic() - start) * 1000
            logger.error(
                "Action failed",
                action_type=self.action_type,
                error=str(e),
                duration_ms=round(duration_ms, 2),
            )
            return ActionResult(
                success=False,
                error=str(e),
                duration_ms=duration_ms,
            )

    @classmethod
    def get_config_schema(cls) -> Dict[str, Any]:
        """JSON schema for the action's configuration."""
        return {"type": "object", "properties": {}}
