"""
Business action registry: the invoker action nodes dispatch through.

Maps action_type strings to BaseAction instances. Unknown action types
fall back to the generic default action.
"""

import random
from typing import Any, Dict, Optional, Type, Union

import structlog

from actions.base_action import ActionResult, BaseAction
from actions.implementations.underwriting import UNDERWRITING_ACTION_TYPES

logger = structlog.get_logger(__name__)

FALLBACK_ACTION_TYPE = "default"


class BusinessActionInvoker:
    """Registry and dispatcher for business actions."""

    def __init__(self, seed: Optional[int] = None, register_builtins: bool = True):
        self._rng = random.Random(seed)
        self._actions: Dict[str, BaseAction] = {}
        if register_builtins:
            self._register_builtin_actions()

    def _register_builtin_actions(self):
        for action_type, action_class in UNDERWRITING_ACTION_TYPES.items():
            self.register(action_type, action_class)

    def register(self, action_type: str, action: Union[BaseAction, Type[BaseAction]]):
        """Register an action instance, or a class to instantiate with the shared RNG."""
        if isinstance(action, type):
            action = action(rng=self._rng)
        self._actions[action_type] = action

    def get(self, action_type: str) -> Optional[BaseAction]:
        return self._actions.get(action_type)

    def has(self, action_type: str) -> bool:
        return action_type in self._actions

    async def invoke(
        self,
        action_type: str,
        config: Dict[str, Any],
        variables: Dict[str, Any],
    ) -> ActionResult:
        action = self._actions.get(action_type)
        if action is None:
            logger.warning("Unknown action type, using fallback", action_type=action_type)
            action = self._actions.get(FALLBACK_ACTION_TYPE)
            if action is None:
                return ActionResult(success=False, error=f"Unknown action type: {action_type}")
        return await action.run(config, dict(variables))

    def list_all(self) -> list:
        return [
            {
                "action_type": action_type,
                "display_name": action.display_name,
                "description": action.description,
                "config_schema": action.get_config_schema(),
            }
            for action_type, action in self._actions.items()
        ]

    @property
    def available_types(self) -> list:
        return list(self._actions.keys())
