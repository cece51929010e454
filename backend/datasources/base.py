"""Data source client interface."""

import random
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class DataSourceClient(ABC):
    """A named external source of applicant data.

    Implementations return a JSON-serializable payload or raise
    DataSourceError.
    """

    source_type: str = "base"
    display_name: str = "Base Data Source"

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    @abstractmethod
    async def fetch(self, config: Dict[str, Any], variables: Dict[str, Any]) -> Dict[str, Any]:
        """Fetch a payload for the current execution."""

    async def close(self) -> None:
        """Release network resources. Most clients hold none."""
