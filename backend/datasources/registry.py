"""
Data source registry.

Holds one DataSourceClient per source type. Constructed once at startup,
passed into the node executors, and closed on shutdown.
"""

import asyncio
import random
from typing import Any, Dict, List, Optional

import structlog

from core.exceptions import DataSourceError
from datasources.base import DataSourceClient
from datasources.http_source import HttpApiSource
from datasources.simulated import SIMULATED_SOURCES
from workflow.context import CancellationToken

logger = structlog.get_logger(__name__)

FALLBACK_SOURCE_TYPE = "default"


class DataSourceRegistry:
    """Source-type keyed set of data source clients."""

    def __init__(self, clients: Optional[Dict[str, DataSourceClient]] = None):
        self._clients: Dict[str, DataSourceClient] = dict(clients or {})

    @classmethod
    def with_defaults(
        cls,
        seed: Optional[int] = None,
        api_source: Optional[HttpApiSource] = None,
    ) -> "DataSourceRegistry":
        """Simulated bureau sources plus an HTTP API source."""
        rng = random.Random(seed)
        registry = cls()
        for source_type, client_class in SIMULATED_SOURCES.items():
            registry.register(source_type, client_class(rng=rng))
        registry.register("api", api_source or HttpApiSource())
        return registry

    def register(self, source_type: str, client: DataSourceClient) -> None:
        self._clients[source_type] = client

    def get(self, source_type: str) -> Optional[DataSourceClient]:
        return self._clients.get(source_type)

    def list_all(self) -> List[dict]:
        return [
            {"source_type": source_type, "display_name": client.display_name}
            for source_type, client in self._clients.items()
        ]

    async def fetch(
        self,
        source_type: str,
        config: Dict[str, Any],
        variables: Dict[str, Any],
        cancellation: Optional[CancellationToken] = None,
    ) -> Dict[str, Any]:
        """Fetch from a source, abandoning the call if the execution is cancelled."""
        client = self._clients.get(source_type)
        if client is None:
            logger.warning("Unknown data source type, using fallback", source_type=source_type)
            client = self._clients.get(FALLBACK_SOURCE_TYPE)
            if client is None:
                raise DataSourceError(f"Unknown data source type: {source_type}", source_type)

        if cancellation is None:
            return await client.fetch(config, variables)
        if cancellation.is_cancelled:
            raise DataSourceError("Execution cancelled before data source call", source_type)

        fetch_task = asyncio.ensure_future(client.fetch(config, variables))
        cancel_task = asyncio.ensure_future(cancellation.wait())
        try:
            done, _ = await asyncio.wait(
                {fetch_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if fetch_task in done:
                return fetch_task.result()
            raise DataSourceError("Execution cancelled during data source call", source_type)
        finally:
            for task in (fetch_task, cancel_task):
                if not task.done():
                    task.cancel()

    async def close(self) -> None:
        for source_type, client in self._clients.items():
            try:
                await client.close()
            except Exception as e:
                logger.error("Data source close failed", source_type=source_type, error=str(e))
