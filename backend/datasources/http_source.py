"""Generic HTTP API data source backed by a shared httpx client.

Retries failed requests with exponential backoff and caches successful GET
responses for a short TTL in a bounded LRU.
"""

import asyncio
import json
import time
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import structlog

from core.exceptions import DataSourceError
from datasources.base import DataSourceClient

logger = structlog.get_logger(__name__)


class HttpApiSource(DataSourceClient):
    source_type = "api"
    display_name = "HTTP API"

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = "",
        timeout_seconds: float = 10.0,
        max_retries: int = 3,
        retry_delay_seconds: float = 1.0,
        cache_ttl_seconds: float = 300.0,
        cache_max_entries: int = 256,
    ):
        super().__init__()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds),
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )
        self.max_retries = max(1, max_retries)
        self.retry_delay_seconds = retry_delay_seconds
        self.cache_ttl_seconds = cache_ttl_seconds
        self.cache_max_entries = max(1, cache_max_entries)
        self._cache: OrderedDict[str, tuple[float, Dict[str, Any]]] = OrderedDict()

    async def fetch(self, config: Dict[str, Any], variables: Dict[str, Any]) -> Dict[str, Any]:
        endpoint = config.get("endpoint") or config.get("url")
        if not endpoint:
            raise DataSourceError("API data source requires an endpoint", self.source_type)

        method = str(config.get("method", "GET")).upper()
        payload = config.get("payload")
        params = config.get("params")
        headers = config.get("headers")

        cache_key = None
        if method == "GET" and config.get("cache", True):
            cache_key = f"{endpoint}?{json.dumps(params or {}, sort_keys=True)}"
            cached = self._get_cached(cache_key)
            if cached is not None:
                return {**cached, "source": "cache"}

        last_error = None
        for attempt in range(self.max_retries):
            start = time.monotonic()
            try:
                response = await self._client.request(
                    method=method,
                    url=endpoint,
                    json=payload if method in ("POST", "PUT", "PATCH") else None,
                    params=params,
                    headers=headers,
                )
                duration = (time.monotonic() - start) * 1000

                if response.is_success:
                    result = {
                        "endpoint": endpoint,
                        "method": method,
                        "status": response.status_code,
                        "data": self._parse_response(response),
                        "duration_ms": round(duration, 2),
                        "fetched_at": datetime.now(timezone.utc).isoformat(),
                    }
                    if cache_key:
                        self._store_cached(cache_key, result)
                    return result

                last_error = f"HTTP {response.status_code}: {response.text[:200]}"

            except httpx.TimeoutException:
                duration = (time.monotonic() - start) * 1000
                last_error = f"Timeout after {duration:.0f}ms"

            except httpx.HTTPError as e:
                last_error = f"Request error: {str(e)[:200]}"

            logger.warning(
                "Data source request failed",
                endpoint=endpoint,
                attempt=attempt + 1,
                error=last_error,
            )
            if attempt < self.max_retries - 1:
                await asyncio.sleep(min(2 ** attempt * self.retry_delay_seconds, 30))

        raise DataSourceError(
            f"API request to {endpoint} failed after {self.max_retries} attempt(s): {last_error}",
            self.source_type,
        )

    def _get_cached(self, key: str) -> Optional[Dict[str, Any]]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if time.monotonic() - stored_at < self.cache_ttl_seconds:
            self._cache.move_to_end(key)
            return value
        del self._cache[key]
        return None

    def _store_cached(self, key: str, value: Dict[str, Any]) -> None:
        now = time.monotonic()
        expired = [k for k, (stored_at, _) in self._cache.items() if now - stored_at >= self.cache_ttl_seconds]
        for k in expired:
            del self._cache[k]
        self._cache[key] = (now, value)
        self._cache.move_to_end(key)
        while len(self._cache) > self.cache_max_entries:
            self._cache.popitem(last=False)

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    def _parse_response(self, response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
