"""Runtime settings for the decisioning service.

Every value can be overridden through the environment or a ``.env`` file
using the attribute name, e.g. ``WORKFLOW_MAX_ITERATIONS=250``.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # ─── Service ───────────────────────────────────────────
    APP_NAME: str = "Loan Decisioning Engine"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    API_V1_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:8080"
    ALLOW_CREDENTIALS: bool = True

    # ─── Persistence ───────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./decisioning.db"
    SQLALCHEMY_ECHO: bool = False
    EXECUTION_HISTORY_LIMIT: int = 50

    # ─── Orchestrator ──────────────────────────────────────
    WORKFLOW_MAX_ITERATIONS: int = 1000
    WORKFLOW_DEFAULT_TIMEOUT_MS: Optional[int] = None
    WORKFLOW_PARALLEL_BRANCHES: bool = False
    ASYNC_OPERATION_RETENTION_SECONDS: int = 3600

    # ─── Data sources ──────────────────────────────────────
    DATA_SOURCE_BASE_URL: str = ""
    DATA_SOURCE_TIMEOUT_SECONDS: float = 10.0
    DATA_SOURCE_MAX_RETRIES: int = 3
    DATA_SOURCE_RETRY_DELAY: float = 1.0
    DATA_SOURCE_CACHE_TTL_SECONDS: float = 300.0
    MOCK_DATA_SEED: Optional[int] = None  # fixed seed makes simulated bureau data repeatable

    # ─── Logging ───────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json | text

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Settings are read from the environment once per process."""
    return Settings()
