"""Application configuration via Pydantic Settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

# Resolve .env from the project root regardless of CWD
_ENV_FILE = Path(__file__).resolve().parents[3] / ".env"


class Settings(BaseSettings):
    """Central configuration loaded from environment variables / .env file."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./maintenance_dispatch.db"

    # Internal endpoints (scheduler tick, engine operations)
    internal_token: str = "dispatch-internal"

    # CORS / Frontend
    cors_origins: str = "http://localhost:5173"

    # Sweeps
    sla_sweep_interval_minutes: int = 30
    escalation_sweep_interval_seconds: int = 60
    emergency_response_window_minutes: int = 5
    # 0 disables dedup: every sweep re-notifies breached complaints
    sla_renotify_hours: float = 24
    daily_task_hour: int = 6

    # General
    debug: bool = True

    model_config = {"env_file": str(_ENV_FILE), "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list.

        In debug mode, returns ["*"] to allow any origin.
        """
        if self.debug:
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
