"""Environment-driven settings for the capture pipeline."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


@dataclass
class Settings:
    """Container for environment-driven settings."""

    store_path: str = field(default_factory=lambda: os.getenv("INSIGHT_STORE_PATH", "./data/insight.db"))
    database_url: str | None = field(default_factory=lambda: os.getenv("INSIGHT_DATABASE_URL"))

    # Region selection
    min_selection_size: float = field(
        default_factory=lambda: float(os.getenv("INSIGHT_MIN_SELECTION_SIZE", "10"))
    )
    capture_delay_seconds: float = field(
        default_factory=lambda: float(os.getenv("INSIGHT_CAPTURE_DELAY", "0.1"))
    )

    # Remote services. No timeout unless one is configured explicitly.
    request_timeout_seconds: float | None = field(
        default_factory=lambda: _env_float("INSIGHT_REQUEST_TIMEOUT", None)
    )
    vision_model_pattern: str = field(
        default_factory=lambda: os.getenv("INSIGHT_VISION_MODEL_PATTERN", "gpt-4")
    )
    openai_max_tokens: int = field(default_factory=lambda: int(os.getenv("INSIGHT_OPENAI_MAX_TOKENS", "1000")))

    # Request ledger housekeeping
    request_recovery_minutes: int = field(
        default_factory=lambda: int(os.getenv("INSIGHT_REQUEST_RECOVERY_MINUTES", "30"))
    )
    request_retention_hours: int = field(
        default_factory=lambda: int(os.getenv("INSIGHT_REQUEST_RETENTION_HOURS", "24"))
    )

    # CLI host
    log_level: str = field(default_factory=lambda: os.getenv("INSIGHT_LOG_LEVEL", "INFO"))
    browser_type: str = field(default_factory=lambda: os.getenv("INSIGHT_BROWSER", "chromium"))
    headless: bool = field(default_factory=lambda: _env_flag("INSIGHT_HEADLESS", default=False))

    def resolved_database_url(self) -> str:
        """Return a SQLAlchemy-compatible database URL."""

        if self.database_url:
            return self.database_url

        sqlite_file = Path(self.store_path)
        if not sqlite_file.is_absolute():
            sqlite_file = Path.cwd() / sqlite_file
        sqlite_file.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{sqlite_file.as_posix()}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance, reading ``.env`` on first use."""

    load_dotenv()
    return Settings()
