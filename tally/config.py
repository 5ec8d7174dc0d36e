"""TALLY — Central Configuration via Pydantic Settings."""

import os
from typing import Dict

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000
    timezone: str = "UTC"  # Used to resolve "today" when no reference date is given

    # ── Period windows (number of periods shown per cadence) ──
    weekly_periods: int = 9  # ~2.5 months
    monthly_periods: int = 8
    quarterly_periods: int = 8  # 2 years

    # ── Scoring ──
    min_metric_name_length: int = 3
    at_least_yellow_ratio: float = 0.9  # value / target at or above this → yellow
    at_most_yellow_ratio: float = 1.1  # value / target at or below this → yellow

    # ── Trend ──
    trend_window: int = 3
    trend_up_ratio: float = 1.05
    trend_down_ratio: float = 0.95

    @property
    def effective_database_url(self) -> str:
        """Return the configured URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/tally.db"
        return "sqlite:///./tally.db"

    @property
    def period_counts(self) -> Dict[str, int]:
        """Default window size per cadence."""
        return {
            "weekly": self.weekly_periods,
            "monthly": self.monthly_periods,
            "quarterly": self.quarterly_periods,
        }

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
