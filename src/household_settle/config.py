"""Configuration management for household-settle."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError
from .models import Policy, RoundingMode, ZeroIncomePolicy


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SETTLE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Household the CLI operates on when none is given
    household_id: str = "default"

    # Default policy, used when a household has none stored
    rounding_mode: RoundingMode = RoundingMode.ROUND
    zero_income_policy: ZeroIncomePolicy = ZeroIncomePolicy.EXCLUDE
    min_share_percent: int = Field(default=0, ge=0, le=100)

    # Logging
    log_level: str = "INFO"

    # Database path
    database_path: Path = Path.home() / ".household_settle" / "household_settle.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

    def default_policy(self) -> Policy:
        """Policy built from the configured defaults."""
        return Policy(
            rounding_mode=self.rounding_mode,
            zero_income_policy=self.zero_income_policy,
            min_share_percent=self.min_share_percent,
        )


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your SETTLE_* environment "
            f"variables or .env file.\n"
            f"Error: {e}"
        ) from e
