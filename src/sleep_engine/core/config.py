"""Engine configuration."""

from enum import Enum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogFormat(str, Enum):
    """Output format for structured logs."""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """Engine settings.

    Only ambient behaviour is configurable. Model constants stay in code so
    identical inputs always produce identical outputs.
    """

    model_config = SettingsConfigDict(
        env_prefix="SLEEP_ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Allow extra env vars without error
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: LogFormat = Field(
        default=LogFormat.JSON,
        description="Log renderer: json for machines, console for humans",
    )

    # Defaults applied by the CLI when a profile omits them
    default_sleep_goal_minutes: int = Field(
        default=480,
        gt=0,
        description="Sleep goal used when the profile has none (minutes)",
    )

    def is_console_logging(self) -> bool:
        """Check if logs should be rendered for a terminal."""
        return self.log_format == LogFormat.CONSOLE


# Global settings instance
settings = Settings()
