"""
Application Settings and Configuration.

Loads configuration from environment variables and config files.
Walk-forward engine limits default to the engine's built-in constants.
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from .paths import default_log_directory


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables:
        WALKFORWARD_ENVIRONMENT: deployment environment name (default: development)
        WALKFORWARD_LOG_LEVEL: root log level (default: INFO)
        WALKFORWARD_LOG_DIR: directory for the rolling log file
        WALKFORWARD_MAX_PARAMETER_COMBINATIONS: grid size cap per window (default: 20000)
        WALKFORWARD_YIELD_EVERY: combinations between cooperative yields (default: 50)
    """

    # Application Configuration
    environment: str = Field(default="development", alias="WALKFORWARD_ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="WALKFORWARD_LOG_LEVEL")
    log_directory: Optional[str] = Field(default=None, alias="WALKFORWARD_LOG_DIR")
    log_retention_days: int = Field(default=14, alias="WALKFORWARD_LOG_RETENTION_DAYS")

    # Walk-forward engine limits
    max_parameter_combinations: int = Field(default=20000, alias="WALKFORWARD_MAX_PARAMETER_COMBINATIONS")
    yield_every: int = Field(default=50, alias="WALKFORWARD_YIELD_EVERY")
    default_min_in_sample_trades: int = Field(default=10, alias="WALKFORWARD_DEFAULT_MIN_IN_SAMPLE_TRADES")
    default_min_out_of_sample_trades: int = Field(default=3, alias="WALKFORWARD_DEFAULT_MIN_OUT_OF_SAMPLE_TRADES")

    # Background job bookkeeping (in-memory only)
    max_job_history: int = Field(default=40, alias="WALKFORWARD_MAX_JOB_HISTORY")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    def resolved_log_directory(self) -> str:
        """Configured log directory, or the per-user app-data default."""
        return self.log_directory or default_log_directory()


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
