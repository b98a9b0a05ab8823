"""
Centralized configuration using Pydantic Settings.

Settings are built once at process start and handed to the components
that need them; nothing in the package reads the environment on its own.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Inference endpoint (remote classifier)
    inference_url: str = ""
    inference_api_key: str = ""
    inference_timeout: float = 10.0
    use_remote_classifier: bool = True  # False forces local-only classification

    # Rule evaluation
    min_confidence: float = 0.6

    # Batch defaults
    max_messages: int = 20
    since_hours: int = 24
    persist_processed: bool = True

    # Actions
    webhook_timeout: float = 10.0
    default_currency: str = "EUR"
    order_reminder_days: int = 7

    # Storage database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "lifeflow"
    database_user: str = "lifeflow"
    database_password: str = ""

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True  # False for colored dev output

    @property
    def database_url(self) -> str:
        """PostgreSQL connection URL for the storage database."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def inference_configured(self) -> bool:
        """True when both the endpoint address and its API key are set."""
        return bool(self.inference_url and self.inference_api_key)
