"""Application settings loaded from environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """AIVA configuration. All values come from environment variables."""

    # Anthropic
    anthropic_api_key: str = Field(default="")
    default_chat_model: str = Field(default="sonnet")
    default_utility_model: str = Field(default="haiku")

    # OpenAI (embeddings only)
    openai_api_key: str = Field(default="")
    embedding_model: str = Field(default="text-embedding-3-small")
    embedding_dimensions: int = Field(default=1536)

    # Database
    database_path: Path = Field(default=Path("data/aiva.db"))

    # Turso (hosted libSQL); when set, overrides local database_path
    turso_database_url: str = Field(default="")
    turso_auth_token: str = Field(default="")

    # Conversation
    conversation_history_limit: int = Field(default=20)
    max_orchestration_iterations: int = Field(default=5)
    default_timezone: str = Field(default="America/New_York")

    # Scheduling defaults (used when neither user nor workspace overrides exist)
    default_buffer_minutes: int = Field(default=15)
    default_working_hours_start: str = Field(default="09:00")
    default_working_hours_end: str = Field(default="17:00")
    default_meeting_duration: int = Field(default=30)
    default_no_meeting_days: str = Field(default="")
    default_video_link: str = Field(default="")
    default_workspace_id: str = Field(default="default")

    # Suggested actions below this confidence are never surfaced
    min_action_confidence: float = Field(default=0.3)

    # HTTP server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8080)
    api_key: str = Field(default="")

    # Shopify
    shopify_api_version: str = Field(default="2024-10")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_no_meeting_days(self) -> list[int]:
        """Parse DEFAULT_NO_MEETING_DAYS (e.g. "0,6") into weekday indices."""
        if not self.default_no_meeting_days.strip():
            return []
        return [
            int(day.strip())
            for day in self.default_no_meeting_days.split(",")
            if day.strip()
        ]


settings = Settings()
