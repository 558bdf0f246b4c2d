"""Configuration management via pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Discord
    discord_bot_token: str
    discord_user_id: int | None = None
    admin_user_ids: list[int] = Field(default_factory=list)

    # Listing sheet (remote store)
    sheet_script_url: str | None = None

    # AI matching (OpenAI-compatible chat completions)
    ai_api_key: str | None = None
    ai_model: str = "meta/llama-3.1-70b-instruct"
    ai_endpoint: str = "https://integrate.api.nvidia.com/v1/chat/completions"

    # Local cache
    cache_path: Path = Field(default=Path("./data/journeyconnect.db"))
    cache_key: str = "journeyconnect_tickets_v3"

    # Listing dates are compared in this zone
    timezone: str = "Asia/Kolkata"

    # Outbound requests
    http_max_retries: int = 3
    http_retry_delay_seconds: float = 1.0
    http_timeout_seconds: float = 30.0

    # Discovery
    route_debounce_seconds: float = 1.0
    max_results: int = 10

    # Scheduling
    sync_interval_minutes: int = 15
    health_check_interval_hours: int = 6

    # Logging
    log_level: str = "INFO"


settings = Settings()  # type: ignore[call-arg]
