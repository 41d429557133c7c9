"""Application configuration."""

from functools import lru_cache
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Social Growth Report"
    debug: bool = False
    log_level: str = "INFO"

    # Base URL used for internal self-calls to sibling routes.
    # VERCEL_URL wins when set (canonical deployment host).
    public_base_url: str = ""
    vercel_url: str = ""

    # Upstream HTTP
    upstream_timeout_seconds: float = 10.0

    # Facebook / Instagram (Meta Graph API)
    facebook_page_id: str = "154572707991531"
    facebook_page_access_token: str = ""
    facebook_user_access_token: str = ""
    facebook_app_secret: str = ""  # Legacy: sometimes holds a user token
    meta_graph_version: str = "v20.0"
    page_token_cache_ttl_seconds: float = 300.0

    # YouTube Data API
    youtube_api_key: str = ""
    youtube_channel_handle: str = "MagicworldsTV"

    # X/Twitter API (OAuth 1.0a user context)
    x_api_key: str = ""
    x_api_key_secret: str = ""
    x_access_token: str = ""
    x_access_token_secret: str = ""
    x_api_base: str = "https://api.x.com/2"

    # Report
    report_month: int = 12
    report_rate_limit: str = "30/minute"
    baseline_report_path: str = ""  # Defaults to data/nov_report.json
    current_report_path: str = ""  # Defaults to data/dec_report.json

    # CORS
    cors_origins: list[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("report_month")
    @classmethod
    def validate_report_month(cls, v: int) -> int:
        if not 1 <= v <= 12:
            raise ValueError("REPORT_MONTH must be between 1 and 12")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
