"""
contract_conduit.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (JWT secret, Slack bot token, email API key).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Env-driven configuration, prefixed with `CONDUIT_`.
    Defaults are safe for local dev: no Slack token, no email key, reminders off.
    """

    model_config = SettingsConfigDict(env_prefix="CONDUIT_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables and the reminder poller.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "contract-conduit"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Auth
    jwt_alg: str = "HS256"
    jwt_issuer: str = "contract-conduit"
    jwt_audience: str = "conduit-api"
    jwt_secret: str = Field(default="dev-secret-change-me", repr=False)

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./conduit.db"

    # Slack Web API
    slack_bot_token: str | None = Field(default=None, repr=False)
    slack_api_base_url: str = "https://slack.com/api"

    # Transactional email (Resend-compatible API)
    email_api_key: str | None = Field(default=None, repr=False)
    email_api_base_url: str = "https://api.resend.com"
    email_from_address: str = "CMA Reports <reports@example.com>"

    # Shared by the Slack and email HTTP clients
    http_timeout_seconds: float = 10.0

    # Shared CMA links
    public_base_url: str = "http://localhost:8080"
    share_link_ttl_days: int = Field(default=30, ge=1)

    # Closing reminders
    disable_slack_notifications: bool = False
    reminder_check_interval_seconds: float = Field(default=3600.0, gt=0)
    reminder_timezone: str = "America/Chicago"
    reminder_days: list[int] = Field(default_factory=lambda: [30, 14, 7, 3, 1, 0])

    @property
    def slack_configured(self) -> bool:
        return bool(self.slack_bot_token)

    @property
    def email_configured(self) -> bool:
        return bool(self.email_api_key)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# The reminder poller only starts when env == "prod" so dev instances never post
# duplicate reminders into shared Slack channels.
