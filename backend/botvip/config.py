"""Application configuration using pydantic-settings."""

import warnings

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    app_name: str = "BOTVIP.CO"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: str = "development"  # development, staging, production

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Ledger storage (SQLite file, human-inspectable)
    database_url: str = "sqlite+aiosqlite:///./botvip.db"

    # Telegram
    telegram_bot_token: str = Field(
        default="",
        validation_alias=AliasChoices("telegram_bot_token", "token_telegram"),
    )
    bot_username: str = ""
    vip_channel_id: str = Field(
        default="",
        validation_alias=AliasChoices("vip_channel_id", "channel_id"),
    )
    logs_chat_id: str = ""
    public_base_url: str = ""  # set => push delivery via setWebhook
    telegram_webhook_secret: str = ""
    support_handle: str = "@SeuAtendimento"
    welcome_photo_path: str = "assets/im.jpg"
    welcome_audio_path: str = "assets/audio.mp3"

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = Field(
        default="",
        validation_alias=AliasChoices("stripe_webhook_secret", "webhook_secret"),
    )
    plan_weekly_price_id: str = Field(
        default="",
        validation_alias=AliasChoices("plan_weekly_price_id", "plano_1"),
    )
    plan_monthly_price_id: str = Field(
        default="",
        validation_alias=AliasChoices("plan_monthly_price_id", "plano_2"),
    )
    plan_lifetime_price_id: str = Field(
        default="",
        validation_alias=AliasChoices("plan_lifetime_price_id", "plano_3"),
    )

    # Access
    invite_link_ttl_seconds: int = 24 * 60 * 60

    # Follow-up chain
    followup_first_delay_seconds: float = 5 * 60
    followup_interval_seconds: float = 24 * 60 * 60
    followup_max_sends: int = Field(default=3, ge=0, le=3)

    @model_validator(mode="after")
    def _validate_webhook_secret(self) -> "Settings":
        """Refuse unverified webhooks in production and warn everywhere else."""
        if not self.stripe_webhook_secret:
            if self.environment == "production":
                raise ValueError(
                    "STRIPE_WEBHOOK_SECRET must be set in production; "
                    "unsigned Stripe events would be trusted blindly."
                )
            warnings.warn(
                "STRIPE_WEBHOOK_SECRET is not set — Stripe webhook events will be "
                "accepted WITHOUT signature verification. Only acceptable for local development.",
                UserWarning,
                stacklevel=1,
            )
        return self

    @property
    def checkout_success_url(self) -> str:
        """Where Stripe sends the buyer after paying."""
        if self.bot_username:
            return f"https://t.me/{self.bot_username}?start=sucesso"
        return f"{self.public_base_url or 'https://t.me'}/?checkout=sucesso"

    @property
    def checkout_cancel_url(self) -> str:
        """Where Stripe sends the buyer after abandoning checkout."""
        if self.bot_username:
            return f"https://t.me/{self.bot_username}?start=cancelado"
        return f"{self.public_base_url or 'https://t.me'}/?checkout=cancelado"

    @property
    def telegram_webhook_url(self) -> str | None:
        """Push-delivery endpoint for Telegram updates, if a public URL is known."""
        if not self.public_base_url:
            return None
        return f"{self.public_base_url.rstrip('/')}/telegram/webhook"


settings = Settings()
