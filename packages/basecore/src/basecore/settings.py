"""
Process settings for basecore services.

All values come from environment variables (or a local .env file) and are
read once per process through get_settings().
"""

import functools

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings shared by the reminder services."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./payment_reminders.db"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    # Scheduler control (read once at startup)
    PAYMENT_REMINDER_ENABLED: bool = True
    PAYMENT_REMINDER_CRON: str = "0 * * * *"  # every hour at minute 0
    REMINDER_TIMEZONE: str = "UTC"
    REMINDER_TENANT_CONCURRENCY: int = Field(default=1, ge=1)
    REMINDER_TRANSPORT_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    REMINDER_RUN_MAX_SECONDS: float = Field(default=45 * 60, gt=0)

    # Message transport
    WHATSAPP_PROVIDER: str = "stub"  # twilio or stub
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_WHATSAPP_FROM: str = "whatsapp:+14155238886"
    TWILIO_TEMPLATE_SALES_INVOICE: str = ""
    TWILIO_TEMPLATE_PURCHASE_INVOICE: str = ""
    TWILIO_TEMPLATE_PAYMENT_REMINDER: str = ""
    TWILIO_TEMPLATE_PAYMENT_NOTIFICATION: str = ""

    # Phone numbers without a country prefix are assumed to be in this country
    DEFAULT_COUNTRY_CODE: str = "91"

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v

    @field_validator("WHATSAPP_PROVIDER")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        v = v.lower()
        if v not in ("twilio", "stub"):
            raise ValueError("WHATSAPP_PROVIDER must be 'twilio' or 'stub'")
        return v

    @property
    def template_ids(self) -> dict[str, str]:
        """Template identifiers keyed by message type."""
        return {
            "sales_invoice": self.TWILIO_TEMPLATE_SALES_INVOICE,
            "purchase_invoice": self.TWILIO_TEMPLATE_PURCHASE_INVOICE,
            "payment_reminder": self.TWILIO_TEMPLATE_PAYMENT_REMINDER,
            "payment_notification": self.TWILIO_TEMPLATE_PAYMENT_NOTIFICATION,
        }


@functools.lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
