"""
Tenant Messaging Policy

Pydantic models for a tenant's WhatsApp messaging configuration.
Defaults live here, in one place, instead of being re-applied at every
call site that reads tenant settings.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from payment_reminders.contracts.types import ReminderFrequency

DEFAULT_LOW_CREDIT_THRESHOLD = 50
DEFAULT_PREFERRED_SEND_HOUR = 9


class SchedulerPolicy(BaseModel):
    """Automatic reminder settings for one tenant."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Master switch for automatic reminders")
    preferred_send_hour: int = Field(
        default=DEFAULT_PREFERRED_SEND_HOUR,
        ge=0,
        le=23,
        description="Hour of day (0-23) at which reminders fire",
    )
    reminder_frequency: ReminderFrequency = Field(
        default=ReminderFrequency.DAILY,
        description="daily, weekly (Mondays) or monthly (1st or next business day)",
    )
    send_on_weekends: bool = Field(default=True, description="Allow sends on Saturday/Sunday")

    @field_validator("reminder_frequency", mode="before")
    @classmethod
    def parse_frequency(cls, v):
        # Unknown values stored by older clients behave as daily
        if isinstance(v, ReminderFrequency):
            return v
        try:
            return ReminderFrequency(str(v).lower())
        except ValueError:
            return ReminderFrequency.DAILY


class TenantMessagingPolicy(BaseModel):
    """
    Messaging configuration and credit position for one tenant.

    A tenant with no stored settings gets the defaults below, which means
    messaging is off until an admin enables it.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    enabled: bool = Field(default=False, description="Master switch for outbound messaging")
    credit_balance: int = Field(default=0, ge=0, description="Prepaid message credits")
    low_credit_threshold: int = Field(default=DEFAULT_LOW_CREDIT_THRESHOLD, ge=0)
    scheduler: SchedulerPolicy = Field(default_factory=SchedulerPolicy)

    @property
    def is_low_credit(self) -> bool:
        return self.credit_balance <= self.low_credit_threshold
