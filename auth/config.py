"""Application configuration.

All durations are in their natural units (minutes for short durations,
hours for longer ones) to make configuration intuitive.
"""

from pydantic import BaseModel, Field


class SessionConfig(BaseModel):
    """Staff session settings."""

    session_expiry_hours: int = Field(
        default=720,  # 30 days
        description="Session lifetime in hours",
        ge=1,
        le=2160,
    )


class AccessLinkConfig(BaseModel):
    """Settings for secret-gated client access links."""

    secret_digits: int = Field(
        default=6,
        description="Length of the numeric secret sent to the client",
        ge=6,
        le=10,
    )
    bcrypt_rounds: int = Field(
        default=10,
        description="bcrypt cost factor for stored secret hashes",
        ge=10,
        le=15,
    )
    max_expiry_hours: int = Field(
        default=24 * 30,
        description="Longest lifetime an owner may give a link",
        ge=1,
    )

    # Wrong-secret attempt limiting
    verify_attempts: int = Field(
        default=5,
        description="Max verification attempts per link per window",
        ge=1,
        le=20,
    )
    verify_window_minutes: int = Field(
        default=15,
        description="Attempt window duration",
        ge=1,
        le=60,
    )

    # Retention
    purge_grace_days: int = Field(
        default=1,
        description="Days a used or expired link is kept before deletion",
        ge=0,
    )

    # Application
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the client-facing upload page",
    )
    app_name: str = Field(
        default="Case Desk",
        description="Application name for emails",
    )

    def link_url(self, link_id) -> str:
        """Public URL the client opens to submit against a link."""
        return f"{self.app_base_url.rstrip('/')}/links/{link_id}"


class LedgerConfig(BaseModel):
    """Invoice numbering and reminder settings."""

    invoice_prefix: str = Field(
        default="INV",
        description="Prefix of human-facing invoice numbers",
        min_length=1,
        max_length=8,
    )
    reminder_interval_days: int = Field(
        default=1,
        description="Minimum days between reminders for the same invoice",
        ge=1,
    )
    reminder_batch_size: int = Field(
        default=200,
        description="Max invoices reminded per scheduler run",
        ge=1,
    )
    reminder_pause_seconds: float = Field(
        default=1.5,
        description="Pause between reminder emails to stay under gateway limits",
        ge=0,
    )


class SchedulerConfig(BaseModel):
    """Background job settings."""

    enabled: bool = Field(default=True, description="Start jobs with the app")
    timezone: str = Field(default="Asia/Kolkata", description="Timezone for cron triggers")
    expire_links_interval_minutes: int = Field(default=60, ge=1)
    purge_links_hour: int = Field(default=23, ge=0, le=23)
    invoice_reminder_hour: int = Field(default=0, ge=0, le=23)
    invoice_reminder_minute: int = Field(default=30, ge=0, le=59)
    misfire_grace_seconds: int = Field(default=300, ge=1)


class AppConfig(BaseModel):
    """Top-level configuration handed to create_app()."""

    session: SessionConfig = Field(default_factory=SessionConfig)
    access_links: AccessLinkConfig = Field(default_factory=AccessLinkConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    statement_timeout_ms: int = Field(
        default=15000,
        description="Per-statement PostgreSQL timeout",
        ge=100,
    )
    notification_workers: int = Field(
        default=4,
        description="Threads that send emails after the request has committed",
        ge=1,
        le=32,
    )
