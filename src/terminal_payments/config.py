"""Configuration management for the terminal payments SDK."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentApiSettings(BaseSettings):
    """Payment backend HTTP client settings."""

    base_url: str = Field(
        default="http://localhost:8000",
        description="Payment backend base URL"
    )
    auth_token: str = Field(default="", description="Bearer token for the payment backend")
    timeout_seconds: float = Field(default=15.0, description="Request timeout")


class CompletionSettings(BaseSettings):
    """Notification/poll race timings used by every provider strategy."""

    notification_wait_seconds: float = Field(
        default=10.0,
        description="How long to wait for a push notification before polling"
    )
    poll_interval_seconds: float = Field(default=2.0, description="Delay between status polls")
    poll_deadline_seconds: float = Field(default=120.0, description="Give up polling after this")


class SDKSettings(BaseSettings):
    """Transaction orchestrator settings."""

    transaction_timeout_seconds: float = Field(
        default=60.0,
        description="Overall timeout raced against the strategy"
    )
    verify_attempts: int = Field(default=3, description="Status verification attempts")
    verify_attempt_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single verification attempt"
    )
    verify_retry_delay_seconds: float = Field(
        default=1.5,
        description="Delay between verification attempts"
    )
    auto_reset_success_delay_seconds: float = Field(
        default=5.0,
        description="Default delay before resetting after SUCCESS"
    )
    auto_reset_failure_delay_seconds: float = Field(
        default=5.0,
        description="Default delay before resetting after FAILED/INTERNAL_ERROR"
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")

    default_provider: str = Field(default="viva", description="Provider used when none is configured")

    api: PaymentApiSettings = Field(default_factory=PaymentApiSettings)
    completion: CompletionSettings = Field(default_factory=CompletionSettings)
    sdk: SDKSettings = Field(default_factory=SDKSettings)

    model_config = SettingsConfigDict(
        env_prefix="TERMINAL_PAYMENTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )


# Global settings instance
settings = Settings()
