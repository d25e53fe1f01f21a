"""Configuration management using Pydantic Settings"""

from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./lendsave.db"
    db_busy_timeout_seconds: float = 30.0

    # Service
    service_name: str = "lendsave-core"
    log_level: str = "INFO"

    # Money
    default_currency: str = "USD"

    # Savings
    savings_interest_rate: Decimal = Decimal("2.5")
    account_number_prefix: str = "SAV"

    # Credit policy
    auto_approve_score: int = 750
    minimum_credit_score: int = 600
    min_requested_amount: Decimal = Decimal("100")
    max_requested_amount: Decimal = Decimal("100000")
    min_term_months: int = 1
    max_term_months: int = 60
    assumed_monthly_income: Decimal = Decimal("5000")  # Debt-to-income proxy
    minimum_score_rejection_reason: str = "Credit score below minimum requirement"

    # Domain event forwarding (disabled when no URL is set)
    event_webhook_url: str | None = None
    http_timeout_seconds: float = 5.0
    webhook_max_retries: int = Field(default=5, ge=1)
    webhook_backoff_base: float = 1.0  # Exponential backoff base in seconds


settings = Settings()
