"""Composition root - wires settings, database, event bus and services"""

from dataclasses import dataclass
from typing import Optional

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from lendsave.config import Settings, settings as default_settings
from lendsave.domain.policy import CreditPolicy
from lendsave.infrastructure.clients.webhook import EventWebhookClient
from lendsave.infrastructure.database.models import Base
from lendsave.infrastructure.database.session import build_engine, build_session_factory
from lendsave.infrastructure.messaging.event_bus import EventBus
from lendsave.infrastructure.observability.logging import setup_logging
from lendsave.services.analytics_service import AnalyticsService
from lendsave.services.credit_service import CreditService
from lendsave.services.savings_service import SavingsService


@dataclass
class Core:
    """Service handles a transport layer calls into"""

    engine: Engine
    session_factory: sessionmaker
    event_bus: EventBus
    credit: CreditService
    savings: SavingsService
    analytics: AnalyticsService
    webhook: Optional[EventWebhookClient] = None

    def close(self) -> None:
        """Drain queued webhook deliveries and release database connections"""
        if self.webhook is not None:
            self.webhook.close()
        self.engine.dispose()


def build_credit_policy(config: Settings) -> CreditPolicy:
    return CreditPolicy(
        auto_approve_score=config.auto_approve_score,
        minimum_score=config.minimum_credit_score,
        min_requested_amount=config.min_requested_amount,
        max_requested_amount=config.max_requested_amount,
        min_term_months=config.min_term_months,
        max_term_months=config.max_term_months,
        rejection_reason=config.minimum_score_rejection_reason,
    )


def create_core(
    config: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    event_bus: Optional[EventBus] = None,
    configure_logging: bool = False,
    create_tables: bool = False,
) -> Core:
    """Create and wire the core services"""
    config = config or default_settings
    if configure_logging:
        setup_logging(config.log_level)

    engine = engine or build_engine(config.database_url, config.db_busy_timeout_seconds)
    if create_tables:
        Base.metadata.create_all(engine)
    session_factory = build_session_factory(engine)

    event_bus = event_bus or EventBus()
    webhook = None
    if config.event_webhook_url:
        webhook = EventWebhookClient(
            config.event_webhook_url,
            max_retries=config.webhook_max_retries,
            backoff_base=config.webhook_backoff_base,
            timeout=config.http_timeout_seconds,
        )
        event_bus.subscribe_all(webhook)

    return Core(
        engine=engine,
        session_factory=session_factory,
        event_bus=event_bus,
        credit=CreditService(
            session_factory,
            event_bus,
            policy=build_credit_policy(config),
            currency=config.default_currency,
        ),
        savings=SavingsService(
            session_factory,
            event_bus,
            currency=config.default_currency,
            interest_rate=config.savings_interest_rate,
            account_number_prefix=config.account_number_prefix,
        ),
        analytics=AnalyticsService(
            session_factory,
            assumed_monthly_income=config.assumed_monthly_income,
            currency=config.default_currency,
        ),
        webhook=webhook,
    )


def render_metrics() -> tuple[bytes, str]:
    """Prometheus exposition payload and content type for a /metrics handler"""
    return generate_latest(), CONTENT_TYPE_LATEST
