"""Pytest fixtures for testing"""

from decimal import Decimal
from typing import Generator, List

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from lendsave.domain.credit_request import CreditRequest
from lendsave.domain.events import DomainEvent
from lendsave.domain.policy import CreditPolicy
from lendsave.domain.savings_account import SavingsAccount
from lendsave.domain.value_objects import AccountNumber, Money
from lendsave.infrastructure.database.models import Base
from lendsave.infrastructure.database.repositories import CustomerRepository
from lendsave.infrastructure.database.session import build_engine, build_session_factory
from lendsave.infrastructure.messaging.event_bus import EventBus
from lendsave.services.analytics_service import AnalyticsService
from lendsave.services.credit_service import CreditService
from lendsave.services.savings_service import SavingsService


@pytest.fixture
def engine(tmp_path) -> Generator[Engine, None, None]:
    """File-backed SQLite database per test so threads can share it"""
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}", busy_timeout_seconds=30)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


@pytest.fixture
def make_customer(session_factory: sessionmaker):
    """Seed a customer with the given credit score and return its id"""

    def _make(credit_score: int = 720, user_id: str | None = None) -> str:
        with session_factory() as session:
            customer_id = CustomerRepository(session).add(credit_score, user_id)
            session.commit()
        return customer_id

    return _make


@pytest.fixture
def published() -> List[DomainEvent]:
    return []


@pytest.fixture
def event_bus(published: List[DomainEvent]) -> EventBus:
    """Bus that records every published event"""
    bus = EventBus()
    bus.subscribe_all(published.append)
    return bus


@pytest.fixture
def credit_service(session_factory: sessionmaker, event_bus: EventBus) -> CreditService:
    return CreditService(session_factory, event_bus, policy=CreditPolicy())


@pytest.fixture
def savings_service(session_factory: sessionmaker, event_bus: EventBus) -> SavingsService:
    return SavingsService(session_factory, event_bus)


@pytest.fixture
def analytics_service(session_factory: sessionmaker) -> AnalyticsService:
    return AnalyticsService(session_factory, assumed_monthly_income=Decimal("5000"))


@pytest.fixture
def pending_credit() -> CreditRequest:
    """Pending $5000 / 12 month request at 10%"""
    credit = CreditRequest.submit(
        user_id="user-1",
        requested_amount=Money("5000"),
        interest_rate=Decimal("10.0"),
        term_months=12,
        purpose="Home improvement",
    )
    credit.pull_events()
    return credit


@pytest.fixture
def active_account() -> SavingsAccount:
    account = SavingsAccount.open("user-1", AccountNumber("SAV12345678"))
    account.deposit(Money("100"))
    account.pull_events()
    return account
