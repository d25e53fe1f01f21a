"""Unit of work - one SQLAlchemy transaction spanning every repository a use case touches"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session, sessionmaker
from lendsave.domain.events import AggregateRoot, DomainEvent
from lendsave.infrastructure.database.repositories import (
    CreditRequestRepository,
    CustomerRepository,
    RepaymentRepository,
    SavingsAccountRepository,
    TransactionRepository,
)
from lendsave.infrastructure.observability.metrics import uow_rollback_counter

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Transaction boundary for a single use case.

    Usage:
        with UnitOfWork(session_factory) as uow:
            account = uow.savings_accounts.get_by_user(user_id)
            ...
            uow.track(account)
            uow.commit()
        bus.publish(uow.committed_events)

    Leaving the block without commit(), or with an exception, rolls everything
    back. Events of tracked aggregates are drained only after a successful
    commit, so nothing is ever published for work that did not persist.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.session: Optional[Session] = None
        self.committed_events: List[DomainEvent] = []
        self._tracked: List[AggregateRoot] = []
        self._committed = False

    def __enter__(self) -> "UnitOfWork":
        self.session = self.session_factory()
        self.customers = CustomerRepository(self.session)
        self.credit_requests = CreditRequestRepository(self.session)
        self.repayments = RepaymentRepository(self.session)
        self.savings_accounts = SavingsAccountRepository(self.session)
        self.transactions = TransactionRepository(self.session)
        self._tracked = []
        self._committed = False
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                self.rollback(reason=exc_type.__name__)
            elif not self._committed:
                self.session.rollback()  # Read-only or abandoned work
        finally:
            self.session.close()

    def track(self, aggregate: AggregateRoot) -> None:
        """Register an aggregate whose events should be published after commit"""
        if aggregate not in self._tracked:
            self._tracked.append(aggregate)

    def commit(self) -> None:
        self.session.commit()
        self._committed = True
        for aggregate in self._tracked:
            self.committed_events.extend(aggregate.pull_events())

    def rollback(self, reason: str = "explicit") -> None:
        self.session.rollback()
        uow_rollback_counter.labels(reason=reason).inc()
        logger.debug("Unit of work rolled back", extra={"reason": reason})
