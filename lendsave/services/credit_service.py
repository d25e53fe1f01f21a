"""Credit use cases - request creation, decisions, repayment and back-office queries"""

import logging
from datetime import datetime
from typing import Callable, Iterable, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from lendsave.domain.calculator import calculate_interest_rate
from lendsave.domain.credit_request import CreditRequest, CreditStatus
from lendsave.domain.exceptions import (
    DomainException,
    InvalidInputError,
    NotFoundError,
    PolicyViolationError,
)
from lendsave.domain.models import (
    BulkItemFailure,
    BulkOperationResult,
    CreditRepayment,
    CreditStats,
    Page,
    TransactionType,
)
from lendsave.domain.policy import CreditPolicy, PolicyDecision
from lendsave.domain.value_objects import Money, Number
from lendsave.infrastructure.database.unit_of_work import UnitOfWork
from lendsave.infrastructure.messaging.event_bus import EventBus
from lendsave.infrastructure.observability.logging import (
    log_bulk_outcome,
    log_credit_decision,
    log_money_movement,
)
from lendsave.infrastructure.observability.metrics import record_credit_decision, record_money_movement
from lendsave.utils.date_utils import utcnow

SYSTEM_ACTOR = "system"


def _bulk_failure(item_id: str, error: Exception) -> BulkItemFailure:
    if isinstance(error, DomainException):
        return BulkItemFailure(item_id=item_id, error_kind=error.kind, reason=error.reason)
    return BulkItemFailure(item_id=item_id, error_kind=type(error).__name__, reason=str(error))


def _validate_paging(page: int, limit: int) -> None:
    if page < 1:
        raise InvalidInputError("Page must be at least 1")
    if limit < 1:
        raise InvalidInputError("Limit must be at least 1")


class CreditService:
    """
    Operations on credit requests.

    Every mutating call runs in one UnitOfWork and publishes the aggregate's
    events only after the commit succeeded.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        event_bus: EventBus,
        policy: Optional[CreditPolicy] = None,
        currency: str = "USD",
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.event_bus = event_bus
        self.policy = policy or CreditPolicy()
        self.currency = currency
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def _unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory)

    # Customer operations

    def create_credit_request(
        self,
        user_id: str,
        requested_amount: Money | Number,
        term_months: int,
        purpose: Optional[str] = None,
    ) -> CreditRequest:
        """
        Submit a credit request and apply the score policy.

        Flow:
        1. Validate amount and term against the policy bounds
        2. Refuse if the user already has an active loan
        3. Price the request from the user's credit score tier
        4. Auto-approve, auto-reject or leave pending for manual review
        5. Persist and publish
        """
        amount = Money.of(requested_amount, self.currency)
        if not amount.is_positive():
            raise InvalidInputError("Requested amount must be greater than 0")
        self.policy.validate_request(amount, term_months)

        with self._unit_of_work() as uow:
            credit_score = uow.customers.get_credit_score(user_id)
            if credit_score is None:
                raise NotFoundError(f"User {user_id} not found")

            if uow.credit_requests.find_active_by_user(user_id):
                raise PolicyViolationError("User already has an active credit request")

            interest_rate = calculate_interest_rate(credit_score, self.policy.rate_tiers)
            credit = CreditRequest.submit(user_id, amount, interest_rate, term_months, purpose)

            decision = self.policy.evaluate(credit_score)
            now = self.clock()
            if decision is PolicyDecision.AUTO_APPROVE:
                credit.approve(SYSTEM_ACTOR, now=now)
            elif decision is PolicyDecision.AUTO_REJECT:
                credit.reject(SYSTEM_ACTOR, self.policy.rejection_reason, now=now)

            uow.credit_requests.add(credit)
            uow.track(credit)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self._record_decision(credit, automatic=True)
        return credit

    def repay_credit(
        self,
        user_id: str,
        credit_request_id: str,
        amount: Money | Number,
        notes: Optional[str] = None,
    ) -> CreditRepayment:
        """
        Repay an active loan from the user's savings account.

        The savings debit, the total_repaid increment and both ledger rows
        commit together or not at all. Both counters move through conditional
        atomic updates and the ledger rows carry the values read back from
        storage inside the same transaction.
        """
        amount = Money.of(amount, self.currency)

        with self._unit_of_work() as uow:
            credit = uow.credit_requests.get_or_raise(credit_request_id)
            if credit.user_id != user_id:
                raise PolicyViolationError("Credit request does not belong to this user")
            account = uow.savings_accounts.get_by_user_or_raise(user_id)

            # 1. Validate both aggregates in memory before touching storage
            now = self.clock()
            account.withdraw(amount, now=now)
            credit.repay(amount, now=now)

            # 2. Atomic storage updates, adopting the stored post-state
            balance_after = uow.savings_accounts.adjust_balance(account, amount, debit=True)
            account.refresh_balance(balance_after)
            total_repaid_after = uow.credit_requests.add_to_total_repaid(credit, amount)
            credit.refresh_total_repaid(total_repaid_after, now=now)

            # 3. Ledger rows and remaining state
            transaction = uow.transactions.record(
                account.id,
                TransactionType.CREDIT_REPAYMENT,
                amount,
                balance_after,
                description=f"Repayment for credit request {credit.id}",
            )
            repayment = uow.repayments.record(credit.id, amount, total_repaid_after, notes)
            uow.credit_requests.save(credit, expected_status=CreditStatus.ACTIVE)

            uow.track(account)
            uow.track(credit)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        record_money_movement(TransactionType.CREDIT_REPAYMENT.value, amount.to_cents())
        log_money_movement(
            self.logger,
            TransactionType.CREDIT_REPAYMENT.value,
            user_id,
            amount.to_cents(),
            total_repaid_after.to_cents(),
            repayment.reference,
        )
        self.logger.debug(
            "Savings debited for repayment",
            extra={"reference": transaction.reference, "balance_after_cents": balance_after.to_cents()},
        )
        return repayment

    def list_user_credits(self, user_id: str) -> List[CreditRequest]:
        with self._unit_of_work() as uow:
            return uow.credit_requests.find_by_user(user_id)

    def get_credit_details(self, credit_id: str, user_id: Optional[str] = None) -> CreditRequest:
        """Fetch one request; when user_id is given it must own the request"""
        with self._unit_of_work() as uow:
            credit = uow.credit_requests.get_or_raise(credit_id)
        if user_id is not None and credit.user_id != user_id:
            raise PolicyViolationError("Credit request does not belong to this user")
        return credit

    def list_repayments(self, credit_id: str, user_id: Optional[str] = None) -> List[CreditRepayment]:
        credit = self.get_credit_details(credit_id, user_id)
        with self._unit_of_work() as uow:
            return uow.repayments.list_by_credit(credit.id, credit.requested_amount.currency)

    # Back-office operations

    def approve_credit_request(
        self,
        credit_id: str,
        approver_id: str,
        approved_amount: Money | Number | None = None,
    ) -> CreditRequest:
        with self._unit_of_work() as uow:
            credit = uow.credit_requests.get_or_raise(credit_id)
            amount = Money.of(approved_amount, self.currency) if approved_amount is not None else None
            self.policy.validate_approved_amount(credit.requested_amount, amount)

            credit.approve(approver_id, amount, now=self.clock())
            uow.credit_requests.save(credit, expected_status=CreditStatus.PENDING)
            uow.track(credit)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self._record_decision(credit, automatic=False)
        return credit

    def reject_credit_request(self, credit_id: str, approver_id: str, reason: str) -> CreditRequest:
        with self._unit_of_work() as uow:
            credit = uow.credit_requests.get_or_raise(credit_id)
            credit.reject(approver_id, reason, now=self.clock())
            uow.credit_requests.save(credit, expected_status=CreditStatus.PENDING)
            uow.track(credit)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self._record_decision(credit, automatic=False)
        return credit

    def bulk_approve(
        self,
        credit_ids: Iterable[str],
        approver_id: str,
        approved_amounts: Optional[Mapping[str, Money | Number]] = None,
    ) -> BulkOperationResult[CreditRequest]:
        """Approve each request in its own transaction; failures are reported per item"""
        approved_amounts = approved_amounts or {}
        result: BulkOperationResult[CreditRequest] = BulkOperationResult()
        for credit_id in credit_ids:
            try:
                credit = self.approve_credit_request(credit_id, approver_id, approved_amounts.get(credit_id))
            except (DomainException, SQLAlchemyError) as e:
                result.failed.append(_bulk_failure(credit_id, e))
            else:
                result.successful.append(credit)

        log_bulk_outcome(self.logger, "bulk_approve", len(result.successful), len(result.failed))
        return result

    def bulk_reject(
        self,
        credit_ids: Iterable[str],
        approver_id: str,
        reason: str,
    ) -> BulkOperationResult[CreditRequest]:
        result: BulkOperationResult[CreditRequest] = BulkOperationResult()
        for credit_id in credit_ids:
            try:
                credit = self.reject_credit_request(credit_id, approver_id, reason)
            except (DomainException, SQLAlchemyError) as e:
                result.failed.append(_bulk_failure(credit_id, e))
            else:
                result.successful.append(credit)

        log_bulk_outcome(self.logger, "bulk_reject", len(result.successful), len(result.failed))
        return result

    def default_overdue_credits(self, now: Optional[datetime] = None) -> BulkOperationResult[CreditRequest]:
        """Move every active loan past its due date to defaulted"""
        now = now or self.clock()
        with self._unit_of_work() as uow:
            overdue_ids = [credit.id for credit in uow.credit_requests.find_overdue(now)]

        result: BulkOperationResult[CreditRequest] = BulkOperationResult()
        for credit_id in overdue_ids:
            try:
                credit = self._mark_defaulted(credit_id, now)
            except (DomainException, SQLAlchemyError) as e:
                result.failed.append(_bulk_failure(credit_id, e))
            else:
                result.successful.append(credit)

        log_bulk_outcome(self.logger, "default_overdue", len(result.successful), len(result.failed))
        return result

    def _mark_defaulted(self, credit_id: str, now: datetime) -> CreditRequest:
        with self._unit_of_work() as uow:
            credit = uow.credit_requests.get_or_raise(credit_id)
            credit.mark_defaulted(now=now)
            uow.credit_requests.save(credit, expected_status=CreditStatus.ACTIVE)
            uow.track(credit)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self.logger.warning(
            "Credit request defaulted",
            extra={"credit_request_id": credit.id, "user_id": credit.user_id},
        )
        return credit

    def list_pending_requests(self, page: int = 1, limit: int = 20) -> Page[CreditRequest]:
        """Manual review queue, oldest first"""
        _validate_paging(page, limit)
        with self._unit_of_work() as uow:
            items, total = uow.credit_requests.find_page(CreditStatus.PENDING, page, limit, oldest_first=True)
        return Page(items=items, total=total, page=page, limit=limit)

    def list_requests(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[CreditStatus] = None,
    ) -> Page[CreditRequest]:
        _validate_paging(page, limit)
        with self._unit_of_work() as uow:
            items, total = uow.credit_requests.find_page(status, page, limit)
        return Page(items=items, total=total, page=page, limit=limit)

    def credit_stats(self) -> CreditStats:
        with self._unit_of_work() as uow:
            counts = uow.credit_requests.count_by_status()
            disbursed_cents = uow.credit_requests.total_approved_cents(
                [CreditStatus.ACTIVE, CreditStatus.COMPLETED]
            )

        return CreditStats(
            total=sum(counts.values()),
            pending=counts[CreditStatus.PENDING],
            rejected=counts[CreditStatus.REJECTED],
            active=counts[CreditStatus.ACTIVE],
            completed=counts[CreditStatus.COMPLETED],
            defaulted=counts[CreditStatus.DEFAULTED],
            total_disbursed=Money.from_cents(disbursed_cents, self.currency),
        )

    def delete_credit_request(self, credit_id: str) -> None:
        """Active loans are never deleted"""
        with self._unit_of_work() as uow:
            credit = uow.credit_requests.get_or_raise(credit_id)
            credit.ensure_deletable()
            uow.credit_requests.delete(credit_id)
            uow.commit()

        self.logger.info("Credit request deleted", extra={"credit_request_id": credit_id})

    def _record_decision(self, credit: CreditRequest, automatic: bool) -> None:
        if credit.status is CreditStatus.ACTIVE:
            outcome, amount_cents = "approved", credit.approved_amount.to_cents()
        elif credit.status is CreditStatus.REJECTED:
            outcome, amount_cents = "rejected", 0
        else:
            outcome, amount_cents = "pending", 0

        record_credit_decision(outcome, automatic, amount_cents)
        log_credit_decision(
            self.logger,
            credit.id,
            credit.user_id,
            outcome,
            automatic,
            amount_cents,
            actor=credit.approved_by,
        )
