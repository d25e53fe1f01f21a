"""Credit request aggregate - owns the loan lifecycle state machine"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from lendsave.domain.events import (
    AggregateRoot,
    CreditRepaymentProcessed,
    CreditRequestApproved,
    CreditRequestCompleted,
    CreditRequestDefaulted,
    CreditRequestRejected,
    CreditRequestSubmitted,
    DomainEvent,
)
from lendsave.domain.exceptions import (
    CurrencyMismatchError,
    InsufficientFundsError,
    InvalidInputError,
    InvalidStateError,
)
from lendsave.domain.value_objects import Money
from lendsave.utils.date_utils import add_months, utcnow


class CreditStatus(str, Enum):
    PENDING = "pending"
    REJECTED = "rejected"
    ACTIVE = "active"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


# One-directional: nothing re-enters PENDING, and states missing as keys are terminal.
ALLOWED_TRANSITIONS: Dict[CreditStatus, FrozenSet[CreditStatus]] = {
    CreditStatus.PENDING: frozenset({CreditStatus.ACTIVE, CreditStatus.REJECTED}),
    CreditStatus.ACTIVE: frozenset({CreditStatus.COMPLETED, CreditStatus.DEFAULTED}),
}

# Statuses in which approved_amount is set
FUNDED_STATUSES = frozenset({CreditStatus.ACTIVE, CreditStatus.COMPLETED, CreditStatus.DEFAULTED})


@dataclass(eq=False)
class CreditRequest(AggregateRoot):
    """
    One customer's loan, from submission to a terminal state.

    State machine:
        pending -> active | rejected
        active  -> completed | defaulted

    Total owed is simple interest over the full term:
        approved_amount * (1 + interest_rate / 100)
    The amortization calculator quotes a different (compounded) figure and is
    never used for repayment accounting.

    For rejected requests approved_by/approved_at carry the rejecting actor and time.
    """

    id: str
    user_id: str
    requested_amount: Money
    interest_rate: Decimal  # annual percent, fixed at creation
    term_months: int
    purpose: Optional[str] = None
    status: CreditStatus = CreditStatus.PENDING
    approved_amount: Optional[Money] = None
    total_repaid: Optional[Money] = None
    rejection_reason: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    _events: List[DomainEvent] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self):
        if self.total_repaid is None:
            self.total_repaid = Money.zero(self.requested_amount.currency)
        if (self.approved_amount is not None) != (self.status in FUNDED_STATUSES):
            raise InvalidStateError(
                f"approved_amount must be set exactly when status is funded (status={self.status.value})"
            )

    @classmethod
    def submit(
        cls,
        user_id: str,
        requested_amount: Money,
        interest_rate: Decimal,
        term_months: int,
        purpose: Optional[str] = None,
        credit_request_id: Optional[str] = None,
    ) -> "CreditRequest":
        """Create a new pending request"""
        if not requested_amount.is_positive():
            raise InvalidInputError("Requested amount must be greater than 0")
        if term_months < 1:
            raise InvalidInputError("Term must be at least 1 month")
        if interest_rate < 0:
            raise InvalidInputError("Interest rate cannot be negative")

        request = cls(
            id=credit_request_id or str(uuid.uuid4()),
            user_id=user_id,
            requested_amount=requested_amount,
            interest_rate=Decimal(interest_rate),
            term_months=term_months,
            purpose=(purpose or "").strip() or None,
        )
        request._record(
            CreditRequestSubmitted(
                credit_request_id=request.id,
                user_id=user_id,
                requested_amount=requested_amount,
            )
        )
        return request

    # State transitions

    def _require_transition(self, target: CreditStatus, action: str) -> None:
        if target not in ALLOWED_TRANSITIONS.get(self.status, frozenset()):
            raise InvalidStateError(f"Cannot {action} credit request with status: {self.status.value}")

    def approve(
        self,
        approved_by: str,
        approved_amount: Optional[Money] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Fund a pending request. approved_amount defaults to the requested amount.

        Business caps (e.g. not above the requested amount) are the caller's job;
        this only enforces the state precondition and a positive amount.
        """
        self._require_transition(CreditStatus.ACTIVE, "approve")

        amount = approved_amount if approved_amount is not None else self.requested_amount
        if amount.currency != self.requested_amount.currency:
            raise CurrencyMismatchError("Approved amount currency differs from requested amount")
        if not amount.is_positive():
            raise InvalidInputError("Approved amount must be greater than 0")
        if not approved_by:
            raise InvalidInputError("Approver is required")

        now = now or utcnow()
        self.approved_amount = amount
        self.status = CreditStatus.ACTIVE
        self.approved_by = approved_by
        self.approved_at = now
        self.due_date = add_months(now, self.term_months)
        self.updated_at = now

        self._record(
            CreditRequestApproved(
                credit_request_id=self.id,
                user_id=self.user_id,
                approved_amount=amount,
                approved_by=approved_by,
            )
        )

    def reject(self, rejected_by: str, reason: str, now: Optional[datetime] = None) -> None:
        self._require_transition(CreditStatus.REJECTED, "reject")

        reason = (reason or "").strip()
        if not reason:
            raise InvalidInputError("Rejection reason is required")

        now = now or utcnow()
        self.status = CreditStatus.REJECTED
        self.rejection_reason = reason
        self.approved_by = rejected_by
        self.approved_at = now
        self.updated_at = now

        self._record(CreditRequestRejected(credit_request_id=self.id, user_id=self.user_id, reason=reason))

    def repay(self, amount: Money, now: Optional[datetime] = None) -> None:
        """
        Apply a repayment. Completes the loan when nothing remains owed.

        Must run in the same transaction as the ledger insert and the savings
        debit that funds it.
        """
        if self.status is not CreditStatus.ACTIVE:
            raise InvalidStateError(f"Cannot repay credit request with status: {self.status.value}")
        if not amount.is_positive():
            raise InvalidInputError("Repayment amount must be greater than 0")

        total_owed = self.calculate_total_owed()
        remaining = total_owed.subtract(self.total_repaid)
        if amount > remaining:
            raise InsufficientFundsError(f"Repayment amount exceeds remaining balance of {remaining}")

        now = now or utcnow()
        self.total_repaid = self.total_repaid.add(amount)
        self.updated_at = now

        if self.total_repaid >= total_owed:
            self._complete(now)
        else:
            self._record(CreditRepaymentProcessed(credit_request_id=self.id, user_id=self.user_id, amount=amount))

    def refresh_total_repaid(self, stored_total: Money, now: Optional[datetime] = None) -> None:
        """
        Adopt the total read back after the storage-level atomic increment.

        Differs from the in-memory value only when another repayment committed
        between load and update; completion is then detected here.
        """
        if stored_total > self.calculate_total_owed():
            raise InvalidStateError("Stored total repaid exceeds total owed")
        self.total_repaid = stored_total
        if self.status is CreditStatus.ACTIVE and stored_total >= self.calculate_total_owed():
            # Completion supersedes the repayment event queued by repay()
            self._events[:] = [e for e in self._events if not isinstance(e, CreditRepaymentProcessed)]
            self._complete(now or utcnow())

    def _complete(self, now: datetime) -> None:
        self._require_transition(CreditStatus.COMPLETED, "complete")
        self.status = CreditStatus.COMPLETED
        self.completed_at = now
        self.updated_at = now
        self._record(CreditRequestCompleted(credit_request_id=self.id, user_id=self.user_id))

    def mark_defaulted(self, now: Optional[datetime] = None) -> None:
        """Move an overdue active loan to defaulted"""
        self._require_transition(CreditStatus.DEFAULTED, "default")
        now = now or utcnow()
        if not self.is_overdue(now):
            raise InvalidStateError("Only overdue credit requests can be defaulted")

        self.status = CreditStatus.DEFAULTED
        self.updated_at = now
        self._record(
            CreditRequestDefaulted(
                credit_request_id=self.id,
                user_id=self.user_id,
                outstanding=self.calculate_remaining_balance(),
            )
        )

    # Queries

    def calculate_total_owed(self) -> Money:
        """Principal plus simple interest over the full term"""
        if self.approved_amount is None:
            return Money.zero(self.requested_amount.currency)
        interest = self.approved_amount.multiply(self.interest_rate / 100)
        return self.approved_amount.add(interest)

    def calculate_remaining_balance(self) -> Money:
        return self.calculate_total_owed().subtract(self.total_repaid)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.due_date is None or self.status is not CreditStatus.ACTIVE:
            return False
        return (now or utcnow()) > self.due_date

    def is_active(self) -> bool:
        return self.status is CreditStatus.ACTIVE

    def is_completed(self) -> bool:
        return self.status is CreditStatus.COMPLETED

    def is_terminal(self) -> bool:
        return self.status not in ALLOWED_TRANSITIONS

    def ensure_deletable(self) -> None:
        """Active loans are never deleted"""
        if self.status is CreditStatus.ACTIVE:
            raise InvalidStateError("Active credit requests cannot be deleted")
