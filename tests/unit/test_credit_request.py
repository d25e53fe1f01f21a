"""Unit tests for the credit request state machine"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from lendsave.domain.credit_request import CreditRequest, CreditStatus
from lendsave.domain.events import (
    CreditRepaymentProcessed,
    CreditRequestApproved,
    CreditRequestCompleted,
    CreditRequestDefaulted,
    CreditRequestRejected,
    CreditRequestSubmitted,
)
from lendsave.domain.exceptions import (
    CurrencyMismatchError,
    InsufficientFundsError,
    InvalidInputError,
    InvalidStateError,
)
from lendsave.domain.value_objects import Money

APPROVED_AT = datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc)


def test_submit_creates_pending_request():
    credit = CreditRequest.submit("user-1", Money("5000"), Decimal("10"), 12, purpose="  Car  ")

    assert credit.status is CreditStatus.PENDING
    assert credit.approved_amount is None
    assert credit.total_repaid.is_zero()
    assert credit.purpose == "Car"
    assert [type(e) for e in credit.domain_events] == [CreditRequestSubmitted]


@pytest.mark.parametrize(
    "amount,term,rate",
    [("0", 12, "10"), ("5000", 0, "10"), ("5000", 12, "-1")],
)
def test_submit_validates_input(amount, term, rate):
    with pytest.raises(InvalidInputError):
        CreditRequest.submit("user-1", Money(amount), Decimal(rate), term)


def test_funded_status_requires_approved_amount():
    """Test approved_amount is set exactly when the status is funded"""
    with pytest.raises(InvalidStateError):
        CreditRequest(
            id="c1",
            user_id="u1",
            requested_amount=Money("100"),
            interest_rate=Decimal("5"),
            term_months=1,
            status=CreditStatus.ACTIVE,
        )
    with pytest.raises(InvalidStateError):
        CreditRequest(
            id="c1",
            user_id="u1",
            requested_amount=Money("100"),
            interest_rate=Decimal("5"),
            term_months=1,
            approved_amount=Money("100"),
        )


def test_approve_defaults_to_requested_amount(pending_credit):
    pending_credit.approve("admin-1", now=APPROVED_AT)

    assert pending_credit.status is CreditStatus.ACTIVE
    assert pending_credit.approved_amount == Money("5000")
    assert pending_credit.approved_by == "admin-1"
    assert pending_credit.approved_at == APPROVED_AT
    assert pending_credit.due_date == datetime(2025, 1, 31, 12, 0, tzinfo=timezone.utc)

    events = pending_credit.pull_events()
    assert len(events) == 1
    assert isinstance(events[0], CreditRequestApproved)
    assert events[0].approved_amount == Money("5000")


def test_approve_with_partial_amount(pending_credit):
    pending_credit.approve("admin-1", Money("4000"))

    assert pending_credit.approved_amount == Money("4000")
    assert pending_credit.calculate_total_owed() == Money("4400")


def test_approve_validates_amount(pending_credit):
    with pytest.raises(InvalidInputError):
        pending_credit.approve("admin-1", Money("0"))
    with pytest.raises(CurrencyMismatchError):
        pending_credit.approve("admin-1", Money("100", "EUR"))

    assert pending_credit.status is CreditStatus.PENDING
    assert pending_credit.domain_events == ()


def test_approve_active_request_fails_without_changes(pending_credit):
    """Test approving an already active request raises and leaves fields untouched"""
    pending_credit.approve("admin-1", now=APPROVED_AT)
    pending_credit.pull_events()

    with pytest.raises(InvalidStateError):
        pending_credit.approve("admin-2", Money("1000"))

    assert pending_credit.status is CreditStatus.ACTIVE
    assert pending_credit.approved_amount == Money("5000")
    assert pending_credit.approved_by == "admin-1"
    assert pending_credit.approved_at == APPROVED_AT
    assert pending_credit.domain_events == ()


def test_reject_requires_reason(pending_credit):
    with pytest.raises(InvalidInputError):
        pending_credit.reject("admin-1", "   ")

    assert pending_credit.status is CreditStatus.PENDING
    assert pending_credit.rejection_reason is None


def test_reject_stores_trimmed_reason(pending_credit):
    pending_credit.reject("admin-1", "  Insufficient income  ")

    assert pending_credit.status is CreditStatus.REJECTED
    assert pending_credit.rejection_reason == "Insufficient income"
    assert pending_credit.approved_by == "admin-1"
    assert isinstance(pending_credit.pull_events()[0], CreditRequestRejected)


def test_approve_and_reject_are_mutually_exclusive(pending_credit):
    pending_credit.reject("admin-1", "No")
    with pytest.raises(InvalidStateError):
        pending_credit.approve("admin-1")

    other = CreditRequest.submit("user-2", Money("1000"), Decimal("5"), 6)
    other.approve("admin-1")
    with pytest.raises(InvalidStateError):
        other.reject("admin-1", "Changed my mind")


def test_repay_requires_active(pending_credit):
    with pytest.raises(InvalidStateError):
        pending_credit.repay(Money("100"))


def test_partial_repayment(pending_credit):
    pending_credit.approve("admin-1")
    pending_credit.pull_events()

    pending_credit.repay(Money("1000"))

    assert pending_credit.total_repaid == Money("1000")
    assert pending_credit.calculate_remaining_balance() == Money("4500")
    assert pending_credit.status is CreditStatus.ACTIVE
    assert [type(e) for e in pending_credit.pull_events()] == [CreditRepaymentProcessed]


def test_repay_exact_remaining_completes(pending_credit):
    """Test paying off the remaining balance completes instead of emitting a processed event"""
    pending_credit.approve("admin-1")
    pending_credit.repay(Money("500"))
    pending_credit.pull_events()

    pending_credit.repay(pending_credit.calculate_remaining_balance())

    assert pending_credit.status is CreditStatus.COMPLETED
    assert pending_credit.total_repaid == Money("5500")
    assert pending_credit.completed_at is not None
    assert [type(e) for e in pending_credit.pull_events()] == [CreditRequestCompleted]


def test_repay_more_than_owed_fails(pending_credit):
    pending_credit.approve("admin-1")
    pending_credit.pull_events()

    with pytest.raises(InsufficientFundsError):
        pending_credit.repay(Money("5500.01"))

    assert pending_credit.total_repaid.is_zero()
    assert pending_credit.domain_events == ()


def test_repay_rejects_zero(pending_credit):
    pending_credit.approve("admin-1")
    with pytest.raises(InvalidInputError):
        pending_credit.repay(Money("0"))


@pytest.mark.parametrize("terminal", ["rejected", "completed"])
def test_terminal_requests_refuse_all_transitions(pending_credit, terminal):
    if terminal == "rejected":
        pending_credit.reject("admin-1", "No")
    else:
        pending_credit.approve("admin-1")
        pending_credit.repay(Money("5500"))

    assert pending_credit.is_terminal()
    with pytest.raises(InvalidStateError):
        pending_credit.approve("admin-1")
    with pytest.raises(InvalidStateError):
        pending_credit.reject("admin-1", "Again")
    with pytest.raises(InvalidStateError):
        pending_credit.repay(Money("1"))


def test_total_repaid_never_exceeds_total_owed(pending_credit):
    pending_credit.approve("admin-1")
    for amount in ["1000", "2000", "2499.99"]:
        pending_credit.repay(Money(amount))
        assert pending_credit.total_repaid <= pending_credit.calculate_total_owed()

    with pytest.raises(InsufficientFundsError):
        pending_credit.repay(Money("0.02"))
    pending_credit.repay(Money("0.01"))
    assert pending_credit.is_completed()


def test_refresh_total_repaid_detects_completion(pending_credit):
    """Test a stored total that already reached the total owed completes the loan"""
    pending_credit.approve("admin-1")
    pending_credit.repay(Money("1000"))
    pending_credit.pull_events()

    pending_credit.refresh_total_repaid(Money("5500"))

    assert pending_credit.is_completed()
    assert [type(e) for e in pending_credit.pull_events()] == [CreditRequestCompleted]


def test_refresh_total_repaid_completion_replaces_repayment_event(pending_credit):
    """Test a repayment that completes via the stored total emits only the completion"""
    pending_credit.approve("admin-1")
    pending_credit.pull_events()

    pending_credit.repay(Money("1000"))  # In-memory total is stale
    pending_credit.refresh_total_repaid(Money("5500"))

    assert pending_credit.is_completed()
    assert [type(e) for e in pending_credit.pull_events()] == [CreditRequestCompleted]


def test_refresh_total_repaid_rejects_overpayment(pending_credit):
    pending_credit.approve("admin-1")
    with pytest.raises(InvalidStateError):
        pending_credit.refresh_total_repaid(Money("5500.01"))


def test_is_overdue(pending_credit):
    pending_credit.approve("admin-1", now=APPROVED_AT)

    assert not pending_credit.is_overdue(APPROVED_AT + timedelta(days=30))
    assert pending_credit.is_overdue(pending_credit.due_date + timedelta(seconds=1))


def test_mark_defaulted(pending_credit):
    pending_credit.approve("admin-1", now=APPROVED_AT)
    pending_credit.repay(Money("500"))
    pending_credit.pull_events()

    with pytest.raises(InvalidStateError):
        pending_credit.mark_defaulted(now=APPROVED_AT + timedelta(days=1))

    pending_credit.mark_defaulted(now=pending_credit.due_date + timedelta(days=1))

    assert pending_credit.status is CreditStatus.DEFAULTED
    events = pending_credit.pull_events()
    assert isinstance(events[0], CreditRequestDefaulted)
    assert events[0].outstanding == Money("5000")


def test_ensure_deletable(pending_credit):
    pending_credit.ensure_deletable()

    pending_credit.approve("admin-1")
    with pytest.raises(InvalidStateError):
        pending_credit.ensure_deletable()
