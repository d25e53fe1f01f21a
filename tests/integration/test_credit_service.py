"""Integration tests for credit use cases against SQLite"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from lendsave.domain.credit_request import CreditStatus
from lendsave.domain.events import (
    CreditRepaymentProcessed,
    CreditRequestApproved,
    CreditRequestCompleted,
    CreditRequestDefaulted,
    CreditRequestRejected,
    CreditRequestSubmitted,
    SavingsWithdrawn,
)
from lendsave.domain.exceptions import (
    InsufficientFundsError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    PolicyViolationError,
)
from lendsave.domain.models import TransactionType
from lendsave.domain.value_objects import Money
from lendsave.services.credit_service import CreditService


def _event_types(events):
    return [type(e) for e in events]


def test_high_score_auto_approves(credit_service, make_customer, published):
    """Test a 800 score request for 5000 over 12 months is active immediately"""
    user_id = make_customer(800)

    credit = credit_service.create_credit_request(user_id, 5000, 12, purpose="Car")

    assert credit.status is CreditStatus.ACTIVE
    assert credit.approved_amount == Money("5000")
    assert credit.interest_rate == Decimal("5.0")
    assert credit.approved_by == "system"
    assert credit.due_date is not None
    assert _event_types(published) == [CreditRequestSubmitted, CreditRequestApproved]

    stored = credit_service.get_credit_details(credit.id, user_id)
    assert stored.status is CreditStatus.ACTIVE
    assert stored.approved_amount == Money("5000")
    assert stored.total_repaid.is_zero()


def test_mid_score_waits_for_review(credit_service, make_customer, published):
    user_id = make_customer(700)

    credit = credit_service.create_credit_request(user_id, "2500", 6)

    assert credit.status is CreditStatus.PENDING
    assert credit.interest_rate == Decimal("7.5")
    assert credit.approved_amount is None
    assert _event_types(published) == [CreditRequestSubmitted]


def test_low_score_auto_rejects(credit_service, make_customer, published):
    user_id = make_customer(550)

    credit = credit_service.create_credit_request(user_id, 1000, 12)

    assert credit.status is CreditStatus.REJECTED
    assert credit.rejection_reason == "Credit score below minimum requirement"
    assert _event_types(published) == [CreditRequestSubmitted, CreditRequestRejected]


def test_create_for_unknown_user(credit_service):
    with pytest.raises(NotFoundError):
        credit_service.create_credit_request("missing-user", 1000, 12)


def test_create_validates_amount_and_term(credit_service, make_customer):
    user_id = make_customer(700)

    with pytest.raises(InvalidInputError):
        credit_service.create_credit_request(user_id, 0, 12)
    with pytest.raises(PolicyViolationError):
        credit_service.create_credit_request(user_id, 50, 12)
    with pytest.raises(PolicyViolationError):
        credit_service.create_credit_request(user_id, 1000, 72)


def test_one_active_request_per_user(credit_service, make_customer, published):
    user_id = make_customer(800)
    credit_service.create_credit_request(user_id, 5000, 12)
    published.clear()

    with pytest.raises(PolicyViolationError):
        credit_service.create_credit_request(user_id, 1000, 6)

    assert len(credit_service.list_user_credits(user_id)) == 1
    assert published == []


def test_approve_active_request_fails(credit_service, make_customer):
    """Test approving an already active request raises and leaves the stored row unchanged"""
    user_id = make_customer(800)
    credit = credit_service.create_credit_request(user_id, 5000, 12)

    with pytest.raises(InvalidStateError):
        credit_service.approve_credit_request(credit.id, "admin-1", 1000)

    stored = credit_service.get_credit_details(credit.id)
    assert stored.approved_amount == Money("5000")
    assert stored.approved_by == "system"


def test_manual_approval(credit_service, make_customer, published):
    user_id = make_customer(700)
    credit = credit_service.create_credit_request(user_id, 3000, 12)
    published.clear()

    with pytest.raises(PolicyViolationError):
        credit_service.approve_credit_request(credit.id, "admin-1", "3000.01")

    approved = credit_service.approve_credit_request(credit.id, "admin-1", 2500)

    assert approved.status is CreditStatus.ACTIVE
    assert approved.approved_amount == Money("2500")
    assert credit_service.get_credit_details(credit.id).approved_by == "admin-1"
    assert _event_types(published) == [CreditRequestApproved]


def test_manual_rejection(credit_service, make_customer):
    user_id = make_customer(650)
    credit = credit_service.create_credit_request(user_id, 3000, 12)

    with pytest.raises(InvalidInputError):
        credit_service.reject_credit_request(credit.id, "admin-1", "")

    rejected = credit_service.reject_credit_request(credit.id, "admin-1", "Debt too high")

    assert rejected.status is CreditStatus.REJECTED
    stored = credit_service.get_credit_details(credit.id)
    assert stored.rejection_reason == "Debt too high"
    assert stored.approved_by == "admin-1"


def test_approve_unknown_request(credit_service):
    with pytest.raises(NotFoundError):
        credit_service.approve_credit_request("missing", "admin-1")


def test_repayment_moves_both_balances(credit_service, savings_service, make_customer, published):
    """Test repayment debits savings, increments total repaid and writes both ledger rows"""
    user_id = make_customer(800)
    savings_service.create_savings_account(user_id, initial_deposit=6000)
    credit = credit_service.create_credit_request(user_id, 5000, 12)  # Owes 5250 at 5%
    published.clear()

    repayment = credit_service.repay_credit(user_id, credit.id, 1000, notes="First installment")

    assert repayment.amount == Money("1000")
    assert repayment.total_repaid_after == Money("1000")
    assert repayment.notes == "First installment"
    assert repayment.reference.startswith("RPY-")
    assert _event_types(published) == [SavingsWithdrawn, CreditRepaymentProcessed]

    assert savings_service.get_account(user_id).balance == Money("5000")
    stored = credit_service.get_credit_details(credit.id)
    assert stored.total_repaid == Money("1000")
    assert stored.calculate_remaining_balance() == Money("4250")

    latest = savings_service.list_transactions(user_id)[0]
    assert latest.type is TransactionType.CREDIT_REPAYMENT
    assert latest.balance_after == Money("5000")
    assert [r.total_repaid_after for r in credit_service.list_repayments(credit.id)] == [Money("1000")]


def test_repaying_remaining_balance_completes(credit_service, savings_service, make_customer, published):
    user_id = make_customer(800)
    savings_service.create_savings_account(user_id, initial_deposit=6000)
    credit = credit_service.create_credit_request(user_id, 5000, 12)
    credit_service.repay_credit(user_id, credit.id, 1000)
    published.clear()

    credit_service.repay_credit(user_id, credit.id, "4250")

    stored = credit_service.get_credit_details(credit.id)
    assert stored.status is CreditStatus.COMPLETED
    assert stored.total_repaid == Money("5250")
    assert stored.completed_at is not None
    assert CreditRequestCompleted in _event_types(published)
    assert CreditRepaymentProcessed not in _event_types(published)
    assert savings_service.get_account(user_id).balance == Money("750")

    with pytest.raises(InvalidStateError):
        credit_service.repay_credit(user_id, credit.id, 1)


def test_failed_repayment_changes_nothing(credit_service, savings_service, make_customer, published):
    """Test a rejected repayment leaves savings, total repaid and ledgers untouched"""
    user_id = make_customer(800)
    savings_service.create_savings_account(user_id, initial_deposit=300)
    credit = credit_service.create_credit_request(user_id, 5000, 12)
    published.clear()

    with pytest.raises(InsufficientFundsError):
        credit_service.repay_credit(user_id, credit.id, 500)

    assert savings_service.get_account(user_id).balance == Money("300")
    assert credit_service.get_credit_details(credit.id).total_repaid.is_zero()
    assert credit_service.list_repayments(credit.id) == []
    assert len(savings_service.list_transactions(user_id)) == 1
    assert published == []


def test_repayment_above_remaining_is_refused(credit_service, savings_service, make_customer):
    user_id = make_customer(800)
    savings_service.create_savings_account(user_id, initial_deposit=10000)
    credit = credit_service.create_credit_request(user_id, 5000, 12)

    with pytest.raises(InsufficientFundsError):
        credit_service.repay_credit(user_id, credit.id, "5250.01")

    assert savings_service.get_account(user_id).balance == Money("10000")


def test_repay_requires_ownership_and_savings(credit_service, savings_service, make_customer):
    owner = make_customer(800)
    other = make_customer(800)
    credit = credit_service.create_credit_request(owner, 5000, 12)

    with pytest.raises(NotFoundError):
        credit_service.repay_credit(owner, credit.id, 100)

    savings_service.create_savings_account(other, initial_deposit=1000)
    with pytest.raises(PolicyViolationError):
        credit_service.repay_credit(other, credit.id, 100)
    with pytest.raises(PolicyViolationError):
        credit_service.get_credit_details(credit.id, other)


def test_bulk_approve_isolates_failures(credit_service, make_customer):
    pending = [credit_service.create_credit_request(make_customer(700), 1000, 12) for _ in range(2)]
    active = credit_service.create_credit_request(make_customer(800), 1000, 12)

    result = credit_service.bulk_approve(
        [pending[0].id, "missing", active.id, pending[1].id],
        "admin-1",
        approved_amounts={pending[1].id: 800},
    )

    assert [c.id for c in result.successful] == [pending[0].id, pending[1].id]
    assert result.successful[1].approved_amount == Money("800")
    assert [(f.item_id, f.error_kind) for f in result.failed] == [
        ("missing", "NotFound"),
        (active.id, "InvalidState"),
    ]
    assert result.summary == "2 succeeded, 2 failed"


def test_bulk_reject(credit_service, make_customer):
    pending = credit_service.create_credit_request(make_customer(700), 1000, 12)
    rejected = credit_service.create_credit_request(make_customer(500), 1000, 12)

    result = credit_service.bulk_reject([pending.id, rejected.id], "admin-1", "Portfolio limit reached")

    assert [c.id for c in result.successful] == [pending.id]
    assert result.failed[0].item_id == rejected.id
    assert result.failed[0].error_kind == "InvalidState"
    assert credit_service.get_credit_details(pending.id).rejection_reason == "Portfolio limit reached"


def test_default_overdue_credits(session_factory, event_bus, make_customer, published):
    approved_at = datetime(2024, 1, 15, tzinfo=timezone.utc)
    service = CreditService(session_factory, event_bus, clock=lambda: approved_at)
    overdue = service.create_credit_request(make_customer(800), 1000, 1)
    current = service.create_credit_request(make_customer(800), 1000, 12)
    published.clear()

    result = service.default_overdue_credits(now=datetime(2024, 3, 1, tzinfo=timezone.utc))

    assert [c.id for c in result.successful] == [overdue.id]
    assert result.failed == []
    assert service.get_credit_details(overdue.id).status is CreditStatus.DEFAULTED
    assert service.get_credit_details(current.id).status is CreditStatus.ACTIVE
    assert _event_types(published) == [CreditRequestDefaulted]
    assert published[0].outstanding == Money("1050")


def test_pending_queue_is_paged_oldest_first(credit_service, make_customer):
    created = [credit_service.create_credit_request(make_customer(700), 1000 + i, 12) for i in range(3)]
    credit_service.create_credit_request(make_customer(800), 1000, 12)

    first = credit_service.list_pending_requests(page=1, limit=2)
    second = credit_service.list_pending_requests(page=2, limit=2)

    assert first.total == 3
    assert first.total_pages == 2
    assert [c.id for c in first.items] == [created[0].id, created[1].id]
    assert [c.id for c in second.items] == [created[2].id]

    everything = credit_service.list_requests(page=1, limit=10)
    assert everything.total == 4
    active = credit_service.list_requests(status=CreditStatus.ACTIVE)
    assert active.total == 1

    with pytest.raises(InvalidInputError):
        credit_service.list_requests(page=0)


def test_credit_stats(credit_service, make_customer):
    credit_service.create_credit_request(make_customer(800), 5000, 12)
    credit_service.create_credit_request(make_customer(800), 2000, 12)
    credit_service.create_credit_request(make_customer(700), 1000, 12)
    credit_service.create_credit_request(make_customer(500), 1000, 12)

    stats = credit_service.credit_stats()

    assert stats.total == 4
    assert stats.active == 2
    assert stats.pending == 1
    assert stats.rejected == 1
    assert stats.completed == 0
    assert stats.defaulted == 0
    assert stats.total_disbursed == Money("7000")


def test_delete_credit_request(credit_service, make_customer):
    pending = credit_service.create_credit_request(make_customer(700), 1000, 12)
    active = credit_service.create_credit_request(make_customer(800), 1000, 12)

    credit_service.delete_credit_request(pending.id)
    with pytest.raises(NotFoundError):
        credit_service.get_credit_details(pending.id)

    with pytest.raises(InvalidStateError):
        credit_service.delete_credit_request(active.id)
    assert credit_service.get_credit_details(active.id).is_active()
