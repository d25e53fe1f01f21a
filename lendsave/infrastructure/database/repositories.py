"""Data access layer - maps aggregates to rows and provides atomic counter updates"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session
from lendsave.domain.credit_request import CreditRequest, CreditStatus
from lendsave.domain.exceptions import InsufficientFundsError, InvalidStateError, NotFoundError
from lendsave.domain.models import (
    CreditRepayment,
    LedgerStatus,
    SavingsTransaction,
    TransactionType,
    generate_reference,
)
from lendsave.domain.savings_account import AccountStatus, SavingsAccount
from lendsave.domain.value_objects import AccountNumber, CreditScore, Money
from lendsave.infrastructure.database.models import (
    CreditRepaymentRecord,
    CreditRequestRecord,
    Customer,
    SavingsAccountRecord,
    SavingsTransactionRecord,
)
from lendsave.utils.date_utils import ensure_utc, utcnow


class BaseRepository:
    """Session holder plus the atomic read-modify-write primitive"""

    model: Any = None

    def __init__(self, db: Session):
        self.db = db

    def atomic_adjust(
        self,
        row_id: str,
        column: str,
        delta: int,
        minimum: Optional[int] = None,
        maximum: Optional[int] = None,
        require: Sequence[Any] = (),
        values: Optional[Dict[str, Any]] = None,
    ) -> Optional[int]:
        """
        Add delta to a numeric column without a read-then-write race.

        Issues a single `UPDATE ... SET column = column + :delta WHERE ...` with
        the bounds and extra criteria as guards, then reads the new value back
        in the same transaction. Extra values (e.g. updated_at) are written by
        the same statement. Returns None when no row matched.
        """
        attr = getattr(self.model, column)
        criteria = [self.model.id == row_id, *require]
        if minimum is not None:
            criteria.append(attr + delta >= minimum)
        if maximum is not None:
            criteria.append(attr + delta <= maximum)

        updated = (
            self.db.query(self.model)
            .filter(*criteria)
            .update({column: attr + delta, **(values or {})}, synchronize_session=False)
        )
        if updated != 1:
            return None

        return self.db.query(attr).filter(self.model.id == row_id).scalar()


class CustomerRepository(BaseRepository):
    """Read access to the credit score held on the user profile"""

    model = Customer

    def get_credit_score(self, user_id: str) -> Optional[CreditScore]:
        score = self.db.query(Customer.credit_score).filter(Customer.id == user_id).scalar()
        return CreditScore.of(score) if score is not None else None

    def exists(self, user_id: str) -> bool:
        return self.db.query(Customer.id).filter(Customer.id == user_id).first() is not None

    def add(self, credit_score: int, user_id: Optional[str] = None) -> str:
        customer = Customer(id=user_id, credit_score=CreditScore.of(credit_score).score)
        self.db.add(customer)
        self.db.flush()
        return customer.id


def _to_credit_request(row: CreditRequestRecord) -> CreditRequest:
    currency = row.currency
    return CreditRequest(
        id=row.id,
        user_id=row.user_id,
        requested_amount=Money.from_cents(row.requested_cents, currency),
        interest_rate=Decimal(row.interest_rate),
        term_months=row.term_months,
        purpose=row.purpose,
        status=CreditStatus(row.status),
        approved_amount=(
            Money.from_cents(row.approved_cents, currency) if row.approved_cents is not None else None
        ),
        total_repaid=Money.from_cents(row.total_repaid_cents, currency),
        rejection_reason=row.rejection_reason,
        approved_by=row.approved_by,
        approved_at=ensure_utc(row.approved_at),
        due_date=ensure_utc(row.due_date),
        completed_at=ensure_utc(row.completed_at),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _credit_state(credit: CreditRequest) -> Dict[str, Any]:
    """Columns a credit request may change outside the atomic total_repaid counter"""
    return {
        "status": credit.status.value,
        "approved_cents": credit.approved_amount.to_cents() if credit.approved_amount is not None else None,
        "rejection_reason": credit.rejection_reason,
        "approved_by": credit.approved_by,
        "approved_at": credit.approved_at,
        "due_date": credit.due_date,
        "completed_at": credit.completed_at,
        "updated_at": credit.updated_at,
    }


class CreditRequestRepository(BaseRepository):
    """Repository for credit request aggregates"""

    model = CreditRequestRecord

    def add(self, credit: CreditRequest) -> None:
        row = CreditRequestRecord(
            id=credit.id,
            user_id=credit.user_id,
            currency=credit.requested_amount.currency,
            requested_cents=credit.requested_amount.to_cents(),
            total_repaid_cents=credit.total_repaid.to_cents(),
            interest_rate=credit.interest_rate,
            term_months=credit.term_months,
            purpose=credit.purpose,
            created_at=credit.created_at,
            **_credit_state(credit),
        )
        self.db.add(row)
        self.db.flush()  # Get constraint errors without committing

    def save(self, credit: CreditRequest, expected_status: Optional[CreditStatus] = None) -> None:
        """
        Persist state changes; total_repaid is only ever moved by add_to_total_repaid.

        With expected_status the write only lands if the stored status still
        matches, so two concurrent transitions out of the same state cannot both win.
        """
        query = self.db.query(CreditRequestRecord).filter(CreditRequestRecord.id == credit.id)
        if expected_status is not None:
            query = query.filter(CreditRequestRecord.status == expected_status.value)
        if query.update(_credit_state(credit), synchronize_session=False) != 1:
            raise InvalidStateError(f"Credit request {credit.id} was modified concurrently")

    def get(self, credit_id: str) -> Optional[CreditRequest]:
        row = self.db.get(CreditRequestRecord, credit_id)
        return _to_credit_request(row) if row is not None else None

    def get_or_raise(self, credit_id: str) -> CreditRequest:
        credit = self.get(credit_id)
        if credit is None:
            raise NotFoundError("Credit request not found")
        return credit

    def find_by_user(self, user_id: str) -> List[CreditRequest]:
        rows = (
            self.db.query(CreditRequestRecord)
            .filter(CreditRequestRecord.user_id == user_id)
            .order_by(CreditRequestRecord.created_at.desc(), CreditRequestRecord.id)
            .all()
        )
        return [_to_credit_request(row) for row in rows]

    def find_active_by_user(self, user_id: str) -> List[CreditRequest]:
        rows = (
            self.db.query(CreditRequestRecord)
            .filter(
                CreditRequestRecord.user_id == user_id,
                CreditRequestRecord.status == CreditStatus.ACTIVE.value,
            )
            .all()
        )
        return [_to_credit_request(row) for row in rows]

    def find_page(
        self,
        status: Optional[CreditStatus],
        page: int,
        limit: int,
        oldest_first: bool = False,
    ) -> tuple[List[CreditRequest], int]:
        """Fetch one page of requests, optionally filtered by status, with the total count"""
        query = self.db.query(CreditRequestRecord)
        if status is not None:
            query = query.filter(CreditRequestRecord.status == status.value)

        total = query.count()
        order = CreditRequestRecord.created_at.asc() if oldest_first else CreditRequestRecord.created_at.desc()
        rows = query.order_by(order, CreditRequestRecord.id).offset((page - 1) * limit).limit(limit).all()
        return [_to_credit_request(row) for row in rows], total

    def find_overdue(self, now: datetime) -> List[CreditRequest]:
        rows = (
            self.db.query(CreditRequestRecord)
            .filter(
                CreditRequestRecord.status == CreditStatus.ACTIVE.value,
                CreditRequestRecord.due_date.isnot(None),
                CreditRequestRecord.due_date < now,
            )
            .all()
        )
        return [_to_credit_request(row) for row in rows]

    def count_by_status(self) -> Dict[CreditStatus, int]:
        rows = (
            self.db.query(CreditRequestRecord.status, func.count(CreditRequestRecord.id))
            .group_by(CreditRequestRecord.status)
            .all()
        )
        counts = {status: 0 for status in CreditStatus}
        for status, count in rows:
            counts[CreditStatus(status)] = count
        return counts

    def total_approved_cents(self, statuses: Iterable[CreditStatus]) -> int:
        total = (
            self.db.query(func.coalesce(func.sum(CreditRequestRecord.approved_cents), 0))
            .filter(CreditRequestRecord.status.in_([s.value for s in statuses]))
            .scalar()
        )
        return int(total)

    def add_to_total_repaid(self, credit: CreditRequest, amount: Money) -> Money:
        """
        Atomically increment total_repaid, capped at the simple-interest total owed.

        Raises:
            InvalidStateError: the stored request is no longer active
            InsufficientFundsError: the increment would exceed the total owed
        """
        new_total = self.atomic_adjust(
            credit.id,
            "total_repaid_cents",
            amount.to_cents(),
            maximum=credit.calculate_total_owed().to_cents(),
            require=(CreditRequestRecord.status == CreditStatus.ACTIVE.value,),
            values={"updated_at": credit.updated_at or utcnow()},
        )
        if new_total is None:
            status = self.db.query(CreditRequestRecord.status).filter(CreditRequestRecord.id == credit.id).scalar()
            if status is None:
                raise NotFoundError("Credit request not found")
            if status != CreditStatus.ACTIVE.value:
                raise InvalidStateError(f"Cannot repay credit request with status: {status}")
            raise InsufficientFundsError("Repayment amount exceeds remaining balance")
        return Money.from_cents(new_total, amount.currency)

    def delete(self, credit_id: str) -> None:
        row = self.db.get(CreditRequestRecord, credit_id)
        if row is not None:
            self.db.delete(row)


def _to_savings_account(row: SavingsAccountRecord) -> SavingsAccount:
    return SavingsAccount(
        id=row.id,
        user_id=row.user_id,
        account_number=AccountNumber(row.account_number, row.account_prefix),
        balance=Money.from_cents(row.balance_cents, row.currency),
        interest_rate=Decimal(row.interest_rate),
        status=AccountStatus(row.status),
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


class SavingsAccountRepository(BaseRepository):
    """Repository for savings account aggregates"""

    model = SavingsAccountRecord

    def add(self, account: SavingsAccount) -> None:
        row = SavingsAccountRecord(
            id=account.id,
            user_id=account.user_id,
            account_number=account.account_number.value,
            account_prefix=account.account_number.prefix,
            currency=account.balance.currency,
            balance_cents=account.balance.to_cents(),
            interest_rate=account.interest_rate,
            status=account.status.value,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )
        self.db.add(row)
        self.db.flush()

    def save(
        self,
        account: SavingsAccount,
        expected_status: Optional[AccountStatus] = None,
        require_zero_balance: bool = False,
    ) -> None:
        """Persist status changes; the balance is only ever moved by adjust_balance"""
        query = self.db.query(SavingsAccountRecord).filter(SavingsAccountRecord.id == account.id)
        if expected_status is not None:
            query = query.filter(SavingsAccountRecord.status == expected_status.value)
        if require_zero_balance:
            query = query.filter(SavingsAccountRecord.balance_cents == 0)

        updated = query.update(
            {
                "status": account.status.value,
                "interest_rate": account.interest_rate,
                "updated_at": account.updated_at,
            },
            synchronize_session=False,
        )
        if updated != 1:
            raise InvalidStateError(f"Savings account {account.id} was modified concurrently")

    def get(self, account_id: str) -> Optional[SavingsAccount]:
        row = self.db.get(SavingsAccountRecord, account_id)
        return _to_savings_account(row) if row is not None else None

    def get_by_user(self, user_id: str) -> Optional[SavingsAccount]:
        row = self.db.query(SavingsAccountRecord).filter(SavingsAccountRecord.user_id == user_id).first()
        return _to_savings_account(row) if row is not None else None

    def get_by_user_or_raise(self, user_id: str) -> SavingsAccount:
        account = self.get_by_user(user_id)
        if account is None:
            raise NotFoundError("Savings account not found")
        return account

    def adjust_balance(self, account: SavingsAccount, delta: Money, debit: bool = False) -> Money:
        """
        Atomically move the stored balance; debits never take it below zero.

        Raises:
            InvalidStateError: the stored account is no longer active
            InsufficientFundsError: a debit would overdraw the account
        """
        cents = -delta.to_cents() if debit else delta.to_cents()
        new_balance = self.atomic_adjust(
            account.id,
            "balance_cents",
            cents,
            minimum=0,
            require=(SavingsAccountRecord.status == AccountStatus.ACTIVE.value,),
            values={"updated_at": account.updated_at or utcnow()},
        )
        if new_balance is None:
            status = self.db.query(SavingsAccountRecord.status).filter(SavingsAccountRecord.id == account.id).scalar()
            if status is None:
                raise NotFoundError("Savings account not found")
            if status != AccountStatus.ACTIVE.value:
                raise InvalidStateError(f"Account is not active (status: {status})")
            raise InsufficientFundsError(f"Insufficient funds for withdrawal of {delta}")
        return Money.from_cents(new_balance, delta.currency)


def _to_transaction(row: SavingsTransactionRecord, currency: str) -> SavingsTransaction:
    return SavingsTransaction(
        id=row.id,
        savings_account_id=row.savings_account_id,
        type=TransactionType(row.type),
        amount=Money.from_cents(row.amount_cents, currency),
        balance_after=Money.from_cents(row.balance_after_cents, currency),
        status=LedgerStatus(row.status),
        reference=row.reference,
        description=row.description,
        created_at=ensure_utc(row.created_at),
    )


class TransactionRepository(BaseRepository):
    """Append-only savings ledger"""

    model = SavingsTransactionRecord

    def record(
        self,
        account_id: str,
        type: TransactionType,
        amount: Money,
        balance_after: Money,
        description: Optional[str] = None,
    ) -> SavingsTransaction:
        row = SavingsTransactionRecord(
            savings_account_id=account_id,
            type=type.value,
            amount_cents=amount.to_cents(),
            balance_after_cents=balance_after.to_cents(),
            status=LedgerStatus.COMPLETED.value,
            reference=generate_reference("TXN"),
            description=description,
            created_at=utcnow(),
        )
        self.db.add(row)
        self.db.flush()
        return _to_transaction(row, amount.currency)

    def list_by_account(self, account_id: str, currency: str, limit: int = 50) -> List[SavingsTransaction]:
        rows = (
            self.db.query(SavingsTransactionRecord)
            .filter(SavingsTransactionRecord.savings_account_id == account_id)
            .order_by(SavingsTransactionRecord.created_at.desc(), SavingsTransactionRecord.balance_after_cents.desc())
            .limit(limit)
            .all()
        )
        return [_to_transaction(row, currency) for row in rows]


def _to_repayment(row: CreditRepaymentRecord, currency: str) -> CreditRepayment:
    return CreditRepayment(
        id=row.id,
        credit_request_id=row.credit_request_id,
        amount=Money.from_cents(row.amount_cents, currency),
        total_repaid_after=Money.from_cents(row.total_repaid_after_cents, currency),
        status=LedgerStatus(row.status),
        reference=row.reference,
        notes=row.notes,
        created_at=ensure_utc(row.created_at),
    )


class RepaymentRepository(BaseRepository):
    """Append-only repayment ledger"""

    model = CreditRepaymentRecord

    def record(
        self,
        credit_request_id: str,
        amount: Money,
        total_repaid_after: Money,
        notes: Optional[str] = None,
    ) -> CreditRepayment:
        row = CreditRepaymentRecord(
            credit_request_id=credit_request_id,
            amount_cents=amount.to_cents(),
            total_repaid_after_cents=total_repaid_after.to_cents(),
            status=LedgerStatus.COMPLETED.value,
            reference=generate_reference("RPY"),
            notes=notes,
            created_at=utcnow(),
        )
        self.db.add(row)
        self.db.flush()
        return _to_repayment(row, amount.currency)

    def list_by_credit(self, credit_request_id: str, currency: str) -> List[CreditRepayment]:
        rows = (
            self.db.query(CreditRepaymentRecord)
            .filter(CreditRepaymentRecord.credit_request_id == credit_request_id)
            .order_by(CreditRepaymentRecord.created_at.desc(), CreditRepaymentRecord.total_repaid_after_cents.desc())
            .all()
        )
        return [_to_repayment(row, currency) for row in rows]
