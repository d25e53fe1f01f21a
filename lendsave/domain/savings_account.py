"""Savings account aggregate - owns balance mutation rules"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from lendsave.domain.events import (
    AccountClosed,
    AccountFrozen,
    AccountUnfrozen,
    AggregateRoot,
    DomainEvent,
    SavingsDeposited,
    SavingsWithdrawn,
)
from lendsave.domain.exceptions import (
    CurrencyMismatchError,
    InsufficientFundsError,
    InvalidInputError,
    InvalidStateError,
)
from lendsave.domain.value_objects import AccountNumber, Money, Number, to_decimal
from lendsave.utils.date_utils import utcnow

DEFAULT_INTEREST_RATE = Decimal("2.5")


class AccountStatus(str, Enum):
    ACTIVE = "active"
    FROZEN = "frozen"
    CLOSED = "closed"


@dataclass(eq=False)
class SavingsAccount(AggregateRoot):
    """
    A user's single cash balance.

    Invariants: balance >= 0; closed implies a zero balance; deposit and
    withdraw only while active. Closed accounts are never reopened.
    """

    id: str
    user_id: str
    account_number: AccountNumber
    balance: Money
    interest_rate: Decimal = DEFAULT_INTEREST_RATE  # annual percent
    status: AccountStatus = AccountStatus.ACTIVE
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    _events: List[DomainEvent] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self):
        if self.status is AccountStatus.CLOSED and not self.balance.is_zero():
            raise InvalidStateError("Closed account must have a zero balance")

    @classmethod
    def open(
        cls,
        user_id: str,
        account_number: AccountNumber,
        currency: str = "USD",
        interest_rate: Decimal = DEFAULT_INTEREST_RATE,
        account_id: Optional[str] = None,
    ) -> "SavingsAccount":
        """New active account with a zero balance; initial deposits go through deposit()"""
        if interest_rate < 0:
            raise InvalidInputError("Interest rate cannot be negative")
        return cls(
            id=account_id or str(uuid.uuid4()),
            user_id=user_id,
            account_number=account_number,
            balance=Money.zero(currency),
            interest_rate=Decimal(interest_rate),
        )

    def _require_active(self) -> None:
        if self.status is not AccountStatus.ACTIVE:
            raise InvalidStateError(f"Account is not active (status: {self.status.value})")

    def _require_valid_amount(self, amount: Money, action: str) -> None:
        if amount.currency != self.balance.currency:
            raise CurrencyMismatchError(f"{action} currency {amount.currency} differs from account currency")
        if not amount.is_positive():
            raise InvalidInputError(f"{action} amount must be greater than 0")

    def deposit(self, amount: Money, now: Optional[datetime] = None) -> None:
        self._require_active()
        self._require_valid_amount(amount, "Deposit")

        self.balance = self.balance.add(amount)
        self.updated_at = now or utcnow()
        self._record(SavingsDeposited(account_id=self.id, user_id=self.user_id, amount=amount))

    def withdraw(self, amount: Money, now: Optional[datetime] = None) -> None:
        self._require_active()
        self._require_valid_amount(amount, "Withdrawal")
        if amount > self.balance:
            raise InsufficientFundsError(f"Insufficient funds. Available: {self.balance}, Requested: {amount}")

        self.balance = self.balance.subtract(amount)
        self.updated_at = now or utcnow()
        self._record(SavingsWithdrawn(account_id=self.id, user_id=self.user_id, amount=amount))

    def refresh_balance(self, stored_balance: Money) -> None:
        """Adopt the balance read back after the storage-level atomic adjust"""
        self.balance = stored_balance

    def has_sufficient_balance(self, amount: Money) -> bool:
        return self.balance >= amount

    def freeze(self, now: Optional[datetime] = None) -> None:
        if self.status is AccountStatus.FROZEN:
            raise InvalidStateError("Account is already frozen")
        self._require_active()

        self.status = AccountStatus.FROZEN
        self.updated_at = now or utcnow()
        self._record(AccountFrozen(account_id=self.id, user_id=self.user_id))

    def unfreeze(self, now: Optional[datetime] = None) -> None:
        if self.status is not AccountStatus.FROZEN:
            raise InvalidStateError("Account is not frozen")

        self.status = AccountStatus.ACTIVE
        self.updated_at = now or utcnow()
        self._record(AccountUnfrozen(account_id=self.id, user_id=self.user_id))

    def close(self, now: Optional[datetime] = None) -> None:
        if self.status is AccountStatus.CLOSED:
            raise InvalidStateError("Account is already closed")
        if not self.balance.is_zero():
            raise InvalidStateError("Cannot close account with balance")

        self.status = AccountStatus.CLOSED
        self.updated_at = now or utcnow()
        self._record(AccountClosed(account_id=self.id, user_id=self.user_id))

    def calculate_interest(self, months: Number) -> Money:
        """Projected simple interest for a period; never changes the balance"""
        months = to_decimal(months)
        if months < 0:
            raise InvalidInputError("Months cannot be negative")
        return self.balance.multiply(self.interest_rate / 100 * months / 12)
