"""Savings use cases - account lifecycle and ledgered balance mutation"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from lendsave.domain.exceptions import NotFoundError, PolicyViolationError
from lendsave.domain.models import SavingsTransaction, TransactionType
from lendsave.domain.savings_account import DEFAULT_INTEREST_RATE, AccountStatus, SavingsAccount
from lendsave.domain.value_objects import AccountNumber, Money, Number
from lendsave.infrastructure.database.unit_of_work import UnitOfWork
from lendsave.infrastructure.messaging.event_bus import EventBus
from lendsave.infrastructure.observability.logging import log_money_movement
from lendsave.infrastructure.observability.metrics import record_money_movement
from lendsave.utils.date_utils import utcnow


class SavingsService:
    """
    Operations on savings accounts.

    Balances only move through SavingsAccountRepository.adjust_balance, and
    each move writes one ledger row whose balance_after is the value read back
    in the same transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        event_bus: EventBus,
        currency: str = "USD",
        interest_rate: Decimal = DEFAULT_INTEREST_RATE,
        account_number_prefix: str = "SAV",
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.event_bus = event_bus
        self.currency = currency
        self.interest_rate = interest_rate
        self.account_number_prefix = account_number_prefix
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def _unit_of_work(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory)

    def _apply_deposit(
        self,
        uow: UnitOfWork,
        account: SavingsAccount,
        amount: Money,
        type: TransactionType,
        description: Optional[str],
    ) -> SavingsTransaction:
        account.deposit(amount, now=self.clock())
        balance_after = uow.savings_accounts.adjust_balance(account, amount)
        account.refresh_balance(balance_after)
        return uow.transactions.record(account.id, type, amount, balance_after, description)

    def _apply_withdrawal(
        self,
        uow: UnitOfWork,
        account: SavingsAccount,
        amount: Money,
        description: Optional[str],
    ) -> SavingsTransaction:
        account.withdraw(amount, now=self.clock())
        balance_after = uow.savings_accounts.adjust_balance(account, amount, debit=True)
        account.refresh_balance(balance_after)
        return uow.transactions.record(account.id, TransactionType.WITHDRAWAL, amount, balance_after, description)

    def _committed_movement(self, user_id: str, transaction: SavingsTransaction) -> None:
        record_money_movement(transaction.type.value, transaction.amount.to_cents())
        log_money_movement(
            self.logger,
            transaction.type.value,
            user_id,
            transaction.amount.to_cents(),
            transaction.balance_after.to_cents(),
            transaction.reference,
        )

    def create_savings_account(
        self,
        user_id: str,
        initial_deposit: Money | Number | None = None,
    ) -> SavingsAccount:
        """
        Open the user's one savings account.

        A non-zero initial deposit goes through the regular deposit path in the
        same transaction, so it gets its own ledger row.
        """
        deposit = Money.of(initial_deposit, self.currency) if initial_deposit is not None else None

        with self._unit_of_work() as uow:
            if not uow.customers.exists(user_id):
                raise NotFoundError(f"User {user_id} not found")
            if uow.savings_accounts.get_by_user(user_id) is not None:
                raise PolicyViolationError("User already has a savings account")

            account = SavingsAccount.open(
                user_id,
                AccountNumber.generate(self.account_number_prefix),
                currency=self.currency,
                interest_rate=self.interest_rate,
            )
            try:
                uow.savings_accounts.add(account)
            except IntegrityError as e:
                if "user_id" not in str(e.orig):
                    raise
                raise PolicyViolationError("User already has a savings account") from e

            transaction = None
            if deposit is not None and not deposit.is_zero():
                transaction = self._apply_deposit(
                    uow, account, deposit, TransactionType.DEPOSIT, "Initial deposit"
                )

            uow.track(account)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self.logger.info(
            "Savings account opened",
            extra={"user_id": user_id, "account_id": account.id, "account_number": str(account.account_number)},
        )
        if transaction is not None:
            self._committed_movement(user_id, transaction)
        return account

    def get_account(self, user_id: str) -> SavingsAccount:
        with self._unit_of_work() as uow:
            return uow.savings_accounts.get_by_user_or_raise(user_id)

    def list_transactions(self, user_id: str, limit: int = 50) -> List[SavingsTransaction]:
        """Most recent first"""
        with self._unit_of_work() as uow:
            account = uow.savings_accounts.get_by_user_or_raise(user_id)
            return uow.transactions.list_by_account(account.id, account.balance.currency, limit)

    def deposit(
        self,
        user_id: str,
        amount: Money | Number,
        description: Optional[str] = None,
    ) -> SavingsTransaction:
        amount = Money.of(amount, self.currency)
        with self._unit_of_work() as uow:
            account = uow.savings_accounts.get_by_user_or_raise(user_id)
            transaction = self._apply_deposit(uow, account, amount, TransactionType.DEPOSIT, description)
            uow.track(account)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self._committed_movement(user_id, transaction)
        return transaction

    def withdraw(
        self,
        user_id: str,
        amount: Money | Number,
        description: Optional[str] = None,
    ) -> SavingsTransaction:
        amount = Money.of(amount, self.currency)
        with self._unit_of_work() as uow:
            account = uow.savings_accounts.get_by_user_or_raise(user_id)
            transaction = self._apply_withdrawal(uow, account, amount, description)
            uow.track(account)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self._committed_movement(user_id, transaction)
        return transaction

    def credit_interest(self, user_id: str, months: Number) -> Optional[SavingsTransaction]:
        """Credit projected interest for the period as a deposit; nothing to credit returns None"""
        with self._unit_of_work() as uow:
            account = uow.savings_accounts.get_by_user_or_raise(user_id)
            interest = account.calculate_interest(months)
            if interest.is_zero():
                return None

            transaction = self._apply_deposit(
                uow, account, interest, TransactionType.INTEREST, f"Interest for {months} month(s)"
            )
            uow.track(account)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self._committed_movement(user_id, transaction)
        return transaction

    def freeze_account(self, user_id: str) -> SavingsAccount:
        with self._unit_of_work() as uow:
            account = uow.savings_accounts.get_by_user_or_raise(user_id)
            account.freeze(now=self.clock())
            uow.savings_accounts.save(account, expected_status=AccountStatus.ACTIVE)
            uow.track(account)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self.logger.info("Savings account frozen", extra={"user_id": user_id, "account_id": account.id})
        return account

    def unfreeze_account(self, user_id: str) -> SavingsAccount:
        with self._unit_of_work() as uow:
            account = uow.savings_accounts.get_by_user_or_raise(user_id)
            account.unfreeze(now=self.clock())
            uow.savings_accounts.save(account, expected_status=AccountStatus.FROZEN)
            uow.track(account)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self.logger.info("Savings account unfrozen", extra={"user_id": user_id, "account_id": account.id})
        return account

    def close_account(self, user_id: str) -> SavingsAccount:
        """Only an empty account closes; a concurrent deposit makes the guarded save fail"""
        with self._unit_of_work() as uow:
            account = uow.savings_accounts.get_by_user_or_raise(user_id)
            previous_status = account.status
            account.close(now=self.clock())
            uow.savings_accounts.save(account, expected_status=previous_status, require_zero_balance=True)
            uow.track(account)
            uow.commit()

        self.event_bus.publish(uow.committed_events)
        self.logger.info("Savings account closed", extra={"user_id": user_id, "account_id": account.id})
        return account
