"""Domain models - pure Python dataclasses for ledger rows and computed results"""

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Generic, List, Optional, TypeVar

from lendsave.domain.value_objects import Money

T = TypeVar("T")


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    CREDIT_REPAYMENT = "credit_repayment"
    INTEREST = "interest"


class LedgerStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


def generate_reference(prefix: str) -> str:
    """Human-traceable ledger reference, e.g. TXN-1699999999999-042137"""
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.randbelow(1_000_000):06d}"


@dataclass
class SavingsTransaction:
    """Append-only ledger row for a savings balance change"""

    id: str
    savings_account_id: str
    type: TransactionType
    amount: Money
    balance_after: Money  # Read back inside the same DB transaction as the balance update
    status: LedgerStatus
    reference: str
    description: Optional[str]
    created_at: datetime


@dataclass
class CreditRepayment:
    """Append-only ledger row for a repayment against a credit request"""

    id: str
    credit_request_id: str
    amount: Money
    total_repaid_after: Money
    status: LedgerStatus
    reference: str
    notes: Optional[str]
    created_at: datetime


@dataclass
class PaymentScheduleItem:
    """Single month in an amortization schedule"""

    month: int
    payment: Money
    principal: Money
    interest: Money
    remaining_balance: Money


@dataclass
class RepaymentPlan:
    """Illustrative amortized quote (not used for billing)"""

    principal: Money
    interest_rate: Decimal
    term_months: int
    monthly_payment: Money
    total_amount: Money
    total_interest: Money
    schedule: List[PaymentScheduleItem]


@dataclass
class HealthComponents:
    """Per-factor scores (0-100) behind the composite financial health score"""

    credit_score: float
    savings: float
    debt_ratio: float
    payment_history: float


@dataclass
class FinancialHealth:
    """Output of financial health assessment"""

    score: int
    status: str  # excellent | good | fair | poor | critical
    components: HealthComponents
    credit_score: int
    savings_balance: Money
    total_debt: Money
    recommendations: List[str]


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


@dataclass
class CreditStats:
    total: int
    pending: int
    rejected: int
    active: int
    completed: int
    defaulted: int
    total_disbursed: Money


@dataclass
class BulkItemFailure:
    item_id: str
    error_kind: str
    reason: str


@dataclass
class BulkOperationResult(Generic[T]):
    """Per-item outcome of a batch operation; one failure never aborts the rest"""

    successful: List[T] = field(default_factory=list)
    failed: List[BulkItemFailure] = field(default_factory=list)

    @property
    def summary(self) -> str:
        return f"{len(self.successful)} succeeded, {len(self.failed)} failed"
