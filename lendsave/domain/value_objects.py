"""Immutable value objects: Money, CreditScore, AccountNumber"""

import secrets
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Sequence

from lendsave.domain.exceptions import CurrencyMismatchError, InsufficientFundsError, InvalidInputError
from lendsave.domain.pricing import DEFAULT_RATE_TIERS, CreditScoreCategory, RateTier, tier_for_score

CENT = Decimal("0.01")

Number = Decimal | int | float | str


def to_decimal(value: Number) -> Decimal:
    """Convert user input to Decimal without binary float artifacts"""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidInputError(f"Not a number: {value!r}") from e


@dataclass(frozen=True)
class Money:
    """
    Non-negative monetary amount rounded to cents, tagged with a currency.

    Debt is never represented as negative money: subtracting past zero fails.
    Every operation returns a new value.
    """

    amount: Decimal
    currency: str = "USD"

    def __post_init__(self):
        amount = to_decimal(self.amount)
        if not amount.is_finite():
            raise InvalidInputError(f"Money amount must be finite, got {amount}")
        if amount < 0:
            raise InvalidInputError("Money amount cannot be negative")
        object.__setattr__(self, "amount", amount.quantize(CENT, rounding=ROUND_HALF_UP))

    @classmethod
    def zero(cls, currency: str = "USD") -> "Money":
        return cls(Decimal("0"), currency)

    @classmethod
    def from_cents(cls, cents: int, currency: str = "USD") -> "Money":
        return cls(Decimal(cents) / 100, currency)

    @classmethod
    def of(cls, value: "Money | Number", currency: str = "USD") -> "Money":
        """Accept caller input that is either Money already or a plain number"""
        if isinstance(value, Money):
            return value
        return cls(to_decimal(value), currency)

    def to_cents(self) -> int:
        return int(self.amount * 100)

    def _check_currency(self, other: "Money", action: str) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(
                f"Cannot {action} money with different currencies ({self.currency}, {other.currency})"
            )

    def add(self, other: "Money") -> "Money":
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._check_currency(other, "subtract")
        result = self.amount - other.amount
        if result < 0:
            raise InsufficientFundsError(f"Cannot subtract {other} from {self}")
        return Money(result, self.currency)

    def multiply(self, factor: Number) -> "Money":
        return Money(self.amount * to_decimal(factor), self.currency)

    def is_zero(self) -> bool:
        return self.amount == 0

    def is_positive(self) -> bool:
        return self.amount > 0

    __add__ = add
    __sub__ = subtract
    __mul__ = multiply

    def __lt__(self, other: "Money") -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._check_currency(other, "compare")
        return self.amount <= other.amount

    def __gt__(self, other: "Money") -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def __ge__(self, other: "Money") -> bool:
        self._check_currency(other, "compare")
        return self.amount >= other.amount

    def __str__(self) -> str:
        return f"{self.currency} {self.amount:.2f}"


@dataclass(frozen=True)
class CreditScore:
    """Bureau-style credit score bounded to [300, 850]"""

    MIN_SCORE = 300
    MAX_SCORE = 850

    score: int

    def __post_init__(self):
        if not isinstance(self.score, int) or isinstance(self.score, bool):
            raise InvalidInputError(f"Credit score must be an integer, got {self.score!r}")
        if not self.MIN_SCORE <= self.score <= self.MAX_SCORE:
            raise InvalidInputError(f"Credit score must be between {self.MIN_SCORE} and {self.MAX_SCORE}")

    @classmethod
    def of(cls, value: Number) -> "CreditScore":
        """Validated factory; fractional scores are rounded half up"""
        rounded = to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return cls(int(rounded))

    def tier(self, tiers: Sequence[RateTier] = DEFAULT_RATE_TIERS) -> RateTier:
        return tier_for_score(self.score, tiers)

    @property
    def category(self) -> CreditScoreCategory:
        return self.tier().category

    def policy_interest_rate(self, tiers: Sequence[RateTier] = DEFAULT_RATE_TIERS) -> Decimal:
        return self.tier(tiers).annual_rate

    def meets_threshold(self, threshold: int) -> bool:
        return self.score >= threshold

    def is_excellent(self) -> bool:
        return self.category is CreditScoreCategory.EXCELLENT

    def is_good(self) -> bool:
        return self.category is CreditScoreCategory.GOOD

    def is_fair(self) -> bool:
        return self.category is CreditScoreCategory.FAIR

    def is_poor(self) -> bool:
        return self.category is CreditScoreCategory.POOR

    def is_very_poor(self) -> bool:
        return self.category is CreditScoreCategory.VERY_POOR


@dataclass(frozen=True)
class AccountNumber:
    """Savings account identifier: prefix followed by digits, at least 8 characters"""

    MIN_LENGTH = 8

    value: str
    prefix: str = "SAV"

    def __post_init__(self):
        if not self.value or not self.value.strip():
            raise InvalidInputError("Account number cannot be empty")
        if not self.value.startswith(self.prefix):
            raise InvalidInputError(f"Account number must start with {self.prefix}")
        if len(self.value) < self.MIN_LENGTH:
            raise InvalidInputError(f"Account number must be at least {self.MIN_LENGTH} characters")

    @classmethod
    def generate(cls, prefix: str = "SAV") -> "AccountNumber":
        """prefix + last 8 digits of the millisecond clock + 4 random digits"""
        timestamp = str(int(time.time() * 1000))[-8:]
        suffix = f"{secrets.randbelow(10_000):04d}"
        return cls(f"{prefix}{timestamp}{suffix}", prefix)

    def __str__(self) -> str:
        return self.value
