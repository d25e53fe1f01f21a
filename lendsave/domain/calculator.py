"""Amortization calculator - monthly payment, interest totals and payment schedules"""

from decimal import Decimal
from typing import List, Sequence

from lendsave.domain.exceptions import InvalidInputError
from lendsave.domain.models import PaymentScheduleItem, RepaymentPlan
from lendsave.domain.pricing import DEFAULT_RATE_TIERS, RateTier, tier_for_score
from lendsave.domain.value_objects import CreditScore, Money, Number, to_decimal

MINIMUM_REPAYMENT_FLOOR = Decimal("100")
MINIMUM_REPAYMENT_RATE = Decimal("0.01")


def _validate_terms(annual_rate_percent: Decimal, term_months: int) -> None:
    if term_months < 1:
        raise InvalidInputError("Term must be at least 1 month")
    if annual_rate_percent < 0:
        raise InvalidInputError("Interest rate cannot be negative")


def _monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    return annual_rate_percent / 100 / 12


def calculate_interest_rate(
    credit_score: CreditScore | int,
    tiers: Sequence[RateTier] = DEFAULT_RATE_TIERS,
) -> Decimal:
    """
    Policy annual rate (percent) for a credit score.

    Default tiers: >=750 -> 5.0, >=700 -> 7.5, >=650 -> 10.0, >=600 -> 15.0, else 20.0
    """
    score = credit_score if isinstance(credit_score, CreditScore) else CreditScore.of(credit_score)
    return tier_for_score(score.score, tiers).annual_rate


def calculate_monthly_payment(principal: Money, annual_rate_percent: Number, term_months: int) -> Money:
    """
    Standard amortization: P * r * (1+r)^n / ((1+r)^n - 1), r = annual / 100 / 12.

    A zero rate degrades to principal / n.
    """
    rate = to_decimal(annual_rate_percent)
    _validate_terms(rate, term_months)

    r = _monthly_rate(rate)
    if r == 0:
        return Money(principal.amount / term_months, principal.currency)

    growth = (1 + r) ** term_months
    payment = principal.amount * r * growth / (growth - 1)
    return Money(payment, principal.currency)


def calculate_total_interest(principal: Money, annual_rate_percent: Number, term_months: int) -> Money:
    """monthly_payment * term - principal, floored at zero when cent rounding undershoots"""
    total = calculate_monthly_payment(principal, annual_rate_percent, term_months).multiply(term_months)
    if total <= principal:
        return Money.zero(principal.currency)
    return total.subtract(principal)


def generate_payment_schedule(
    principal: Money,
    annual_rate_percent: Number,
    term_months: int,
) -> List[PaymentScheduleItem]:
    """
    Amortize month by month.

    Interest is charged on the remaining balance of each month, not on the
    original principal. The final month absorbs cent rounding so its remaining
    balance is exactly zero and the principal column sums to the principal.
    """
    rate = to_decimal(annual_rate_percent)
    monthly_payment = calculate_monthly_payment(principal, rate, term_months)
    r = _monthly_rate(rate)
    currency = principal.currency

    schedule = []
    remaining = principal
    for month in range(1, term_months + 1):
        interest = Money(remaining.amount * r, currency)

        if month == term_months:
            principal_part = remaining
            payment = principal_part.add(interest)
        else:
            payment = monthly_payment
            principal_part = Money(max(payment.amount - interest.amount, Decimal("0")), currency)
            if principal_part > remaining:
                principal_part = remaining

        remaining = remaining.subtract(principal_part)
        schedule.append(
            PaymentScheduleItem(
                month=month,
                payment=payment,
                principal=principal_part,
                interest=interest,
                remaining_balance=remaining,
            )
        )

    return schedule


def calculate_minimum_repayment(principal: Money) -> Money:
    """1% of principal or 100, whichever is higher"""
    one_percent = principal.multiply(MINIMUM_REPAYMENT_RATE)
    floor = Money(MINIMUM_REPAYMENT_FLOOR, principal.currency)
    return one_percent if one_percent > floor else floor


def build_repayment_plan(principal: Money, annual_rate_percent: Number, term_months: int) -> RepaymentPlan:
    """Illustrative quote combining payment, totals and the full schedule"""
    rate = to_decimal(annual_rate_percent)
    monthly_payment = calculate_monthly_payment(principal, rate, term_months)
    total_interest = calculate_total_interest(principal, rate, term_months)

    return RepaymentPlan(
        principal=principal,
        interest_rate=rate,
        term_months=term_months,
        monthly_payment=monthly_payment,
        total_amount=principal.add(total_interest),
        total_interest=total_interest,
        schedule=generate_payment_schedule(principal, rate, term_months),
    )
