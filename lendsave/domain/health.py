"""Financial health scoring - composite 0-100 score from credit, savings, debt and payment history"""

import math
from decimal import Decimal
from typing import List, Sequence

from lendsave.domain.credit_request import CreditRequest, CreditStatus
from lendsave.domain.models import FinancialHealth, HealthComponents
from lendsave.domain.policy import credit_improvement_recommendations
from lendsave.domain.value_objects import CreditScore, Money

CREDIT_SCORE_WEIGHT = 0.35
SAVINGS_WEIGHT = 0.25
DEBT_RATIO_WEIGHT = 0.25
PAYMENT_HISTORY_WEIGHT = 0.15


def calculate_total_debt(active_credits: Sequence[CreditRequest], currency: str) -> Money:
    """Remaining simple-interest balance across active loans"""
    total = Money.zero(currency)
    for credit in active_credits:
        if credit.status is CreditStatus.ACTIVE:
            total = total.add(credit.calculate_remaining_balance())
    return total


def calculate_credit_score_component(credit_score: CreditScore) -> float:
    """Normalize 300-850 onto 0-100"""
    return max(0.0, min(100.0, (credit_score.score - 300) / 550 * 100))


def calculate_savings_component(savings_balance: Money, total_debt: Money) -> float:
    """
    Without debt: absolute savings bands ($10k / $5k / $1k / $500).
    With debt: savings-to-debt ratio bands (1.0 / 0.5 / 0.25 / 0.1).
    """
    savings = savings_balance.amount
    if total_debt.is_zero():
        if savings >= 10_000:
            return 100.0
        if savings >= 5_000:
            return 80.0
        if savings >= 1_000:
            return 60.0
        if savings >= 500:
            return 40.0
        return 20.0

    ratio = savings / total_debt.amount
    if ratio >= 1:
        return 100.0
    if ratio >= Decimal("0.5"):
        return 75.0
    if ratio >= Decimal("0.25"):
        return 50.0
    if ratio >= Decimal("0.1"):
        return 30.0
    return 10.0


def calculate_debt_ratio_component(total_debt: Money, assumed_monthly_income: Decimal) -> float:
    """Debt-to-annual-income proxy; lower is better"""
    if total_debt.is_zero():
        return 100.0

    debt_to_income = total_debt.amount / (assumed_monthly_income * 12)
    if debt_to_income <= Decimal("0.2"):
        return 100.0
    if debt_to_income <= Decimal("0.3"):
        return 80.0
    if debt_to_income <= Decimal("0.4"):
        return 60.0
    if debt_to_income <= Decimal("0.5"):
        return 40.0
    return 20.0


def calculate_payment_history_component(completed_credits: Sequence[CreditRequest]) -> float:
    """Share of completed loans finished by their due date; neutral 50 without history"""
    completed = [c for c in completed_credits if c.status is CreditStatus.COMPLETED]
    if not completed:
        return 50.0

    on_time = [
        c for c in completed
        if c.due_date is not None and c.completed_at is not None and c.completed_at <= c.due_date
    ]
    return len(on_time) / len(completed) * 100


def calculate_health_score(components: HealthComponents) -> int:
    """Weighted average rounded half up"""
    weighted = (
        components.credit_score * CREDIT_SCORE_WEIGHT
        + components.savings * SAVINGS_WEIGHT
        + components.debt_ratio * DEBT_RATIO_WEIGHT
        + components.payment_history * PAYMENT_HISTORY_WEIGHT
    )
    return int(math.floor(weighted + 0.5))


def determine_health_status(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 65:
        return "good"
    if score >= 50:
        return "fair"
    if score >= 35:
        return "poor"
    return "critical"


def generate_recommendations(
    credit_score: CreditScore,
    savings_balance: Money,
    total_debt: Money,
    health_score: int,
) -> List[str]:
    recommendations = []

    if credit_score.score < 700:
        recommendations.append("Consider improving your credit score by making timely payments")

    if savings_balance.amount < 1000:
        recommendations.append("Build an emergency fund - aim for at least 3 months of expenses")

    if total_debt.is_positive() and savings_balance.amount < total_debt.amount * Decimal("0.5"):
        recommendations.append("Focus on building savings while managing debt")

    if health_score < 50:
        recommendations.append("Create a budget and track your spending")
        recommendations.append("Consider consulting with a financial advisor")

    if not recommendations:
        recommendations.append("Keep up the good work! Maintain your current financial habits")

    for tip in credit_improvement_recommendations(credit_score):
        if tip not in recommendations:
            recommendations.append(tip)

    return recommendations


def assess_financial_health(
    credit_score: CreditScore,
    savings_balance: Money,
    credits: Sequence[CreditRequest],
    assumed_monthly_income: Decimal,
) -> FinancialHealth:
    """
    Main entry point: score a user's finances.

    Weights: credit score 35%, savings 25%, debt ratio 25%, payment history 15%.
    """
    total_debt = calculate_total_debt(credits, savings_balance.currency)

    components = HealthComponents(
        credit_score=calculate_credit_score_component(credit_score),
        savings=calculate_savings_component(savings_balance, total_debt),
        debt_ratio=calculate_debt_ratio_component(total_debt, assumed_monthly_income),
        payment_history=calculate_payment_history_component(credits),
    )
    score = calculate_health_score(components)

    return FinancialHealth(
        score=score,
        status=determine_health_status(score),
        components=components,
        credit_score=credit_score.score,
        savings_balance=savings_balance,
        total_debt=total_debt,
        recommendations=generate_recommendations(credit_score, savings_balance, total_debt, score),
    )
