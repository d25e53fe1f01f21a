"""Credit policy - auto-approval, minimum score and request bounds owned by the service layer"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from lendsave.domain.exceptions import PolicyViolationError
from lendsave.domain.pricing import DEFAULT_RATE_TIERS, RateTier
from lendsave.domain.value_objects import CreditScore, Money


class PolicyDecision(str, Enum):
    AUTO_APPROVE = "auto_approve"
    MANUAL_REVIEW = "manual_review"
    AUTO_REJECT = "auto_reject"


@dataclass(frozen=True)
class CreditPolicy:
    """
    Thresholds applied when a request is created.

    Score bands:
    - >= auto_approve_score:                approve immediately
    - >= minimum_score and below that:      leave pending for manual review
    - below minimum_score:                  reject immediately with rejection_reason
    """

    auto_approve_score: int = 750
    minimum_score: int = 600
    min_requested_amount: Decimal = Decimal("100")
    max_requested_amount: Decimal = Decimal("100000")
    min_term_months: int = 1
    max_term_months: int = 60
    rejection_reason: str = "Credit score below minimum requirement"
    rate_tiers: tuple[RateTier, ...] = DEFAULT_RATE_TIERS

    def evaluate(self, credit_score: CreditScore) -> PolicyDecision:
        if credit_score.meets_threshold(self.auto_approve_score):
            return PolicyDecision.AUTO_APPROVE
        if credit_score.meets_threshold(self.minimum_score):
            return PolicyDecision.MANUAL_REVIEW
        return PolicyDecision.AUTO_REJECT

    def validate_request(self, requested_amount: Money, term_months: int) -> None:
        if not self.min_requested_amount <= requested_amount.amount <= self.max_requested_amount:
            raise PolicyViolationError(
                f"Requested amount must be between {self.min_requested_amount} and {self.max_requested_amount}"
            )
        if not self.min_term_months <= term_months <= self.max_term_months:
            raise PolicyViolationError(
                f"Term must be between {self.min_term_months} and {self.max_term_months} months"
            )

    def validate_approved_amount(self, requested_amount: Money, approved_amount: Optional[Money]) -> None:
        if approved_amount is not None and approved_amount > requested_amount:
            raise PolicyViolationError("Approved amount cannot exceed requested amount")


def credit_improvement_recommendations(credit_score: CreditScore) -> List[str]:
    """Score-band specific tips; excellent scores get none"""
    if credit_score.is_very_poor() or credit_score.is_poor():
        return [
            "Make timely payments on all debts",
            "Keep credit utilization below 30%",
            "Avoid opening new credit accounts",
        ]
    if credit_score.is_fair():
        return ["Continue making on-time payments", "Reduce outstanding debt balances"]
    if credit_score.is_good():
        return ["Maintain good payment history", "Keep accounts in good standing"]
    return []
