"""Credit score tiers - the single table behind categories and policy interest rates"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Sequence


class CreditScoreCategory(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    VERY_POOR = "very_poor"


@dataclass(frozen=True)
class RateTier:
    """Scores at or above min_score (and below the next tier) get this rate"""

    min_score: int
    annual_rate: Decimal  # percent
    category: CreditScoreCategory


# Ordered highest threshold first; the last row must catch every valid score.
DEFAULT_RATE_TIERS: tuple[RateTier, ...] = (
    RateTier(750, Decimal("5.0"), CreditScoreCategory.EXCELLENT),
    RateTier(700, Decimal("7.5"), CreditScoreCategory.GOOD),
    RateTier(650, Decimal("10.0"), CreditScoreCategory.FAIR),
    RateTier(600, Decimal("15.0"), CreditScoreCategory.POOR),
    RateTier(0, Decimal("20.0"), CreditScoreCategory.VERY_POOR),
)


def tier_for_score(score: int, tiers: Sequence[RateTier] = DEFAULT_RATE_TIERS) -> RateTier:
    """Return the first tier whose threshold the score meets"""
    for tier in sorted(tiers, key=lambda t: t.min_score, reverse=True):
        if score >= tier.min_score:
            return tier
    raise ValueError(f"No rate tier covers score {score}")
