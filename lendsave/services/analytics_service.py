"""Read-only analytics - financial health and repayment plan quotes"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import sessionmaker
from lendsave.domain.calculator import build_repayment_plan
from lendsave.domain.exceptions import NotFoundError
from lendsave.domain.health import assess_financial_health
from lendsave.domain.models import FinancialHealth, RepaymentPlan
from lendsave.domain.value_objects import Money, Number
from lendsave.infrastructure.database.unit_of_work import UnitOfWork


class AnalyticsService:
    def __init__(
        self,
        session_factory: sessionmaker,
        assumed_monthly_income: Decimal = Decimal("5000"),
        currency: str = "USD",
        logger: Optional[logging.Logger] = None,
    ):
        self.session_factory = session_factory
        self.assumed_monthly_income = assumed_monthly_income
        self.currency = currency
        self.logger = logger or logging.getLogger(__name__)

    def get_financial_health(self, user_id: str) -> FinancialHealth:
        """
        Composite 0-100 score from credit score, savings, debt and payment history.

        Users without a savings account are scored with a zero balance.
        """
        with UnitOfWork(self.session_factory) as uow:
            credit_score = uow.customers.get_credit_score(user_id)
            if credit_score is None:
                raise NotFoundError(f"User {user_id} not found")
            account = uow.savings_accounts.get_by_user(user_id)
            credits = uow.credit_requests.find_by_user(user_id)

        savings_balance = account.balance if account is not None else Money.zero(self.currency)
        health = assess_financial_health(credit_score, savings_balance, credits, self.assumed_monthly_income)

        self.logger.info(
            "Financial health assessed",
            extra={"user_id": user_id, "health_score": health.score, "health_status": health.status},
        )
        return health

    def calculate_repayment_plan(
        self,
        principal: Money | Number,
        interest_rate_percent: Number,
        term_months: int,
    ) -> RepaymentPlan:
        """Illustrative amortized quote; repayment accounting uses simple interest instead"""
        return build_repayment_plan(Money.of(principal, self.currency), interest_rate_percent, term_months)
