"""SQLAlchemy ORM models for credit requests, savings accounts and their ledgers"""

import uuid
from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Customer(Base):
    """Minimal user profile the core reads (credit score); owned by the users module"""

    __tablename__ = "customer"

    id = Column(String(36), primary_key=True, default=_new_id)
    credit_score = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class CreditRequestRecord(Base):
    """One customer's loan lifecycle"""

    __tablename__ = "credit_request"
    __table_args__ = (
        CheckConstraint("total_repaid_cents >= 0", name="ck_credit_total_repaid_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("customer.id", ondelete="CASCADE"), nullable=False, index=True)
    currency = Column(String(3), nullable=False, default="USD")
    requested_cents = Column(BigInteger, nullable=False)
    approved_cents = Column(BigInteger, nullable=True)
    total_repaid_cents = Column(BigInteger, nullable=False, default=0)  # Only changed by atomic increment
    interest_rate = Column(Numeric(5, 2), nullable=False)
    term_months = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="pending", index=True)
    purpose = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    approved_by = Column(String(64), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    repayments = relationship("CreditRepaymentRecord", back_populates="credit_request", cascade="all, delete-orphan")


class CreditRepaymentRecord(Base):
    """Append-only repayment ledger row"""

    __tablename__ = "credit_repayment"

    id = Column(String(36), primary_key=True, default=_new_id)
    credit_request_id = Column(
        String(36), ForeignKey("credit_request.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount_cents = Column(BigInteger, nullable=False)
    total_repaid_after_cents = Column(BigInteger, nullable=False)
    status = Column(String(16), nullable=False, default="completed")
    reference = Column(String(64), nullable=False, unique=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    credit_request = relationship("CreditRequestRecord", back_populates="repayments")


class SavingsAccountRecord(Base):
    """One savings account per user"""

    __tablename__ = "savings_account"
    __table_args__ = (
        CheckConstraint("balance_cents >= 0", name="ck_savings_balance_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("customer.id", ondelete="CASCADE"), nullable=False, unique=True)
    account_number = Column(String(32), nullable=False, unique=True)
    account_prefix = Column(String(8), nullable=False, default="SAV")
    currency = Column(String(3), nullable=False, default="USD")
    balance_cents = Column(BigInteger, nullable=False, default=0)  # Only changed by atomic increment
    interest_rate = Column(Numeric(5, 2), nullable=False)
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    transactions = relationship("SavingsTransactionRecord", back_populates="account", cascade="all, delete-orphan")


class SavingsTransactionRecord(Base):
    """Append-only balance ledger row"""

    __tablename__ = "savings_transaction"

    id = Column(String(36), primary_key=True, default=_new_id)
    savings_account_id = Column(
        String(36), ForeignKey("savings_account.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type = Column(String(32), nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    balance_after_cents = Column(BigInteger, nullable=False)
    status = Column(String(16), nullable=False, default="completed")
    reference = Column(String(64), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    account = relationship("SavingsAccountRecord", back_populates="transactions")
