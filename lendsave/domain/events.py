"""Domain events - immutable records queued on aggregates and published after commit"""

import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Dict, List

from lendsave.domain.value_objects import Money
from lendsave.utils.date_utils import utcnow


def _serialize(value: Any) -> Any:
    if isinstance(value, Money):
        return {"amount": str(value.amount), "currency": value.currency}
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Base event: type tag, occurrence time and unique id plus a subclass payload"""

    event_type: ClassVar[str] = "DomainEvent"

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_on: datetime = field(default_factory=utcnow)

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready representation"""
        payload: Dict[str, Any] = {"event_type": self.event_type}
        for f in fields(self):
            payload[f.name] = _serialize(getattr(self, f.name))
        return payload


# Credit request events


@dataclass(frozen=True, kw_only=True)
class CreditRequestSubmitted(DomainEvent):
    event_type: ClassVar[str] = "CreditRequestSubmitted"

    credit_request_id: str
    user_id: str
    requested_amount: Money


@dataclass(frozen=True, kw_only=True)
class CreditRequestApproved(DomainEvent):
    event_type: ClassVar[str] = "CreditRequestApproved"

    credit_request_id: str
    user_id: str
    approved_amount: Money
    approved_by: str


@dataclass(frozen=True, kw_only=True)
class CreditRequestRejected(DomainEvent):
    event_type: ClassVar[str] = "CreditRequestRejected"

    credit_request_id: str
    user_id: str
    reason: str


@dataclass(frozen=True, kw_only=True)
class CreditRepaymentProcessed(DomainEvent):
    event_type: ClassVar[str] = "CreditRepaymentProcessed"

    credit_request_id: str
    user_id: str
    amount: Money


@dataclass(frozen=True, kw_only=True)
class CreditRequestCompleted(DomainEvent):
    event_type: ClassVar[str] = "CreditRequestCompleted"

    credit_request_id: str
    user_id: str


@dataclass(frozen=True, kw_only=True)
class CreditRequestDefaulted(DomainEvent):
    event_type: ClassVar[str] = "CreditRequestDefaulted"

    credit_request_id: str
    user_id: str
    outstanding: Money


# Savings account events


@dataclass(frozen=True, kw_only=True)
class SavingsDeposited(DomainEvent):
    event_type: ClassVar[str] = "SavingsDeposited"

    account_id: str
    user_id: str
    amount: Money


@dataclass(frozen=True, kw_only=True)
class SavingsWithdrawn(DomainEvent):
    event_type: ClassVar[str] = "SavingsWithdrawn"

    account_id: str
    user_id: str
    amount: Money


@dataclass(frozen=True, kw_only=True)
class AccountFrozen(DomainEvent):
    event_type: ClassVar[str] = "AccountFrozen"

    account_id: str
    user_id: str


@dataclass(frozen=True, kw_only=True)
class AccountUnfrozen(DomainEvent):
    event_type: ClassVar[str] = "AccountUnfrozen"

    account_id: str
    user_id: str


@dataclass(frozen=True, kw_only=True)
class AccountClosed(DomainEvent):
    event_type: ClassVar[str] = "AccountClosed"

    account_id: str
    user_id: str


class AggregateRoot:
    """Pending event queue shared by aggregates; the caller drains it after commit"""

    _events: List[DomainEvent]

    def _record(self, event: DomainEvent) -> None:
        self._events.append(event)

    @property
    def domain_events(self) -> tuple[DomainEvent, ...]:
        return tuple(self._events)

    def pull_events(self) -> List[DomainEvent]:
        """Return queued events and clear the queue"""
        events = list(self._events)
        self._events.clear()
        return events
