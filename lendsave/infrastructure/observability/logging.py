"""Structured JSON logging for production observability"""

import logging
import sys
from typing import Any, Dict, Optional

from pythonjsonlogger.json import JsonFormatter
from lendsave.config import settings
from lendsave.utils.date_utils import utcnow


class CustomJsonFormatter(JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = utcnow().isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level or settings.log_level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_credit_decision(
    logger: logging.Logger,
    credit_request_id: str,
    user_id: str,
    outcome: str,
    automatic: bool,
    amount_cents: int,
    actor: Optional[str] = None,
) -> None:
    """Log structured credit decision outcome for analysis"""
    logger.info(
        "Credit decision recorded",
        extra={
            "credit_request_id": credit_request_id,
            "user_id": user_id,
            "step": "credit_decision",
            "decision_outcome": outcome,
            "decision_mode": "auto" if automatic else "manual",
            "amount_cents": amount_cents,
            "actor": actor,
        },
    )


def log_money_movement(
    logger: logging.Logger,
    kind: str,
    user_id: str,
    amount_cents: int,
    post_state_cents: int,
    reference: str,
) -> None:
    """Log a committed balance or repayment mutation with its recorded post-state"""
    logger.info(
        "Money movement committed",
        extra={
            "step": "money_movement",
            "movement_kind": kind,
            "user_id": user_id,
            "amount_cents": amount_cents,
            "post_state_cents": post_state_cents,
            "reference": reference,
        },
    )


def log_bulk_outcome(logger: logging.Logger, operation: str, succeeded: int, failed: int) -> None:
    level = logging.WARNING if failed else logging.INFO
    logger.log(
        level,
        "Bulk operation finished",
        extra={
            "step": "bulk_operation",
            "operation": operation,
            "succeeded": succeeded,
            "failed": failed,
        },
    )
