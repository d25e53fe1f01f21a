"""Unit tests for structured logging helpers and metric bucketing"""

import json
import logging

import pytest
from lendsave.config import settings
from lendsave.infrastructure.observability.logging import (
    CustomJsonFormatter,
    log_bulk_outcome,
    log_credit_decision,
    log_money_movement,
)
from lendsave.infrastructure.observability.metrics import amount_bucket


def test_json_formatter_adds_service_metadata():
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    record = logging.LogRecord("lendsave.test", logging.INFO, __file__, 1, "Hello", None, None)
    record.user_id = "user-1"

    output = json.loads(formatter.format(record))

    assert output["message"] == "Hello"
    assert output["level"] == "INFO"
    assert output["service"] == settings.service_name
    assert output["user_id"] == "user-1"
    assert "timestamp" in output


def test_log_helpers_emit_structured_extra(caplog):
    logger = logging.getLogger("lendsave.test.helpers")

    with caplog.at_level(logging.INFO, logger="lendsave.test.helpers"):
        log_credit_decision(logger, "c1", "u1", "approved", True, 500_000, actor="system")
        log_money_movement(logger, "deposit", "u1", 5_000, 15_000, "TXN-1")
        log_bulk_outcome(logger, "bulk_approve", 3, 1)

    decision, movement, bulk = caplog.records
    assert decision.decision_outcome == "approved"
    assert decision.decision_mode == "auto"
    assert movement.post_state_cents == 15_000
    assert bulk.levelno == logging.WARNING
    assert bulk.failed == 1


@pytest.mark.parametrize(
    "cents,bucket",
    [(0, "<$1k"), (99_999, "<$1k"), (100_000, "$1k-$5k"), (500_000, "$5k-$25k"), (2_500_000, "$25k+")],
)
def test_amount_bucket(cents, bucket):
    assert amount_bucket(cents) == bucket
