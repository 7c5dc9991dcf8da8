"""Tests for rule, execution record, and transaction spec models."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from recurring_scheduler.models.execution import ExecutionRecord
from recurring_scheduler.models.ledger import (
    EXECUTION_ID_METADATA_KEY,
    RULE_ID_METADATA_KEY,
    TransactionSpec,
)
from recurring_scheduler.models.rule import RecurringRule
from recurring_scheduler.taxonomy.recurrence_taxonomy import (
    ExecutionStatus,
    Frequency,
    RuleStatus,
)


class TestRecurringRule:
    def test_valid_construction(self, sample_rule):
        rule = sample_rule
        assert rule.status == RuleStatus.ACTIVE
        assert rule.interval_value == 1
        assert rule.currency == "IDR"
        assert rule.metadata == {}
        assert len(rule.rule_id) == 36

    def test_rule_is_frozen(self, sample_rule):
        with pytest.raises(ValidationError):
            sample_rule.amount = 1

    def test_end_date_must_follow_start_date(self, sample_rule):
        with pytest.raises(ValidationError, match="end_date"):
            RecurringRule.model_validate(
                {**sample_rule.model_dump(), "end_date": sample_rule.start_date}
            )

    def test_execution_count_cannot_exceed_max(self, sample_rule):
        with pytest.raises(ValidationError, match="exceeds"):
            RecurringRule.model_validate(
                {**sample_rule.model_dump(), "max_executions": 2, "execution_count": 3}
            )

    def test_unknown_frequency_rejected(self, sample_rule):
        with pytest.raises(ValidationError, match="frequency"):
            RecurringRule.model_validate({**sample_rule.model_dump(), "frequency": "HOURLY"})

    def test_terminal_statuses(self, sample_rule):
        assert not sample_rule.is_terminal
        for status in (RuleStatus.CANCELLED, RuleStatus.COMPLETED):
            assert sample_rule.model_copy(update={"status": status}).is_terminal
        assert not sample_rule.model_copy(update={"status": RuleStatus.PAUSED}).is_terminal

    def test_claim_expiry(self, sample_rule):
        now = datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        claimed = sample_rule.model_copy(update={"claimed_until": now + timedelta(minutes=5)})
        assert claimed.is_claimed_at(now)
        assert not claimed.is_claimed_at(now + timedelta(minutes=5))
        assert not sample_rule.is_claimed_at(now)

    def test_transaction_description(self, sample_rule):
        assert sample_rule.transaction_description() == "Gym - Membership"
        assert sample_rule.model_copy(update={"description": ""}).transaction_description() == "Gym"


class TestExecutionRecord:
    def test_defaults(self):
        record = ExecutionRecord(rule_id="r-1", scheduled_date=date(2024, 1, 1))
        assert record.status == ExecutionStatus.PENDING
        assert record.retry_count == 0
        assert record.linked_transaction_id is None

    def test_is_mutable(self):
        record = ExecutionRecord(rule_id="r-1", scheduled_date=date(2024, 1, 1))
        record.status = ExecutionStatus.FAILED
        assert record.status == ExecutionStatus.FAILED

    def test_negative_retry_count_rejected(self):
        with pytest.raises(ValidationError, match="retry_count"):
            ExecutionRecord(rule_id="r-1", scheduled_date=date(2024, 1, 1), retry_count=-1)


class TestTransactionSpec:
    def test_for_execution_copies_rule_fields(self, sample_rule):
        rule = sample_rule.model_copy(
            update={"metadata": {"gym": "north"}, "frequency": Frequency.WEEKLY}
        )
        spec = TransactionSpec.for_execution(rule, "exec-1", date(2024, 2, 15))

        assert spec.household_id == "hh-1"
        assert spec.amount == 250_000
        assert spec.booking_date == date(2024, 2, 15)
        assert spec.description == "Gym - Membership"
        assert spec.metadata == {
            "gym": "north",
            RULE_ID_METADATA_KEY: rule.rule_id,
            EXECUTION_ID_METADATA_KEY: "exec-1",
        }

    def test_backlinks_override_rule_metadata(self, sample_rule):
        rule = sample_rule.model_copy(update={"metadata": {RULE_ID_METADATA_KEY: "spoofed"}})
        spec = TransactionSpec.for_execution(rule, "exec-1", date(2024, 2, 15))
        assert spec.metadata[RULE_ID_METADATA_KEY] == rule.rule_id
