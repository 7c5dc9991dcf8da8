"""Tests for the due-rule batch processor."""

from __future__ import annotations

from datetime import date

from recurring_scheduler.errors import ErrorKind
from recurring_scheduler.scheduling.batch import BatchProcessor
from recurring_scheduler.taxonomy.recurrence_taxonomy import Frequency, RuleStatus


class TestProcessDue:
    def test_executes_only_due_active_rules(self, make_rule, service, store, engine, clock):
        clock.advance_to(date(2024, 1, 10))
        due_today = make_rule(name="Today", start_date=date(2024, 1, 10))
        overdue = make_rule(name="Overdue", start_date=date(2024, 1, 2))
        make_rule(name="Future", start_date=date(2024, 1, 11))
        paused = make_rule(name="Paused", start_date=date(2024, 1, 5))
        service.pause_rule(paused.rule_id)

        summary = BatchProcessor(store, engine, clock).process_due()

        assert summary.as_of == date(2024, 1, 10)
        assert summary.attempted == 2
        assert summary.succeeded == 2
        assert summary.failed == 0
        assert [item.rule_id for item in summary.items] == [overdue.rule_id, due_today.rule_id]
        assert all(item.transaction_id for item in summary.items)

    def test_nothing_due(self, make_rule, store, engine, clock):
        make_rule(start_date=date(2024, 2, 1))
        summary = BatchProcessor(store, engine, clock).process_due()
        assert summary.attempted == 0
        assert summary.items == []

    def test_second_run_same_day_is_a_no_op(self, make_rule, store, engine, clock):
        make_rule(frequency=Frequency.DAILY)
        processor = BatchProcessor(store, engine, clock)
        assert processor.process_due().succeeded == 1
        assert processor.process_due().attempted == 0


class TestFailureIsolation:
    def test_ledger_failure_does_not_stop_batch(self, make_rule, flaky_engine, store, clock):
        broken = make_rule(name="Broken", source_account_id="acc-frozen")
        healthy = make_rule(name="Healthy")
        engine, _ = flaky_engine(fail_accounts=frozenset({"acc-frozen"}))

        summary = BatchProcessor(store, engine, clock).process_due()

        assert summary.attempted == 2
        assert summary.succeeded == 1
        assert summary.failed == 1
        by_rule = {item.rule_id: item for item in summary.items}
        assert by_rule[healthy.rule_id].success
        assert by_rule[broken.rule_id].error_kind == ErrorKind.LEDGER_FAILURE
        assert "frozen" in by_rule[broken.rule_id].error

    def test_expired_rule_is_completed_and_reported(self, make_rule, store, engine, clock):
        expired = make_rule(frequency=Frequency.DAILY, end_date=date(2024, 1, 3))
        clock.advance_to(date(2024, 1, 5))

        summary = BatchProcessor(store, engine, clock).process_due()

        [item] = summary.items
        assert not item.success
        assert item.error_kind == ErrorKind.RULE_ENDED
        assert store.find_rule(expired.rule_id).status == RuleStatus.COMPLETED
