"""Tests for the rule termination policy."""

from __future__ import annotations

from datetime import date

from recurring_scheduler.scheduling.termination import (
    has_ended,
    max_executions_reached,
    should_complete,
)


class TestMaxExecutions:
    def test_no_cap_never_reached(self, sample_rule):
        assert not max_executions_reached(sample_rule, 10_000)

    def test_reached_at_cap(self, sample_rule):
        rule = sample_rule.model_copy(update={"max_executions": 3})
        assert not max_executions_reached(rule, 2)
        assert max_executions_reached(rule, 3)


class TestEndDate:
    def test_no_end_date_never_ended(self, sample_rule):
        assert not has_ended(sample_rule, date(2099, 1, 1))

    def test_end_date_itself_is_still_valid(self, sample_rule):
        rule = sample_rule.model_copy(update={"end_date": date(2024, 6, 30)})
        assert not has_ended(rule, date(2024, 6, 30))
        assert has_ended(rule, date(2024, 7, 1))


class TestShouldComplete:
    def test_either_condition_completes(self, sample_rule):
        capped = sample_rule.model_copy(update={"max_executions": 1})
        ending = sample_rule.model_copy(update={"end_date": date(2024, 2, 1)})
        assert should_complete(capped, 1, date(2024, 1, 15))
        assert should_complete(ending, 0, date(2024, 2, 2))

    def test_open_ended_rule_never_completes(self, sample_rule):
        assert not should_complete(sample_rule, 500, date(2099, 12, 31))
