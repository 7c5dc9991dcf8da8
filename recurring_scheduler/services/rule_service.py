"""
Rule service — the management surface over recurring rules.

Covers everything a caller does to a rule that is not an execution:
create, read, list, update, delete, the pause/resume/cancel lifecycle, and
execution history.

State machine::

    ACTIVE ⇄ PAUSED
    ACTIVE → CANCELLED, PAUSED → CANCELLED
    ACTIVE → COMPLETED          (engine only)

CANCELLED and COMPLETED are terminal: no transition leaves them and they
cannot be updated. A rule with an unexpired execution claim cannot be
modified at all; callers get ``ConcurrencyConflictError`` and may retry.

Validation failures from the pydantic model surface as ``InvalidRuleError``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

from pydantic import ValidationError

from recurring_scheduler.config import SchedulerConfig
from recurring_scheduler.errors import (
    ConcurrencyConflictError,
    InvalidRuleError,
    InvalidStateError,
    NotFoundError,
)
from recurring_scheduler.models.execution import ExecutionRecord
from recurring_scheduler.models.rule import RecurringRule
from recurring_scheduler.scheduling.interfaces import Clock, Store, SystemClock
from recurring_scheduler.scheduling.recurrence import next_date
from recurring_scheduler.taxonomy.recurrence_taxonomy import Frequency, RuleStatus

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

# Caller-settable rule fields. Everything else (ids, counters, status,
# next/last execution dates, version, claim) is managed by the scheduler.
EDITABLE_FIELDS = frozenset({
    "name",
    "description",
    "amount",
    "currency",
    "source_account_id",
    "transfer_account_id",
    "category_id",
    "merchant",
    "frequency",
    "interval_value",
    "start_date",
    "end_date",
    "max_executions",
    "metadata",
})

# Changing any of these re-anchors the schedule.
SCHEDULE_FIELDS = frozenset({"frequency", "interval_value", "start_date"})

_ALLOWED_TRANSITIONS: dict[RuleStatus, frozenset[RuleStatus]] = {
    RuleStatus.PAUSED:    frozenset({RuleStatus.ACTIVE}),
    RuleStatus.ACTIVE:    frozenset({RuleStatus.PAUSED}),
    RuleStatus.CANCELLED: frozenset({RuleStatus.ACTIVE, RuleStatus.PAUSED}),
}


@dataclass
class RulePage:
    """One page of a household's rules.

    Attributes:
        items:       Rules on this page, ordered by ``next_execution_date``.
        total:       Number of rules matching the filters across all pages.
        page:        1-based page number.
        limit:       Page size.
        total_pages: ``ceil(total / limit)``.
    """

    items:       list[RecurringRule] = field(default_factory=list)
    total:       int = 0
    page:        int = 1
    limit:       int = 20
    total_pages: int = 0


class RuleService:
    """CRUD and lifecycle operations on recurring rules.

    Args:
        store:  Rule and execution record storage.
        clock:  Used to detect in-flight execution claims.
        config: Scheduler settings (default currency, history limit).
    """

    def __init__(
        self,
        store: Store,
        clock: Optional[Clock] = None,
        config: Optional[SchedulerConfig] = None,
    ) -> None:
        self.store = store
        self.clock: Clock = clock or SystemClock()
        self.config = config or SchedulerConfig()

    # ── Create / read ─────────────────────────────────────────────────────────

    def create_rule(self, household_id: str, created_by: str, **fields: Any) -> RecurringRule:
        """Create an ACTIVE rule whose first occurrence is its start date.

        Args:
            household_id: Owning tenant.
            created_by:   User the rule (and its transactions) are attributed to.
            **fields:     Any of ``EDITABLE_FIELDS``; ``name``, ``amount``,
                          ``source_account_id``, ``frequency`` and
                          ``start_date`` are required.

        Raises:
            InvalidRuleError: On unknown fields or failed validation.
        """
        _reject_unknown_fields(fields)
        if fields.get("start_date") is None:
            raise InvalidRuleError("start_date is required.")
        fields.setdefault("currency", self.config.default_currency)

        try:
            rule = RecurringRule(
                household_id=household_id,
                created_by=created_by,
                next_execution_date=fields["start_date"],
                status=RuleStatus.ACTIVE,
                execution_count=0,
                **fields,
            )
        except ValidationError as exc:
            raise InvalidRuleError(_format_validation_error(exc)) from exc

        stored = self.store.insert_rule(rule)
        logger.info(
            "Created rule %s '%s' | %s x%d from %s",
            stored.rule_id, stored.name, stored.frequency.value,
            stored.interval_value, stored.start_date.isoformat(),
        )
        return stored

    def get_rule(self, rule_id: str) -> RecurringRule:
        rule = self.store.find_rule(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found.", rule_id=rule_id)
        return rule

    def list_rules(
        self,
        household_id: str,
        status: Optional[RuleStatus] = None,
        account_id: Optional[str] = None,
        category_id: Optional[str] = None,
        frequency: Optional[Frequency] = None,
        page: int = 1,
        limit: int = 20,
    ) -> RulePage:
        """Return one page of a household's rules matching the filters.

        Raises:
            ValueError: If ``page < 1`` or ``limit`` is outside ``[1, 100]``.
        """
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}.")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be in [1, {MAX_PAGE_SIZE}], got {limit}.")

        items, total = self.store.list_rules(
            household_id,
            status=status,
            account_id=account_id,
            category_id=category_id,
            frequency=frequency,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return RulePage(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    def get_execution_history(
        self, rule_id: str, limit: Optional[int] = None
    ) -> list[ExecutionRecord]:
        """Return a rule's execution records, newest first."""
        self.get_rule(rule_id)
        return self.store.find_executions(rule_id, limit=limit or self.config.history_limit)

    # ── Update / delete ───────────────────────────────────────────────────────

    def update_rule(self, rule_id: str, **changes: Any) -> RecurringRule:
        """Apply ``changes`` to a non-terminal rule.

        When the frequency, interval or start date changes, the next
        execution date is recomputed: from the last execution date if the
        rule has run, otherwise it becomes the (new) start date.

        Raises:
            NotFoundError: If the rule does not exist.
            InvalidStateError: If the rule is CANCELLED or COMPLETED.
            InvalidRuleError: On unknown fields or failed validation.
            ConcurrencyConflictError: If the rule is mid-execution or was
                modified concurrently.
        """
        _reject_unknown_fields(changes)
        rule = self._get_modifiable(rule_id)
        if rule.is_terminal:
            raise InvalidStateError(
                f"Rule {rule_id} is {rule.status.value} and cannot be updated.",
                rule_id=rule_id,
            )
        if not changes:
            return rule

        try:
            updated = RecurringRule.model_validate({**rule.model_dump(), **changes})
            if SCHEDULE_FIELDS & changes.keys():
                updated = updated.model_copy(
                    update={"next_execution_date": _rescheduled_next(updated)}
                )
        except ValidationError as exc:
            raise InvalidRuleError(_format_validation_error(exc), rule_id=rule_id) from exc

        saved = self.store.save_rule(updated)
        logger.info(
            "Updated rule %s | fields=%s | next=%s",
            rule_id, sorted(changes), saved.next_execution_date.isoformat(),
        )
        return saved

    def delete_rule(self, rule_id: str) -> None:
        """Delete a rule and its execution history.

        Raises:
            NotFoundError: If the rule does not exist.
            ConcurrencyConflictError: If the rule is mid-execution.
        """
        self._get_modifiable(rule_id)
        if not self.store.delete_rule(rule_id):
            raise NotFoundError(f"Rule {rule_id} not found.", rule_id=rule_id)

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def pause_rule(self, rule_id: str) -> RecurringRule:
        return self._transition(rule_id, RuleStatus.PAUSED)

    def resume_rule(self, rule_id: str) -> RecurringRule:
        return self._transition(rule_id, RuleStatus.ACTIVE)

    def cancel_rule(self, rule_id: str) -> RecurringRule:
        return self._transition(rule_id, RuleStatus.CANCELLED)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _get_modifiable(self, rule_id: str) -> RecurringRule:
        rule = self.get_rule(rule_id)
        if rule.is_claimed_at(self.clock.now()):
            raise ConcurrencyConflictError(
                f"Rule {rule_id} is being executed; try again shortly.",
                rule_id=rule_id,
            )
        return rule

    def _transition(self, rule_id: str, target: RuleStatus) -> RecurringRule:
        rule = self._get_modifiable(rule_id)
        if rule.status not in _ALLOWED_TRANSITIONS[target]:
            raise InvalidStateError(
                f"Cannot move rule {rule_id} from {rule.status.value} to {target.value}.",
                rule_id=rule_id,
            )
        saved = self.store.save_rule(rule.model_copy(update={"status": target}))
        logger.info("Rule %s: %s → %s", rule_id, rule.status.value, target.value)
        return saved


def _rescheduled_next(rule: RecurringRule) -> date:
    if rule.last_execution_date is None:
        return rule.start_date
    return next_date(rule.last_execution_date, rule.frequency, rule.interval_value)


def _reject_unknown_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise InvalidRuleError(f"Fields cannot be set directly: {sorted(unknown)}.")


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "rule"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)
