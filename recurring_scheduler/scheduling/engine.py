"""
Execution engine — materializes one occurrence of a recurring rule.

``ExecutionEngine.execute()`` is the only place a rule turns into a ledger
transaction. Pre-checks run in a fixed order and each failure maps to one
``ErrorKind``:

  1. rule exists                         → NotFoundError
  2. rule is ACTIVE                      → InvalidStateError
  3. effective date >= next execution    → NotDueError (skipped when ``force``)
  4. no other worker holds the rule      → ConcurrencyConflictError
  5. execution_count < max_executions    → rule COMPLETED, MaxExecutionsReachedError
  6. effective date <= end_date          → rule COMPLETED, RuleEndedError

Only then is the rule claimed (compare-and-swap on ``version`` plus a
``claimed_until`` lease) and the ledger called. The claim is released in
the same store write that records the outcome, so a crashed worker blocks
its rule for at most ``claim_lease_seconds``.

A ledger failure never advances ``execution_count`` or
``next_execution_date``; the execution record is left FAILED for the
retry coordinator to pick up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from recurring_scheduler.config import SchedulerConfig
from recurring_scheduler.errors import (
    ConcurrencyConflictError,
    InvalidStateError,
    LedgerFailureError,
    MaxExecutionsReachedError,
    NotDueError,
    NotFoundError,
    RuleEndedError,
)
from recurring_scheduler.models.execution import ExecutionRecord
from recurring_scheduler.models.ledger import TransactionRef, TransactionSpec
from recurring_scheduler.models.rule import RecurringRule
from recurring_scheduler.scheduling.interfaces import Clock, Ledger, Store
from recurring_scheduler.scheduling.recurrence import next_date
from recurring_scheduler.scheduling.termination import (
    has_ended,
    max_executions_reached,
    should_complete,
)
from recurring_scheduler.taxonomy.recurrence_taxonomy import ExecutionStatus, RuleStatus

logger = logging.getLogger(__name__)


# ── Result types ──────────────────────────────────────────────────────────────

@dataclass
class ExecutionResult:
    """Outcome of a successful ``execute()`` call.

    Attributes:
        execution:   The COMPLETED execution record.
        transaction: Reference to the transaction the ledger created.
        rule:        The rule as stored after the execution.
    """

    execution:   ExecutionRecord
    transaction: TransactionRef
    rule:        RecurringRule


# ── Engine ────────────────────────────────────────────────────────────────────

class ExecutionEngine:
    """Runs single executions of recurring rules against a ledger.

    Args:
        store:  Rule and execution record storage.
        ledger: Transaction materializer.
        clock:  Source of "now"; its date is the default effective date.
        config: Scheduler settings (claim lease length).
    """

    def __init__(
        self,
        store: Store,
        ledger: Ledger,
        clock: Clock,
        config: Optional[SchedulerConfig] = None,
    ) -> None:
        self.store  = store
        self.ledger = ledger
        self.clock  = clock
        self.config = config or SchedulerConfig()

    def execute(
        self,
        rule_id: str,
        requested_date: Optional[date] = None,
        force: bool = False,
        execution: Optional[ExecutionRecord] = None,
    ) -> ExecutionResult:
        """Execute one occurrence of a rule.

        Args:
            rule_id:        Rule to execute.
            requested_date: Effective date; defaults to the clock's date.
            force:          Execute even if the rule is not yet due.
            execution:      Existing record to reuse (retries); a new PENDING
                            record is created when omitted.

        Returns:
            ``ExecutionResult`` with the completed record, transaction
            reference and refreshed rule.

        Raises:
            SchedulerError: A subclass matching the failed check, or
                ``LedgerFailureError`` wrapping the ledger's exception.
        """
        rule = self.store.find_rule(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found.", rule_id=rule_id)

        if rule.status != RuleStatus.ACTIVE:
            raise InvalidStateError(
                f"Rule {rule_id} is not active (status={rule.status.value}).",
                rule_id=rule_id,
            )

        now = self.clock.now()
        effective = requested_date or now.date()

        if effective < rule.next_execution_date and not force:
            raise NotDueError(
                f"Rule {rule_id} is not due until {rule.next_execution_date.isoformat()}.",
                rule_id=rule_id,
            )

        # Must precede the completion checks: they write the rule.
        if rule.is_claimed_at(now):
            raise ConcurrencyConflictError(
                f"Rule {rule_id} is being executed by another worker.",
                rule_id=rule_id,
            )

        if max_executions_reached(rule, rule.execution_count):
            self._complete(rule)
            raise MaxExecutionsReachedError(
                f"Rule {rule_id} has reached its maximum of {rule.max_executions} executions.",
                rule_id=rule_id,
            )

        if has_ended(rule, effective):
            self._complete(rule)
            raise RuleEndedError(
                f"Rule {rule_id} ended on {rule.end_date.isoformat()}.",
                rule_id=rule_id,
            )

        lease_until = now + timedelta(seconds=self.config.claim_lease_seconds)
        claimed = self.store.claim_rule(rule, now, lease_until)

        record = execution or self.store.create_execution(rule_id, effective)
        spec = TransactionSpec.for_execution(claimed, record.execution_id, effective)

        try:
            ref = self.ledger.create_transaction(spec)
        except Exception as exc:
            self._record_failure(claimed, record, exc)
            raise LedgerFailureError(
                f"Ledger failed to create transaction for rule {rule_id}: {exc}",
                rule_id=rule_id,
            ) from exc

        record.status = ExecutionStatus.COMPLETED
        record.executed_at = now
        record.linked_transaction_id = ref.transaction_id
        record.error_message = None
        self.store.save_execution(record)

        following = max(
            next_date(effective, rule.frequency, rule.interval_value),
            claimed.next_execution_date,
        )
        new_count = claimed.execution_count + 1
        status = (
            RuleStatus.COMPLETED
            if should_complete(claimed, new_count, following)
            else RuleStatus.ACTIVE
        )
        updated = self.store.save_rule(
            claimed.model_copy(
                update={
                    "execution_count": new_count,
                    "next_execution_date": following,
                    "last_execution_date": effective,
                    "status": status,
                    "claimed_until": None,
                }
            )
        )

        logger.info(
            "Executed rule %s for %s | execution=%s | transaction=%s | count=%d | next=%s | status=%s",
            rule_id, effective.isoformat(), record.execution_id, ref.transaction_id,
            new_count, following.isoformat(), status.value,
        )
        return ExecutionResult(execution=record, transaction=ref, rule=updated)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _complete(self, rule: RecurringRule) -> RecurringRule:
        logger.info("Rule %s reached its termination condition; marking COMPLETED.", rule.rule_id)
        return self.store.save_rule(rule.model_copy(update={"status": RuleStatus.COMPLETED}))

    def _record_failure(
        self,
        claimed: RecurringRule,
        record: ExecutionRecord,
        exc: Exception,
    ) -> None:
        record.status = ExecutionStatus.FAILED
        record.error_message = str(exc)
        record.retry_count = max(record.retry_count, 1)
        self.store.save_execution(record)
        self.store.save_rule(claimed.model_copy(update={"claimed_until": None}))
        logger.warning(
            "Ledger failure for rule %s | execution=%s | retry_count=%d: %s",
            claimed.rule_id, record.execution_id, record.retry_count, exc,
        )
