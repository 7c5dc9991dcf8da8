"""
Typed scheduler errors.

Every failure the scheduler reports to a caller is a ``SchedulerError``
subclass carrying a closed ``ErrorKind`` tag, so callers (CLI, job runner,
an HTTP layer) can branch on ``exc.kind`` instead of on message text::

    try:
        engine.execute(rule_id)
    except SchedulerError as exc:
        if exc.kind is ErrorKind.NOT_DUE:
            ...

Propagation policy:
  - ``INVALID_RULE``, ``INVALID_STATE``, ``NOT_DUE`` are validation errors;
    they are raised synchronously and never retried automatically.
  - ``MAX_EXECUTIONS_REACHED`` and ``RULE_ENDED`` are raised *after* the rule
    has been transitioned to COMPLETED.
  - ``LEDGER_FAILURE`` wraps the ledger collaborator's exception
    (available as ``__cause__``); batch runs record it and continue.
  - ``CONCURRENCY_CONFLICT`` means another worker holds or just changed
    the rule; nothing was materialized.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class ErrorKind(StrEnum):
    """Closed set of scheduler failure kinds."""

    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    NOT_DUE = "not_due"
    MAX_EXECUTIONS_REACHED = "max_executions_reached"
    RULE_ENDED = "rule_ended"
    INVALID_RULE = "invalid_rule"
    LEDGER_FAILURE = "ledger_failure"
    CONCURRENCY_CONFLICT = "concurrency_conflict"


class SchedulerError(Exception):
    """Base class for all typed scheduler errors.

    Attributes:
        kind: The ``ErrorKind`` tag of this error.
        rule_id: The rule the error refers to, when known.
    """

    kind: ErrorKind

    def __init__(self, message: str, rule_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.rule_id = rule_id


class NotFoundError(SchedulerError):
    kind = ErrorKind.NOT_FOUND


class InvalidStateError(SchedulerError):
    kind = ErrorKind.INVALID_STATE


class NotDueError(SchedulerError):
    kind = ErrorKind.NOT_DUE


class MaxExecutionsReachedError(SchedulerError):
    kind = ErrorKind.MAX_EXECUTIONS_REACHED


class RuleEndedError(SchedulerError):
    kind = ErrorKind.RULE_ENDED


class InvalidRuleError(SchedulerError):
    kind = ErrorKind.INVALID_RULE


class LedgerFailureError(SchedulerError):
    kind = ErrorKind.LEDGER_FAILURE


class ConcurrencyConflictError(SchedulerError):
    kind = ErrorKind.CONCURRENCY_CONFLICT
