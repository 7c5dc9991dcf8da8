"""
Execution record model — one materialization attempt of a recurring rule.

``ExecutionRecord`` is the only rule-owned model that is NOT frozen — its
``status``, ``executed_at``, ``linked_transaction_id``, ``error_message``
and ``retry_count`` fields are updated as the attempt progresses:

    PENDING → COMPLETED
    PENDING → FAILED → PENDING (retry) → ... → PERMANENTLY_FAILED

Records are append-only history: they are never deleted or re-ordered
except when their owning rule is deleted.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from recurring_scheduler.taxonomy.recurrence_taxonomy import ExecutionStatus


class ExecutionRecord(BaseModel):
    """Audit record of a single execution attempt.

    Attributes:
        execution_id: Opaque identifier (UUID4 string).
        rule_id: Owning ``RecurringRule.rule_id``.
        scheduled_date: Effective date the attempt was made for.
        executed_at: UTC timestamp of successful completion, else ``None``.
        status: Current attempt status.
        linked_transaction_id: Ledger transaction id once COMPLETED.
        error_message: Last failure message, if any.
        retry_count: Number of recorded failed/retried attempts.
        created_at: UTC timestamp the record was created.
        updated_at: UTC timestamp of the last write.
    """

    # Not frozen: status and outcome fields are updated during the attempt
    model_config = ConfigDict(frozen=False)

    execution_id: str = Field(default_factory=lambda: str(uuid4()))
    rule_id: str
    scheduled_date: date
    executed_at: Optional[datetime] = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    linked_transaction_id: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("retry_count")
    @classmethod
    def validate_retry_count(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"retry_count must be >= 0, got {v}.")
        return v
