"""
Recurring rule model — the declarative definition of a recurring obligation.

``RecurringRule`` is **frozen**. State changes (execution count, next
execution date, status, claim lease) are expressed as new snapshots via
``rule.model_copy(update={...})`` and persisted through the Store, which
enforces a compare-and-swap on ``version``.

Invariants enforced at construction:
  - ``end_date``, if present, is strictly after ``start_date``.
  - ``interval_value`` is in ``[1, MAX_INTERVAL_VALUE]``.
  - ``amount`` is a positive integer in minor currency units.
  - ``execution_count`` never exceeds ``max_executions`` when set.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from recurring_scheduler.taxonomy.recurrence_taxonomy import (
    TERMINAL_RULE_STATUSES,
    Frequency,
    RuleStatus,
)

MAX_INTERVAL_VALUE = 365


class RecurringRule(BaseModel):
    """A recurring ledger obligation owned by a household.

    Attributes:
        rule_id: Opaque identifier (UUID4 string).
        household_id: Opaque tenant key owning this rule.
        name: Short human-readable name, e.g. ``"Rent"``.
        description: Free-text description copied into each transaction.
        amount: Amount in minor currency units (e.g. cents). Always > 0.
        currency: ISO currency code, e.g. ``"IDR"``.
        source_account_id: Account debited/credited by each occurrence.
        transfer_account_id: Destination account for transfers, or ``None``.
        category_id: Ledger category, or ``None``.
        merchant: Merchant name, or ``None``.
        frequency: Calendar unit of recurrence.
        interval_value: Multiplier applied to ``frequency`` (every N units).
        start_date: First scheduled occurrence.
        end_date: Last date an occurrence may be executed on, or ``None``.
        next_execution_date: Date the next occurrence becomes due.
        last_execution_date: Effective date of the last successful execution.
        max_executions: Optional cap on successful executions.
        execution_count: Number of successful executions so far.
        status: Lifecycle state.
        metadata: Opaque key/value bag merged into transaction metadata.
        created_by: Identifier of the user who created the rule.
        created_at: UTC creation timestamp.
        updated_at: UTC timestamp of the last write.
        version: Optimistic-concurrency counter, bumped on every store write.
        claimed_until: Lease expiry of an in-flight execution, or ``None``.
    """

    model_config = ConfigDict(frozen=True)

    rule_id: str = Field(default_factory=lambda: str(uuid4()))
    household_id: str
    name: str
    description: str = ""
    amount: int
    currency: str = "IDR"
    source_account_id: str
    transfer_account_id: Optional[str] = None
    category_id: Optional[str] = None
    merchant: Optional[str] = None
    frequency: Frequency
    interval_value: int = 1
    start_date: date
    end_date: Optional[date] = None
    next_execution_date: date
    last_execution_date: Optional[date] = None
    max_executions: Optional[int] = None
    execution_count: int = 0
    status: RuleStatus = RuleStatus.ACTIVE
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0
    claimed_until: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be empty.")
        return v

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"amount must be a positive number of minor units, got {v}.")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        code = v.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"currency must be a 3-letter ISO code, got '{v}'.")
        return code

    @field_validator("interval_value")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if not 1 <= v <= MAX_INTERVAL_VALUE:
            raise ValueError(
                f"interval_value must be in [1, {MAX_INTERVAL_VALUE}], got {v}."
            )
        return v

    @field_validator("max_executions")
    @classmethod
    def validate_max_executions(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError(f"max_executions must be >= 1 when set, got {v}.")
        return v

    @model_validator(mode="after")
    def validate_date_ordering(self) -> "RecurringRule":
        """Ensure end_date is strictly after start_date when provided."""
        if self.end_date is not None and self.end_date <= self.start_date:
            raise ValueError(
                f"end_date ({self.end_date}) must be after start_date ({self.start_date})."
            )
        return self

    @model_validator(mode="after")
    def validate_execution_count(self) -> "RecurringRule":
        if self.execution_count < 0:
            raise ValueError(f"execution_count must be >= 0, got {self.execution_count}.")
        if self.max_executions is not None and self.execution_count > self.max_executions:
            raise ValueError(
                f"execution_count ({self.execution_count}) exceeds "
                f"max_executions ({self.max_executions})."
            )
        return self

    @property
    def is_terminal(self) -> bool:
        """``True`` once the rule is CANCELLED or COMPLETED."""
        return self.status in TERMINAL_RULE_STATUSES

    def is_claimed_at(self, now: datetime) -> bool:
        """Return ``True`` if an unexpired execution lease is held at ``now``."""
        return self.claimed_until is not None and self.claimed_until > now

    def transaction_description(self) -> str:
        """Description written on every materialized ledger transaction."""
        if self.description:
            return f"{self.name} - {self.description}"
        return self.name
