"""
Ledger exchange models.

``TransactionSpec`` is what the scheduler asks the ledger to materialize;
``TransactionRef`` is what the ledger hands back. Both are frozen.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from recurring_scheduler.models.rule import RecurringRule

RULE_ID_METADATA_KEY = "recurring_rule_id"
EXECUTION_ID_METADATA_KEY = "execution_id"


class TransactionSpec(BaseModel):
    """A concrete transaction to be written to the ledger.

    Attributes:
        household_id: Tenant the transaction belongs to.
        description: Transaction description.
        amount: Amount in minor currency units.
        currency: ISO currency code.
        source_account_id: Account the transaction is booked against.
        transfer_account_id: Destination account for transfers.
        category_id: Ledger category.
        merchant: Merchant name.
        booking_date: Booking date (the execution's effective date).
        metadata: Rule metadata plus back-links to the rule and execution.
        created_by: User the transaction is attributed to.
    """

    model_config = ConfigDict(frozen=True)

    household_id: str
    description: str
    amount: int
    currency: str
    source_account_id: str
    transfer_account_id: Optional[str] = None
    category_id: Optional[str] = None
    merchant: Optional[str] = None
    booking_date: date
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_by: str

    @classmethod
    def for_execution(
        cls,
        rule: RecurringRule,
        execution_id: str,
        effective_date: date,
    ) -> "TransactionSpec":
        """Build the spec for one occurrence of ``rule`` on ``effective_date``."""
        return cls(
            household_id=rule.household_id,
            description=rule.transaction_description(),
            amount=rule.amount,
            currency=rule.currency,
            source_account_id=rule.source_account_id,
            transfer_account_id=rule.transfer_account_id,
            category_id=rule.category_id,
            merchant=rule.merchant,
            booking_date=effective_date,
            metadata={
                **rule.metadata,
                RULE_ID_METADATA_KEY: rule.rule_id,
                EXECUTION_ID_METADATA_KEY: execution_id,
            },
            created_by=rule.created_by,
        )


class TransactionRef(BaseModel):
    """Reference to a transaction the ledger has materialized."""

    model_config = ConfigDict(frozen=True)

    transaction_id: str
    created_at: Optional[datetime] = None
