"""
Job run metadata — the audit log of scheduler batch invocations.

Every ``process-due`` / ``retry-failed`` invocation records a ``JobRun``
with a complete ``config_snapshot`` (full AppConfig as a dict) and the
item counts of its summary, so an operator can see when the external
trigger last fired and what it did.

``JobRun`` is NOT frozen — its ``status``, item counters,
``error_message`` and ``finished_at`` are updated as the job executes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

VALID_JOB_NAMES = frozenset({"process_due", "retry_failed"})
VALID_RUN_STATUSES = frozenset({"started", "success", "failed"})


class JobRun(BaseModel):
    """Scheduler batch execution audit record.

    Attributes:
        run_id: Auto-assigned DB PK; ``None`` before insertion.
        run_slug: UUID4 string uniquely identifying this run.
        job_name: Which job produced this record.
        status: Current run status.
        items_attempted: Rules or execution records attempted.
        items_succeeded: Items that materialized a transaction.
        items_failed: Items that raised a scheduler error.
        config_snapshot: ``AppConfig.model_dump(mode="json")`` at run start time
            (secrets rendered masked).
        error_message: Error description if ``status == "failed"``.
        started_at: UTC datetime when the run began.
        finished_at: UTC datetime when the run completed or failed.
    """

    # Not frozen: status and counters are updated during execution
    model_config = ConfigDict(frozen=False)

    run_id: Optional[int] = None
    run_slug: str
    job_name: str
    status: str = "started"
    items_attempted: int = 0
    items_succeeded: int = 0
    items_failed: int = 0
    config_snapshot: dict[str, Any]
    error_message: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None

    @field_validator("job_name")
    @classmethod
    def validate_job_name(cls, v: str) -> str:
        if v not in VALID_JOB_NAMES:
            raise ValueError(
                f"Unknown job_name '{v}'. Must be one of {sorted(VALID_JOB_NAMES)}."
            )
        return v

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in VALID_RUN_STATUSES:
            raise ValueError(
                f"Unknown status '{v}'. Must be one of {sorted(VALID_RUN_STATUSES)}."
            )
        return v
