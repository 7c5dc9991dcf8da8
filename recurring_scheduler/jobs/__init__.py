"""
Batch jobs invoked by the external trigger.

  jobs/base.py         — SchedulerJob: audited run wrapper (``job_runs``).
  jobs/process_due.py  — ProcessDueJob: execute every due rule.
  jobs/retry_failed.py — RetryFailedJob: re-attempt failed executions.
"""

from recurring_scheduler.jobs.base import SchedulerJob
from recurring_scheduler.jobs.process_due import ProcessDueJob
from recurring_scheduler.jobs.retry_failed import RetryFailedJob

__all__ = ["SchedulerJob", "ProcessDueJob", "RetryFailedJob"]
