"""Verification job tracking.

    JobStatus           - closed status enum with forward-only transitions
    JobPoller           - watches one job until terminal / timeout / cancel
    BatchOrchestrator   - sequential multi-contract submission + watch
"""

from voyager.jobs.status import JobStatus
from voyager.jobs.progress import estimate_remaining, progress_percentage
from voyager.jobs.poller import JobPoller, WatchResult
from voyager.jobs.batch import (
    BatchItem,
    BatchOptions,
    BatchOrchestrator,
    BatchVerificationSummary,
    validate_batch_request,
)

__all__ = [
    "BatchItem",
    "BatchOptions",
    "BatchOrchestrator",
    "BatchVerificationSummary",
    "JobPoller",
    "JobStatus",
    "WatchResult",
    "estimate_remaining",
    "progress_percentage",
    "validate_batch_request",
]
