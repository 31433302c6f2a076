"""Single-job polling.

``JobPoller.watch`` polls a job at a fixed interval until it reaches a
terminal status, the attempt cap is hit, or the caller cancels. Each
snapshot is pinned through ``JobStatus.advance`` before anyone sees it,
so observers and history never see a status move backwards or leave a
terminal state.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict

from voyager.api.models import VerificationJob
from voyager.history.models import JobRecord, utcnow
from voyager.history.store import HistoryStore
from voyager.jobs.status import JobStatus
from voyager.utils import (
    CompilationFailure,
    HistoryError,
    PollingTimeout,
    VerificationFailure,
)

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.0
MAX_POLL_ATTEMPTS = 300

Observer = Callable[[VerificationJob], None]


class WatchResult(BaseModel):
    """Outcome of a local watch; distinct from the remote job outcome."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus
    job: Optional[VerificationJob] = None
    attempts: int = 0
    timed_out: bool = False
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.SUCCESS

    def raise_for_status(self) -> None:
        """Raise the error matching the outcome; no-op for success or cancel."""
        if self.status is JobStatus.COMPILE_FAILED:
            raise CompilationFailure(self.job_id, self._error_text())
        if self.status is JobStatus.FAIL:
            raise VerificationFailure(self.job_id, self._error_text())
        if self.timed_out:
            raise PollingTimeout(self.job_id, self.attempts)

    def _error_text(self) -> str:
        return self.job.error_text() if self.job else "unknown failure"


def record_from_job(
    job: VerificationJob,
    network: str,
    base: Optional[JobRecord] = None,
) -> JobRecord:
    """History record reflecting a status snapshot."""
    now = utcnow()
    fields = {
        "status": job.status,
        "updated_at": now,
        "error_message": job.error_text() if job.status.is_failure else None,
    }
    if job.status.is_terminal:
        fields["completed_at"] = now
    if base is not None:
        if job.class_hash and not base.class_hash:
            fields["class_hash"] = job.class_hash
        return base.model_copy(update=fields)
    return JobRecord(
        job_id=job.job_id,
        class_hash=job.class_hash or "",
        contract_name=job.name or "",
        network=network,
        dojo_version=job.dojo_version,
        **fields,
    )


class JobPoller:
    """Watches one verification job.

    Args:
        client: Anything with ``get_job(job_id) -> VerificationJob``.
        history: Optional store updated whenever the pinned status changes.
        interval: Seconds between polls.
        max_attempts: Polls before giving up with a timeout result.
        sleep: Injectable sleep function.
        network: Network label for records created from scratch.
    """

    def __init__(
        self,
        client,
        history: Optional[HistoryStore] = None,
        interval: float = POLL_INTERVAL,
        max_attempts: int = MAX_POLL_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
        network: str = "custom",
    ) -> None:
        self.client = client
        self.history = history
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep
        self.network = network

    def watch(
        self,
        job_id: str,
        observer: Optional[Observer] = None,
        cancel: Optional[threading.Event] = None,
    ) -> WatchResult:
        """Poll job_id until terminal, timed out or cancelled.

        API errors while polling propagate to the caller.
        """
        persisted = self._load(job_id)
        status = persisted.status if persisted else JobStatus.SUBMITTED
        job: Optional[VerificationJob] = None
        attempts = 0

        try:
            while attempts < self.max_attempts:
                if cancel is not None and cancel.is_set():
                    logger.info("Watch of job %s cancelled", job_id)
                    return WatchResult(job_id=job_id, status=status, job=job,
                                       attempts=attempts, cancelled=True)

                attempts += 1
                job = self.client.get_job(job_id)
                pinned = status.advance(job.status)
                if pinned is not job.status:
                    logger.debug(
                        "Job %s reported %s after %s; keeping %s",
                        job_id, job.status.label, status.label, pinned.label,
                    )
                    job = job.model_copy(update={"status": pinned})
                if pinned is not status:
                    logger.debug("Job %s: %s -> %s", job_id, status.label, pinned.label)
                status = pinned

                if observer is not None:
                    observer(job)
                persisted = self._persist(job, persisted)

                if status.is_terminal:
                    return WatchResult(job_id=job_id, status=status, job=job, attempts=attempts)
                if attempts < self.max_attempts:
                    self._sleep(self.interval)
        except KeyboardInterrupt:
            logger.info("Watch of job %s interrupted; the remote job continues", job_id)
            return WatchResult(job_id=job_id, status=status, job=job,
                               attempts=attempts, cancelled=True)

        logger.warning("Job %s still %s after %d polls", job_id, status.label, attempts)
        return WatchResult(job_id=job_id, status=status, job=job,
                           attempts=attempts, timed_out=True)

    def _load(self, job_id: str) -> Optional[JobRecord]:
        if self.history is None:
            return None
        try:
            return self.history.get(job_id)
        except HistoryError as e:
            logger.warning("Could not read history for job %s: %s", job_id, e)
            return None

    def _persist(self, job: VerificationJob, persisted: Optional[JobRecord]) -> Optional[JobRecord]:
        if self.history is None:
            return persisted
        record = record_from_job(job, self.network, base=persisted)
        if persisted is not None and (
            persisted.status is record.status
            and persisted.error_message == record.error_message
        ):
            return persisted
        try:
            return self.history.upsert(record)
        except HistoryError as e:
            logger.warning("Could not update history for job %s: %s", job.job_id, e)
            return persisted
