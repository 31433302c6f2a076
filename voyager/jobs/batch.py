"""Multi-contract batch verification.

Submission is strictly sequential (resolve -> collect -> submit per item,
optionally sleeping between items). After all items were attempted the
optional watch phase polls every pending job once per tick and reports a
single aggregated progress line.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from voyager.history.models import JobRecord
from voyager.history.store import HistoryStore
from voyager.jobs.poller import MAX_POLL_ATTEMPTS, POLL_INTERVAL, record_from_job
from voyager.jobs.status import JobStatus
from voyager.utils import ConfigurationError, HistoryError, VoyagerError
from voyager.verification import PreparedVerification, VerificationTarget, Verifier, VerifyOptions

logger = logging.getLogger(__name__)


class BatchItem(BaseModel):
    """One ``[[contracts]]`` entry."""

    model_config = ConfigDict(frozen=True)

    class_hash: str
    contract_name: str
    package: Optional[str] = None


class BatchItemState(str, Enum):
    SUBMITTED = "submitted"
    FAILED = "failed"
    SKIPPED = "skipped"
    PREVIEWED = "previewed"


class BatchItemResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: BatchItem
    state: BatchItemState
    record: Optional[JobRecord] = None
    error: Optional[str] = None
    poll_error: Optional[str] = None
    files: tuple[str, ...] = ()

    @property
    def job_id(self) -> Optional[str]:
        return self.record.job_id if self.record else None

    @property
    def status(self) -> Optional[JobStatus]:
        return self.record.status if self.record else None

    @property
    def is_pending(self) -> bool:
        return self.state is BatchItemState.SUBMITTED and not self.record.status.is_terminal


class BatchOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    root: Path
    verify: VerifyOptions = Field(default_factory=VerifyOptions)
    fail_fast: bool = False
    inter_item_delay: float = 0.0
    watch: bool = False


class BatchProgress(BaseModel):
    """Aggregated status line for one watch tick."""

    tick: int = 0
    succeeded: int = 0
    pending: int = 0
    failed: int = 0


class BatchVerificationSummary(BaseModel):
    total: int = 0
    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    pending: int = 0
    skipped: int = 0
    previewed: int = 0
    items: list[BatchItemResult] = Field(default_factory=list)

    @classmethod
    def from_results(cls, results: Sequence[BatchItemResult]) -> "BatchVerificationSummary":
        """Summary derived purely from per-item results."""
        summary = cls(total=len(results), items=list(results))
        for result in results:
            if result.state is BatchItemState.FAILED:
                summary.failed += 1
            elif result.state is BatchItemState.SKIPPED:
                summary.skipped += 1
            elif result.state is BatchItemState.PREVIEWED:
                summary.previewed += 1
            else:
                summary.submitted += 1
                status = result.record.status
                if status is JobStatus.SUCCESS:
                    summary.succeeded += 1
                elif status.is_failure:
                    summary.failed += 1
                else:
                    summary.pending += 1
        return summary

    def progress(self, tick: int = 0) -> BatchProgress:
        return BatchProgress(
            tick=tick, succeeded=self.succeeded, pending=self.pending, failed=self.failed,
        )


def validate_batch_request(
    items: Sequence[BatchItem],
    class_hash: Optional[str] = None,
    contract_name: Optional[str] = None,
    wizard: bool = False,
) -> None:
    """Reject batch mode mixed with single-contract arguments or the wizard."""
    if not items:
        return
    if class_hash or contract_name:
        raise ConfigurationError(
            "Batch mode ([[contracts]] in .voyager.toml) cannot be combined with "
            "--class-hash or --contract-name",
            suggestions=[
                "Remove --class-hash/--contract-name to verify the configured contracts",
                "Or remove the [[contracts]] section to verify a single contract",
            ],
        )
    if wizard:
        raise ConfigurationError(
            "Batch mode cannot be combined with the interactive wizard",
            suggestions=["Remove --wizard or the [[contracts]] section"],
        )


ItemObserver = Callable[[int, BatchItemResult], None]
ProgressObserver = Callable[[BatchProgress], None]


class BatchOrchestrator:
    """Submits and optionally watches several contracts.

    Args:
        verifier: Performs resolution, collection and submission per item.
        client: Status source for the watch phase (``get_job``).
        history: Store for status updates; defaults to the verifier's.
        sleep: Injectable sleep used for inter-item delays and poll ticks.
        interval: Seconds between watch ticks.
        max_attempts: Watch tick cap.
    """

    def __init__(
        self,
        verifier: Verifier,
        client,
        history: Optional[HistoryStore] = None,
        sleep: Callable[[float], None] = time.sleep,
        interval: float = POLL_INTERVAL,
        max_attempts: int = MAX_POLL_ATTEMPTS,
    ) -> None:
        self.verifier = verifier
        self.client = client
        self.history = history if history is not None else verifier.history
        self._sleep = sleep
        self.interval = interval
        self.max_attempts = max_attempts

    def run(
        self,
        items: Sequence[BatchItem],
        options: BatchOptions,
        on_item: Optional[ItemObserver] = None,
        on_progress: Optional[ProgressObserver] = None,
        cancel: Optional[threading.Event] = None,
    ) -> BatchVerificationSummary:
        results = self.submit_all(items, options, on_item)
        if options.watch and not options.verify.dry_run:
            results = self.watch(results, on_progress, cancel)
        return BatchVerificationSummary.from_results(results)

    def submit_all(
        self,
        items: Sequence[BatchItem],
        options: BatchOptions,
        on_item: Optional[ItemObserver] = None,
    ) -> list[BatchItemResult]:
        logger.info("Starting batch verification of %d contracts", len(items))
        results: list[BatchItemResult] = []
        stopped = False

        for index, item in enumerate(items):
            if stopped:
                result = BatchItemResult(item=item, state=BatchItemState.SKIPPED)
            else:
                result = self._submit_one(item, options)
                if result.state is BatchItemState.FAILED and options.fail_fast:
                    logger.warning("Stopping batch after failure of %s", item.contract_name)
                    stopped = True
            results.append(result)
            if on_item is not None:
                on_item(index, result)

            if not stopped and index < len(items) - 1 and options.inter_item_delay > 0:
                logger.debug("Waiting %.1fs before next submission", options.inter_item_delay)
                self._sleep(options.inter_item_delay)
        return results

    def _submit_one(self, item: BatchItem, options: BatchOptions) -> BatchItemResult:
        target = VerificationTarget(
            root=options.root,
            class_hash=item.class_hash,
            contract_name=item.contract_name,
            package=item.package,
        )
        try:
            outcome = self.verifier.submit(target, options.verify)
        except VoyagerError as e:
            logger.warning("Batch item %s failed: %s", item.contract_name, e.message)
            return BatchItemResult(item=item, state=BatchItemState.FAILED, error=e.message)

        if isinstance(outcome, PreparedVerification):
            return BatchItemResult(
                item=item, state=BatchItemState.PREVIEWED, files=tuple(outcome.file_paths),
            )
        return BatchItemResult(item=item, state=BatchItemState.SUBMITTED, record=outcome)

    def watch(
        self,
        results: Sequence[BatchItemResult],
        on_progress: Optional[ProgressObserver] = None,
        cancel: Optional[threading.Event] = None,
    ) -> list[BatchItemResult]:
        """Poll every pending job once per tick until none is pending."""
        results = list(results)
        tick = 0
        try:
            while tick < self.max_attempts:
                pending = [i for i, r in enumerate(results) if r.is_pending]
                if not pending or (cancel is not None and cancel.is_set()):
                    break
                tick += 1
                for i in pending:
                    results[i] = self._poll(results[i])

                if on_progress is not None:
                    on_progress(BatchVerificationSummary.from_results(results).progress(tick))
                if any(r.is_pending for r in results) and tick < self.max_attempts:
                    self._sleep(self.interval)
        except KeyboardInterrupt:
            logger.info("Batch watch interrupted; remote jobs continue")
        return results

    def _poll(self, result: BatchItemResult) -> BatchItemResult:
        record = result.record
        try:
            job = self.client.get_job(record.job_id)
        except VoyagerError as e:
            logger.warning("Failed to check job %s: %s", record.job_id, e.message)
            return result.model_copy(update={"poll_error": e.message})

        status = record.status.advance(job.status)
        if status is record.status:
            return result.model_copy(update={"poll_error": None})

        logger.debug("Job %s: %s -> %s", record.job_id, record.status.label, status.label)
        updated = record_from_job(job.model_copy(update={"status": status}), record.network, base=record)
        if self.history is not None:
            try:
                updated = self.history.upsert(updated)
            except HistoryError as e:
                logger.warning("Could not update history for job %s: %s", record.job_id, e)
        return result.model_copy(update={"record": updated, "poll_error": None})
