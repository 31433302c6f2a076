"""Advisory progress and ETA estimates for running jobs.

Display metadata only; nothing here influences polling.
"""

from __future__ import annotations

from typing import Optional

from voyager.jobs.status import JobStatus

BAR_WIDTH = 20

# Seconds remaining per stage when no history is available.
FALLBACK_REMAINING = {
    JobStatus.SUBMITTED: 40.0,
    JobStatus.PROCESSING: 35.0,
    JobStatus.COMPILED: 5.0,
}

# Share of the average total duration still ahead at each stage.
STAGE_FACTORS = {
    JobStatus.SUBMITTED: 1.0,
    JobStatus.PROCESSING: 0.85,
    JobStatus.COMPILED: 0.10,
}

_PERCENTAGES = {
    JobStatus.SUBMITTED: 10,
    JobStatus.PROCESSING: 40,
    JobStatus.COMPILED: 85,
}


def progress_percentage(status: JobStatus) -> int:
    if status.is_terminal:
        return 100
    return _PERCENTAGES.get(status, 0)


def estimate_remaining(
    status: JobStatus,
    elapsed: float = 0.0,
    average: Optional[float] = None,
) -> Optional[float]:
    """Estimated seconds until the job finishes, or None if unknowable.

    Args:
        status: Current job status.
        elapsed: Seconds since submission.
        average: Mean duration of recent successful jobs, if enough exist.
    """
    if status not in STAGE_FACTORS:
        return None
    if average is not None:
        total = average * STAGE_FACTORS[status]
    else:
        total = FALLBACK_REMAINING[status]
    return max(0.0, total - elapsed)


def progress_bar(status: JobStatus, width: int = BAR_WIDTH) -> str:
    filled = progress_percentage(status) * width // 100
    return "█" * filled + "░" * (width - filled)


def format_duration(seconds: Optional[float]) -> str:
    if seconds is None:
        return "unknown"
    seconds = int(round(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes}m {seconds}s"
