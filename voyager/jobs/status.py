"""Verification job status state machine."""

from __future__ import annotations

from enum import Enum
from typing import Any


class JobStatus(int, Enum):
    """Remote job status.

    Wire codes 0-5 come from the service; anything else parses to UNKNOWN.

    Lifecycle::

        SUBMITTED -> PROCESSING -> COMPILED -> SUCCESS | FAIL
                  \\-> COMPILE_FAILED

    SUCCESS, FAIL and COMPILE_FAILED are terminal.
    """

    SUBMITTED = 0
    COMPILED = 1
    COMPILE_FAILED = 2
    FAIL = 3
    SUCCESS = 4
    PROCESSING = 5
    UNKNOWN = -1

    @classmethod
    def parse(cls, value: Any) -> "JobStatus":
        """Status from a wire code or name; unrecognised values are UNKNOWN."""
        if isinstance(value, JobStatus):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_").replace(" ", "_")
            if key in _ALIASES:
                return _ALIASES[key]
            if key.lstrip("-").isdigit():
                value = int(key)
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                return cls.UNKNOWN
        return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_pending(self) -> bool:
        return self in _PENDING

    @property
    def is_failure(self) -> bool:
        return self in (JobStatus.FAIL, JobStatus.COMPILE_FAILED)

    @property
    def label(self) -> str:
        return _LABELS[self]

    def can_transition_to(self, new: "JobStatus") -> bool:
        """Whether moving from this status to new is a legal transition.

        Terminal states are absorbing. UNKNOWN can be entered from any
        non-terminal state. Leaving UNKNOWN is only checked against the
        last known status, which ``advance`` never gives up for UNKNOWN.
        Otherwise statuses only move forward.
        """
        if self is new:
            return True
        if self.is_terminal:
            return False
        if self is JobStatus.UNKNOWN or new is JobStatus.UNKNOWN:
            return True
        return _RANK[new] > _RANK[self]

    def advance(self, new: "JobStatus") -> "JobStatus":
        """Status after observing new; illegal transitions keep the current one.

        An UNKNOWN observation never replaces a known status, so the pinned
        status cannot regress through UNKNOWN and repeated observations
        converge regardless of order.
        """
        if new is JobStatus.UNKNOWN and self is not JobStatus.UNKNOWN:
            return self
        return new if self.can_transition_to(new) else self


_TERMINAL = frozenset({JobStatus.SUCCESS, JobStatus.FAIL, JobStatus.COMPILE_FAILED})
_PENDING = frozenset({JobStatus.SUBMITTED, JobStatus.PROCESSING, JobStatus.COMPILED})

_RANK = {
    JobStatus.SUBMITTED: 0,
    JobStatus.PROCESSING: 1,
    JobStatus.COMPILED: 2,
    JobStatus.COMPILE_FAILED: 3,
    JobStatus.FAIL: 3,
    JobStatus.SUCCESS: 3,
}

_LABELS = {
    JobStatus.SUBMITTED: "Submitted",
    JobStatus.COMPILED: "Compiled",
    JobStatus.COMPILE_FAILED: "CompileFailed",
    JobStatus.FAIL: "Fail",
    JobStatus.SUCCESS: "Success",
    JobStatus.PROCESSING: "Processing",
    JobStatus.UNKNOWN: "Unknown",
}

_ALIASES = {
    "SUBMITTED": JobStatus.SUBMITTED,
    "COMPILED": JobStatus.COMPILED,
    "COMPILEFAILED": JobStatus.COMPILE_FAILED,
    "COMPILE_FAILED": JobStatus.COMPILE_FAILED,
    "FAIL": JobStatus.FAIL,
    "FAILED": JobStatus.FAIL,
    "SUCCESS": JobStatus.SUCCESS,
    "PROCESSING": JobStatus.PROCESSING,
    "UNKNOWN": JobStatus.UNKNOWN,
}
