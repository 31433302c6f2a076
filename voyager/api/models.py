"""Pydantic models for verification service responses."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from voyager.jobs.status import JobStatus

PAYLOAD_TOO_LARGE_TEXT = (
    "Request payload too large. The project files exceed the maximum allowed size "
    "of 10MB. Try reducing file sizes or removing unnecessary files."
)
COMPILER_UNAVAILABLE_TEXT = (
    "Cairo compilation service is currently unavailable. Please try again later."
)


class VerificationJob(BaseModel):
    """Snapshot returned by ``GET /class-verify/job/{job_id}``."""

    model_config = ConfigDict(extra="ignore")

    job_id: str
    status: JobStatus = JobStatus.UNKNOWN
    status_description: Optional[str] = None
    message: Optional[str] = None
    error_category: Optional[str] = None
    class_hash: Optional[str] = None
    created_timestamp: Optional[float] = None
    updated_timestamp: Optional[float] = None
    name: Optional[str] = None
    version: Optional[str] = None
    license: Optional[str] = None
    dojo_version: Optional[str] = None
    build_tool: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> JobStatus:
        return JobStatus.parse(value)

    @field_validator("created_timestamp", "updated_timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Optional[float]:
        if value is None or isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                pass
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
            except ValueError:
                return None
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def error_text(self) -> str:
        """Failure message, with known server errors made actionable."""
        text = self.message or self.status_description or "unknown failure"
        if "payload too large" in text.lower():
            return PAYLOAD_TOO_LARGE_TEXT
        if self.status is JobStatus.COMPILE_FAILED and (
            "Couldn't connect to cairo compilation service" in text
        ):
            return COMPILER_UNAVAILABLE_TEXT
        return text
