"""History record models.

``JobRecord`` is the pydantic view the rest of the code works with;
``HistoryRow`` is the SQLAlchemy row it is persisted as.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

from voyager.jobs.status import JobStatus

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class JobRecord(BaseModel):
    """One verification job as tracked locally."""

    job_id: str
    class_hash: str = ""
    contract_name: str = ""
    network: str = "custom"
    status: JobStatus = JobStatus.SUBMITTED
    submitted_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    package_name: Optional[str] = None
    scarb_version: Optional[str] = None
    cairo_version: Optional[str] = None
    dojo_version: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def duration(self) -> Optional[float]:
        """Seconds from submission to completion, for finished jobs."""
        if self.completed_at is None:
            return None
        return (as_utc(self.completed_at) - as_utc(self.submitted_at)).total_seconds()

    def merge(self, incoming: "JobRecord") -> "JobRecord":
        """Combine a stored record with a newer observation of the same job.

        The status only moves through ``JobStatus.advance``, so merging in
        any order converges on the furthest status. Metadata prefers the
        incoming values when present.
        """
        status = self.status.advance(incoming.status)
        accepted = status is incoming.status

        merged = self.model_copy(update={
            "status": status,
            "class_hash": incoming.class_hash or self.class_hash,
            "contract_name": incoming.contract_name or self.contract_name,
            "network": incoming.network if incoming.network != "custom" else self.network,
            "submitted_at": min(as_utc(self.submitted_at), as_utc(incoming.submitted_at)),
            "updated_at": max(as_utc(self.updated_at), as_utc(incoming.updated_at)),
            "package_name": incoming.package_name or self.package_name,
            "scarb_version": incoming.scarb_version or self.scarb_version,
            "cairo_version": incoming.cairo_version or self.cairo_version,
            "dojo_version": incoming.dojo_version or self.dojo_version,
            "error_message": (incoming.error_message if accepted else None) or self.error_message,
        })
        if status.is_terminal and merged.completed_at is None:
            merged.completed_at = incoming.completed_at or merged.updated_at
        return merged


class HistoryStats(BaseModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    succeeded: int = 0
    failed: int = 0
    pending: int = 0

    @classmethod
    def from_records(cls, records: list[JobRecord]) -> "HistoryStats":
        stats = cls(total=len(records))
        for record in records:
            label = record.status.label
            stats.by_status[label] = stats.by_status.get(label, 0) + 1
            if record.status is JobStatus.SUCCESS:
                stats.succeeded += 1
            elif record.status.is_failure:
                stats.failed += 1
            elif record.status.is_pending:
                stats.pending += 1
        return stats


class HistoryRow(Base):
    """Row of the ``verification_history`` table."""
    __tablename__ = "verification_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(255), nullable=False, unique=True, index=True)
    class_hash = Column(String(255), nullable=False, default="")
    contract_name = Column(String(255), nullable=False, default="")
    network = Column(String(64), nullable=False, default="custom")
    status = Column(Integer, nullable=False, index=True)
    submitted_at = Column(DateTime, nullable=False, index=True)
    updated_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    package_name = Column(String(255), nullable=True)
    scarb_version = Column(String(64), nullable=True)
    cairo_version = Column(String(64), nullable=True)
    dojo_version = Column(String(64), nullable=True)
    error_message = Column(Text, nullable=True)

    def to_record(self) -> JobRecord:
        return JobRecord(
            job_id=self.job_id,
            class_hash=self.class_hash,
            contract_name=self.contract_name,
            network=self.network,
            status=JobStatus.parse(self.status),
            submitted_at=as_utc(self.submitted_at),
            updated_at=as_utc(self.updated_at),
            completed_at=as_utc(self.completed_at),
            package_name=self.package_name,
            scarb_version=self.scarb_version,
            cairo_version=self.cairo_version,
            dojo_version=self.dojo_version,
            error_message=self.error_message,
        )

    def update_from(self, record: JobRecord) -> None:
        self.job_id = record.job_id
        self.class_hash = record.class_hash
        self.contract_name = record.contract_name
        self.network = record.network
        self.status = record.status.value
        self.submitted_at = _naive(record.submitted_at)
        self.updated_at = _naive(record.updated_at)
        self.completed_at = _naive(record.completed_at)
        self.package_name = record.package_name
        self.scarb_version = record.scarb_version
        self.cairo_version = record.cairo_version
        self.dojo_version = record.dojo_version
        self.error_message = record.error_message


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return as_utc(value).astimezone(timezone.utc).replace(tzinfo=None)
