"""Verification history storage backends."""

from __future__ import annotations

import abc
import copy
import logging
import threading
from datetime import timedelta
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from voyager.history.models import Base, HistoryRow, HistoryStats, JobRecord, as_utc, utcnow
from voyager.jobs.status import JobStatus
from voyager.utils import HistoryError

logger = logging.getLogger(__name__)

AVERAGE_SAMPLES = 10
AVERAGE_MIN_SAMPLES = 3


class HistoryStore(abc.ABC):
    """Persistent record of submitted verification jobs.

    All writes are upserts keyed by job id and merged through
    ``JobRecord.merge``, so repeated or reordered writes for one job
    converge on the same final record.
    """

    @abc.abstractmethod
    def upsert(self, record: JobRecord) -> JobRecord:
        """Insert or merge a record; returns the stored result."""

    @abc.abstractmethod
    def get(self, job_id: str) -> Optional[JobRecord]:
        """Record for job_id, or None."""

    @abc.abstractmethod
    def list(
        self,
        status: Optional[JobStatus] = None,
        network: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[JobRecord]:
        """Records matching the filters, newest submission first."""

    @abc.abstractmethod
    def delete_older_than(self, days: int) -> int:
        """Delete records submitted more than days ago; returns the count."""

    @abc.abstractmethod
    def delete_all(self) -> int:
        """Delete every record; returns the count."""

    def statistics(self) -> HistoryStats:
        return HistoryStats.from_records(self.list())

    def average_duration(
        self,
        samples: int = AVERAGE_SAMPLES,
        min_samples: int = AVERAGE_MIN_SAMPLES,
    ) -> Optional[float]:
        """Mean duration in seconds of the most recent successful jobs.

        None when fewer than min_samples completed successes exist.
        """
        durations = [
            r.duration for r in self.list(status=JobStatus.SUCCESS)
            if r.duration is not None and r.duration >= 0
        ][:samples]
        if len(durations) < min_samples:
            return None
        return sum(durations) / len(durations)


class InMemoryHistoryStore(HistoryStore):
    """Thread-safe dict-based history, used in tests and when history is disabled."""

    def __init__(self) -> None:
        self._store: dict[str, JobRecord] = {}
        self._lock = threading.Lock()

    def upsert(self, record: JobRecord) -> JobRecord:
        with self._lock:
            existing = self._store.get(record.job_id)
            stored = existing.merge(record) if existing else record.model_copy(deep=True)
            self._store[record.job_id] = stored
            return copy.deepcopy(stored)

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            record = self._store.get(job_id)
            return copy.deepcopy(record) if record is not None else None

    def list(
        self,
        status: Optional[JobStatus] = None,
        network: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[JobRecord]:
        with self._lock:
            records = [
                copy.deepcopy(r) for r in self._store.values()
                if (status is None or r.status is status)
                and (network is None or r.network == network)
            ]
        records.sort(key=lambda r: as_utc(r.submitted_at), reverse=True)
        return records[:limit] if limit is not None else records

    def delete_older_than(self, days: int) -> int:
        cutoff = utcnow() - timedelta(days=days)
        with self._lock:
            stale = [k for k, r in self._store.items() if as_utc(r.submitted_at) < cutoff]
            for key in stale:
                del self._store[key]
            return len(stale)

    def delete_all(self) -> int:
        with self._lock:
            count = len(self._store)
            self._store.clear()
            return count


class SQLHistoryStore(HistoryStore):
    """SQLite-backed history via SQLAlchemy.

    Args:
        path: Database file; created with its directory on first use.
            None gives a private in-memory database.
    """

    def __init__(self, path: Optional[str | Path] = None) -> None:
        self.path = Path(path).expanduser() if path is not None else None
        try:
            if self.path is not None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                url = f"sqlite:///{self.path}"
            else:
                url = "sqlite://"
            self._engine = create_engine(url, future=True)
            Base.metadata.create_all(bind=self._engine)
        except (OSError, SQLAlchemyError) as e:
            raise HistoryError(
                f"Cannot open history database {self.path or ':memory:'}: {e}",
                suggestions=["Set VOYAGER_HISTORY_DB to a writable location"],
            ) from e
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)
        logger.debug("History database ready at %s", self.path or ":memory:")

    def upsert(self, record: JobRecord) -> JobRecord:
        try:
            with self._sessions() as session, session.begin():
                row = session.query(HistoryRow).filter_by(job_id=record.job_id).one_or_none()
                if row is None:
                    stored = record
                    row = HistoryRow()
                    session.add(row)
                else:
                    stored = row.to_record().merge(record)
                row.update_from(stored)
            return stored
        except SQLAlchemyError as e:
            raise HistoryError(f"Failed to save job {record.job_id}: {e}") from e

    def get(self, job_id: str) -> Optional[JobRecord]:
        try:
            with self._sessions() as session:
                row = session.query(HistoryRow).filter_by(job_id=job_id).one_or_none()
                return row.to_record() if row is not None else None
        except SQLAlchemyError as e:
            raise HistoryError(f"Failed to read job {job_id}: {e}") from e

    def list(
        self,
        status: Optional[JobStatus] = None,
        network: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[JobRecord]:
        try:
            with self._sessions() as session:
                query = session.query(HistoryRow)
                if status is not None:
                    query = query.filter(HistoryRow.status == status.value)
                if network is not None:
                    query = query.filter(HistoryRow.network == network)
                query = query.order_by(HistoryRow.submitted_at.desc(), HistoryRow.id.desc())
                if limit is not None:
                    query = query.limit(limit)
                return [row.to_record() for row in query.all()]
        except SQLAlchemyError as e:
            raise HistoryError(f"Failed to list history: {e}") from e

    def delete_older_than(self, days: int) -> int:
        cutoff = (utcnow() - timedelta(days=days)).replace(tzinfo=None)
        try:
            with self._sessions() as session, session.begin():
                return session.query(HistoryRow).filter(HistoryRow.submitted_at < cutoff).delete()
        except SQLAlchemyError as e:
            raise HistoryError(f"Failed to clean history: {e}") from e

    def delete_all(self) -> int:
        try:
            with self._sessions() as session, session.begin():
                return session.query(HistoryRow).delete()
        except SQLAlchemyError as e:
            raise HistoryError(f"Failed to clear history: {e}") from e


def open_history_store(path: Optional[str | Path], enabled: bool = True) -> HistoryStore:
    """History store for the CLI: SQLite when enabled, else in-memory."""
    if not enabled:
        logger.info("History disabled; using in-memory store")
        return InMemoryHistoryStore()
    return SQLHistoryStore(path)
