"""Durable storage for generation job records."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from models.database import GenerationJob
from shared.errors import JobNotFoundError
from shared.models import JobQuery, JobRecord
from shared.utils import setup_logging

logger = setup_logging("job-store")


class JobStore(ABC):
    """Persistence contract for job records; the only writer of job status."""

    @abstractmethod
    async def create(self, record: JobRecord) -> JobRecord:
        """Persist a new record."""

    @abstractmethod
    async def update(self, job_id: str, **fields: Any) -> JobRecord:
        """Apply a partial update and return the stored record."""

    @abstractmethod
    async def get(self, job_id: str) -> JobRecord | None:
        """Fetch a record by id."""

    @abstractmethod
    async def query(self, job_filter: JobQuery | None = None) -> list[JobRecord]:
        """Return records matching the filter, newest first."""

    @staticmethod
    def _merge(record: JobRecord, fields: dict[str, Any]) -> JobRecord:
        unknown = set(fields) - set(JobRecord.model_fields)
        if unknown:
            raise ValueError(f"Unknown job record fields: {sorted(unknown)}")
        data = record.model_dump()
        data.update(fields)
        data["updated_at"] = datetime.now(timezone.utc)
        return JobRecord.model_validate(data)

    @staticmethod
    def _matches(record: JobRecord, job_filter: JobQuery) -> bool:
        if job_filter.status is not None and record.status != job_filter.status:
            return False
        if job_filter.subject_id is not None and record.subject_id != job_filter.subject_id:
            return False
        return True


class InMemoryJobStore(JobStore):
    """Process-local store, used for tests and single-process development."""

    def __init__(self) -> None:
        self._records: dict[str, JobRecord] = {}

    async def create(self, record: JobRecord) -> JobRecord:
        if record.id in self._records:
            raise ValueError(f"Job record {record.id} already exists")
        self._records[record.id] = record.model_copy(deep=True)
        return record

    async def update(self, job_id: str, **fields: Any) -> JobRecord:
        record = self._records.get(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        updated = self._merge(record, fields)
        self._records[job_id] = updated
        return updated.model_copy(deep=True)

    async def get(self, job_id: str) -> JobRecord | None:
        record = self._records.get(job_id)
        return record.model_copy(deep=True) if record else None

    async def query(self, job_filter: JobQuery | None = None) -> list[JobRecord]:
        job_filter = job_filter or JobQuery()
        records = [r for r in self._records.values() if self._matches(r, job_filter)]
        records.sort(key=lambda r: r.created_at, reverse=True)
        if job_filter.limit:
            records = records[: job_filter.limit]
        return [r.model_copy(deep=True) for r in records]


class SqlAlchemyJobStore(JobStore):
    """Job store backed by the ``generation_jobs`` table."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self.session_factory = session_factory

    @staticmethod
    def _to_record(row: GenerationJob) -> JobRecord:
        return JobRecord.model_validate(row, from_attributes=True)

    async def create(self, record: JobRecord) -> JobRecord:
        with self.session_factory() as session:
            session.add(GenerationJob(**record.model_dump(mode="json", exclude=self._datetime_fields()), **self._datetimes(record)))
            session.commit()
        logger.debug(f"Created job record {record.id}")
        return record

    async def update(self, job_id: str, **fields: Any) -> JobRecord:
        with self.session_factory() as session:
            row = session.get(GenerationJob, job_id)
            if row is None:
                raise JobNotFoundError(job_id)
            updated = self._merge(self._to_record(row), fields)
            for name, value in updated.model_dump(mode="json", exclude=self._datetime_fields()).items():
                setattr(row, name, value)
            for name, value in self._datetimes(updated).items():
                setattr(row, name, value)
            session.commit()
            return updated

    async def get(self, job_id: str) -> JobRecord | None:
        with self.session_factory() as session:
            row = session.get(GenerationJob, job_id)
            return self._to_record(row) if row else None

    async def query(self, job_filter: JobQuery | None = None) -> list[JobRecord]:
        job_filter = job_filter or JobQuery()
        with self.session_factory() as session:
            query = session.query(GenerationJob)
            if job_filter.status is not None:
                query = query.filter(GenerationJob.status == job_filter.status.value)
            if job_filter.subject_id is not None:
                query = query.filter(GenerationJob.subject_id == job_filter.subject_id)
            query = query.order_by(GenerationJob.created_at.desc())
            if job_filter.limit:
                query = query.limit(job_filter.limit)
            return [self._to_record(row) for row in query.all()]

    @staticmethod
    def _datetime_fields() -> set[str]:
        return {"created_at", "updated_at", "started_at", "completed_at"}

    def _datetimes(self, record: JobRecord) -> dict[str, datetime | None]:
        return {name: getattr(record, name) for name in self._datetime_fields()}
