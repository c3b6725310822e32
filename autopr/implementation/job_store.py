"""
Job store abstraction.

The orchestrator only talks to `JobStore`. Two backends are provided:
an in-memory store for tests and single-process use, and a SQLAlchemy store
for durable history.
"""

import itertools
import threading
from abc import ABC, abstractmethod

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ..models import BatchRunRecord, ImplementationJobRecord
from .schemas import BatchRun, ImplementationJob


class JobStore(ABC):
    """Storage interface for implementation jobs and batches"""

    @abstractmethod
    def put(self, job: ImplementationJob) -> None:
        """Insert or replace a job (keyed by job.id)."""

    @abstractmethod
    def get(self, job_id: str) -> ImplementationJob | None:
        ...

    @abstractmethod
    def list_by_repo(self, repo_url: str) -> list[ImplementationJob]:
        """All jobs for a repository, most recent first."""

    @abstractmethod
    def list_all(self) -> list[ImplementationJob]:
        """All jobs, most recent first."""

    @abstractmethod
    def put_batch(self, batch: BatchRun) -> None:
        ...

    @abstractmethod
    def get_batch(self, batch_id: str) -> BatchRun | None:
        """The batch with each persisted job refreshed to its latest state."""

    @abstractmethod
    def list_batches(self, repo_url: str | None = None) -> list[BatchRun]:
        ...

    def _refresh_jobs(self, batch: BatchRun) -> BatchRun:
        jobs = []
        for job in batch.jobs:
            current = self.get(job.id) if job.id else None
            jobs.append(current or job)
        batch.jobs = jobs
        return batch


class InMemoryJobStore(JobStore):
    """Process-lifetime registry. Returns copies so callers never share state."""

    def __init__(self):
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._jobs: dict[str, tuple[int, ImplementationJob]] = {}
        self._batches: dict[str, tuple[int, BatchRun]] = {}

    def put(self, job: ImplementationJob) -> None:
        if not job.id:
            raise ValueError("Cannot store a job without an id")
        with self._lock:
            seq = self._jobs[job.id][0] if job.id in self._jobs else next(self._seq)
            self._jobs[job.id] = (seq, job.model_copy(deep=True))

    def get(self, job_id: str) -> ImplementationJob | None:
        with self._lock:
            entry = self._jobs.get(job_id)
            return entry[1].model_copy(deep=True) if entry else None

    def _sorted(self, entries) -> list[ImplementationJob]:
        ordered = sorted(entries, key=lambda e: (e[1].created_at, e[0]), reverse=True)
        return [job.model_copy(deep=True) for _, job in ordered]

    def list_by_repo(self, repo_url: str) -> list[ImplementationJob]:
        with self._lock:
            return self._sorted([e for e in self._jobs.values() if e[1].repo_url == repo_url])

    def list_all(self) -> list[ImplementationJob]:
        with self._lock:
            return self._sorted(list(self._jobs.values()))

    def put_batch(self, batch: BatchRun) -> None:
        with self._lock:
            seq = self._batches[batch.id][0] if batch.id in self._batches else next(self._seq)
            self._batches[batch.id] = (seq, batch.model_copy(deep=True))

    def get_batch(self, batch_id: str) -> BatchRun | None:
        with self._lock:
            entry = self._batches.get(batch_id)
            batch = entry[1].model_copy(deep=True) if entry else None
        return self._refresh_jobs(batch) if batch else None

    def list_batches(self, repo_url: str | None = None) -> list[BatchRun]:
        with self._lock:
            entries = [
                e for e in self._batches.values()
                if repo_url is None or e[1].repo_url == repo_url
            ]
            ordered = sorted(entries, key=lambda e: (e[1].created_at, e[0]), reverse=True)
            batches = [batch.model_copy(deep=True) for _, batch in ordered]
        return [self._refresh_jobs(b) for b in batches]


class SqlJobStore(JobStore):
    """Durable store backed by SQLAlchemy. Jobs are kept as JSON payloads."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def put(self, job: ImplementationJob) -> None:
        if not job.id:
            raise ValueError("Cannot store a job without an id")
        with Session(self.engine) as session:
            record = session.query(ImplementationJobRecord).filter(
                ImplementationJobRecord.job_id == job.id
            ).first()
            if record is None:
                record = ImplementationJobRecord(
                    job_id=job.id,
                    created_at=job.created_at,
                )
                session.add(record)
            record.batch_id = job.batch_id
            record.repo_url = job.repo_url
            record.project_name = job.project_name
            record.status = job.status.value
            record.updated_at = job.updated_at
            record.payload = job.model_dump_json()
            session.commit()

    def get(self, job_id: str) -> ImplementationJob | None:
        with Session(self.engine) as session:
            record = session.query(ImplementationJobRecord).filter(
                ImplementationJobRecord.job_id == job_id
            ).first()
            return ImplementationJob.model_validate_json(record.payload) if record else None

    def _list(self, repo_url: str | None) -> list[ImplementationJob]:
        with Session(self.engine) as session:
            query = session.query(ImplementationJobRecord)
            if repo_url is not None:
                query = query.filter(ImplementationJobRecord.repo_url == repo_url)
            records = query.order_by(
                ImplementationJobRecord.created_at.desc(),
                ImplementationJobRecord.seq.desc(),
            ).all()
            return [ImplementationJob.model_validate_json(r.payload) for r in records]

    def list_by_repo(self, repo_url: str) -> list[ImplementationJob]:
        return self._list(repo_url)

    def list_all(self) -> list[ImplementationJob]:
        return self._list(None)

    def put_batch(self, batch: BatchRun) -> None:
        with Session(self.engine) as session:
            record = session.query(BatchRunRecord).filter(BatchRunRecord.batch_id == batch.id).first()
            if record is None:
                record = BatchRunRecord(batch_id=batch.id, repo_url=batch.repo_url, created_at=batch.created_at)
                session.add(record)
            record.payload = batch.model_dump_json()
            session.commit()

    def get_batch(self, batch_id: str) -> BatchRun | None:
        with Session(self.engine) as session:
            record = session.query(BatchRunRecord).filter(BatchRunRecord.batch_id == batch_id).first()
            batch = BatchRun.model_validate_json(record.payload) if record else None
        return self._refresh_jobs(batch) if batch else None

    def list_batches(self, repo_url: str | None = None) -> list[BatchRun]:
        with Session(self.engine) as session:
            query = session.query(BatchRunRecord)
            if repo_url is not None:
                query = query.filter(BatchRunRecord.repo_url == repo_url)
            records = query.order_by(BatchRunRecord.created_at.desc(), BatchRunRecord.seq.desc()).all()
            batches = [BatchRun.model_validate_json(r.payload) for r in records]
        return [self._refresh_jobs(b) for b in batches]
