"""
Analysis history.

Reports are kept per repository and commit so an unchanged repository is
never re-analyzed. Same two backends as the job store.
"""

import itertools
import threading
from abc import ABC, abstractmethod

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ..models import AnalysisRecord
from .analysis import AnalysisReport


class AnalysisStore(ABC):
    @abstractmethod
    def save(self, report: AnalysisReport) -> None:
        """Append a report; `repo_url` must be set."""

    @abstractmethod
    def history(self, repo_url: str, limit: int | None = None) -> list[AnalysisReport]:
        """Reports for a repository, most recent first."""

    def latest(self, repo_url: str) -> AnalysisReport | None:
        reports = self.history(repo_url, limit=1)
        return reports[0] if reports else None

    def find(self, repo_url: str, commit_sha: str) -> AnalysisReport | None:
        """Most recent report for the repository at `commit_sha`."""
        for report in self.history(repo_url):
            if report.commit_sha == commit_sha:
                return report
        return None


class InMemoryAnalysisStore(AnalysisStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._reports: list[tuple[int, AnalysisReport]] = []

    def save(self, report: AnalysisReport) -> None:
        if not report.repo_url:
            raise ValueError("Cannot store an analysis without a repository")
        with self._lock:
            self._reports.append((next(self._seq), report.model_copy(deep=True)))

    def history(self, repo_url: str, limit: int | None = None) -> list[AnalysisReport]:
        with self._lock:
            entries = [e for e in self._reports if e[1].repo_url == repo_url]
            ordered = sorted(entries, key=lambda e: (e[1].analyzed_at, e[0]), reverse=True)
            return [report.model_copy(deep=True) for _, report in ordered[:limit]]


class SqlAnalysisStore(AnalysisStore):
    def __init__(self, engine: Engine):
        self.engine = engine

    def save(self, report: AnalysisReport) -> None:
        if not report.repo_url:
            raise ValueError("Cannot store an analysis without a repository")
        with Session(self.engine) as session:
            session.add(AnalysisRecord(
                repo_url=report.repo_url,
                commit_sha=report.commit_sha,
                project_name=report.project_name or "",
                overall_score=report.overall_score,
                created_at=report.analyzed_at,
                payload=report.model_dump_json(),
            ))
            session.commit()

    def _query(self, session: Session, repo_url: str):
        return session.query(AnalysisRecord).filter(AnalysisRecord.repo_url == repo_url).order_by(
            AnalysisRecord.created_at.desc(),
            AnalysisRecord.seq.desc(),
        )

    def history(self, repo_url: str, limit: int | None = None) -> list[AnalysisReport]:
        with Session(self.engine) as session:
            query = self._query(session, repo_url)
            if limit is not None:
                query = query.limit(limit)
            return [AnalysisReport.model_validate_json(r.payload) for r in query.all()]

    def find(self, repo_url: str, commit_sha: str) -> AnalysisReport | None:
        with Session(self.engine) as session:
            record = self._query(session, repo_url).filter(AnalysisRecord.commit_sha == commit_sha).first()
            return AnalysisReport.model_validate_json(record.payload) if record else None
