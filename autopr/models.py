"""
SQLAlchemy models for AutoPR jobs and analyses
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ImplementationJobRecord(Base):
    """One implementation job. The full job is kept as JSON in `payload`."""
    __tablename__ = "implementation_jobs"

    # Insertion order, used to break created_at ties
    seq = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String, nullable=False, unique=True, index=True)
    batch_id = Column(String, nullable=True, index=True)
    repo_url = Column(String, nullable=False, index=True)
    project_name = Column(String, nullable=False)
    status = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    payload = Column(Text, nullable=False)  # JSON: ImplementationJob

    def __repr__(self):
        return f"<ImplementationJobRecord(job_id='{self.job_id}', status='{self.status}')>"


class BatchRunRecord(Base):
    """A batch run. `payload` embeds its jobs; persisted jobs are refreshed from implementation_jobs on read."""
    __tablename__ = "batch_runs"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    batch_id = Column(String, nullable=False, unique=True, index=True)
    repo_url = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    payload = Column(Text, nullable=False)  # JSON: BatchRun

    def __repr__(self):
        return f"<BatchRunRecord(batch_id='{self.batch_id}', repo_url='{self.repo_url}')>"


class AnalysisRecord(Base):
    """An AI analysis of one repository at one commit"""
    __tablename__ = "repository_analyses"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    repo_url = Column(String, nullable=False, index=True)
    commit_sha = Column(String, nullable=True, index=True)
    project_name = Column(String, nullable=False)
    overall_score = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    payload = Column(Text, nullable=False)  # JSON: AnalysisReport

    def __repr__(self):
        return f"<AnalysisRecord(repo_url='{self.repo_url}', commit_sha='{self.commit_sha}')>"
