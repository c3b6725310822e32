"""
Implementation pipeline: recommendations in, branches and pull requests out.
"""

from .orchestrator import Orchestrator
from .schemas import BatchRun, ImplementationJob, JobStatus, Plan, Recommendation

__all__ = ["Orchestrator", "BatchRun", "ImplementationJob", "JobStatus", "Plan", "Recommendation"]
