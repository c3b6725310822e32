"""
AutoPR Implementation Schema Definitions

Pydantic models defining the API contract for the implementation endpoints.
Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..errors import ValidationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases, accepting either form on input"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# ENUMS
# =============================================================================

class JobStatus(str, Enum):
    """Lifecycle of an implementation job"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.FAILED},
    JobStatus.RUNNING: {JobStatus.SUCCEEDED, JobStatus.FAILED},
    JobStatus.SUCCEEDED: set(),
    JobStatus.FAILED: set(),
}


class InvalidTransition(RuntimeError):
    """Raised when a job is moved backwards or out of a terminal state"""


# =============================================================================
# RECOMMENDATION
# =============================================================================

class Recommendation(CamelModel):
    """An AI-suggested improvement submitted for implementation"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow", frozen=True)

    id: str | None = Field(None, description="Caller-assigned identifier")
    title: str = Field(..., description="Short name of the improvement")
    description: str = Field("", description="What should change and why")
    category: str | None = Field(None, description="e.g. Security, Performance, Testing")
    priority: str | None = Field(None, description="High | Medium | Low")
    difficulty: str | None = Field(None, description="Beginner | Intermediate | Advanced")
    estimated_time: str | None = Field(None, description="Free-form estimate from the analysis")
    tech_stack: list[str] | None = Field(None, description="Technologies this change touches")
    implementation: dict[str, Any] | None = Field(
        None, description="Structured details: files to touch, steps to take"
    )

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be blank")
        return value

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        if value is None:
            return None
        return str(value)

    @property
    def target_files(self) -> list[str]:
        files = (self.implementation or {}).get("files") or []
        return [str(f) for f in files if isinstance(f, (str, int))]

    @property
    def steps(self) -> list[str]:
        steps = (self.implementation or {}).get("steps") or []
        return [str(s) for s in steps]


# =============================================================================
# JOBS & BATCHES
# =============================================================================

class JobError(CamelModel):
    """Why a job failed"""
    type: str = Field(..., description="validation_error | upstream_error | timeout | internal_error")
    message: str = Field(..., description="Human readable reason")


class ValidationReport(CamelModel):
    """Lint and test results for the committed change"""
    project_type: str = Field(..., description="nodejs | python | java-maven | java-gradle | rust | go | unknown")
    package_manager: str | None = None
    linting: str = Field("skipped", description="passed | failed | skipped")
    tests: str = Field("skipped", description="passed | failed | skipped")
    note: str | None = None


class ImplementationJob(CamelModel):
    """One execution attempt of a single recommendation against one repository"""
    id: str | None = Field(None, description="Job id (absent for entries rejected by validation)")
    batch_id: str | None = Field(None, description="Batch this job belongs to")
    repo_url: str = Field(..., description="Canonical GitHub URL")
    project_name: str = Field(..., description="Project the repository belongs to")
    tech_stack: list[str] = Field(default_factory=list)
    difficulty: str | None = None
    category: str | None = None
    recommendation: dict[str, Any] = Field(default_factory=dict, description="Recommendation as submitted")
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    branch: str | None = None
    base_branch: str | None = None
    pull_request_url: str | None = None
    pull_request_number: int | None = None
    commit_hash: str | None = None
    modified_files: list[str] = Field(default_factory=list)
    generator_output: str | None = Field(None, description="Truncated preview of the CLI output")
    validation: ValidationReport | None = None
    deployment_url: str | None = None
    deployment_id: str | None = None
    deployed_at: datetime | None = None
    error: JobError | None = None

    def transition_to(self, status: JobStatus) -> None:
        """Move to `status`, enforcing pending -> running -> {succeeded, failed}."""
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(f"Cannot move job {self.id} from {self.status.value} to {status.value}")
        self.status = status
        self.updated_at = utcnow()

    def fail(self, error_type: str, message: str) -> None:
        self.error = JobError(type=error_type, message=message)
        self.transition_to(JobStatus.FAILED)

    def touch(self) -> None:
        self.updated_at = utcnow()


class BatchSummary(CamelModel):
    total: int
    succeeded: int
    failed: int
    success_rate: int = Field(..., description="Percentage of jobs that succeeded")


class BatchRun(CamelModel):
    """Ordered jobs sharing one repository/project context"""
    id: str
    repo_url: str
    project_name: str
    create_separate_prs: bool = Field(True, alias="createSeparatePRs")
    created_at: datetime = Field(default_factory=utcnow)
    jobs: list[ImplementationJob] = Field(default_factory=list)

    def summarize(self) -> BatchSummary:
        total = len(self.jobs)
        succeeded = sum(1 for job in self.jobs if job.status == JobStatus.SUCCEEDED)
        failed = sum(1 for job in self.jobs if job.status == JobStatus.FAILED)
        rate = round(succeeded * 100 / total) if total else 0
        return BatchSummary(total=total, succeeded=succeeded, failed=failed, success_rate=rate)


class BatchRunResponse(BatchRun):
    """BatchRun plus its computed summary, as returned by the API"""
    summary: BatchSummary

    @classmethod
    def from_batch(cls, batch: BatchRun) -> "BatchRunResponse":
        return cls(**batch.model_dump(), summary=batch.summarize())


# =============================================================================
# PLANS
# =============================================================================

class PlanEstimation(CamelModel):
    time_minutes: int
    complexity: str
    risk_level: float = Field(..., ge=0, le=5)
    confidence: int = Field(..., ge=0, le=100)


class PlanStrategy(CamelModel):
    approach: str
    testing_strategy: str
    rollback_plan: str


class PlanDependency(CamelModel):
    id: str | None = None
    title: str
    reason: str


class Feasibility(CamelModel):
    feasible: bool
    assessment: str = Field(..., description="high | medium | low | invalid")
    issues: list[str] = Field(default_factory=list)


class Plan(CamelModel):
    """What a generate/batch call would do for one recommendation. Never persisted."""
    order: int
    recommendation: dict[str, Any]
    branch: str | None = None
    files_expected_to_change: list[str] = Field(default_factory=list)
    changes: list[str] = Field(default_factory=list)
    estimation: PlanEstimation | None = None
    strategy: PlanStrategy | None = None
    dependencies: list[PlanDependency] = Field(default_factory=list)
    prerequisites: list[str] = Field(default_factory=list)
    feasibility: Feasibility
    suggested_order: int | None = None


# =============================================================================
# DEPLOYMENTS
# =============================================================================

class DeploymentInfo(CamelModel):
    """Where a succeeded implementation's branch is deployed"""
    implementation_id: str
    repo_url: str
    project_name: str
    title: str | None = None
    branch: str | None = None
    deployment_id: str | None = None
    deployment_url: str | None = None
    deployed_at: datetime | None = None
    status: str = Field(..., description="deployed | not_deployed")

    @classmethod
    def from_job(cls, job: ImplementationJob) -> "DeploymentInfo":
        return cls(
            implementation_id=job.id,
            repo_url=job.repo_url,
            project_name=job.project_name,
            title=job.recommendation.get("title"),
            branch=job.branch,
            deployment_id=job.deployment_id,
            deployment_url=job.deployment_url,
            deployed_at=job.deployed_at,
            status="deployed" if job.deployment_url else "not_deployed",
        )


# =============================================================================
# HISTORY & STATISTICS
# =============================================================================

class HistoryPage(CamelModel):
    items: list[ImplementationJob]
    total: int
    limit: int
    offset: int


class ImplementationStatistics(CamelModel):
    total_implementations: int
    succeeded: int
    failed: int
    in_progress: int
    success_rate: int
    total_batches: int
    category_breakdown: dict[str, int] = Field(default_factory=dict)
    priority_breakdown: dict[str, int] = Field(default_factory=dict)
    recent_activity: list[ImplementationJob] = Field(default_factory=list)


# =============================================================================
# REQUEST MODELS
# =============================================================================
# Required fields are optional here; the orchestrator validates them so that
# missing input maps to ValidationError (HTTP 400).

class GenerateRequest(CamelModel):
    repo_url: str | None = None
    project_name: str | None = None
    tech_stack: list[str] = Field(default_factory=list)
    difficulty: str = "intermediate"
    category: str = "Web Development"
    implementation: Any = None
    analysis_data: dict[str, Any] | None = None


class BatchRequest(CamelModel):
    repo_url: str | None = None
    project_name: str | None = None
    tech_stack: list[str] = Field(default_factory=list)
    difficulty: str = "intermediate"
    category: str = "Web Development"
    implementations: Any = None
    analysis_data: dict[str, Any] | None = None
    create_separate_prs: bool = Field(True, alias="createSeparatePRs")


class PlanRequest(CamelModel):
    repo_url: str | None = None
    project_name: str | None = None
    tech_stack: list[str] = Field(default_factory=list)
    implementations: Any = None
    analysis_data: dict[str, Any] | None = None


def parse_recommendation(raw: Any) -> Recommendation:
    """Validate one submitted recommendation, raising the API's ValidationError."""
    if not isinstance(raw, dict):
        raise ValidationError("Recommendation must be an object")
    try:
        return Recommendation.model_validate(raw)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in item.get('loc', ())) or 'recommendation'}: {item.get('msg')}"
            for item in e.errors()
        )
        raise ValidationError(f"Invalid recommendation: {details}")
