"""
Implementation Orchestrator

Turns recommendations into pull requests:

    validate -> branch -> .gemini config -> Gemini CLI -> commit -> lint/test -> push -> PR

Every call is a batch. `generate` is a batch of one; `batch_implementation`
either fans out one branch and PR per recommendation, or lands all of them
sequentially on a single shared branch with one PR. Job-level failures are
recorded on the job; only input validation raises.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import (
    ImplementationError,
    JobTimeoutError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from ..services.github import canonical_repo_url, parse_repo_url
from .branch_naming import BranchNamer, shared_branch_name, slugify
from .gemini_config import ProjectContext, write_gemini_config
from .job_store import JobStore
from .output_parser import apply_file_blocks, extract_file_blocks
from .planner import build_plans
from .prompts import build_commit_message, build_implementation_prompt, build_pull_request_body
from .schemas import (
    BatchRun,
    DeploymentInfo,
    HistoryPage,
    ImplementationJob,
    ImplementationStatistics,
    JobStatus,
    Plan,
    Recommendation,
    ValidationReport,
    parse_recommendation,
    utcnow,
)

logger = logging.getLogger(__name__)

PR_LABEL = "ai-implementation"
MAX_HISTORY_LIMIT = 100


@dataclass
class RunContext:
    """What every job in one batch shares"""
    owner: str
    repo: str
    project_name: str
    tech_stack: list[str] = field(default_factory=list)
    difficulty: str | None = None
    category: str | None = None
    analysis_data: dict[str, Any] | None = None

    def project_context(self) -> ProjectContext:
        return ProjectContext(
            project_name=self.project_name,
            category=self.category,
            difficulty=self.difficulty,
            tech_stack=self.tech_stack,
            analysis_data=self.analysis_data,
        )


def _require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value.strip()


def _job_log_context(job: ImplementationJob) -> dict:
    return {"job_id": job.id, "batch_id": job.batch_id, "repo_url": job.repo_url, "branch": job.branch}


def _deployed_at(job: ImplementationJob):
    return job.deployed_at or job.updated_at


class Orchestrator:
    def __init__(
        self,
        store: JobStore,
        github,
        workspace,
        runner,
        *,
        generation_timeout: float = 120,
        max_concurrent_jobs: int = 3,
        vercel=None,
        validator=None,
    ):
        self.store = store
        self.github = github
        self.workspace = workspace
        self.runner = runner
        self.vercel = vercel
        self.validator = validator
        self.generation_timeout = generation_timeout
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent_jobs))
        self._branch_locks: dict[tuple[str, str], asyncio.Lock] = {}

    def branch_lock(self, repo_url: str, branch: str) -> asyncio.Lock:
        """One lock per (repo, branch), shared across requests."""
        key = (repo_url, branch)
        lock = self._branch_locks.get(key)
        if lock is None:
            lock = self._branch_locks[key] = asyncio.Lock()
        return lock

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def generate(
        self,
        repo_url: Any,
        project_name: Any,
        implementation: Any,
        tech_stack: list[str] | None = None,
        difficulty: str | None = None,
        category: str | None = None,
        analysis_data: dict[str, Any] | None = None,
    ) -> ImplementationJob:
        """Implement one recommendation. Returns the job in a terminal state."""
        repo_url = _require_text(repo_url, "repoUrl")
        project_name = _require_text(project_name, "projectName")
        if not implementation:
            raise ValidationError("implementation is required")
        parse_recommendation(implementation)

        batch = await self._run_batch(
            repo_url, project_name, [implementation],
            tech_stack=tech_stack, difficulty=difficulty, category=category,
            analysis_data=analysis_data, create_separate_prs=True,
        )
        return batch.jobs[0]

    async def batch_implementation(
        self,
        repo_url: Any,
        project_name: Any,
        implementations: Any,
        tech_stack: list[str] | None = None,
        difficulty: str | None = None,
        category: str | None = None,
        analysis_data: dict[str, Any] | None = None,
        create_separate_prs: bool = True,
    ) -> BatchRun:
        """
        Implement many recommendations against one repository.

        The result has exactly one entry per input element, in input order.
        Elements that fail validation come back as failed entries without an
        id and are never persisted.
        """
        repo_url = _require_text(repo_url, "repoUrl")
        project_name = _require_text(project_name, "projectName")
        if not isinstance(implementations, list) or not implementations:
            raise ValidationError("implementations must be a non-empty list")

        return await self._run_batch(
            repo_url, project_name, implementations,
            tech_stack=tech_stack, difficulty=difficulty, category=category,
            analysis_data=analysis_data, create_separate_prs=create_separate_prs,
        )

    def get_status(self, repo_url: Any, implementation_id: str | None = None):
        """One job by id, or every job of the repository, most recent first."""
        repo_url = canonical_repo_url(_require_text(repo_url, "repoUrl"))

        if implementation_id:
            job = self.store.get(implementation_id)
            if job is None or job.repo_url != repo_url:
                raise NotFoundError(f"Implementation {implementation_id} not found for {repo_url}")
            return job

        return self.store.list_by_repo(repo_url)

    def plan(
        self,
        repo_url: Any,
        project_name: Any,
        implementations: Any,
        tech_stack: list[str] | None = None,
        analysis_data: dict[str, Any] | None = None,
    ) -> list[Plan]:
        """Describe what a batch would do. Runs nothing and persists nothing."""
        repo_url = _require_text(repo_url, "repoUrl")
        project_name = _require_text(project_name, "projectName")
        if not isinstance(implementations, list) or not implementations:
            raise ValidationError("implementations must be a non-empty list")
        parse_repo_url(repo_url)

        return build_plans(project_name, implementations, tech_stack)

    def history(
        self,
        repo_url: str | None = None,
        project_name: str | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> HistoryPage:
        if status is not None:
            try:
                status = JobStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown status: {status}")

        jobs = self.store.list_by_repo(canonical_repo_url(repo_url)) if repo_url else self.store.list_all()
        if project_name:
            jobs = [j for j in jobs if j.project_name == project_name]
        if status is not None:
            jobs = [j for j in jobs if j.status == status]

        limit = min(max(1, limit), MAX_HISTORY_LIMIT)
        offset = max(0, offset)
        return HistoryPage(items=jobs[offset:offset + limit], total=len(jobs), limit=limit, offset=offset)

    def statistics(self, repo_url: str | None = None, project_name: str | None = None) -> ImplementationStatistics:
        canonical = canonical_repo_url(repo_url) if repo_url else None
        jobs = self.store.list_by_repo(canonical) if canonical else self.store.list_all()
        batches = self.store.list_batches(canonical)
        if project_name:
            jobs = [j for j in jobs if j.project_name == project_name]
            batches = [b for b in batches if b.project_name == project_name]

        succeeded = sum(1 for j in jobs if j.status == JobStatus.SUCCEEDED)
        failed = sum(1 for j in jobs if j.status == JobStatus.FAILED)

        categories: dict[str, int] = {}
        priorities: dict[str, int] = {}
        for job in jobs:
            category = job.recommendation.get("category") or job.category or "Uncategorized"
            priority = job.recommendation.get("priority") or "Unspecified"
            categories[category] = categories.get(category, 0) + 1
            priorities[priority] = priorities.get(priority, 0) + 1

        return ImplementationStatistics(
            total_implementations=len(jobs),
            succeeded=succeeded,
            failed=failed,
            in_progress=len(jobs) - succeeded - failed,
            success_rate=round(succeeded * 100 / len(jobs)) if jobs else 0,
            total_batches=len(batches),
            category_breakdown=categories,
            priority_breakdown=priorities,
            recent_activity=jobs[:5],
        )

    def get_batch(self, batch_id: str) -> BatchRun:
        batch = self.store.get_batch(batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        return batch

    async def deploy(self, repo_url: Any, implementation_id: str, force: bool = False) -> ImplementationJob:
        """
        Deploy a succeeded job's branch to Vercel and record the URL.

        A branch that is already deployed for this project is reused unless
        `force` is set.
        """
        job = self.get_status(repo_url, implementation_id)
        if job.status != JobStatus.SUCCEEDED or not job.branch:
            raise ValidationError("Only succeeded implementations with a branch can be deployed")

        existing = None if force else self._find_deployment(job)
        if existing is not None:
            job.deployment_id = existing.deployment_id
            job.deployment_url = existing.deployment_url
            job.deployed_at = existing.deployed_at
            job.touch()
            self.store.put(job)
            logger.info(f"Reusing deployment {existing.deployment_url} for {job.branch}", extra=_job_log_context(job))
            return job

        if self.vercel is None:
            raise UpstreamError("Vercel deployments are not configured", service="vercel")

        owner, repo = parse_repo_url(job.repo_url)
        repo_info = await self.github.get_repo(owner, repo)
        deployment = await self.vercel.deploy(
            slugify(job.project_name, fallback="project"), repo_info["id"], ref=job.branch
        )

        job.deployment_id = deployment.id
        job.deployment_url = deployment.url
        job.deployed_at = utcnow()
        job.touch()
        self.store.put(job)
        logger.info(f"Deployed {job.branch} to {deployment.url}", extra=_job_log_context(job))
        return job

    def _find_deployment(self, job: ImplementationJob) -> ImplementationJob | None:
        """Most recent deployed job for the same repository, branch, and project."""
        matches = [
            j for j in self.store.list_by_repo(job.repo_url)
            if j.deployment_url and j.branch == job.branch and j.project_name == job.project_name
        ]
        return max(matches, key=_deployed_at, default=None)

    def get_deployment(self, repo_url: Any, implementation_id: str) -> DeploymentInfo:
        return DeploymentInfo.from_job(self.get_status(repo_url, implementation_id))

    def deployments(self, repo_url: Any, limit: int = 10) -> list[DeploymentInfo]:
        """Deployed jobs for a repository, most recently deployed first."""
        repo_url = canonical_repo_url(_require_text(repo_url, "repoUrl"))
        jobs = [j for j in self.store.list_by_repo(repo_url) if j.deployment_url]
        jobs.sort(key=_deployed_at, reverse=True)
        limit = min(max(1, limit), MAX_HISTORY_LIMIT)
        return [DeploymentInfo.from_job(j) for j in jobs[:limit]]

    # =========================================================================
    # BATCH EXECUTION
    # =========================================================================

    async def _run_batch(
        self,
        repo_url: str,
        project_name: str,
        items: list[Any],
        *,
        tech_stack: list[str] | None,
        difficulty: str | None,
        category: str | None,
        analysis_data: dict[str, Any] | None,
        create_separate_prs: bool,
    ) -> BatchRun:
        owner, repo = parse_repo_url(repo_url)
        repo_url = f"https://github.com/{owner}/{repo}"
        ctx = RunContext(
            owner=owner,
            repo=repo,
            project_name=project_name,
            tech_stack=list(tech_stack or []),
            difficulty=difficulty,
            category=category,
            analysis_data=analysis_data if isinstance(analysis_data, dict) else None,
        )
        batch = BatchRun(
            id=uuid.uuid4().hex,
            repo_url=repo_url,
            project_name=project_name,
            create_separate_prs=create_separate_prs,
        )

        accepted: list[tuple[ImplementationJob, Recommendation]] = []
        for raw in items:
            job = ImplementationJob(
                batch_id=batch.id,
                repo_url=repo_url,
                project_name=project_name,
                tech_stack=ctx.tech_stack,
                difficulty=difficulty,
                category=category,
                recommendation=dict(raw) if isinstance(raw, dict) else {"value": raw},
            )
            try:
                rec = parse_recommendation(raw)
            except ValidationError as e:
                job.fail("validation_error", e.message)
                batch.jobs.append(job)
                continue

            job.id = uuid.uuid4().hex
            batch.jobs.append(job)
            accepted.append((job, rec))

        if create_separate_prs:
            namer = BranchNamer(project_name)
            for job, rec in accepted:
                job.branch = namer.claim(rec.title)
        else:
            shared = shared_branch_name(project_name, [rec.title for _, rec in accepted])
            for job, _ in accepted:
                job.branch = shared

        for job, _ in accepted:
            self.store.put(job)
        self.store.put_batch(batch)

        logger.info(
            f"Batch {batch.id}: {len(accepted)}/{len(items)} accepted for {repo_url} "
            f"(separate PRs: {create_separate_prs})",
            extra={"batch_id": batch.id, "repo_url": repo_url},
        )

        if not accepted:
            return batch

        try:
            base_branch = await self.github.get_default_branch(owner, repo)
        except UpstreamError as e:
            for job, _ in accepted:
                self._record_failure(job, e)
            return batch

        for job, _ in accepted:
            job.base_branch = base_branch

        if create_separate_prs:
            await asyncio.gather(*(self._execute_separate(job, rec, ctx) for job, rec in accepted))
        else:
            await self._execute_shared(accepted, ctx)

        self.store.put_batch(batch)
        summary = batch.summarize()
        logger.info(
            f"Batch {batch.id} finished: {summary.succeeded} succeeded, {summary.failed} failed",
            extra={"batch_id": batch.id, "repo_url": repo_url},
        )
        return batch

    async def _execute_separate(self, job: ImplementationJob, rec: Recommendation, ctx: RunContext) -> None:
        async with self._semaphore:
            async with self.branch_lock(job.repo_url, job.branch):
                worktree = None
                try:
                    self._start(job)
                    worktree = await self.workspace.prepare(job.repo_url, job.branch, job.base_branch)
                    await self._implement(job, rec, ctx, worktree)
                    await self.workspace.push(worktree, job.branch)
                    pr = await self._open_pull_request(
                        ctx, job.branch, job.base_branch, [rec], job.modified_files,
                        title=f"[AI Implementation] {rec.title}", validation=job.validation,
                    )
                    self._succeed(job, pr)
                except Exception as e:
                    self._record_failure(job, e)
                    await self._discard(worktree)

    async def _execute_shared(
        self, accepted: list[tuple[ImplementationJob, Recommendation]], ctx: RunContext
    ) -> None:
        """Run jobs one at a time, in input order, on one branch; then open one PR."""
        first = accepted[0][0]
        branch, base_branch, repo_url = first.branch, first.base_branch, first.repo_url

        async with self._semaphore:
            async with self.branch_lock(repo_url, branch):
                try:
                    worktree = await self.workspace.prepare(repo_url, branch, base_branch)
                except Exception as e:
                    for job, _ in accepted:
                        self._start(job)
                        self._record_failure(job, e)
                    return

                committed: list[tuple[ImplementationJob, Recommendation]] = []
                for job, rec in accepted:
                    try:
                        self._start(job)
                        await self._implement(job, rec, ctx, worktree)
                        committed.append((job, rec))
                    except Exception as e:
                        self._record_failure(job, e)
                        await self._discard(worktree)

                if not committed:
                    return

                modified = list(dict.fromkeys(f for job, _ in committed for f in job.modified_files))
                recs = [rec for _, rec in committed]
                title = (
                    f"[AI Implementation] {recs[0].title}"
                    if len(recs) == 1
                    else f"[AI Implementation] {len(recs)} improvements for {ctx.project_name}"
                )
                try:
                    await self.workspace.push(worktree, branch)
                    pr = await self._open_pull_request(
                        ctx, branch, base_branch, recs, modified,
                        title=title, validation=committed[-1][0].validation,
                    )
                except Exception as e:
                    for job, _ in committed:
                        self._record_failure(job, e)
                    return

                for job, _ in committed:
                    try:
                        self._succeed(job, pr)
                    except Exception as e:
                        self._record_failure(job, e)

    # =========================================================================
    # JOB STEPS
    # =========================================================================

    async def _implement(
        self, job: ImplementationJob, rec: Recommendation, ctx: RunContext, worktree: Path
    ) -> None:
        """Configure, generate, and commit. Leaves the commit unpushed."""
        write_gemini_config(worktree, ctx.project_context())

        prompt = build_implementation_prompt(rec, ctx.tech_stack, ctx.analysis_data)
        result = await self.runner.run(prompt, worktree, self.generation_timeout)
        job.generator_output = result.preview()

        applied = apply_file_blocks(worktree, extract_file_blocks(result.stdout))
        if applied:
            logger.info(f"Applied {len(applied)} file block(s) from CLI output", extra=_job_log_context(job))

        changed = await self.workspace.changed_files(worktree)
        if not changed:
            raise UpstreamError("No files were modified", service="gemini-cli")

        job.commit_hash = await self.workspace.commit(worktree, build_commit_message(rec, job.branch))
        job.modified_files = changed
        job.validation = await self._validate(job, worktree)
        job.touch()
        self.store.put(job)
        logger.info(f"Committed {len(changed)} file(s) as {job.commit_hash}", extra=_job_log_context(job))

    async def _validate(self, job: ImplementationJob, worktree: Path) -> ValidationReport | None:
        if self.validator is None:
            return None
        try:
            return await self.validator.validate(worktree)
        except Exception as e:
            logger.warning(f"Validation could not run: {e}", extra=_job_log_context(job))
            return ValidationReport(project_type="unknown", linting="failed", tests="failed", note=str(e))

    async def _open_pull_request(
        self,
        ctx: RunContext,
        branch: str,
        base_branch: str,
        recs: list[Recommendation],
        modified_files: list[str],
        title: str,
        validation: ValidationReport | None = None,
    ) -> dict:
        labels = [PR_LABEL]
        category = recs[0].category or ctx.category
        if category:
            labels.append(slugify(category))

        return await self.github.create_pull_request(
            ctx.owner,
            ctx.repo,
            title=title,
            head=branch,
            base=base_branch,
            body=build_pull_request_body(recs, branch, modified_files, ctx.project_name, validation),
            labels=labels,
        )

    async def _discard(self, worktree: Path | None) -> None:
        if worktree is None:
            return
        try:
            await self.workspace.discard_changes(worktree)
        except UpstreamError as e:
            logger.warning(f"Could not reset worktree {worktree}: {e.message}")

    # =========================================================================
    # STATE TRANSITIONS
    # =========================================================================

    def _start(self, job: ImplementationJob) -> None:
        job.transition_to(JobStatus.RUNNING)
        self.store.put(job)
        logger.info(f"Job started: {job.recommendation.get('title')}", extra=_job_log_context(job))

    def _succeed(self, job: ImplementationJob, pr: dict) -> None:
        job.pull_request_url = pr.get("html_url")
        job.pull_request_number = pr.get("number")
        job.transition_to(JobStatus.SUCCEEDED)
        self.store.put(job)
        logger.info(f"Job succeeded: {job.pull_request_url}", extra=_job_log_context(job))

    def _record_failure(self, job: ImplementationJob, exc: Exception) -> None:
        """Map an exception onto the job's error and persist it."""
        if job.status.is_terminal:
            # Failure after the outcome was decided, e.g. persisting it
            logger.error(f"Error after job {job.id} finished as {job.status.value}: {exc}", extra=_job_log_context(job))
            return

        if isinstance(exc, JobTimeoutError):
            error_type = "timeout"
        elif isinstance(exc, UpstreamError):
            error_type = "upstream_error"
        elif isinstance(exc, ImplementationError):
            error_type = exc.error_type
        else:
            logger.exception(f"Unexpected error in job {job.id}", extra=_job_log_context(job))
            error_type = "internal_error"

        message = exc.message if isinstance(exc, ImplementationError) else (str(exc) or type(exc).__name__)
        job.fail(error_type, message)
        self.store.put(job)
        logger.warning(f"Job failed ({error_type}): {message}", extra=_job_log_context(job))
