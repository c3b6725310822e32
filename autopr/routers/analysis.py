import logging

from fastapi import APIRouter, Query, Request

from ..errors import NotFoundError, ValidationError
from ..rate_limit import ANALYZE_LIMIT, limiter
from ..services.analysis import AnalysisReport, AnalyzeRequest
from ..services.github import canonical_repo_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ai", tags=["analysis"])


@router.post("/analyze", response_model=AnalysisReport)
@limiter.limit(ANALYZE_LIMIT)
def analyze_repository(request: Request, body: AnalyzeRequest):
    """
    Analyze a GitHub repository with Gemini.

    Clones the repository, reads its most important files, and returns scores
    plus recommendations that can be passed straight to /api/implementation.
    A stored analysis of the same commit is returned unless forceRegenerate
    is set.
    """
    if not body.repo_url or not body.project_name:
        raise ValidationError("repoUrl and projectName are required")
    repo_url = canonical_repo_url(body.repo_url)

    logger.info(f"Analyzing {repo_url} for {body.project_name}")
    return request.app.state.analyzer.analyze(
        repo_url,
        body.project_name,
        tech_stack=body.tech_stack,
        difficulty=body.difficulty,
        category=body.category,
        force_regenerate=body.force_regenerate,
    )


def _repo_url(repo_url: str | None) -> str:
    if not repo_url:
        raise ValidationError("repoUrl is required")
    return canonical_repo_url(repo_url)


@router.get("/analysis", response_model=AnalysisReport)
def latest_analysis(request: Request, repo_url: str | None = Query(None, alias="repoUrl")):
    """Most recent stored analysis of a repository."""
    repo_url = _repo_url(repo_url)
    report = request.app.state.analyzer.latest(repo_url)
    if report is None:
        raise NotFoundError(f"No analysis found for {repo_url}")
    return report


@router.get("/history", response_model=list[AnalysisReport])
def analysis_history(
    request: Request,
    repo_url: str | None = Query(None, alias="repoUrl"),
    limit: int = Query(10, ge=1, le=100),
):
    return request.app.state.analyzer.history(_repo_url(repo_url), limit=limit)
