from fastapi import APIRouter, Depends, Query, Request

from ..implementation.orchestrator import Orchestrator
from ..implementation.schemas import (
    BatchRequest,
    BatchRunResponse,
    DeploymentInfo,
    GenerateRequest,
    HistoryPage,
    ImplementationJob,
    ImplementationStatistics,
    Plan,
    PlanRequest,
)
from ..rate_limit import BATCH_LIMIT, GENERATE_LIMIT, limiter

router = APIRouter(prefix="/api/implementation", tags=["implementation"])


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


@router.post("/generate", response_model=ImplementationJob)
@limiter.limit(GENERATE_LIMIT)
async def generate_implementation(
    request: Request,
    body: GenerateRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Implement a single recommendation and open a pull request for it."""
    return await orchestrator.generate(
        body.repo_url,
        body.project_name,
        body.implementation,
        tech_stack=body.tech_stack,
        difficulty=body.difficulty,
        category=body.category,
        analysis_data=body.analysis_data,
    )


@router.post("/batch", response_model=BatchRunResponse)
@limiter.limit(BATCH_LIMIT)
async def batch_implementation(
    request: Request,
    body: BatchRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Implement several recommendations.

    With createSeparatePRs (default) every recommendation gets its own branch
    and PR; otherwise they land in order on one branch behind a single PR.
    """
    batch = await orchestrator.batch_implementation(
        body.repo_url,
        body.project_name,
        body.implementations,
        tech_stack=body.tech_stack,
        difficulty=body.difficulty,
        category=body.category,
        analysis_data=body.analysis_data,
        create_separate_prs=body.create_separate_prs,
    )
    return BatchRunResponse.from_batch(batch)


@router.get("/status", response_model=ImplementationJob | list[ImplementationJob])
def implementation_status(
    repo_url: str | None = Query(None, alias="repoUrl"),
    implementation_id: str | None = Query(None, alias="implementationId"),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    return orchestrator.get_status(repo_url, implementation_id)


@router.post("/plan", response_model=list[Plan])
def implementation_plan(body: PlanRequest, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Dry run: describe what /batch would do without touching anything."""
    return orchestrator.plan(
        body.repo_url,
        body.project_name,
        body.implementations,
        tech_stack=body.tech_stack,
        analysis_data=body.analysis_data,
    )


@router.get("/history", response_model=HistoryPage)
def implementation_history(
    repo_url: str | None = Query(None, alias="repoUrl"),
    project_name: str | None = Query(None, alias="projectName"),
    status: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    return orchestrator.history(repo_url, project_name, status, limit, offset)


@router.get("/statistics", response_model=ImplementationStatistics)
def implementation_statistics(
    repo_url: str | None = Query(None, alias="repoUrl"),
    project_name: str | None = Query(None, alias="projectName"),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    return orchestrator.statistics(repo_url, project_name)


@router.get("/batch/{batch_id}", response_model=BatchRunResponse)
def get_batch(batch_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)):
    return BatchRunResponse.from_batch(orchestrator.get_batch(batch_id))


@router.post("/deployment/{implementation_id}", response_model=ImplementationJob)
async def deploy_implementation(
    implementation_id: str,
    repo_url: str | None = Query(None, alias="repoUrl"),
    force: bool = Query(False),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Deploy a succeeded implementation's branch to Vercel.

    An existing deployment of the same branch is returned unless force=true.
    """
    return await orchestrator.deploy(repo_url, implementation_id, force=force)


@router.get("/deployment/{implementation_id}", response_model=DeploymentInfo)
def deployment_info(
    implementation_id: str,
    repo_url: str | None = Query(None, alias="repoUrl"),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    return orchestrator.get_deployment(repo_url, implementation_id)


@router.get("/deployments", response_model=list[DeploymentInfo])
def repository_deployments(
    repo_url: str | None = Query(None, alias="repoUrl"),
    limit: int = Query(10, ge=1, le=100),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    return orchestrator.deployments(repo_url, limit)
