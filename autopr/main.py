"""
AutoPR API

FastAPI application that turns AI code recommendations into GitHub pull
requests using the Gemini CLI.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from . import __version__
from .config import Settings
from .database import build_engine, init_db
from .errors import ImplementationError
from .implementation.gemini_runner import GeminiCLIRunner
from .implementation.job_store import InMemoryJobStore, JobStore, SqlJobStore
from .implementation.orchestrator import Orchestrator
from .implementation.validation import ProjectValidator
from .implementation.workspace import GitWorkspace
from .logging_config import setup_logging
from .rate_limit import limiter
from .routers import analysis, deployment, implementation
from .services.analysis import RepositoryAnalyzer
from .services.analysis_store import AnalysisStore, InMemoryAnalysisStore, SqlAnalysisStore
from .services.github import GitHubClient
from .services.vercel import VercelClient

logger = logging.getLogger(__name__)


# =============================================================================
# WIRING
# =============================================================================

def build_stores(settings: Settings) -> tuple[JobStore, AnalysisStore]:
    """Job and analysis stores; the SQL variants share one engine."""
    if settings.job_store == "memory":
        return InMemoryJobStore(), InMemoryAnalysisStore()
    engine = build_engine(settings.database_url)
    init_db(engine)
    return SqlJobStore(engine), SqlAnalysisStore(engine)


def build_orchestrator(settings: Settings, store: JobStore, vercel: VercelClient | None = None) -> Orchestrator:
    return Orchestrator(
        store=store,
        github=GitHubClient(settings.github_token, base_url=settings.github_api_url),
        workspace=GitWorkspace(
            settings.workspace_dir,
            token=settings.github_token,
            author_name=settings.git_author_name,
            author_email=settings.git_author_email,
        ),
        runner=GeminiCLIRunner(settings.gemini_cli_path, settings.gemini_cli_args),
        generation_timeout=settings.gemini_timeout_seconds,
        max_concurrent_jobs=settings.max_concurrent_jobs,
        vercel=vercel,
        validator=ProjectValidator() if settings.validation_enabled else None,
    )


# =============================================================================
# APPLICATION
# =============================================================================

def create_app(
    settings: Settings | None = None,
    orchestrator: Orchestrator | None = None,
    analyzer: RepositoryAnalyzer | None = None,
    vercel: VercelClient | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    vercel = vercel or VercelClient(settings.vercel_token, settings.vercel_team_id)

    app = FastAPI(
        title="AutoPR API",
        description="Implements AI code recommendations with the Gemini CLI and opens pull requests",
        version=__version__,
    )

    app.state.settings = settings
    app.state.vercel = vercel
    if orchestrator is None or analyzer is None:
        job_store, analysis_store = build_stores(settings)
        orchestrator = orchestrator or build_orchestrator(settings, job_store, vercel)
        analyzer = analyzer or RepositoryAnalyzer(
            settings.gemini_api_key, model=settings.gemini_model, store=analysis_store
        )
    app.state.orchestrator = orchestrator
    app.state.analyzer = analyzer

    # Rate limiting
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests. Please try again later.", "type": "rate_limited"},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if any(e.get("type") == "json_invalid" for e in errors):
            return JSONResponse(status_code=400, content={"error": "Invalid JSON format"})
        details = [
            {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg"), "type": e.get("type")}
            for e in errors
        ]
        return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})

    @app.exception_handler(ImplementationError)
    async def implementation_error_handler(request: Request, exc: ImplementationError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/")
    def read_root():
        """Health check endpoint."""
        return {"status": "ok", "version": __version__, "message": "AutoPR API"}

    app.include_router(implementation.router)
    app.include_router(analysis.router)
    app.include_router(deployment.router)

    return app


setup_logging()
app = create_app()
