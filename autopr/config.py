"""Configuration loaded from environment variables (and .env)"""

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
    "http://localhost:8080",
]


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_int(value: Optional[str], default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Runtime settings for the API and the implementation pipeline"""

    environment: str = "development"
    log_level: str = "INFO"

    # GitHub
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"

    # LLM analysis
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"

    # Gemini CLI code generation
    gemini_cli_path: str = "gemini"
    gemini_cli_args: list[str] = field(default_factory=lambda: ["--yolo"])
    gemini_timeout_seconds: int = 120
    workspace_dir: Path = Path("/tmp/gemini-workspace")
    max_concurrent_jobs: int = 3
    git_author_name: str = "AutoPR Bot"
    git_author_email: str = "autopr-bot@users.noreply.github.com"
    validation_enabled: bool = True

    # Job persistence
    job_store: str = "sql"
    database_url: str = "sqlite:///./autopr.db"

    # Vercel
    vercel_token: Optional[str] = None
    vercel_team_id: Optional[str] = None

    # HTTP
    rate_limit_enabled: bool = True
    allowed_origins: list[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment"""
        origins = os.getenv("ALLOWED_ORIGINS")
        cli_args = os.getenv("GEMINI_CLI_ARGS")

        return cls(
            environment=os.getenv("ENVIRONMENT", "development").lower(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            github_token=os.getenv("GITHUB_TOKEN") or None,
            github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
            gemini_cli_path=os.getenv("GEMINI_CLI_PATH", "gemini"),
            gemini_cli_args=shlex.split(cli_args) if cli_args is not None else ["--yolo"],
            gemini_timeout_seconds=_parse_int(os.getenv("GEMINI_TIMEOUT_SECONDS"), 120),
            workspace_dir=Path(os.getenv("GEMINI_WORKSPACE", "/tmp/gemini-workspace")),
            max_concurrent_jobs=max(1, _parse_int(os.getenv("MAX_CONCURRENT_JOBS"), 3)),
            git_author_name=os.getenv("GIT_AUTHOR_NAME", "AutoPR Bot"),
            git_author_email=os.getenv("GIT_AUTHOR_EMAIL", "autopr-bot@users.noreply.github.com"),
            validation_enabled=_parse_bool(os.getenv("VALIDATION_ENABLED"), True),
            job_store=os.getenv("JOB_STORE", "sql").lower(),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./autopr.db"),
            vercel_token=os.getenv("VERCEL_TOKEN") or None,
            vercel_team_id=os.getenv("VERCEL_TEAM_ID") or None,
            rate_limit_enabled=_parse_bool(os.getenv("RATE_LIMIT_ENABLED"), True),
            allowed_origins=(
                [o.strip() for o in origins.split(",") if o.strip()]
                if origins
                else list(DEFAULT_ALLOWED_ORIGINS)
            ),
        )
