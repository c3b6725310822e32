"""
Post-generation checks.

After a change is committed the worktree's project type is detected from its
indicator files, and that ecosystem's lint and test commands are run with a
time bound. Results are reported on the job and in the PR; they never fail
the job.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from .schemas import ValidationReport

logger = logging.getLogger(__name__)

PASSED = "passed"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class ProjectChecks:
    """Commands for one ecosystem. Each list holds alternatives, tried in order."""
    package_manager: str
    lint: list[list[str]] = field(default_factory=list)
    test: list[list[str]] = field(default_factory=list)
    lint_timeout: float = 60
    test_timeout: float = 120


# First matching indicator file wins
PROJECT_INDICATORS = [
    ("nodejs", ("package.json",)),
    ("python", ("requirements.txt", "setup.py", "pyproject.toml")),
    ("java-maven", ("pom.xml",)),
    ("java-gradle", ("build.gradle", "build.gradle.kts")),
    ("rust", ("Cargo.toml",)),
    ("go", ("go.mod",)),
]

DEFAULT_CHECKS = {
    "nodejs": ProjectChecks(
        "npm",
        lint=[["npm", "run", "lint"]],
        test=[["npm", "test"]],
    ),
    "python": ProjectChecks(
        "pip",
        lint=[["python", "-m", "flake8", "."], ["python", "-m", "pylint", "."]],
        test=[["python", "-m", "pytest"], ["python", "-m", "unittest", "discover"]],
    ),
    "java-maven": ProjectChecks(
        "maven",
        lint=[["mvn", "-q", "compile"]],
        test=[["mvn", "-q", "test"]],
        lint_timeout=120,
        test_timeout=180,
    ),
    "java-gradle": ProjectChecks(
        "gradle",
        lint=[["./gradlew", "compileJava"]],
        test=[["./gradlew", "test"]],
        lint_timeout=120,
        test_timeout=180,
    ),
    "rust": ProjectChecks(
        "cargo",
        lint=[["cargo", "check"]],
        test=[["cargo", "test"]],
        lint_timeout=120,
        test_timeout=180,
    ),
    "go": ProjectChecks(
        "go",
        lint=[["go", "vet", "./..."]],
        test=[["go", "test", "./..."]],
    ),
}


def detect_project_type(project_dir: Path) -> str:
    project_dir = Path(project_dir)
    for project_type, indicators in PROJECT_INDICATORS:
        if any((project_dir / name).is_file() for name in indicators):
            return project_type
    return "unknown"


def _available(cmd: list[str], cwd: Path) -> bool:
    if cmd[0].startswith("./"):
        return (cwd / cmd[0]).is_file()
    return shutil.which(cmd[0]) is not None


async def run_check(cmd: list[str], cwd: Path, timeout: float) -> bool:
    """True when `cmd` exits 0 within `timeout` seconds."""
    process = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.DEVNULL,
        stderr=asyncio.subprocess.DEVNULL,
    )
    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.warning(f"{' '.join(cmd)} timed out after {timeout:g}s")
        return False
    return process.returncode == 0


class ProjectValidator:
    def __init__(self, checks: dict[str, ProjectChecks] | None = None):
        self.checks = DEFAULT_CHECKS if checks is None else checks

    async def _first_passing(self, alternatives: list[list[str]], cwd: Path, timeout: float) -> str:
        runnable = [cmd for cmd in alternatives if _available(cmd, cwd)]
        if not runnable:
            return SKIPPED
        for cmd in runnable:
            try:
                if await run_check(cmd, cwd, timeout):
                    return PASSED
            except OSError as e:
                logger.warning(f"Could not run {' '.join(cmd)}: {e}")
        return FAILED

    async def validate(self, project_dir: Path) -> ValidationReport:
        project_dir = Path(project_dir)
        project_type = detect_project_type(project_dir)
        checks = self.checks.get(project_type)
        if checks is None:
            logger.info(f"Unknown project type in {project_dir}, skipping validation")
            return ValidationReport(
                project_type=project_type,
                linting=SKIPPED,
                tests=SKIPPED,
                note="Unknown project type - validation skipped",
            )

        linting = await self._first_passing(checks.lint, project_dir, checks.lint_timeout)
        tests = await self._first_passing(checks.test, project_dir, checks.test_timeout)
        logger.info(f"Validation for {project_type}: linting={linting}, tests={tests}")
        return ValidationReport(
            project_type=project_type,
            package_manager=checks.package_manager,
            linting=linting,
            tests=tests,
        )
