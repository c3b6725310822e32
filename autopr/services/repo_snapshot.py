"""
Repository snapshot for AI analysis.

Clones a repository and collects the most important files (within size
limits), the languages in use, and declared dependencies. Extraction only;
the LLM does the judging.
"""

import json
import logging
import re
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import UpstreamError

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

MAX_FILE_SIZE = 200 * 1024  # 200KB per file
MAX_TOTAL_CONTENT = 512 * 1024  # prompt budget
MAX_TREE_ENTRIES = 200

CODE_EXTENSIONS = (
    ".py", ".js", ".ts", ".jsx", ".tsx",
    ".java", ".go", ".rb", ".rs",
    ".cpp", ".c", ".cs", ".h", ".hpp",
    ".php", ".swift", ".kt", ".scala",
    ".vue", ".svelte",
    ".sql", ".sh",
)

INCLUDE_FILES = (
    "README.md", "readme.md", "README.rst", "README",
    "package.json", "requirements.txt", "pyproject.toml", "setup.py",
    "go.mod", "Cargo.toml", "Gemfile", "pom.xml", "build.gradle",
    "Dockerfile", "docker-compose.yml", ".env.example",
)

SKIP_DIRS = (
    "node_modules", "venv", ".venv", "env",
    "__pycache__", ".git", "dist", "build", ".next",
    "coverage", ".pytest_cache", ".mypy_cache",
    "vendor", "target", "bin", "obj",
    ".idea", ".vscode", ".gemini",
    "migrations", "__mocks__", "fixtures",
)

EXTENSION_TO_LANGUAGE = {
    ".py": "Python",
    ".js": "JavaScript",
    ".ts": "TypeScript",
    ".jsx": "JavaScript",
    ".tsx": "TypeScript",
    ".java": "Java",
    ".go": "Go",
    ".rb": "Ruby",
    ".rs": "Rust",
    ".cpp": "C++",
    ".c": "C",
    ".cs": "C#",
    ".php": "PHP",
    ".swift": "Swift",
    ".kt": "Kotlin",
    ".vue": "Vue",
    ".svelte": "Svelte",
}

ENTRY_POINTS = (
    "main.py", "app.py", "server.py", "index.py",
    "index.js", "index.ts", "app.js", "app.ts", "server.js", "server.ts",
    "main.go", "main.rs", "main.java",
)

CORE_DIRS = ("src", "api", "services", "core", "lib", "models", "controllers", "routes", "middleware")


@dataclass
class RepoSnapshot:
    repo_path: Path
    tree: list[str] = field(default_factory=list)
    files: dict[str, str] = field(default_factory=dict)  # path -> content
    file_importance: dict[str, int] = field(default_factory=dict)
    languages: dict[str, int] = field(default_factory=dict)  # language -> bytes
    dependencies: list[str] = field(default_factory=list)
    total_lines: int = 0
    commit_sha: str | None = None

    def structure(self, limit: int = MAX_TREE_ENTRIES) -> str:
        shown = self.tree[:limit]
        suffix = f"\n... ({len(self.tree) - limit} more)" if len(self.tree) > limit else ""
        return "\n".join(shown) + suffix

    def top_files(self, count: int = 6) -> list[tuple[str, str]]:
        ranked = sorted(self.file_importance.items(), key=lambda x: x[1], reverse=True)[:count]
        return [(path, self.files[path]) for path, _ in ranked]


# =============================================================================
# EXTRACTION
# =============================================================================

def file_importance(rel_path: str, file_size: int) -> int:
    """Higher score = read first."""
    score = 50
    filename = rel_path.split("/")[-1].lower()
    path_lower = rel_path.lower()
    path_parts = path_lower.split("/")

    if filename in ENTRY_POINTS:
        score += 40
    if any(d in path_parts for d in CORE_DIRS):
        score += 15
    if filename.startswith("readme"):
        score += 15
    if filename in ("package.json", "requirements.txt", "pyproject.toml"):
        score += 10

    # ~40 bytes per line
    estimated_lines = file_size / 40
    if 50 <= estimated_lines <= 500:
        score += 20
    elif 20 <= estimated_lines < 50:
        score += 10

    if any(p in path_lower for p in ("test_", "_test.", ".test.", ".spec.", "tests/")):
        score -= 25
    if any(p in path_lower for p in ("components/ui/", "/utils/", "/helpers/", "/types/")):
        score -= 20
    if ".config." in filename:
        score -= 15

    return score


def extract_snapshot(repo_path: str | Path) -> RepoSnapshot:
    """Walk a checked-out repository and read its most important files."""
    repo_path = Path(repo_path)
    snapshot = RepoSnapshot(repo_path=repo_path)
    candidates: list[tuple[str, Path, int]] = []

    for file_path in sorted(repo_path.rglob("*")):
        if not file_path.is_file():
            continue
        rel_path = file_path.relative_to(repo_path).as_posix()
        parts = rel_path.split("/")
        if any(skip in parts for skip in SKIP_DIRS):
            continue
        snapshot.tree.append(rel_path)

        if not (file_path.suffix.lower() in CODE_EXTENSIONS or file_path.name in INCLUDE_FILES):
            continue
        try:
            size = file_path.stat().st_size
        except OSError:
            continue
        if size <= MAX_FILE_SIZE:
            candidates.append((rel_path, file_path, size))

    scored = sorted(candidates, key=lambda c: file_importance(c[0], c[2]), reverse=True)

    total = 0
    for rel_path, abs_path, size in scored:
        if total + size > MAX_TOTAL_CONTENT:
            continue
        try:
            content = abs_path.read_text(encoding="utf-8", errors="ignore")
        except OSError:
            continue
        snapshot.files[rel_path] = content
        snapshot.file_importance[rel_path] = file_importance(rel_path, size)
        total += len(content)

        language = EXTENSION_TO_LANGUAGE.get(abs_path.suffix.lower())
        if language:
            snapshot.languages[language] = snapshot.languages.get(language, 0) + size
            snapshot.total_lines += content.count("\n") + 1

    snapshot.dependencies = extract_dependencies(snapshot.files)
    return snapshot


def extract_dependencies(files: dict[str, str]) -> list[str]:
    dependencies = []
    for filepath, content in files.items():
        filename = filepath.split("/")[-1]
        if filename == "requirements.txt":
            for line in content.splitlines():
                line = line.strip()
                if line and not line.startswith(("#", "-")):
                    pkg = re.split(r"[=<>!~\[\];\s]", line)[0].strip()
                    if pkg:
                        dependencies.append(pkg)
        elif filename == "package.json":
            try:
                data = json.loads(content)
            except json.JSONDecodeError:
                continue
            for key in ("dependencies", "devDependencies"):
                if isinstance(data.get(key), dict):
                    dependencies.extend(data[key].keys())

    # Deduplicate while preserving order
    return list(dict.fromkeys(dependencies))


# =============================================================================
# CLONING
# =============================================================================

def snapshot_repository(repo_url: str, timeout: int = 120) -> RepoSnapshot:
    """Shallow-clone `repo_url` into a temp dir and extract a snapshot of it."""
    with tempfile.TemporaryDirectory() as temp_dir:
        try:
            result = subprocess.run(
                ["git", "clone", "--depth", "1", repo_url, temp_dir],
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="ignore",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise UpstreamError(f"Cloning {repo_url} timed out", service="git")

        if result.returncode != 0:
            logger.error(f"Clone failed for {repo_url}: {result.stderr}")
            raise UpstreamError(
                "Failed to clone repository. Please check the URL and try again.", service="git"
            )

        snapshot = extract_snapshot(temp_dir)
        snapshot.commit_sha = _git_output(["rev-parse", "HEAD"], cwd=temp_dir)
        return snapshot


def _git_output(args: list[str], cwd: str | None = None, timeout: int = 30) -> str | None:
    """stdout of a git command, or None when it fails."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="ignore",
            timeout=timeout,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.warning(f"git {args[0]} failed: {e}")
        return None
    if result.returncode != 0:
        logger.warning(f"git {args[0]} exited with {result.returncode}: {result.stderr.strip()}")
        return None
    return result.stdout.strip() or None


def remote_head(repo_url: str, timeout: int = 30) -> str | None:
    """Commit the remote's default branch points at, without cloning."""
    output = _git_output(["ls-remote", repo_url, "HEAD"], timeout=timeout)
    if not output:
        return None
    return output.split()[0]
