import asyncio
import os
import shutil
from pathlib import Path
from types import SimpleNamespace

import pytest

# Must be set before autopr.main is imported anywhere
os.environ["JOB_STORE"] = "memory"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from autopr.errors import JobTimeoutError, UpstreamError
from autopr.implementation.branch_naming import slugify
from autopr.implementation.gemini_runner import GenerationResult
from autopr.implementation.job_store import InMemoryJobStore
from autopr.implementation.orchestrator import Orchestrator
from autopr.services.vercel import Deployment

REPO_URL = "https://github.com/octo/my-app"


def make_rec(title: str, **fields) -> dict:
    rec = {"id": slugify(title), "title": title, "description": f"{title} description"}
    rec.update(fields)
    return rec


# =============================================================================
# FAKES
# =============================================================================

class FakeGitHub:
    def __init__(self, default_branch: str = "main"):
        self.default_branch = default_branch
        self.fail_default_branch = False
        self.fail_pull_request = False
        self.pull_requests: list[dict] = []

    async def get_default_branch(self, owner, repo):
        if self.fail_default_branch:
            raise UpstreamError("GitHub API error (404): Not Found", service="github", upstream_status=404)
        return self.default_branch

    async def get_repo(self, owner, repo):
        return {"id": 4242, "full_name": f"{owner}/{repo}", "default_branch": self.default_branch}

    async def create_pull_request(self, owner, repo, title, head, base, body="", labels=None):
        if self.fail_pull_request:
            raise UpstreamError("GitHub API error (403): Forbidden", service="github", upstream_status=403)
        number = len(self.pull_requests) + 1
        pr = {
            "number": number,
            "html_url": f"https://github.com/{owner}/{repo}/pull/{number}",
            "title": title,
            "head": head,
            "base": base,
            "body": body,
            "labels": labels or [],
        }
        self.pull_requests.append(pr)
        return pr


class FakeWorkspace:
    """Directory-per-branch stand-in for GitWorkspace that tracks 'committed' content."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.prepared: list[tuple[str, str, str]] = []
        self.commits: list[tuple[Path, str]] = []
        self.pushes: list[str] = []
        self.discards = 0
        self._committed: dict[Path, dict[str, str]] = {}
        self.remote: dict[str, dict[str, str]] = {}

    def _files(self, worktree: Path) -> dict[str, str]:
        files = {}
        for path in worktree.rglob("*"):
            rel = path.relative_to(worktree).as_posix()
            if path.is_file() and not rel.startswith(".gemini/"):
                files[rel] = path.read_text(encoding="utf-8")
        return files

    async def prepare(self, repo_url, branch, base_branch):
        self.prepared.append((repo_url, branch, base_branch))
        path = self.root / branch.replace("/", "__")
        if path.exists():
            shutil.rmtree(path)
        path.mkdir(parents=True)
        # Pushed branches are checked out again with their content
        pushed = self.remote.get(branch, {})
        for rel, content in pushed.items():
            (path / rel).parent.mkdir(parents=True, exist_ok=True)
            (path / rel).write_text(content, encoding="utf-8")
        self._committed[path] = dict(pushed)
        return path

    async def changed_files(self, worktree):
        committed = self._committed[worktree]
        return sorted(rel for rel, content in self._files(worktree).items() if committed.get(rel) != content)

    async def commit(self, worktree, message):
        self._committed[worktree] = self._files(worktree)
        self.commits.append((worktree, message))
        return f"{len(self.commits):040x}"

    async def push(self, worktree, branch):
        self.pushes.append(branch)
        self.remote[branch] = dict(self._committed[worktree])

    async def discard_changes(self, worktree):
        self.discards += 1
        committed = self._committed[worktree]
        for rel in self._files(worktree):
            if rel not in committed:
                (worktree / rel).unlink()
        for rel, content in committed.items():
            (worktree / rel).write_text(content, encoding="utf-8")


class FakeRunner:
    """Writes src/<title-slug>.py for each prompt unless told to misbehave."""

    def __init__(self):
        self.calls: list[str] = []
        self.delay = 0.0
        self.active = 0
        self.max_active = 0
        self.fail_titles: set[str] = set()
        self.timeout_titles: set[str] = set()
        self.noop_titles: set[str] = set()
        self.crash_titles: set[str] = set()
        self.stdout = ""

    @staticmethod
    def title_of(prompt: str) -> str:
        for line in prompt.splitlines():
            if line.startswith("TASK: "):
                return line[len("TASK: "):]
        return ""

    async def run(self, prompt, cwd, timeout):
        title = self.title_of(prompt)
        self.calls.append(title)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if title in self.timeout_titles:
                raise JobTimeoutError(f"Gemini CLI timed out after {timeout:g}s", timeout=timeout)
            if title in self.noop_titles:
                return GenerationResult(exit_code=0, stdout="Nothing to change", stderr="", duration=0.1)

            target = Path(cwd) / "src" / f"{slugify(title)}.py"
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("a", encoding="utf-8") as f:
                f.write(f"# {title}\n")

            if title in self.fail_titles:
                raise UpstreamError("Gemini CLI exited with code 1: boom", service="gemini-cli")
            if title in self.crash_titles:
                raise RuntimeError("unexpected crash")
            return GenerationResult(exit_code=0, stdout=self.stdout or f"Implemented {title}", stderr="", duration=0.1)
        finally:
            self.active -= 1


class FakeVercel:
    def __init__(self):
        self.calls: list[tuple[str, object, str]] = []

    async def deploy(self, name, repo_id, ref="main"):
        self.calls.append((name, repo_id, ref))
        return Deployment(id=f"dpl_{len(self.calls)}", url=f"https://{name}.vercel.app", ready_state="QUEUED")


class FakeModels:
    """Stands in for genai's client.models. The last response repeats."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = 0

    def generate_content(self, model, contents, config=None):
        self.calls += 1
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return SimpleNamespace(text=response)


def fake_llm_client(*responses):
    return SimpleNamespace(models=FakeModels(responses))


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def workspace(tmp_path):
    return FakeWorkspace(tmp_path / "workspace")


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def vercel():
    return FakeVercel()


@pytest.fixture
def orchestrator(store, github, workspace, runner, vercel):
    return Orchestrator(
        store, github, workspace, runner,
        generation_timeout=5, max_concurrent_jobs=3, vercel=vercel,
    )
