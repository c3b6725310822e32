"""Tests for git worktree handling, against a local bare 'origin'"""

import shutil
import subprocess

import pytest

from autopr.errors import UpstreamError
from autopr.implementation.job_store import InMemoryJobStore
from autopr.implementation.orchestrator import Orchestrator
from autopr.implementation.schemas import JobStatus
from autopr.implementation.workspace import GitWorkspace

from conftest import REPO_URL, FakeGitHub, FakeRunner, make_rec

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

BRANCH = "ai-implementation/my-app/add-tests"


def git(*args, cwd=None):
    return subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=cwd, check=True, capture_output=True, text=True,
    ).stdout.strip()


@pytest.fixture
def origin(tmp_path):
    """Bare repository with one commit on main"""
    bare = tmp_path / "origin.git"
    git("init", "--bare", str(bare))
    git("symbolic-ref", "HEAD", "refs/heads/main", cwd=bare)

    seed = tmp_path / "seed"
    git("init", str(seed))
    (seed / "README.md").write_text("# my-app\n")
    git("add", "README.md", cwd=seed)
    git("commit", "-m", "initial", cwd=seed)
    git("push", str(bare), "HEAD:refs/heads/main", cwd=seed)
    return bare


@pytest.fixture
def workspace(tmp_path, origin):
    ws = GitWorkspace(tmp_path / "workspace", author_name="Bot", author_email="bot@example.com")
    # Pre-clone so prepare() fetches from the local origin instead of github.com
    repo_dir = ws.repo_dir(REPO_URL)
    repo_dir.parent.mkdir(parents=True)
    git("clone", str(origin), str(repo_dir))
    return ws


class TestGitWorkspace:
    def test_paths(self, tmp_path):
        ws = GitWorkspace(tmp_path)
        assert ws.repo_dir(REPO_URL) == tmp_path / "repos" / "octo__my-app"
        assert ws.worktree_dir(REPO_URL, BRANCH) == (
            tmp_path / "worktrees" / "octo__my-app" / "ai-implementation__my-app__add-tests"
        )

    @pytest.mark.asyncio
    async def test_prepare_commit_push(self, workspace, origin):
        worktree = await workspace.prepare(REPO_URL, BRANCH, "main")

        assert (worktree / "README.md").read_text() == "# my-app\n"
        assert git("rev-parse", "--abbrev-ref", "HEAD", cwd=worktree) == BRANCH

        (worktree / ".gemini").mkdir()
        (worktree / ".gemini" / "GEMINI.md").write_text("rules")
        (worktree / "src").mkdir()
        (worktree / "src" / "app.py").write_text("print('hi')\n")
        (worktree / "README.md").write_text("# my-app\n\nMore.\n")

        assert sorted(await workspace.changed_files(worktree)) == ["README.md", "src/app.py"]

        commit_hash = await workspace.commit(worktree, "Add app")
        assert len(commit_hash) == 40
        assert ".gemini/GEMINI.md" not in git("show", "--name-only", "--format=", "HEAD", cwd=worktree)
        assert await workspace.changed_files(worktree) == []

        await workspace.push(worktree, BRANCH)
        assert git("rev-parse", f"refs/heads/{BRANCH}", cwd=origin) == commit_hash

    @pytest.mark.asyncio
    async def test_prepare_replaces_existing_worktree(self, workspace):
        worktree = await workspace.prepare(REPO_URL, BRANCH, "main")
        (worktree / "stale.txt").write_text("left over")

        again = await workspace.prepare(REPO_URL, BRANCH, "main")

        assert again == worktree
        assert not (again / "stale.txt").exists()

    @pytest.mark.asyncio
    async def test_discard_keeps_gemini_dir(self, workspace):
        worktree = await workspace.prepare(REPO_URL, BRANCH, "main")
        (worktree / ".gemini").mkdir()
        (worktree / ".gemini" / "GEMINI.md").write_text("rules")
        (worktree / "new.py").write_text("x = 1\n")
        (worktree / "README.md").write_text("changed\n")

        await workspace.discard_changes(worktree)

        assert not (worktree / "new.py").exists()
        assert (worktree / "README.md").read_text() == "# my-app\n"
        assert (worktree / ".gemini" / "GEMINI.md").exists()

    @pytest.mark.asyncio
    async def test_unknown_base_branch(self, workspace):
        with pytest.raises(UpstreamError) as exc_info:
            await workspace.prepare(REPO_URL, BRANCH, "does-not-exist")
        assert exc_info.value.service == "git"

    @pytest.mark.asyncio
    async def test_pushed_branch_is_continued(self, workspace, origin):
        worktree = await workspace.prepare(REPO_URL, BRANCH, "main")
        (worktree / "a.py").write_text("a = 1\n")
        first = await workspace.commit(worktree, "First")
        await workspace.push(worktree, BRANCH)

        worktree = await workspace.prepare(REPO_URL, BRANCH, "main")
        assert (worktree / "a.py").exists()
        (worktree / "b.py").write_text("b = 2\n")
        second = await workspace.commit(worktree, "Second")
        await workspace.push(worktree, BRANCH)

        assert git("rev-parse", f"refs/heads/{BRANCH}", cwd=origin) == second
        git("merge-base", "--is-ancestor", first, second, cwd=origin)


class TestBranchReuseAcrossRequests:
    @pytest.mark.asyncio
    async def test_same_branch_keeps_earlier_commits(self, workspace, origin):
        orchestrator = Orchestrator(InMemoryJobStore(), FakeGitHub(), workspace, FakeRunner(), generation_timeout=5)

        first = await orchestrator.generate(REPO_URL, "My App", make_rec("Add caching!"))
        second = await orchestrator.generate(REPO_URL, "My App", make_rec("Add caching?"))

        assert first.branch == second.branch
        assert first.status == second.status == JobStatus.SUCCEEDED
        assert git("rev-parse", f"refs/heads/{first.branch}", cwd=origin) == second.commit_hash
        git("merge-base", "--is-ancestor", first.commit_hash, second.commit_hash, cwd=origin)
