"""Tests for the HTTP API"""

import json
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from autopr.config import Settings
from autopr.main import create_app
from autopr.services.analysis import RepositoryAnalyzer
from autopr.services.analysis_store import InMemoryAnalysisStore
from autopr.services.repo_snapshot import RepoSnapshot

from conftest import REPO_URL, fake_llm_client, make_rec


@pytest.fixture
def llm():
    return fake_llm_client(json.dumps({
        "overallScore": 82,
        "recommendations": [make_rec("Add input validation", category="Security", priority="High")],
        "strengths": ["Clear structure"],
    }))


@pytest.fixture
def remote(monkeypatch):
    """Remote HEAD per repository; clones are recorded instead of made"""
    state = SimpleNamespace(heads={REPO_URL: "a" * 40}, clones=[])

    def snapshot(repo_url, timeout=120):
        state.clones.append(repo_url)
        return RepoSnapshot(repo_path=Path("."), commit_sha=state.heads.get(repo_url))

    monkeypatch.setattr("autopr.services.analysis.remote_head", lambda url, timeout=30: state.heads.get(url))
    monkeypatch.setattr("autopr.services.analysis.snapshot_repository", snapshot)
    return state


@pytest.fixture
def analyzer(llm, remote):
    return RepositoryAnalyzer(api_key="key", client=llm, store=InMemoryAnalysisStore())


@pytest.fixture
def client(orchestrator, analyzer, vercel):
    settings = Settings(job_store="memory", rate_limit_enabled=False)
    app = create_app(settings, orchestrator=orchestrator, analyzer=analyzer, vercel=vercel)
    with TestClient(app) as test_client:
        yield test_client


def generate_body(title="Add input validation", **overrides):
    body = {
        "repoUrl": REPO_URL,
        "projectName": "My App",
        "techStack": ["React", "Node.js"],
        "implementation": make_rec(title, category="Security", priority="High"),
    }
    body.update(overrides)
    return body


class TestErrors:
    def test_health(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_malformed_json(self, client):
        response = client.post(
            "/api/implementation/generate",
            content="{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid JSON format"}

    def test_missing_repo_url(self, client, runner):
        response = client.post("/api/implementation/generate", json=generate_body(repoUrl=None))
        assert response.status_code == 400
        assert response.json()["type"] == "validation_error"
        assert runner.calls == []

    def test_invalid_repo_url(self, client):
        response = client.post("/api/implementation/generate", json=generate_body(repoUrl="https://gitlab.com/a/b"))
        assert response.status_code == 400
        assert "Invalid GitHub URL" in response.json()["error"]

    def test_wrong_field_type(self, client):
        response = client.post("/api/implementation/batch", json={"repoUrl": REPO_URL, "techStack": "React"})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request"
        assert body["details"][0]["loc"][-1] == "techStack"


class TestGenerate:
    def test_success_is_camel_case(self, client, github):
        response = client.post("/api/implementation/generate", json=generate_body())

        assert response.status_code == 200
        job = response.json()
        assert job["status"] == "succeeded"
        assert job["repoUrl"] == REPO_URL
        assert job["pullRequestUrl"] == github.pull_requests[0]["html_url"]
        assert job["branch"].startswith("ai-implementation/my-app/")
        assert job["modifiedFiles"] == ["src/add-input-validation.py"]

    def test_failed_job_is_still_200(self, client, runner):
        runner.fail_titles.add("Add input validation")

        response = client.post("/api/implementation/generate", json=generate_body())

        assert response.status_code == 200
        job = response.json()
        assert job["status"] == "failed"
        assert job["error"]["type"] == "upstream_error"


class TestBatch:
    def test_separate_prs(self, client):
        body = {
            "repoUrl": REPO_URL,
            "projectName": "My App",
            "implementations": [make_rec("First"), {"description": "no title"}, make_rec("Second")],
        }

        response = client.post("/api/implementation/batch", json=body)

        assert response.status_code == 200
        batch = response.json()
        assert [job["status"] for job in batch["jobs"]] == ["succeeded", "failed", "succeeded"]
        assert batch["jobs"][1]["id"] is None
        assert batch["jobs"][1]["error"]["type"] == "validation_error"
        assert batch["summary"] == {"total": 3, "succeeded": 2, "failed": 1, "successRate": 67}
        assert batch["createSeparatePRs"] is True

        fetched = client.get(f"/api/implementation/batch/{batch['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["summary"]["total"] == 3

    def test_shared_pr(self, client, github):
        body = {
            "repoUrl": REPO_URL,
            "projectName": "My App",
            "implementations": [make_rec("First"), make_rec("Second")],
            "createSeparatePRs": False,
        }

        batch = client.post("/api/implementation/batch", json=body).json()

        assert len(github.pull_requests) == 1
        assert {job["pullRequestUrl"] for job in batch["jobs"]} == {github.pull_requests[0]["html_url"]}

    def test_implementations_must_be_list(self, client):
        body = {"repoUrl": REPO_URL, "projectName": "My App", "implementations": "nope"}
        response = client.post("/api/implementation/batch", json=body)
        assert response.status_code == 400

    def test_unknown_batch(self, client):
        response = client.get("/api/implementation/batch/missing")
        assert response.status_code == 404
        assert response.json()["type"] == "not_found"


class TestQueries:
    def test_status(self, client):
        job = client.post("/api/implementation/generate", json=generate_body()).json()

        single = client.get("/api/implementation/status", params={"repoUrl": REPO_URL, "implementationId": job["id"]})
        assert single.status_code == 200
        assert single.json()["id"] == job["id"]

        listing = client.get("/api/implementation/status", params={"repoUrl": REPO_URL + ".git"})
        assert [j["id"] for j in listing.json()] == [job["id"]]

    def test_status_unknown_id(self, client):
        response = client.get("/api/implementation/status", params={"repoUrl": REPO_URL, "implementationId": "nope"})
        assert response.status_code == 404

    def test_status_requires_repo_url(self, client):
        response = client.get("/api/implementation/status")
        assert response.status_code == 400

    def test_plan_creates_no_jobs(self, client, store, runner):
        body = {
            "repoUrl": REPO_URL,
            "projectName": "My App",
            "techStack": ["React"],
            "implementations": [make_rec("Add tests", category="Testing"), make_rec("Fix XSS", category="Security")],
        }

        response = client.post("/api/implementation/plan", json=body)

        assert response.status_code == 200
        plans = response.json()
        assert [p["order"] for p in plans] == [1, 2]
        assert all(p["feasibility"]["feasible"] for p in plans)
        assert plans[1]["suggestedOrder"] == 1
        assert store.list_all() == []
        assert runner.calls == []

    def test_history_and_statistics(self, client, runner):
        runner.fail_titles.add("Broken")
        client.post("/api/implementation/generate", json=generate_body("Works"))
        client.post("/api/implementation/generate", json=generate_body("Broken"))

        history = client.get("/api/implementation/history", params={"status": "failed"}).json()
        assert history["total"] == 1
        assert history["items"][0]["recommendation"]["title"] == "Broken"

        stats = client.get("/api/implementation/statistics", params={"repoUrl": REPO_URL}).json()
        assert stats["totalImplementations"] == 2
        assert stats["succeeded"] == 1
        assert stats["successRate"] == 50
        assert stats["categoryBreakdown"] == {"Security": 2}

    def test_history_rejects_unknown_status(self, client):
        response = client.get("/api/implementation/history", params={"status": "exploded"})
        assert response.status_code == 400

    def test_history_limit_bounds(self, client):
        response = client.get("/api/implementation/history", params={"limit": 500})
        assert response.status_code == 400


class TestDeployment:
    def test_deploy_implementation(self, client, vercel):
        job = client.post("/api/implementation/generate", json=generate_body()).json()

        response = client.post(f"/api/implementation/deployment/{job['id']}", params={"repoUrl": REPO_URL})

        assert response.status_code == 200
        assert response.json()["deploymentUrl"] == "https://my-app.vercel.app"
        assert vercel.calls == [("my-app", 4242, job["branch"])]

    def test_deployment_info(self, client):
        job = client.post("/api/implementation/generate", json=generate_body()).json()
        url = f"/api/implementation/deployment/{job['id']}"

        before = client.get(url, params={"repoUrl": REPO_URL}).json()
        client.post(url, params={"repoUrl": REPO_URL})
        after = client.get(url, params={"repoUrl": REPO_URL}).json()

        assert before["status"] == "not_deployed"
        assert before["deploymentUrl"] is None
        assert after["status"] == "deployed"
        assert after["deploymentUrl"] == "https://my-app.vercel.app"
        assert after["deploymentId"] == "dpl_1"
        assert after["branch"] == job["branch"]
        assert after["title"] == "Add input validation"
        assert after["deployedAt"]

    def test_deployment_info_unknown(self, client):
        response = client.get("/api/implementation/deployment/nope", params={"repoUrl": REPO_URL})
        assert response.status_code == 404

    def test_redeploy_reuses_then_forces(self, client, vercel):
        first = client.post("/api/implementation/generate", json=generate_body()).json()
        second = client.post("/api/implementation/generate", json=generate_body(title="Add input validation!")).json()
        assert first["branch"] == second["branch"]

        client.post(f"/api/implementation/deployment/{first['id']}", params={"repoUrl": REPO_URL})
        reused = client.post(f"/api/implementation/deployment/{second['id']}", params={"repoUrl": REPO_URL})
        forced = client.post(
            f"/api/implementation/deployment/{second['id']}", params={"repoUrl": REPO_URL, "force": "true"}
        )

        assert reused.json()["deploymentId"] == "dpl_1"
        assert forced.json()["deploymentId"] == "dpl_2"
        assert len(vercel.calls) == 2

    def test_list_deployments(self, client):
        jobs = [
            client.post("/api/implementation/generate", json=generate_body(title=title)).json()
            for title in ("Add logging", "Add caching", "Add metrics")
        ]
        for job in jobs[:2]:
            client.post(f"/api/implementation/deployment/{job['id']}", params={"repoUrl": REPO_URL})

        response = client.get("/api/implementation/deployments", params={"repoUrl": REPO_URL})
        limited = client.get("/api/implementation/deployments", params={"repoUrl": REPO_URL, "limit": 1})

        assert response.status_code == 200
        assert [d["implementationId"] for d in response.json()] == [jobs[1]["id"], jobs[0]["id"]]
        assert [d["implementationId"] for d in limited.json()] == [jobs[1]["id"]]

    def test_list_deployments_requires_repo_url(self, client):
        assert client.get("/api/implementation/deployments").status_code == 400
        assert client.get(
            "/api/implementation/deployments", params={"repoUrl": REPO_URL, "limit": 0}
        ).status_code == 400

    def test_vercel_deploy(self, client, vercel):
        response = client.post("/api/vercel/deploy", json={"name": "site", "repoId": 99})

        assert response.status_code == 201
        assert response.json() == {"id": "dpl_1", "url": "https://site.vercel.app", "readyState": "QUEUED"}
        assert vercel.calls == [("site", 99, "main")]

    def test_vercel_deploy_requires_repo_id(self, client):
        response = client.post("/api/vercel/deploy", json={"name": "site"})
        assert response.status_code == 400


class TestAnalyze:
    def analyze(self, client, **extra):
        body = {"repoUrl": REPO_URL + "/", "projectName": "My App", "techStack": ["React"], **extra}
        return client.post("/api/ai/analyze", json=body)

    def test_analyze(self, client, remote, llm):
        response = self.analyze(client)

        assert response.status_code == 200
        report = response.json()
        assert report["overallScore"] == 82
        assert report["recommendations"][0]["title"] == "Add input validation"
        assert report["repoUrl"] == REPO_URL
        assert report["commitSha"] == "a" * 40
        assert report["cached"] is False
        assert remote.clones == [REPO_URL]
        assert llm.models.calls == 1

    def test_repeat_is_cached(self, client, remote, llm):
        self.analyze(client)
        report = self.analyze(client).json()

        assert report["cached"] is True
        assert report["cacheStatus"] == "up_to_date"
        assert report["overallScore"] == 82
        assert remote.clones == [REPO_URL]
        assert llm.models.calls == 1

    def test_force_regenerate(self, client, remote, llm):
        self.analyze(client)
        report = self.analyze(client, forceRegenerate=True).json()

        assert report["cached"] is False
        assert report["cacheStatus"] == "force_regenerated"
        assert len(remote.clones) == 2
        assert llm.models.calls == 2

    def test_latest_analysis(self, client, remote):
        missing = client.get("/api/ai/analysis", params={"repoUrl": REPO_URL})
        self.analyze(client)
        remote.heads[REPO_URL] = "b" * 40
        self.analyze(client)

        latest = client.get("/api/ai/analysis", params={"repoUrl": REPO_URL + ".git"})
        history = client.get("/api/ai/history", params={"repoUrl": REPO_URL})

        assert missing.status_code == 404
        assert latest.status_code == 200
        assert latest.json()["commitSha"] == "b" * 40
        assert [r["commitSha"] for r in history.json()] == ["b" * 40, "a" * 40]

    def test_analysis_requires_repo_url(self, client):
        assert client.get("/api/ai/analysis").status_code == 400
        assert client.get("/api/ai/history", params={"repoUrl": "https://gitlab.com/a/b"}).status_code == 400

    def test_analyze_requires_project_name(self, client):
        response = client.post("/api/ai/analyze", json={"repoUrl": REPO_URL})
        assert response.status_code == 400
