"""GitHub REST client used by the implementation pipeline"""

import logging
import re

import httpx

from ..errors import UpstreamError, ValidationError

logger = logging.getLogger(__name__)

GITHUB_URL_PATTERN = re.compile(r"^https://github\.com/([a-zA-Z0-9_.-]+)/([a-zA-Z0-9_.-]+)$")


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """Parse and validate GitHub repo URL. Returns (owner, repo_name)."""
    if not isinstance(repo_url, str):
        raise ValidationError("Invalid GitHub URL. Must be https://github.com/owner/repo-name")

    repo_url = repo_url.strip().rstrip("/")
    # Remove .git suffix if present
    if repo_url.endswith(".git"):
        repo_url = repo_url[:-4]

    match = GITHUB_URL_PATTERN.match(repo_url)
    if not match:
        raise ValidationError("Invalid GitHub URL. Must be https://github.com/owner/repo-name")

    return match.group(1), match.group(2)


def canonical_repo_url(repo_url: str) -> str:
    owner, repo = parse_repo_url(repo_url)
    return f"https://github.com/{owner}/{repo}"


class GitHubClient:
    """
    Thin async wrapper over the GitHub REST API.

    Every non-2xx response becomes an UpstreamError(service="github") that
    carries the upstream status code.
    """

    def __init__(
        self,
        token: str | None = None,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    async def _request(self, method: str, path: str, **kwargs):
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self.transport,
        ) as client:
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                logger.error(f"GitHub request {method} {path} failed: {e}")
                raise UpstreamError(f"GitHub request failed: {e}", service="github")

        if response.status_code >= 400:
            try:
                message = response.json().get("message") or response.text
            except ValueError:
                message = response.text
            logger.warning(f"GitHub {method} {path} returned {response.status_code}: {message}")
            raise UpstreamError(
                f"GitHub API error ({response.status_code}): {message}",
                service="github",
                upstream_status=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # =========================================================================
    # REPOSITORIES
    # =========================================================================

    async def get_repo(self, owner: str, repo: str) -> dict:
        return await self._request("GET", f"/repos/{owner}/{repo}")

    async def get_default_branch(self, owner: str, repo: str) -> str:
        data = await self.get_repo(owner, repo)
        return data.get("default_branch") or "main"

    # =========================================================================
    # PULL REQUESTS
    # =========================================================================

    async def add_labels(self, owner: str, repo: str, number: int, labels: list[str]) -> list[dict]:
        # PRs share the issues label endpoint
        return await self._request(
            "POST", f"/repos/{owner}/{repo}/issues/{number}/labels", json={"labels": labels}
        )

    async def list_pull_requests(
        self, owner: str, repo: str, state: str = "open", head: str | None = None
    ) -> list[dict]:
        params = {"state": state}
        if head:
            params["head"] = head
        return await self._request("GET", f"/repos/{owner}/{repo}/pulls", params=params)

    async def create_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        head: str,
        base: str,
        body: str = "",
        labels: list[str] | None = None,
    ) -> dict:
        """
        Open a pull request from `head` into `base` and label it.

        GitHub answers 422 when a PR for the same head already exists; in that
        case the open PR is returned instead. Labeling failures are logged only.
        """
        try:
            pr = await self._request(
                "POST", f"/repos/{owner}/{repo}/pulls",
                json={"title": title, "head": head, "base": base, "body": body},
            )
        except UpstreamError as e:
            if e.upstream_status != 422:
                raise
            existing = await self.list_pull_requests(owner, repo, state="open", head=f"{owner}:{head}")
            if not existing:
                raise
            pr = existing[0]
            logger.info(f"Reusing open pull request #{pr.get('number')} for {head}")

        if labels:
            try:
                await self.add_labels(owner, repo, pr["number"], labels)
            except UpstreamError as e:
                logger.warning(f"Could not label pull request #{pr['number']}: {e.message}")

        return pr
