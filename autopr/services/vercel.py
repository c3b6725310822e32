"""Vercel deployments for implementation branches"""

import logging

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..errors import UpstreamError

logger = logging.getLogger(__name__)

VERCEL_API_URL = "https://api.vercel.com"


class Deployment(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str | None = None
    url: str | None = Field(None, description="https URL of the deployment")
    ready_state: str | None = None


class VercelClient:
    def __init__(
        self,
        token: str | None,
        team_id: str | None = None,
        base_url: str = VERCEL_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.token = token
        self.team_id = team_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def deploy(self, name: str, repo_id: int | str, ref: str = "main") -> Deployment:
        """Create a deployment of `ref` from the GitHub repository `repo_id`."""
        if not self.token:
            raise UpstreamError("VERCEL_TOKEN is not configured", service="vercel")

        params = {"teamId": self.team_id} if self.team_id else None
        payload = {
            "name": name,
            "gitSource": {"type": "github", "repoId": repo_id, "ref": ref},
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}/v13/deployments",
                    json=payload,
                    params=params,
                    headers={"Authorization": f"Bearer {self.token}"},
                )
            except httpx.HTTPError as e:
                logger.error(f"Vercel deployment request failed: {e}")
                raise UpstreamError(f"Vercel request failed: {e}", service="vercel")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            message = (data.get("error") or {}).get("message") if isinstance(data, dict) else None
            raise UpstreamError(
                f"Vercel API error ({response.status_code}): {message or response.text}",
                service="vercel",
                upstream_status=response.status_code,
            )

        url = data.get("url")
        if url and not url.startswith("http"):
            url = f"https://{url}"

        logger.info(f"Vercel deployment {data.get('id')} created for {name}@{ref}")
        return Deployment(id=data.get("id"), url=url, ready_state=data.get("readyState"))
