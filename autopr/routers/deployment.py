from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..errors import ValidationError
from ..services.vercel import Deployment

router = APIRouter(prefix="/api/vercel", tags=["deployment"])


class DeployRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str | None = None
    repo_id: int | str | None = None
    ref: str = "main"


@router.post("/deploy", response_model=Deployment, status_code=201)
async def deploy_to_vercel(request: Request, body: DeployRequest):
    if not body.name or body.repo_id in (None, ""):
        raise ValidationError("name and repoId are required")
    return await request.app.state.vercel.deploy(body.name, body.repo_id, ref=body.ref)
