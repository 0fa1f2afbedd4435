"""Teacher collaboration endpoints and the admin-triggered sweep."""

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field

from ..deps import get_current_actor, get_engine
from ..engine import AssessmentEngine
from ..permissions import Actor, Role, require_role
from ..schemas import CollaboratorPermissions
from .serializers import collaboration_payload

router = APIRouter()


class InviteIn(BaseModel):
    collaborator_id: str
    permissions: CollaboratorPermissions = Field(default_factory=CollaboratorPermissions)


class RespondIn(BaseModel):
    accept: bool


@router.post("/collaborations", status_code=201)
def api_invite(
    payload: InviteIn = Body(...),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    return collaboration_payload(engine.invite_collaborator(actor, payload.collaborator_id, payload.permissions))


@router.post("/collaborations/{collaboration_id}/respond")
def api_respond(
    collaboration_id: int,
    payload: RespondIn = Body(...),
    actor: Actor = Depends(get_current_actor),
    engine: AssessmentEngine = Depends(get_engine),
):
    return collaboration_payload(engine.respond_to_collaboration(actor, collaboration_id, payload.accept))


@router.post("/admin/sweep")
def api_sweep(actor: Actor = Depends(get_current_actor), engine: AssessmentEngine = Depends(get_engine)):
    require_role(actor, Role.ADMIN)
    return engine.sweep()
