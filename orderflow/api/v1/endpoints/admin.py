"""Administrative endpoints for the order workflow."""
from uuid import UUID

from fastapi import APIRouter

from orderflow.api.deps import AdminActor, Workflow
from orderflow.schemas.order import AnonymizeResponse

router = APIRouter(prefix="/admin")


@router.post("/actors/{actor_id}/anonymize", response_model=AnonymizeResponse)
async def anonymize_actor(
    actor_id: UUID,
    workflow: Workflow,
    admin: AdminActor,
):
    """
    Remove a deleted account's identity from orders, history, approvals and
    notification records. Stored display names are kept.
    """
    cleared = await workflow.anonymize_actor(actor_id, admin)
    return AnonymizeResponse(actor_id=actor_id, cleared=cleared)
