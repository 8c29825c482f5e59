from typing import Annotated
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.database import get_db
from orderflow.core.permissions import Actor
from orderflow.core.security import verify_access_token
from orderflow.services.notification_service import get_notifier
from orderflow.services.workflow_service import WorkflowService


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Dependency to get the calling actor.

    Identity, display name and resolved role come from the JWT issued by
    the identity service; no user lookup happens here.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    claims = verify_access_token(credentials.credentials)
    if claims is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        actor_id = uuid.UUID(claims["sub"])
    except ValueError:
        logger.warning(f"Invalid actor id in token: {claims['sub']}")
        raise credentials_exception

    try:
        actor = Actor(id=actor_id, name=claims["name"], role=claims["role"])
    except ValueError:
        logger.warning(f"Unknown role in token: {claims['role']}")
        raise credentials_exception

    # The system actor is internal to the workflow engine
    if actor.is_system:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="System role cannot be used by API callers"
        )

    return actor


async def require_admin(
    actor: Annotated[Actor, Depends(get_current_actor)],
) -> Actor:
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required"
        )
    return actor


def get_workflow_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    notifier=Depends(get_notifier),
) -> WorkflowService:
    return WorkflowService(db, notifier=notifier)


# Type aliases for cleaner endpoint signatures
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(require_admin)]
Workflow = Annotated[WorkflowService, Depends(get_workflow_service)]
