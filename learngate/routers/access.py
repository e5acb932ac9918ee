"""Access routes: the gate decision and a protected content route."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from learngate.db.session import get_db
from learngate.models.user import User
from learngate.schemas.subscription import AccessDecision
from learngate.services.access_gate import is_access_allowed, require_active_subscription
from learngate.services.auth_service import get_current_user

router = APIRouter(prefix="/api", tags=["access"])


@router.get("/access", response_model=AccessDecision)
async def access_decision(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await is_access_allowed(db, user.id)


@router.get("/content")
async def protected_content(
    request: Request,
    user: User = Depends(require_active_subscription),
):
    return {"success": True, "user_id": user.id, "subscription": request.state.subscription}
