from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import require_admin
from backend.utils.responses import success_response
from database import get_db
from services.subscription_overview_service import SubscriptionOverviewService

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])


@admin_router.get("/subscriptions")
async def get_subscription_overview(
    admin: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """All users with their subscription record and per-status counts."""
    return success_response(await SubscriptionOverviewService(db).get_overview())
