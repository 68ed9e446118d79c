"""
Subscription overview for the admin dashboard
"""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.billing import ACCESS_STATUSES, as_utc, has_effective_access
from crud.subscription import SubscriptionRepository
from crud.user import UserRepository
from database_models import USER_TYPE_ADMIN

STATUS_KEYS = ("active", "trialing", "canceled", "past_due")


def subscription_to_dict(subscription) -> Optional[dict]:
    if subscription is None:
        return None
    period_end = as_utc(subscription.current_period_end)
    created_at = as_utc(subscription.created_at)
    return {
        "status": subscription.status or "",
        "plan_type": subscription.plan_type or "",
        "current_period_end": period_end.isoformat() if period_end else None,
        "created_at": created_at.isoformat() if created_at else None,
        "stripe_customer_id": subscription.stripe_customer_id,
        "stripe_subscription_id": subscription.stripe_subscription_id,
    }


class SubscriptionOverviewService:
    """
    Joins every user with their subscription record and counts statuses.

    Admins are listed but excluded from the subscription counts, since they
    are outside subscription gating.
    """

    def __init__(self, db: AsyncSession):
        self.users = UserRepository(db)
        self.subscriptions = SubscriptionRepository(db)

    async def get_overview(self, now: Optional[datetime] = None) -> dict:
        now = now or datetime.now(timezone.utc)
        by_user = {s.user_id: s for s in await self.subscriptions.list_all()}

        users = []
        for user in await self.users.list_users():
            subscription = by_user.get(user.id)
            users.append({
                "id": user.id,
                "name": user.display_name or user.email,
                "email": user.email,
                "user_type": user.user_type,
                "avatar_url": user.avatar_url,
                "subscription": subscription_to_dict(subscription),
                "has_access": has_effective_access(user.user_type, subscription, now),
            })
        users.sort(key=lambda u: u["name"].lower())

        subscription_users = [u for u in users if u["user_type"] != USER_TYPE_ADMIN]

        status_counts = {key: 0 for key in STATUS_KEYS}
        status_counts["no_subscription"] = 0
        for u in subscription_users:
            status = (u["subscription"] or {}).get("status")
            if status in status_counts:
                status_counts[status] += 1
            else:
                status_counts["no_subscription"] += 1

        active_count = sum(
            1 for u in subscription_users
            if u["subscription"] and u["subscription"]["status"] in ACCESS_STATUSES
        )

        return {
            "users": users,
            "subscription_users": subscription_users,
            "active_count": active_count,
            "status_counts": status_counts,
        }
