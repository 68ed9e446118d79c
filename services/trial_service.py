"""
Trial Service for the 7-day no-card trial
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.auth.billing import is_subscription_active
from config.settings import PLAN_MONTHLY
from crud.subscription import SubscriptionRepository
from services.errors import FailedPreconditionError, InternalError, UnauthenticatedError

logger = logging.getLogger(__name__)

TRIAL_DAYS = 7


class TrialService:
    """
    Service for managing no-card trial periods.
    Handles trial start and the re-entry guard.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the trial service with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db
        self.subscriptions = SubscriptionRepository(db)

    async def start_trial(self, user_id: str, now: Optional[datetime] = None) -> dict:
        """
        Start a 7-day trial without collecting a payment method.

        A trial can only start if the user has no active or trialing
        subscription whose period is still running. Stripe ids already on the
        record are kept.

        Args:
            user_id: Authenticated user id
            now: Override for the current time (UTC)

        Returns:
            {"success": True, "trial_ends_at": ISO-8601 str, "message": str}
        """
        if not user_id:
            raise UnauthenticatedError("User must be authenticated")

        now = now or datetime.now(timezone.utc)

        try:
            existing = await self.subscriptions.get_by_user_id(user_id)
            if is_subscription_active(existing, now):
                raise FailedPreconditionError("You already have an active subscription or trial.")

            trial_ends_at = now + timedelta(days=TRIAL_DAYS)
            await self.subscriptions.merge(
                user_id,
                {
                    "status": "trialing",
                    "plan_type": PLAN_MONTHLY,
                    "current_period_end": trial_ends_at,
                    "created_at": now,
                },
            )
            await self.db.commit()
        except FailedPreconditionError:
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error starting free trial for user {user_id}: {e}", exc_info=True)
            raise InternalError("Failed to start free trial")

        logger.info(f"Free trial started (no card) for user {user_id}, ends {trial_ends_at.isoformat()}")
        return {
            "success": True,
            "trial_ends_at": trial_ends_at.isoformat(),
            "message": "Your 7-day free trial has started.",
        }
