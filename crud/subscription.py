"""
SubscriptionRepository - the per-user billing record store
"""

import logging
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from database_models import Subscription

logger = logging.getLogger(__name__)


class SubscriptionRepository:
    """
    Reads and merge-writes Subscription records.

    Writes never delete a record; fields not named in a merge are left as they are.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_user_id(self, user_id: str) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription).where(Subscription.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_by_customer_id(self, customer_id: str) -> Optional[Subscription]:
        """
        Reverse lookup from a Stripe customer id to the owning record.

        Args:
            customer_id: Stripe customer id (cus_...)

        Returns:
            The first matching Subscription, or None
        """
        if not customer_id:
            return None
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.stripe_customer_id == customer_id)
            .limit(1)
        )
        return result.scalars().first()

    async def list_all(self) -> List[Subscription]:
        result = await self.db.execute(select(Subscription))
        return list(result.scalars().all())

    async def merge(self, user_id: str, fields: dict) -> Subscription:
        """
        Create the record if missing, then set only the given fields.

        Args:
            user_id: Owning user id
            fields: Column name -> value

        Returns:
            The updated Subscription (flushed, not committed)
        """
        subscription = await self.get_by_user_id(user_id)
        if subscription is None:
            subscription = Subscription(user_id=user_id)
            self.db.add(subscription)
        self._apply(subscription, fields)
        await self.db.flush()
        return subscription

    async def apply_event(
        self,
        subscription: Subscription,
        fields: dict,
        event_created: Optional[int],
        event_id: Optional[str],
    ) -> bool:
        """
        Merge provider event fields into an existing record unless the event is stale.

        An event is stale when the record already reflects a strictly newer
        event. Equal timestamps are applied so replays converge on the same state.

        Returns:
            True if the fields were written, False if the event was skipped
        """
        if is_stale(subscription, event_created):
            logger.warning(
                f"Skipping stale event {event_id} for user {subscription.user_id}: "
                f"event created {event_created} < last applied {subscription.last_event_at}"
            )
            return False
        self._apply(subscription, fields)
        if event_created is not None:
            subscription.last_event_at = event_created
            subscription.last_event_id = event_id
        await self.db.flush()
        return True

    async def merge_event(
        self,
        user_id: str,
        fields: dict,
        event_created: Optional[int],
        event_id: Optional[str],
    ) -> bool:
        """Event-ordered merge keyed by user id (creates the record if missing)."""
        subscription = await self.get_by_user_id(user_id)
        if subscription is None:
            subscription = Subscription(user_id=user_id)
            self.db.add(subscription)
        return await self.apply_event(subscription, fields, event_created, event_id)

    @staticmethod
    def _apply(subscription: Subscription, fields: dict) -> None:
        for key, value in fields.items():
            if not hasattr(Subscription, key):
                raise AttributeError(f"Subscription has no field '{key}'")
            setattr(subscription, key, value)


def is_stale(subscription: Subscription, event_created: Optional[int]) -> bool:
    if event_created is None or subscription.last_event_at is None:
        return False
    return event_created < subscription.last_event_at
