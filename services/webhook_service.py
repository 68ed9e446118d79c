"""
Webhook Service - applies verified Stripe events to the subscription store

Every handler is a merge keyed by user id (directly from checkout metadata or
by reverse lookup of the Stripe customer id), so redelivered events converge
on the same state. Events older than the last one applied to a record are
ignored. Structurally incomplete events are logged and acknowledged, since
redelivery cannot repair them; any other exception propagates so the caller
can answer 5xx and let Stripe retry.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import PLAN_MONTHLY
from crud.subscription import SubscriptionRepository
from crud.user import UserRepository
from services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"
EVENT_SUBSCRIPTION_UPDATED = "customer.subscription.updated"
EVENT_SUBSCRIPTION_DELETED = "customer.subscription.deleted"
EVENT_INVOICE_PAID = "invoice.payment_succeeded"


def map_subscription_status(stripe_status: Optional[str]) -> str:
    """Collapse Stripe's subscription status vocabulary into the four stored states."""
    if stripe_status == "trialing":
        return "trialing"
    if stripe_status == "past_due":
        return "past_due"
    if stripe_status in ("canceled", "unpaid"):
        return "canceled"
    return "active"


def _get(obj: Any, key: str, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


def _object_id(value: Any) -> Optional[str]:
    """Stripe references arrive either as an id string or as an expanded object."""
    if isinstance(value, str):
        return value or None
    return _get(value, "id")


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def resolve_period_end(subscription: Any) -> Optional[float]:
    """
    Current period end in epoch seconds, or None if it cannot be resolved.

    Newer Stripe API versions moved current_period_end onto the subscription
    items, so fall back to the first item when the top-level field is absent.
    """
    period_end = _get(subscription, "current_period_end")
    if not period_end:
        items = _get(_get(subscription, "items"), "data") or []
        if items:
            period_end = _get(items[0], "current_period_end")
    if not _is_finite_number(period_end):
        return None
    return period_end


def _from_epoch(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def _plan_type(metadata: Any) -> str:
    return _get(metadata, "planType") or PLAN_MONTHLY


class WebhookReconciler:
    """
    Reconciles Stripe subscription state into the subscription store.
    """

    def __init__(self, db: AsyncSession, gateway: StripeGateway):
        self.db = db
        self.gateway = gateway
        self.subscriptions = SubscriptionRepository(db)

    async def process_event(self, event: dict) -> bool:
        """
        Apply one verified Stripe event.

        Args:
            event: Decoded Stripe event

        Returns:
            True if a subscription record was written, False otherwise
        """
        event_type = event.get("type")
        event_id = event.get("id")
        event_created = event.get("created")
        if not _is_finite_number(event_created):
            event_created = None
        data_object = (event.get("data") or {}).get("object") or {}

        logger.info(f"Processing Stripe webhook event: {event_type} (ID: {event_id})")

        if event_type == EVENT_CHECKOUT_COMPLETED:
            written = await self._handle_checkout_completed(data_object, event_created, event_id)
        elif event_type == EVENT_SUBSCRIPTION_UPDATED:
            written = await self._handle_subscription_updated(data_object, event_created, event_id)
        elif event_type == EVENT_SUBSCRIPTION_DELETED:
            written = await self._handle_subscription_deleted(data_object, event_created, event_id)
        elif event_type == EVENT_INVOICE_PAID:
            written = await self._handle_invoice_payment_succeeded(data_object, event_created, event_id)
        else:
            logger.info(f"Unhandled event type: {event_type}")
            return False

        if written:
            await self.db.commit()
        return written

    async def _handle_checkout_completed(self, session: Any, event_created, event_id) -> bool:
        metadata = _get(session, "metadata") or {}
        user_id = _get(metadata, "firebaseUID")
        if not user_id:
            logger.error(f"No firebaseUID in checkout session metadata (event {event_id})")
            return False

        if await UserRepository(self.db).get_user_by_id(str(user_id)) is None:
            logger.error(f"Checkout session references unknown user {user_id} (event {event_id})")
            return False

        subscription_id = _object_id(_get(session, "subscription"))
        if not subscription_id:
            logger.error(f"No subscription ID in checkout session (event {event_id})")
            return False

        subscription = self.gateway.retrieve_subscription(subscription_id)
        period_end = resolve_period_end(subscription)
        if period_end is None:
            logger.error(
                f"Invalid current_period_end for subscription {subscription_id} "
                f"(event {event_id}); skipping write"
            )
            return False

        created = _get(subscription, "created")
        created_at = _from_epoch(created) if _is_finite_number(created) else datetime.now(timezone.utc)
        plan_type = _plan_type(metadata)
        status = map_subscription_status(_get(subscription, "status"))

        written = await self.subscriptions.merge_event(
            user_id,
            {
                "stripe_customer_id": _object_id(_get(subscription, "customer")),
                "stripe_subscription_id": subscription_id,
                "status": status,
                "plan_type": plan_type,
                "current_period_end": _from_epoch(period_end),
                "created_at": created_at,
            },
            event_created,
            event_id,
        )
        if written:
            logger.info(
                f"Checkout session completed: user={user_id} subscription={subscription_id} "
                f"plan={plan_type} status={status}"
            )
        return written

    async def _find_by_customer(self, customer: Any, event_id):
        customer_id = _object_id(customer)
        record = await self.subscriptions.get_by_customer_id(customer_id)
        if record is None:
            logger.error(f"Subscription not found for Stripe customer {customer_id} (event {event_id}); skipping")
        return record

    async def _handle_subscription_updated(self, subscription: Any, event_created, event_id) -> bool:
        record = await self._find_by_customer(_get(subscription, "customer"), event_id)
        if record is None:
            return False

        period_end = resolve_period_end(subscription)
        if period_end is None:
            logger.error(f"Invalid current_period_end in subscription update (event {event_id}); skipping write")
            return False

        status = map_subscription_status(_get(subscription, "status"))
        written = await self.subscriptions.apply_event(
            record,
            {
                "status": status,
                "plan_type": _plan_type(_get(subscription, "metadata")),
                "current_period_end": _from_epoch(period_end),
                "stripe_subscription_id": _get(subscription, "id"),
            },
            event_created,
            event_id,
        )
        if written:
            logger.info(f"Subscription updated: user={record.user_id} subscription={_get(subscription, 'id')} status={status}")
        return written

    async def _handle_subscription_deleted(self, subscription: Any, event_created, event_id) -> bool:
        record = await self._find_by_customer(_get(subscription, "customer"), event_id)
        if record is None:
            return False

        written = await self.subscriptions.apply_event(record, {"status": "canceled"}, event_created, event_id)
        if written:
            logger.info(f"Subscription deleted: user={record.user_id} subscription={_get(subscription, 'id')}")
        return written

    async def _handle_invoice_payment_succeeded(self, invoice: Any, event_created, event_id) -> bool:
        subscription_id = _object_id(_get(invoice, "subscription"))
        if not subscription_id:
            logger.info(f"Invoice {_get(invoice, 'id')} has no subscription; nothing to reconcile")
            return False

        subscription = self.gateway.retrieve_subscription(subscription_id)
        record = await self._find_by_customer(_get(subscription, "customer"), event_id)
        if record is None:
            return False

        period_end = resolve_period_end(subscription)
        if period_end is None:
            logger.error(f"Invalid current_period_end in invoice payment (event {event_id}); skipping write")
            return False

        status = "active" if _get(subscription, "status") == "active" else "past_due"
        written = await self.subscriptions.apply_event(
            record,
            {
                "current_period_end": _from_epoch(period_end),
                "status": status,
            },
            event_created,
            event_id,
        )
        if written:
            logger.info(f"Invoice payment succeeded: user={record.user_id} subscription={subscription_id} status={status}")
        return written
