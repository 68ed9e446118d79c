"""
Billing Service - Stripe Checkout and Billing Portal for subscription plans
"""

import logging
from typing import Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import stripe

from config.settings import BillingConfig, ConfigurationError, PLAN_TYPES
from crud.subscription import SubscriptionRepository
from services.errors import (
    BillingError,
    FailedPreconditionError,
    InternalError,
    InvalidArgumentError,
    UnauthenticatedError,
)
from services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

STRIPE_CONFIG_ERROR = "Stripe configuration error. Please contact support."
PLAN_CONFIG_ERROR = "Subscription plan not configured. Please contact support."


class BillingService:
    """
    Service class for handling billing-related business logic.
    Never changes subscription status; that only happens through webhooks.
    """

    def __init__(self, db: AsyncSession, config: BillingConfig, gateway: StripeGateway):
        """
        Initialize the billing service.

        Args:
            db: AsyncSession instance for database operations
            config: Billing credentials for the active environment
            gateway: Stripe API wrapper
        """
        self.db = db
        self.config = config
        self.gateway = gateway
        self.subscriptions = SubscriptionRepository(db)

    async def create_checkout_session(self, user_id: str, email: Optional[str], plan_type: str) -> dict:
        """
        Create a Stripe Checkout session for a subscription plan.

        Ensures the user has exactly one Stripe customer, persisting its id
        before the session is created.

        Args:
            user_id: Authenticated user id
            email: Email used when a Stripe customer must be created
            plan_type: "monthly" or "yearly"

        Returns:
            {"session_id": str, "url": str}
        """
        if not user_id:
            raise UnauthenticatedError("User must be authenticated")
        if not plan_type or plan_type not in PLAN_TYPES:
            raise InvalidArgumentError("Invalid plan type")

        logger.info(f"Creating checkout session for user {user_id} (environment: {self.config.environment})")

        try:
            self.config.require("billing_api_key")
        except ConfigurationError as e:
            logger.error(f"Stripe secret key is not configured: {e}")
            raise FailedPreconditionError(STRIPE_CONFIG_ERROR)

        try:
            customer_id = await self._ensure_customer(user_id, email or "")

            try:
                price_id = self.config.price_id_for(plan_type)
            except ConfigurationError as e:
                logger.error(f"{e} (environment: {self.config.environment})")
                raise FailedPreconditionError(PLAN_CONFIG_ERROR)

            try:
                success_base = self.config.require("success_url")
                cancel_base = self.config.require("cancel_url")
            except ConfigurationError as e:
                logger.error(f"Checkout redirect URL missing: {e}")
                raise FailedPreconditionError(STRIPE_CONFIG_ERROR)

            logger.info(
                f"Checkout session details: user={user_id} plan={plan_type} "
                f"price_prefix={price_id[:15]}... env={self.config.environment}"
            )

            session = self.gateway.create_checkout_session(
                customer_id=customer_id,
                price_id=price_id,
                user_id=user_id,
                plan_type=plan_type,
                success_url=f"{success_base.rstrip('/')}/home?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{cancel_base.rstrip('/')}/packages?canceled=true",
            )
        except BillingError:
            raise
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating checkout session for user {user_id}: {e}", exc_info=True)
            raise InternalError("Failed to create checkout session")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error creating checkout session for user {user_id}: {e}", exc_info=True)
            raise InternalError("Failed to create checkout session")
        except Exception as e:
            logger.error(f"Unexpected error in create_checkout_session: {e}", exc_info=True)
            raise InternalError("Failed to create checkout session")

        logger.info(f"Checkout session created: session={session.id} user={user_id} plan={plan_type}")
        return {"session_id": session.id, "url": session.url}

    async def _ensure_customer(self, user_id: str, email: str) -> str:
        """Reuse the stored Stripe customer or create and persist a new one."""
        subscription = await self.subscriptions.get_by_user_id(user_id)
        if subscription is not None and subscription.stripe_customer_id:
            return subscription.stripe_customer_id

        customer = self.gateway.create_customer(
            email=email,
            user_id=user_id,
            idempotency_key=f"customer-create-{user_id}",
        )
        try:
            await self.subscriptions.merge(user_id, {"stripe_customer_id": customer.id})
            await self.db.commit()
        except IntegrityError:
            # A concurrent checkout inserted the record first
            await self.db.rollback()
            subscription = await self.subscriptions.get_by_user_id(user_id)
            if subscription is None:
                raise
            if not subscription.stripe_customer_id:
                subscription.stripe_customer_id = customer.id
                await self.db.commit()
            logger.info(f"Reusing Stripe customer {subscription.stripe_customer_id} stored concurrently for user {user_id}")
            return subscription.stripe_customer_id
        logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
        return customer.id

    async def create_billing_portal_session(self, user_id: str, return_url: Optional[str]) -> dict:
        """
        Create a Stripe Billing Portal session for the user's stored customer.

        Args:
            user_id: Authenticated user id
            return_url: Absolute URL Stripe sends the user back to

        Returns:
            {"url": str}
        """
        if not user_id:
            raise UnauthenticatedError("User must be authenticated")
        if not isinstance(return_url, str) or not return_url.startswith("http"):
            raise InvalidArgumentError("Valid returnUrl is required (e.g. your app profile page)")

        logger.info(f"Creating billing portal session for user {user_id} (environment: {self.config.environment})")

        try:
            self.config.require("billing_api_key")
        except ConfigurationError as e:
            logger.error(f"Stripe secret key is not configured: {e}")
            raise FailedPreconditionError(STRIPE_CONFIG_ERROR)

        try:
            subscription = await self.subscriptions.get_by_user_id(user_id)
            customer_id = subscription.stripe_customer_id if subscription else None
            if not customer_id:
                logger.warning(f"No Stripe customer for user {user_id}")
                raise FailedPreconditionError("No subscription found. Subscribe to a plan first.")

            session = self.gateway.create_billing_portal_session(customer_id, return_url)
        except BillingError:
            raise
        except Exception as e:
            logger.error(f"Failed to create billing portal session for user {user_id}: {e}", exc_info=True)
            raise InternalError("Failed to open billing portal. Please try again.")

        return {"url": session.url}
