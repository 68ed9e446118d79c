"""
Billing Router - API endpoints for Stripe billing integration
Webhook is defined FIRST to avoid middleware conflicts
"""

import logging
from typing import Optional
from fastapi import APIRouter, Request, Depends, Body
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import stripe

from auth import get_current_user
from backend.auth.billing import has_effective_access, is_no_card_trial, is_period_current, is_subscription_active
from backend.utils.responses import success_response, billing_error_response
from config.settings import BillingConfig, get_billing_config
from crud.subscription import SubscriptionRepository
from database import get_db
from services.billing_service import BillingService
from services.errors import BillingError
from services.stripe_gateway import StripeGateway, get_stripe_gateway, verify_webhook
from services.subscription_overview_service import subscription_to_dict
from services.trial_service import TrialService
from services.webhook_service import WebhookReconciler

logger = logging.getLogger(__name__)

# Create billing router
billing_router = APIRouter(prefix="/api/billing", tags=["billing"])


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST TO AVOID MIDDLEWARE CONFLICTS
@billing_router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    config: BillingConfig = Depends(get_billing_config),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """
    Handle Stripe webhook events with signature verification.

    Status codes are the only thing Stripe acts on:
    - 400 for a missing or invalid signature (nothing is processed)
    - 200 once a verified event has been applied or deliberately skipped
    - 500 when processing fails, so Stripe redelivers the event
    """
    logger.info(f"Webhook received (environment: {config.environment})")

    webhook_secret = config.webhook_secret
    if not webhook_secret:
        logger.error("Stripe webhook secret is not configured for this environment")
        return JSONResponse(status_code=500, content={"received": False, "error": "Webhook not configured"})

    stripe_signature = request.headers.get("stripe-signature")
    if not stripe_signature:
        logger.error("Missing stripe-signature header")
        return JSONResponse(status_code=400, content={"received": False, "error": "Missing stripe-signature header"})

    # Raw request body is required for signature verification
    payload = await request.body()

    try:
        event = verify_webhook(payload, stripe_signature, webhook_secret)
    except stripe.SignatureVerificationError as e:
        logger.error(f"Stripe webhook signature verification failed: {e}")
        return JSONResponse(status_code=400, content={"received": False, "error": "Invalid webhook signature"})
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        return JSONResponse(status_code=400, content={"received": False, "error": "Invalid payload format"})

    try:
        await WebhookReconciler(db, gateway).process_event(event)
    except Exception as e:
        logger.error(
            f"Error processing webhook event {event.get('id')} ({event.get('type')}): {e}",
            exc_info=True
        )
        await db.rollback()
        return JSONResponse(status_code=500, content={"received": False, "error": "Webhook processing error"})

    return JSONResponse(status_code=200, content={"received": True})


@billing_router.post("/create-checkout-session")
async def create_checkout_session(
    plan_type: Optional[str] = Body(default=None, embed=True),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    config: BillingConfig = Depends(get_billing_config),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """
    Create a Stripe Checkout session for the monthly or yearly plan.

    Returns:
        JSON response with session id and hosted checkout URL
    """
    try:
        result = await BillingService(db, config, gateway).create_checkout_session(
            current_user["user_id"], current_user.get("email"), plan_type
        )
    except BillingError as e:
        return billing_error_response(e)
    return success_response(result)


@billing_router.post("/portal")
async def create_billing_portal_session(
    return_url: Optional[str] = Body(default=None, embed=True),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    config: BillingConfig = Depends(get_billing_config),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    """Open the Stripe Billing Portal for the caller's stored customer."""
    try:
        result = await BillingService(db, config, gateway).create_billing_portal_session(
            current_user["user_id"], return_url
        )
    except BillingError as e:
        return billing_error_response(e)
    return success_response(result)


@billing_router.post("/start-trial")
async def start_free_trial(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Start the 7-day trial without a card."""
    try:
        result = await TrialService(db).start_trial(current_user["user_id"])
    except BillingError as e:
        return billing_error_response(e)
    return success_response(result, message=result["message"])


@billing_router.get("/subscription")
async def get_subscription(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current user's subscription record plus the derived access flags."""
    subscription = await SubscriptionRepository(db).get_by_user_id(current_user["user_id"])
    expired = subscription is not None and subscription.current_period_end is not None and not is_period_current(subscription)
    return success_response({
        "subscription": subscription_to_dict(subscription),
        "is_active": is_subscription_active(subscription),
        "is_expired": expired,
        "is_no_card_trial": is_no_card_trial(subscription),
        "has_access": has_effective_access(current_user.get("user_type"), subscription),
    })
