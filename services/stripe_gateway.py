"""
Stripe Gateway - thin wrapper around the Stripe SDK calls used for billing
"""

import json
import logging
from typing import Any, Dict, Optional

import stripe
from fastapi import Depends

from config.settings import BillingConfig, get_billing_config

logger = logging.getLogger(__name__)


class StripeGateway:
    """
    Issues Stripe API calls with an explicit API key.

    The key is resolved per deployment environment, so it is passed on every
    call instead of being set globally on the stripe module.
    """

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    def create_customer(self, email: str, user_id: str, idempotency_key: Optional[str] = None):
        """
        Create a Stripe customer linked back to the application user.

        Args:
            email: Customer email
            user_id: Application user id stored in customer metadata
            idempotency_key: Optional key so retried creates return the same customer

        Returns:
            stripe.Customer
        """
        params: Dict[str, Any] = {
            "email": email,
            "metadata": {"firebaseUID": user_id},
            "api_key": self.api_key,
        }
        if idempotency_key:
            params["idempotency_key"] = idempotency_key
        return stripe.Customer.create(**params)

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        user_id: str,
        plan_type: str,
        success_url: str,
        cancel_url: str,
    ):
        return stripe.checkout.Session.create(
            customer=customer_id,
            mode="subscription",
            payment_method_types=["card"],
            line_items=[{
                "price": price_id,
                "quantity": 1,
            }],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={
                "firebaseUID": user_id,
                "planType": plan_type,
            },
            subscription_data={
                "metadata": {
                    "firebaseUID": user_id,
                    "planType": plan_type,
                },
            },
            api_key=self.api_key,
        )

    def create_billing_portal_session(self, customer_id: str, return_url: str):
        return stripe.billing_portal.Session.create(
            customer=customer_id,
            return_url=return_url,
            api_key=self.api_key,
        )

    def retrieve_subscription(self, subscription_id: str):
        return stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)


def verify_webhook(payload: bytes, signature: str, secret: str) -> Dict[str, Any]:
    """
    Verify a Stripe webhook signature and decode the event body.

    Args:
        payload: Raw request body exactly as received
        signature: Value of the Stripe-Signature header
        secret: Webhook signing secret for the active environment

    Returns:
        The event as a plain dict

    Raises:
        stripe.SignatureVerificationError: If the signature does not match
            or its timestamp is outside the replay tolerance
        ValueError: If the body is not a JSON object
    """
    body = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
    stripe.WebhookSignature.verify_header(
        body, signature, secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
    )
    event = json.loads(body)
    if not isinstance(event, dict):
        raise ValueError("Webhook payload is not a JSON object")
    return event


def get_stripe_gateway(config: BillingConfig = Depends(get_billing_config)) -> StripeGateway:
    """FastAPI dependency building a gateway for the active environment."""
    return StripeGateway(config.billing_api_key)
