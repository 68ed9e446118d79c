"""
Shared test helpers: fake Stripe gateway, signed webhook payloads, data factories
"""
import hashlib
import hmac
import json
import time
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from auth_utils import hash_password
from crud.subscription import SubscriptionRepository
from crud.user import UserRepository

TEST_WEBHOOK_SECRET = "whsec_test_secret"


class FakeStripeGateway:
    """
    In-memory stand-in for services.stripe_gateway.StripeGateway.

    Records every call; subscriptions returned by retrieve_subscription are
    registered through add_subscription.
    """

    def __init__(self, api_key="sk_test_fake"):
        self.api_key = api_key
        self.customers = []
        self.checkout_sessions = []
        self.portal_sessions = []
        self.subscriptions = {}
        self.retrieved = []
        self.fail_with = None

    def _maybe_fail(self):
        if self.fail_with is not None:
            raise self.fail_with

    def create_customer(self, email, user_id, idempotency_key=None):
        self._maybe_fail()
        # Stripe replays the original response for a repeated idempotency key
        for existing in self.customers:
            if idempotency_key is not None and existing.idempotency_key == idempotency_key:
                return existing
        customer = SimpleNamespace(
            id=f"cus_{len(self.customers) + 1}",
            email=email,
            metadata={"firebaseUID": user_id},
            idempotency_key=idempotency_key,
        )
        self.customers.append(customer)
        return customer

    def create_checkout_session(self, customer_id, price_id, user_id, plan_type, success_url, cancel_url):
        self._maybe_fail()
        number = len(self.checkout_sessions) + 1
        session = SimpleNamespace(
            id=f"cs_test_{number}",
            url=f"https://checkout.stripe.test/c/{number}",
            customer=customer_id,
            price_id=price_id,
            metadata={"firebaseUID": user_id, "planType": plan_type},
            success_url=success_url,
            cancel_url=cancel_url,
        )
        self.checkout_sessions.append(session)
        return session

    def create_billing_portal_session(self, customer_id, return_url):
        self._maybe_fail()
        self.portal_sessions.append((customer_id, return_url))
        return SimpleNamespace(url=f"https://billing.stripe.test/p/{customer_id}", customer=customer_id)

    def add_subscription(self, subscription_id, customer, status="active", current_period_end=None,
                         created=None, metadata=None, items=None):
        subscription = {
            "id": subscription_id,
            "object": "subscription",
            "customer": customer,
            "status": status,
            "created": created,
            "metadata": metadata or {},
        }
        if current_period_end is not None:
            subscription["current_period_end"] = current_period_end
        if items is not None:
            subscription["items"] = {"object": "list", "data": items}
        self.subscriptions[subscription_id] = subscription
        return subscription

    def retrieve_subscription(self, subscription_id):
        self._maybe_fail()
        self.retrieved.append(subscription_id)
        return self.subscriptions[subscription_id]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def days_from_now(days: float) -> datetime:
    return utcnow() + timedelta(days=days)


def epoch(dt: datetime) -> int:
    return int(dt.timestamp())


def make_event(event_type, data_object, created=None, event_id="evt_test_1"):
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created if created is not None else int(time.time()),
        "data": {"object": data_object},
    }


def sign_payload(payload: str, secret: str = TEST_WEBHOOK_SECRET, timestamp=None) -> str:
    """Build a Stripe-Signature header value the way Stripe signs webhooks."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def dump_event(event: dict) -> str:
    return json.dumps(event, separators=(",", ":"))


async def create_test_user(db, email="user@example.com", user_type="user", display_name=None):
    user = await UserRepository(db).create_user({
        "email": email,
        "hashed_password": hash_password("TestPassword123!"),
        "display_name": display_name,
        "user_type": user_type,
    })
    await db.commit()
    return user


async def seed_subscription(db, user_id, **fields):
    subscription = await SubscriptionRepository(db).merge(user_id, fields)
    await db.commit()
    return subscription
