import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Boolean, DateTime, Integer, ForeignKey

from database import Base

USER_TYPE_USER = "user"
USER_TYPE_ADMIN = "admin"


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    Application account. user_type "admin" bypasses subscription gating.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String, unique=True, nullable=False, index=True)
    hashed_password = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    user_type = Column(String(16), nullable=False, default=USER_TYPE_USER)
    avatar_url = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class Subscription(Base):
    """
    Billing state for one user, keyed by user id.

    A record may exist with only a Stripe customer id (checkout started but not
    completed). A trialing record without a Stripe subscription id is a
    no-card trial.
    """
    __tablename__ = "subscriptions"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True)
    status = Column(String(32), nullable=True)
    plan_type = Column(String(16), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=True)
    # Creation time (epoch seconds) of the newest provider event applied to this record
    last_event_at = Column(Integer, nullable=True)
    last_event_id = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class Coupon(Base):
    """
    One-time code that grants admin access. Terminal once used_by is set.
    """
    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False, default="")
    code = Column(String(64), unique=True, nullable=False, index=True)
    created_by = Column(String(36), nullable=True)
    used_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
