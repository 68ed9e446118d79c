from datetime import datetime, timezone
from typing import Optional

from database_models import USER_TYPE_ADMIN


ACCESS_STATUSES = ("active", "trialing")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_period_current(subscription, now: Optional[datetime] = None) -> bool:
    if subscription is None:
        return False
    period_end = as_utc(getattr(subscription, "current_period_end", None))
    if period_end is None:
        return False
    return period_end > (now or datetime.now(timezone.utc))


def is_subscription_active(subscription, now: Optional[datetime] = None) -> bool:
    if subscription is None:
        return False
    return getattr(subscription, "status", None) in ACCESS_STATUSES and is_period_current(subscription, now)


def is_no_card_trial(subscription) -> bool:
    if subscription is None:
        return False
    return subscription.status == "trialing" and not subscription.stripe_subscription_id


def has_effective_access(user_type: Optional[str], subscription, now: Optional[datetime] = None) -> bool:
    """Admins always have access; everyone else needs a live active/trialing period."""
    if user_type == USER_TYPE_ADMIN:
        return True
    return is_subscription_active(subscription, now)
