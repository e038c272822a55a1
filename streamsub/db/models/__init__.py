"""Database models package exports."""

from streamsub.db.models.plan import Plan
from streamsub.db.models.subscription import (
    SubscriptionPayment,
    SubscriptionStatus,
    UserSubscription,
)

__all__ = [
    "Plan",
    "SubscriptionPayment",
    "SubscriptionStatus",
    "UserSubscription",
]
