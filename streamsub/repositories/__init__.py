"""Repository layer package."""

from streamsub.repositories.plan_repo import PlanRepo
from streamsub.repositories.subscription_repo import SubscriptionRepo

__all__ = [
    "PlanRepo",
    "SubscriptionRepo",
]
