"""Subscription gate for content-serving code."""
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from streamsub.core.clock import Clock, utcnow
from streamsub.core.exceptions import AccessDeniedException
from streamsub.db.models.subscription import SubscriptionStatus, UserSubscription
from streamsub.repositories.subscription_repo import SubscriptionRepo


logger = logging.getLogger(__name__)


class AccessGate:
    """Decide whether a user currently holds a usable subscription.

    An active instance whose period has already ended is expired on the spot,
    independently of the periodic sweep.
    """

    def __init__(self, session: AsyncSession, clock: Clock = utcnow) -> None:
        self.session = session
        self.clock = clock
        self.subscriptions = SubscriptionRepo(session)

    async def check_access(self, user_id: str) -> UserSubscription:
        subscription = await self.subscriptions.get_active_for_user(user_id)
        if subscription is None:
            raise AccessDeniedException("Active subscription required")

        now = self.clock()
        if subscription.end_date <= now:
            subscription_id = subscription.id
            expired = await self.subscriptions.transition(
                subscription_id,
                SubscriptionStatus.ACTIVE,
                conditions=[UserSubscription.end_date <= now],
                status=SubscriptionStatus.EXPIRED,
            )
            await self.session.commit()
            if expired:
                logger.info(f"Lazily expired subscription {subscription_id} for user {user_id}")
            raise AccessDeniedException("Subscription expired")

        return subscription
