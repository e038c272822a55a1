"""Repository utilities for user subscriptions."""
from __future__ import annotations

import datetime as dt
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import and_, exists, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from streamsub.db.models.subscription import (
    SubscriptionPayment,
    SubscriptionStatus,
    UserSubscription,
)


class SubscriptionRepo:
    """Data-access helpers for :class:`UserSubscription`.

    Status changes go through :meth:`transition`, a single conditional UPDATE
    whose row count tells the caller whether the record still matched.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _select(self):
        return (
            select(UserSubscription)
            .options(
                selectinload(UserSubscription.plan),
                selectinload(UserSubscription.payments),
            )
            .execution_options(populate_existing=True)
        )

    async def get(self, subscription_id: UUID) -> UserSubscription | None:
        result = await self.session.execute(
            self._select().where(UserSubscription.id == subscription_id)
        )
        return result.scalar_one_or_none()

    async def get_for_user(self, subscription_id: UUID, user_id: str) -> UserSubscription | None:
        result = await self.session.execute(
            self._select().where(
                UserSubscription.id == subscription_id,
                UserSubscription.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_active_for_user(self, user_id: str) -> UserSubscription | None:
        result = await self.session.execute(
            self._select().where(
                UserSubscription.user_id == user_id,
                UserSubscription.status == SubscriptionStatus.ACTIVE,
            )
        )
        return result.scalars().first()

    async def has_active(self, user_id: str) -> bool:
        result = await self.session.execute(
            select(
                exists().where(
                    UserSubscription.user_id == user_id,
                    UserSubscription.status == SubscriptionStatus.ACTIVE,
                )
            )
        )
        return bool(result.scalar())

    async def find_by_reference(
        self, reference: str, user_id: Optional[str] = None
    ) -> UserSubscription | None:
        """Locate an instance by its checkout reference or any payment reference."""

        query = self._select().where(UserSubscription.payment_reference == reference)
        if user_id is not None:
            query = query.where(UserSubscription.user_id == user_id)
        result = await self.session.execute(query)
        subscription = result.scalars().first()
        if subscription is not None:
            return subscription

        query = self._select().join(
            SubscriptionPayment,
            SubscriptionPayment.subscription_id == UserSubscription.id,
        ).where(SubscriptionPayment.reference == reference)
        if user_id is not None:
            query = query.where(UserSubscription.user_id == user_id)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def list_for_user(self, user_id: str) -> list[UserSubscription]:
        result = await self.session.execute(
            self._select()
            .where(UserSubscription.user_id == user_id)
            .order_by(UserSubscription.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_instances(
        self,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[UserSubscription]:
        query = self._select()
        if status is not None:
            query = query.where(UserSubscription.status == status)
        if user_id is not None:
            query = query.where(UserSubscription.user_id == user_id)
        query = query.order_by(UserSubscription.created_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def overdue_page(
        self,
        now: dt.datetime,
        auto_renew: bool,
        limit: int,
        after: Optional[tuple[dt.datetime, UUID]] = None,
    ) -> list[tuple[dt.datetime, UUID]]:
        """One keyset page of overdue active instances, ordered by ``(end_date, id)``.

        Pass the last ``(end_date, id)`` of the previous page as ``after``.
        """

        query = select(UserSubscription.end_date, UserSubscription.id).where(
            UserSubscription.status == SubscriptionStatus.ACTIVE,
            UserSubscription.end_date <= now,
            UserSubscription.auto_renew.is_(auto_renew),
        )
        if after is not None:
            last_end, last_id = after
            query = query.where(
                or_(
                    UserSubscription.end_date > last_end,
                    and_(UserSubscription.end_date == last_end, UserSubscription.id > last_id),
                )
            )
        result = await self.session.execute(
            query.order_by(UserSubscription.end_date.asc(), UserSubscription.id.asc()).limit(limit)
        )
        return [(row.end_date, row.id) for row in result]

    async def add(self, subscription: UserSubscription) -> UserSubscription:
        self.session.add(subscription)
        await self.session.flush()
        return subscription

    async def transition(
        self,
        subscription_id: UUID,
        expected: str | Iterable[str] | None,
        conditions: Iterable[Any] = (),
        **values: Any,
    ) -> bool:
        """Apply ``values`` only if the row is still in one of ``expected``."""

        query = update(UserSubscription).where(UserSubscription.id == subscription_id)
        if expected is not None:
            statuses = [expected] if isinstance(expected, str) else list(expected)
            query = query.where(UserSubscription.status.in_(statuses))
        for condition in conditions:
            query = query.where(condition)
        result = await self.session.execute(
            query.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def expire_overdue(self, now: dt.datetime) -> int:
        """Expire every lapsed, non-renewing active instance in one statement."""

        result = await self.session.execute(
            update(UserSubscription)
            .where(
                UserSubscription.status == SubscriptionStatus.ACTIVE,
                UserSubscription.end_date <= now,
                UserSubscription.auto_renew.is_(False),
            )
            .values(status=SubscriptionStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)

    async def has_payment(self, subscription_id: UUID, reference: str) -> bool:
        result = await self.session.execute(
            select(
                exists().where(
                    SubscriptionPayment.subscription_id == subscription_id,
                    SubscriptionPayment.reference == reference,
                )
            )
        )
        return bool(result.scalar())

    async def add_payment(self, payment: SubscriptionPayment) -> SubscriptionPayment:
        self.session.add(payment)
        await self.session.flush()
        return payment
