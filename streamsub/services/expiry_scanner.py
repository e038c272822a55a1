"""
Periodic sweep that expires lapsed subscriptions and renews auto-renewing ones
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streamsub.core.clock import Clock, utcnow
from streamsub.db.models.subscription import SubscriptionStatus, UserSubscription
from streamsub.repositories.subscription_repo import SubscriptionRepo
from streamsub.services.ledger import SubscriptionLedger
from streamsub.services.payment_gateway import PaymentGateway


logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    expired: int = 0
    renewed: int = 0
    failed: int = 0


class ExpiryScanner:
    """
    One pass over overdue active subscriptions.

    Each renewal runs in its own session so a failing record cannot poison
    the others; failures are logged and the record is left for the next run.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        clock: Clock = utcnow,
        batch_size: int = 100,
    ) -> None:
        self.session_factory = session_factory
        self.gateway = gateway
        self.clock = clock
        self.batch_size = batch_size

    async def run_once(self) -> ScanReport:
        report = ScanReport()
        now = self.clock()

        async with self.session_factory() as session:
            report.expired = await SubscriptionRepo(session).expire_overdue(now)
            await session.commit()

        # Keyset paging: rows left overdue by a failed renewal are passed
        # over, so they cannot hide the records queued behind them.
        after = None
        while True:
            async with self.session_factory() as session:
                page = await SubscriptionRepo(session).overdue_page(
                    now, auto_renew=True, limit=self.batch_size, after=after
                )
            if not page:
                break
            for _, subscription_id in page:
                outcome = await self._renew_one(subscription_id)
                if outcome == "renewed":
                    report.renewed += 1
                elif outcome == "expired":
                    report.expired += 1
                elif outcome == "failed":
                    report.failed += 1
            after = page[-1]

        logger.info(
            f"Expiry scan: {report.expired} expired, {report.renewed} renewed, {report.failed} failed"
        )
        return report

    async def _renew_one(self, subscription_id: UUID) -> str:
        async with self.session_factory() as session:
            try:
                repo = SubscriptionRepo(session)
                subscription = await repo.get(subscription_id)
                if subscription is None or subscription.status != SubscriptionStatus.ACTIVE:
                    return "skipped"
                if not subscription.authorization_code:
                    # Nothing to charge; the period cannot be extended.
                    now = self.clock()
                    expired = await repo.transition(
                        subscription_id,
                        SubscriptionStatus.ACTIVE,
                        conditions=[UserSubscription.end_date <= now],
                        status=SubscriptionStatus.EXPIRED,
                    )
                    await session.commit()
                    if expired:
                        logger.warning(
                            f"Expired auto-renew subscription {subscription_id}: no stored authorization"
                        )
                        return "expired"
                    return "skipped"

                ledger = SubscriptionLedger(session, self.gateway, self.clock)
                await ledger.renew(None, subscription_id)
                return "renewed"
            except Exception:
                logger.exception(f"Renewal failed for subscription {subscription_id}; will retry next sweep")
                await session.rollback()
                return "failed"
