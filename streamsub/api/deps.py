"""Shared FastAPI dependencies."""
from __future__ import annotations

from typing import Any, AsyncGenerator, Dict

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from streamsub.auth.jwt import require_auth
from streamsub.core.clock import Clock, utcnow
from streamsub.core.config import settings
from streamsub.db.models.subscription import UserSubscription
from streamsub.db.session import get_db, get_session_factory
from streamsub.services.access import AccessGate
from streamsub.services.expiry_scanner import ExpiryScanner
from streamsub.services.ledger import SubscriptionLedger
from streamsub.services.payment_gateway import PaymentGateway
from streamsub.services.paystack import PaystackGateway
from streamsub.services.plan_catalog import PlanCatalog


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncGenerator[AsyncSession, None]:
    yield db


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


def get_payment_gateway() -> PaymentGateway:
    return PaystackGateway(settings.paystack)


def get_clock() -> Clock:
    return utcnow


def get_plan_catalog(db: AsyncSession = Depends(get_db_session)) -> PlanCatalog:
    return PlanCatalog(db)


def get_ledger(
    db: AsyncSession = Depends(get_db_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
) -> SubscriptionLedger:
    return SubscriptionLedger(db, gateway, clock)


def get_access_gate(
    db: AsyncSession = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
) -> AccessGate:
    return AccessGate(db, clock)


def get_expiry_scanner(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    clock: Clock = Depends(get_clock),
) -> ExpiryScanner:
    return ExpiryScanner(session_maker, gateway, clock, settings.scheduler.batch_size)


async def require_active_subscription(
    request: Request,
    auth: Dict[str, Any] = Depends(require_auth),
    gate: AccessGate = Depends(get_access_gate),
) -> UserSubscription:
    """Gate for content routes; the resolved instance is kept on ``request.state``."""

    subscription = await gate.check_access(auth["user_id"])
    request.state.subscription = subscription
    return subscription
