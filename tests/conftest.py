"""
Pytest configuration for the application
"""
import itertools
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Dict, List, Optional, Set

import httpx
import jwt
import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from dateutil.relativedelta import relativedelta
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine
)

from streamsub.core.config import settings
from streamsub.core.exceptions import GatewayException
from streamsub.db import models  # noqa: F401
from streamsub.db.base import Base
from streamsub.db.models.plan import Plan
from streamsub.services import limits as limits_service
from streamsub.services.ledger import SubscriptionLedger
from streamsub.services.payment_gateway import ChargeResult, InitializeResult, VerifyResult
from streamsub.services.plan_catalog import plan_defaults
from streamsub.schemas.webhook import CardAuthorization


# Set test environment and override runtime settings to avoid external deps
os.environ["ENV"] = "test"
settings.ENV = "test"
settings.scheduler.enabled = False
settings.JWT_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
API_PREFIX = f"{settings.API_PREFIX}/v1"


class FakeClock:
    """Controllable time source."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + relativedelta(**kwargs)
        return self.now


class FakeGateway:
    """Scripted stand-in for the payment provider."""

    def __init__(self) -> None:
        self._refs = itertools.count(1)
        self.initialized: List[Dict[str, Any]] = []
        self.verified: List[str] = []
        self.charges: List[Dict[str, Any]] = []
        self.verify_status = "success"
        self.charge_status = "success"
        self.fail_with: Optional[Exception] = None
        self.failing_authorizations: Set[str] = set()
        self.authorization = CardAuthorization(
            authorization_code="AUTH_test",
            card_type="visa",
            last4="4081",
            exp_month="12",
            exp_year="2030",
            bank="Test Bank",
        )

    async def initialize(self, email, amount, currency, metadata) -> InitializeResult:
        if self.fail_with:
            raise self.fail_with
        reference = f"ref_{next(self._refs)}"
        self.initialized.append(
            {"email": email, "amount": amount, "currency": currency, "metadata": metadata}
        )
        return InitializeResult(
            reference=reference,
            access_code=f"access_{reference}",
            authorization_url=f"https://checkout.test/{reference}",
        )

    async def verify(self, reference) -> VerifyResult:
        if self.fail_with:
            raise self.fail_with
        self.verified.append(reference)
        return VerifyResult(
            status=self.verify_status,
            amount=Decimal("9.99"),
            currency="NGN",
            authorization=self.authorization,
        )

    async def charge_authorization(self, authorization_code, email, amount, currency, metadata) -> ChargeResult:
        self.charges.append(
            {
                "authorization_code": authorization_code,
                "email": email,
                "amount": amount,
                "metadata": metadata,
            }
        )
        if authorization_code in self.failing_authorizations:
            raise GatewayException(f"Card {authorization_code} could not be charged")
        if self.fail_with:
            raise self.fail_with
        return ChargeResult(reference=f"renew_{next(self._refs)}", status=self.charge_status)

    def verify_signature(self, body, signature) -> bool:
        return signature == "valid-signature"


class FakeRedis:
    """Minimal async Redis stub for rate limiting and idempotency."""

    def __init__(self) -> None:
        self.store: Dict[str, int | str] = {}

    async def incr(self, key: str) -> int:
        current = int(self.store.get(key, 0)) + 1
        self.store[key] = current
        return current

    async def expire(self, key: str, seconds: int) -> None:
        self.store.setdefault(f"{key}:ttl", seconds)

    async def set(self, key: str, value: str, ex: int | None = None, nx: bool = False) -> bool:
        if nx and key in self.store:
            return False
        self.store[key] = value
        return True

    async def aclose(self) -> None:
        return None


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch) -> FakeRedis:
    """Patch the limits module to use an in-memory Redis stub."""

    fake = FakeRedis()
    monkeypatch.setattr(limits_service, "_redis_client", fake, raising=False)
    yield fake
    monkeypatch.setattr(limits_service, "_redis_client", None, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 31, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest_asyncio.fixture
async def test_db_engine(tmp_path):
    """
    Create a throwaway SQLite database for one test.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test_app.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger(test_db, gateway, clock) -> SubscriptionLedger:
    return SubscriptionLedger(test_db, gateway, clock)


async def seed_plan(
    session: AsyncSession,
    name: str = "Basic",
    amount: str = "9.99",
    billing_cycle: str = "monthly",
    currency: str = "NGN",
    is_active: bool = True,
) -> Plan:
    plan = Plan(
        name=name,
        amount=Decimal(amount),
        currency=currency,
        billing_cycle=billing_cycle,
        is_active=is_active,
        **(plan_defaults(name) or {"features": []}),
    )
    session.add(plan)
    await session.commit()
    return plan


def build_auth_header(user_id: str, email: str = "viewer@example.com", role: str = "user") -> Dict[str, str]:
    token = jwt.encode(
        {"sub": user_id, "email": email, "role": role},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALG,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_app(session_factory, gateway, clock) -> AsyncGenerator[FastAPI, None]:
    """
    Create a FastAPI test application wired to the test database and fakes.
    """
    from streamsub.api import deps
    from streamsub.db.session import get_db
    from streamsub.main import create_application

    app = create_application()

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
            finally:
                await session.rollback()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[deps.get_payment_gateway] = lambda: gateway
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_session_maker] = lambda: session_factory
    async with LifespanManager(app):
        yield app


@pytest_asyncio.fixture
async def client(test_app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Create an async HTTP client for testing.
    """
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def gateway_down() -> GatewayException:
    return GatewayException("Payment gateway unavailable")
