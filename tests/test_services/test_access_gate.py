import pytest

from streamsub.core.exceptions import AccessDeniedException
from streamsub.db.models.subscription import SubscriptionStatus
from streamsub.services.access import AccessGate

from conftest import seed_plan


@pytest.fixture
def gate(test_db, clock) -> AccessGate:
    return AccessGate(test_db, clock)


@pytest.mark.asyncio
async def test_active_subscription_grants_access(test_db, ledger, gate):
    plan = await seed_plan(test_db)
    subscription = await ledger.subscribe("user-1", plan.id)

    granted = await gate.check_access("user-1")

    assert granted.id == subscription.id


@pytest.mark.asyncio
async def test_no_subscription_is_denied(gate):
    with pytest.raises(AccessDeniedException) as exc_info:
        await gate.check_access("nobody")
    assert exc_info.value.status_code == 403
    assert exc_info.value.code == "subscription_required"


@pytest.mark.asyncio
async def test_pending_or_cancelled_subscription_is_denied(test_db, ledger, gate):
    plan = await seed_plan(test_db)
    await ledger.initialize_payment("user-1", "u1@example.com", plan.id)
    cancelled = await ledger.subscribe("user-2", plan.id)
    await ledger.cancel("user-2", cancelled.id)

    with pytest.raises(AccessDeniedException):
        await gate.check_access("user-1")
    with pytest.raises(AccessDeniedException):
        await gate.check_access("user-2")


@pytest.mark.asyncio
async def test_lapsed_subscription_is_expired_on_check(test_db, ledger, gate, clock):
    plan = await seed_plan(test_db)
    subscription = await ledger.subscribe(
        "user-1", plan.id, email="u1@example.com", authorization_code="AUTH"
    )
    clock.advance(months=1)

    with pytest.raises(AccessDeniedException, match="expired"):
        await gate.check_access("user-1")

    assert (await ledger.get(subscription.id)).status == SubscriptionStatus.EXPIRED
    with pytest.raises(AccessDeniedException, match="required"):
        await gate.check_access("user-1")
