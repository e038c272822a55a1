import logging
from decimal import Decimal

import pytest
from dateutil.relativedelta import relativedelta

from streamsub.db.models.subscription import SubscriptionStatus
from streamsub.services.expiry_scanner import ExpiryScanner

from conftest import seed_plan


@pytest.fixture
def scanner(session_factory, gateway, clock) -> ExpiryScanner:
    return ExpiryScanner(session_factory, gateway, clock, batch_size=50)


@pytest.mark.asyncio
async def test_overdue_auto_renew_subscription_is_renewed(test_db, ledger, scanner, gateway, clock):
    basic = await seed_plan(test_db, name="Basic", amount="9.99")
    await seed_plan(test_db, name="Premium", amount="19.99")
    subscription = await ledger.subscribe(
        "user-1", basic.id, email="u1@example.com", authorization_code="AUTH_saved"
    )
    original_end = subscription.end_date
    clock.advance(months=1, minutes=1)

    report = await scanner.run_once()

    assert report.renewed == 1
    assert report.expired == 0
    assert len(gateway.charges) == 1
    assert gateway.charges[0]["amount"] == Decimal("9.99")
    renewed = await ledger.get(subscription.id)
    assert renewed.status == SubscriptionStatus.ACTIVE
    assert renewed.end_date == clock.now + relativedelta(months=1)
    assert renewed.end_date > original_end
    assert [p.status for p in renewed.payments] == ["success"]


@pytest.mark.asyncio
async def test_failed_renewal_keeps_record_and_logs(
    test_db, ledger, scanner, gateway, clock, gateway_down, caplog
):
    plan = await seed_plan(test_db, name="Basic", amount="9.99")
    subscription = await ledger.subscribe(
        "user-1", plan.id, email="u1@example.com", authorization_code="AUTH_saved"
    )
    original_end = subscription.end_date
    clock.advance(months=1, minutes=1)
    gateway.fail_with = gateway_down

    with caplog.at_level(logging.ERROR, logger="streamsub.services.expiry_scanner"):
        report = await scanner.run_once()

    assert report.failed == 1
    assert report.renewed == 0
    assert "Renewal failed" in caplog.text
    reloaded = await ledger.get(subscription.id)
    assert reloaded.status == SubscriptionStatus.ACTIVE
    assert reloaded.end_date == original_end
    assert reloaded.payments == []


@pytest.mark.asyncio
async def test_declined_renewal_counts_as_failure(test_db, ledger, scanner, gateway, clock):
    plan = await seed_plan(test_db)
    subscription = await ledger.subscribe(
        "user-1", plan.id, email="u1@example.com", authorization_code="AUTH_saved"
    )
    clock.advance(months=1, minutes=1)
    gateway.charge_status = "failed"

    report = await scanner.run_once()

    assert report.failed == 1
    assert (await ledger.get(subscription.id)).status == SubscriptionStatus.ACTIVE


@pytest.mark.asyncio
async def test_non_renewing_overdue_subscription_expires(test_db, ledger, scanner, gateway, clock):
    plan = await seed_plan(test_db)
    lapsed = await ledger.subscribe("user-1", plan.id, auto_renew=False)
    clock.advance(days=10)
    current = await ledger.subscribe("user-2", plan.id, auto_renew=False)
    clock.advance(months=1, days=-5)

    report = await scanner.run_once()

    assert report.expired == 1
    assert gateway.charges == []
    assert (await ledger.get(lapsed.id)).status == SubscriptionStatus.EXPIRED
    assert (await ledger.get(current.id)).status == SubscriptionStatus.ACTIVE


@pytest.mark.asyncio
async def test_auto_renew_without_stored_authorization_expires(test_db, ledger, scanner, gateway, clock):
    plan = await seed_plan(test_db)
    subscription = await ledger.subscribe("user-1", plan.id, email="u1@example.com")
    clock.advance(months=2)

    report = await scanner.run_once()

    assert report.expired == 1
    assert gateway.charges == []
    assert (await ledger.get(subscription.id)).status == SubscriptionStatus.EXPIRED


@pytest.mark.asyncio
async def test_cancelled_and_pending_records_are_left_alone(test_db, ledger, scanner, clock):
    plan = await seed_plan(test_db)
    cancelled = await ledger.subscribe("user-1", plan.id)
    await ledger.cancel("user-1", cancelled.id)
    pending, _, _ = await ledger.initialize_payment("user-2", "u2@example.com", plan.id)
    clock.advance(months=3)

    report = await scanner.run_once()

    assert (report.expired, report.renewed, report.failed) == (0, 0, 0)
    assert (await ledger.get(cancelled.id)).status == SubscriptionStatus.CANCELLED
    assert (await ledger.get(pending.id)).status == SubscriptionStatus.PENDING


@pytest.mark.asyncio
async def test_second_run_is_a_no_op(test_db, ledger, scanner, gateway, clock):
    plan = await seed_plan(test_db)
    await ledger.subscribe("user-1", plan.id, auto_renew=False)
    await ledger.subscribe(
        "user-2", plan.id, email="u2@example.com", authorization_code="AUTH_saved"
    )
    clock.advance(months=1, minutes=1)

    first = await scanner.run_once()
    second = await scanner.run_once()

    assert (first.expired, first.renewed) == (1, 1)
    assert (second.expired, second.renewed, second.failed) == (0, 0, 0)
    assert len(gateway.charges) == 1


@pytest.mark.asyncio
async def test_failing_renewals_do_not_block_later_records(
    test_db, ledger, session_factory, gateway, clock
):
    scanner = ExpiryScanner(session_factory, gateway, clock, batch_size=1)
    plan = await seed_plan(test_db)
    broken = await ledger.subscribe(
        "user-1", plan.id, email="u1@example.com", authorization_code="AUTH_bad"
    )
    clock.advance(minutes=1)
    healthy = await ledger.subscribe(
        "user-2", plan.id, email="u2@example.com", authorization_code="AUTH_good"
    )
    broken_end = broken.end_date
    gateway.failing_authorizations.add("AUTH_bad")
    clock.advance(months=1, minutes=5)

    first = await scanner.run_once()
    second = await scanner.run_once()

    assert (first.renewed, first.failed) == (1, 1)
    assert (second.renewed, second.failed) == (0, 1)
    renewed = await ledger.get(healthy.id)
    assert renewed.end_date > clock.now
    assert [p.status for p in renewed.payments] == ["success"]
    stuck = await ledger.get(broken.id)
    assert stuck.status == SubscriptionStatus.ACTIVE
    assert stuck.end_date == broken_end
    assert stuck.payments == []
