from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from streamsub.core.exceptions import ConflictException, NotFoundException, ValidationException
from streamsub.schemas.plan import PlanCreate, PlanUpdate
from streamsub.services.plan_catalog import PLAN_DEFAULTS, PlanCatalog, plan_defaults

from conftest import seed_plan


@pytest.mark.asyncio
async def test_create_fills_default_bundle_for_known_name(test_db):
    catalog = PlanCatalog(test_db)

    plan = await catalog.create(PlanCreate(name="Standard", amount=Decimal("14.99")))

    assert plan.features == PLAN_DEFAULTS["Standard"]["features"]
    assert plan.quality == "Better"
    assert plan.resolution == "1080p"
    assert plan.screens == 2
    assert plan.currency == "NGN"
    assert plan.billing_cycle == "monthly"
    assert plan.is_active is True


@pytest.mark.asyncio
async def test_create_keeps_explicit_values(test_db):
    catalog = PlanCatalog(test_db)

    plan = await catalog.create(
        PlanCreate(name="Basic", amount=Decimal("5"), features=["Ad supported"], screens=2)
    )

    assert plan.features == ["Ad supported"]
    assert plan.screens == 2
    assert plan.resolution == "720p"


def test_unknown_plan_name_has_no_defaults():
    assert plan_defaults("Family") is None
    assert plan_defaults("Basic")["screens"] == 1


@pytest.mark.asyncio
async def test_duplicate_active_name_is_rejected(test_db):
    catalog = PlanCatalog(test_db)
    await catalog.create(PlanCreate(name="Basic", amount=Decimal("9.99")))

    with pytest.raises(ConflictException):
        await catalog.create(PlanCreate(name="Basic", amount=Decimal("4.99")))


@pytest.mark.asyncio
async def test_deactivated_name_can_be_reused_but_not_reactivated(test_db):
    catalog = PlanCatalog(test_db)
    old = await catalog.create(PlanCreate(name="Premium", amount=Decimal("19.99")))
    await catalog.deactivate(old.id)

    replacement = await catalog.create(PlanCreate(name="Premium", amount=Decimal("24.99")))
    assert replacement.is_active

    with pytest.raises(ConflictException):
        await catalog.reactivate(old.id)

    await catalog.deactivate(replacement.id)
    revived = await catalog.reactivate(old.id)
    assert revived.is_active is True


@pytest.mark.asyncio
async def test_list_active_orders_by_price_and_hides_inactive(test_db):
    await seed_plan(test_db, name="Premium", amount="19.99")
    await seed_plan(test_db, name="Basic", amount="9.99")
    await seed_plan(test_db, name="Standard", amount="14.99", is_active=False)
    catalog = PlanCatalog(test_db)

    active = await catalog.list_active()
    everything = await catalog.list_all()

    assert [plan.name for plan in active] == ["Basic", "Premium"]
    assert [plan.name for plan in everything] == ["Basic", "Standard", "Premium"]


@pytest.mark.asyncio
async def test_update_changes_terms(test_db):
    plan = await seed_plan(test_db, name="Basic", amount="9.99")
    catalog = PlanCatalog(test_db)

    updated = await catalog.update(plan.id, PlanUpdate(amount=Decimal("11.49"), devices="Phone"))

    assert updated.amount == Decimal("11.49")
    assert updated.devices == "Phone"
    assert updated.name == "Basic"


@pytest.mark.asyncio
async def test_update_rejects_rename_onto_active_name(test_db):
    await seed_plan(test_db, name="Basic")
    standard = await seed_plan(test_db, name="Standard", amount="14.99")
    catalog = PlanCatalog(test_db)

    with pytest.raises(ConflictException):
        await catalog.update(standard.id, PlanUpdate(name="Basic"))


@pytest.mark.asyncio
async def test_missing_plan_is_not_found(test_db):
    with pytest.raises(NotFoundException):
        await PlanCatalog(test_db).get(uuid4())


@pytest.mark.asyncio
async def test_seed_skips_existing_names(test_db):
    await seed_plan(test_db, name="Basic", amount="9.99", is_active=False)
    catalog = PlanCatalog(test_db)

    created = await catalog.seed_defaults()
    again = await catalog.seed_defaults()

    assert sorted(plan.name for plan in created) == ["Premium", "Standard"]
    assert again == []
    premium = next(plan for plan in created if plan.name == "Premium")
    assert premium.currency == "USD"
    assert premium.resolution == "4K+HDR"


@pytest.mark.parametrize("field", ["name", "amount", "currency", "billing_cycle", "features"])
def test_update_schema_rejects_null_for_required_terms(field):
    with pytest.raises(ValidationError):
        PlanUpdate.model_validate({field: None})
    assert PlanUpdate.model_validate({"quality": None}).model_dump(exclude_unset=True) == {
        "quality": None
    }


@pytest.mark.asyncio
async def test_update_refuses_to_clear_required_terms(test_db):
    plan = await seed_plan(test_db, name="Basic", amount="9.99")
    catalog = PlanCatalog(test_db)

    with pytest.raises(ValidationException):
        await catalog.update(plan.id, PlanUpdate.model_construct(amount=None))

    assert (await catalog.get(plan.id)).amount == Decimal("9.99")
