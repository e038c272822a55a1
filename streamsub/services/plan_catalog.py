"""Subscription plan catalog."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from streamsub.core.exceptions import ConflictException, NotFoundException, ValidationException
from streamsub.db.models.plan import Plan
from streamsub.repositories.plan_repo import PlanRepo
from streamsub.schemas.plan import PlanCreate, PlanUpdate


logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "amount", "currency", "billing_cycle", "features")
ACTIVE_NAME_INDEX = "uq_plans_active_name"
DUPLICATE_NAME = "A subscription plan with this name already exists"

PLAN_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "Basic": {
        "features": ["Watch on 1 screen", "Good video quality", "720p resolution"],
        "quality": "Good",
        "resolution": "720p",
        "screens": 1,
        "devices": "Phone + Tablet",
    },
    "Standard": {
        "features": [
            "Watch on 2 screens",
            "Better video quality",
            "1080p resolution",
            "Download on 2 devices",
        ],
        "quality": "Better",
        "resolution": "1080p",
        "screens": 2,
        "devices": "Phone + Tablet + TV",
    },
    "Premium": {
        "features": [
            "Watch on 4 screens",
            "Best video quality",
            "4K+HDR resolution",
            "Download on 4 devices",
            "Dolby Atmos",
        ],
        "quality": "Best",
        "resolution": "4K+HDR",
        "screens": 4,
        "devices": "All Devices",
    },
}

STARTER_PLANS: List[Dict[str, Any]] = [
    {"name": "Basic", "amount": Decimal("500"), "currency": "NGN", "billing_cycle": "monthly"},
    {"name": "Standard", "amount": Decimal("600"), "currency": "NGN", "billing_cycle": "monthly"},
    {"name": "Premium", "amount": Decimal("700"), "currency": "USD", "billing_cycle": "monthly"},
]


def plan_defaults(name: str) -> Optional[Dict[str, Any]]:
    """Return the default feature bundle for a plan name, or None if unknown."""

    defaults = PLAN_DEFAULTS.get(name)
    if defaults is None:
        return None
    return {**defaults, "features": list(defaults["features"])}


def _apply_defaults(name: str, values: Dict[str, Any]) -> Dict[str, Any]:
    defaults = plan_defaults(name) or {}
    resolved = dict(values)
    for field in ("features", "quality", "resolution", "screens", "devices"):
        if not resolved.get(field) and field in defaults:
            resolved[field] = defaults[field]
    if resolved.get("features") is None:
        resolved["features"] = []
    return resolved


def _is_duplicate_name(exc: IntegrityError) -> bool:
    # PostgreSQL names the index; SQLite names the column.
    detail = str(exc.orig)
    return ACTIVE_NAME_INDEX in detail or "UNIQUE constraint failed: plans.name" in detail


class PlanCatalog:
    """Create, edit and soft-delete catalog plans."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.plans = PlanRepo(session)

    async def list_active(self) -> list[Plan]:
        return await self.plans.list_active()

    async def list_all(self) -> list[Plan]:
        return await self.plans.list_all()

    async def get(self, plan_id: UUID) -> Plan:
        plan = await self.plans.get(plan_id)
        if plan is None:
            raise NotFoundException("No subscription plan found with that ID")
        return plan

    async def create(self, data: PlanCreate) -> Plan:
        if await self.plans.get_active_by_name(data.name) is not None:
            raise ConflictException(DUPLICATE_NAME)

        plan = Plan(**_apply_defaults(data.name, data.model_dump()), is_active=True)
        await self._save(plan)
        logger.info(f"Created plan {plan.id} ({plan.name})")
        return plan

    async def update(self, plan_id: UUID, data: PlanUpdate) -> Plan:
        plan = await self.get(plan_id)
        changes = data.model_dump(exclude_unset=True)
        cleared = [field for field in REQUIRED_FIELDS if field in changes and changes[field] is None]
        if cleared:
            raise ValidationException(f"Plan fields cannot be cleared: {', '.join(cleared)}")
        new_name = changes.get("name")
        if new_name and new_name != plan.name and plan.is_active:
            holder = await self.plans.get_active_by_name(new_name)
            if holder is not None and holder.id != plan.id:
                raise ConflictException(DUPLICATE_NAME)

        for field, value in changes.items():
            setattr(plan, field, value)
        await self._save(plan)
        logger.info(f"Updated plan {plan.id}: {sorted(changes)}")
        return plan

    async def deactivate(self, plan_id: UUID) -> Plan:
        plan = await self.get(plan_id)
        plan.is_active = False
        await self._save(plan)
        logger.info(f"Deactivated plan {plan.id} ({plan.name})")
        return plan

    async def reactivate(self, plan_id: UUID) -> Plan:
        plan = await self.get(plan_id)
        if plan.is_active:
            return plan
        holder = await self.plans.get_active_by_name(plan.name)
        if holder is not None:
            raise ConflictException(f"Another active plan is already named {plan.name}")
        plan.is_active = True
        await self._save(plan)
        logger.info(f"Reactivated plan {plan.id} ({plan.name})")
        return plan

    async def seed_defaults(self) -> list[Plan]:
        """Create the starter plans whose names are not in the catalog yet."""

        created: list[Plan] = []
        for starter in STARTER_PLANS:
            if await self.plans.exists_with_name(starter["name"]):
                continue
            plan = Plan(**_apply_defaults(starter["name"], starter), is_active=True)
            await self.plans.add(plan)
            created.append(plan)
        await self.session.commit()
        logger.info(f"{len(created)} default plans created")
        return created

    async def _save(self, plan: Plan) -> None:
        try:
            await self.plans.add(plan)
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            if _is_duplicate_name(exc):
                raise ConflictException(DUPLICATE_NAME) from exc
            raise ValidationException("Plan violates a database constraint") from exc
