"""Repository utilities for subscription plans."""
from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from streamsub.db.models.plan import Plan


class PlanRepo:
    """Data-access helpers for :class:`Plan`."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, plan_id: UUID) -> Plan | None:
        result = await self.session.execute(select(Plan).where(Plan.id == plan_id))
        return result.scalar_one_or_none()

    async def get_active_by_name(self, name: str) -> Plan | None:
        result = await self.session.execute(
            select(Plan).where(Plan.name == name, Plan.is_active.is_(True))
        )
        return result.scalars().first()

    async def exists_with_name(self, name: str) -> bool:
        result = await self.session.execute(select(Plan.id).where(Plan.name == name).limit(1))
        return result.scalar_one_or_none() is not None

    async def list_active(self) -> list[Plan]:
        result = await self.session.execute(
            select(Plan).where(Plan.is_active.is_(True)).order_by(Plan.amount.asc())
        )
        return list(result.scalars().all())

    async def list_all(self) -> list[Plan]:
        result = await self.session.execute(select(Plan).order_by(Plan.amount.asc()))
        return list(result.scalars().all())

    async def add(self, plan: Plan) -> Plan:
        self.session.add(plan)
        await self.session.flush()
        return plan
