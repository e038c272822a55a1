"""Endpoints for the subscription plan catalog."""
from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status

from streamsub.api.deps import get_plan_catalog
from streamsub.auth.jwt import require_admin
from streamsub.schemas.plan import PlanCreate, PlanRead, PlanUpdate
from streamsub.services.plan_catalog import PlanCatalog


router = APIRouter(prefix="/plans", tags=["plans"])


@router.get("", response_model=List[PlanRead])
async def list_plans(catalog: PlanCatalog = Depends(get_plan_catalog)):
    return await catalog.list_active()


@router.get("/admin/all", response_model=List[PlanRead])
async def list_all_plans(
    _admin=Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    return await catalog.list_all()


@router.post("/seed/default", response_model=List[PlanRead])
async def seed_default_plans(
    _admin=Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    return await catalog.seed_defaults()


@router.get("/{plan_id}", response_model=PlanRead)
async def get_plan(plan_id: UUID, catalog: PlanCatalog = Depends(get_plan_catalog)):
    return await catalog.get(plan_id)


@router.post("", response_model=PlanRead, status_code=status.HTTP_201_CREATED)
async def create_plan(
    body: PlanCreate,
    _admin=Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    return await catalog.create(body)


@router.patch("/{plan_id}", response_model=PlanRead)
async def update_plan(
    plan_id: UUID,
    body: PlanUpdate,
    _admin=Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    return await catalog.update(plan_id, body)


@router.delete("/{plan_id}", response_model=PlanRead)
async def deactivate_plan(
    plan_id: UUID,
    _admin=Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    return await catalog.deactivate(plan_id)


@router.patch("/{plan_id}/activate", response_model=PlanRead)
async def activate_plan(
    plan_id: UUID,
    _admin=Depends(require_admin),
    catalog: PlanCatalog = Depends(get_plan_catalog),
):
    return await catalog.reactivate(plan_id)
