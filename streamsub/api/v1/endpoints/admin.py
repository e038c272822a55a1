"""Privileged subscription maintenance endpoints."""
from __future__ import annotations

from dataclasses import asdict
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from streamsub.api.deps import get_expiry_scanner, get_ledger
from streamsub.auth.jwt import require_admin
from streamsub.schemas.subscription import SubscriptionRead
from streamsub.services.expiry_scanner import ExpiryScanner
from streamsub.services.ledger import SubscriptionLedger


router = APIRouter(prefix="/admin/subscriptions", tags=["admin"])


@router.get("", response_model=List[SubscriptionRead])
async def list_subscriptions(
    status: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    _admin=Depends(require_admin),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    return await ledger.list_instances(status=status, user_id=user_id, limit=limit, offset=offset)


@router.post("/scan")
async def run_expiry_scan(
    _admin=Depends(require_admin),
    scanner: ExpiryScanner = Depends(get_expiry_scanner),
):
    report = await scanner.run_once()
    return {"status": "ok", **asdict(report)}


@router.post("/{subscription_id}/expire", response_model=SubscriptionRead)
async def force_expire(
    subscription_id: UUID,
    _admin=Depends(require_admin),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    return await ledger.expire_one(subscription_id)
