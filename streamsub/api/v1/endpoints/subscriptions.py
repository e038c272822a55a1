"""Endpoints for managing user subscriptions and payments."""
from __future__ import annotations

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError

from streamsub.api.deps import (
    get_ledger,
    get_payment_gateway,
    require_active_subscription,
)
from streamsub.auth.jwt import require_auth
from streamsub.core.config import settings
from streamsub.db.models.subscription import UserSubscription
from streamsub.schemas.subscription import (
    AccessRead,
    AutoRenewRequest,
    ChangePlanRequest,
    ChangePlanResponse,
    InitializePaymentRequest,
    PaymentInitResponse,
    SubscribeRequest,
    SubscriptionRead,
)
from streamsub.schemas.webhook import WebhookEvent
from streamsub.services.ledger import SubscriptionLedger
from streamsub.services.limits import check_rate_limit, ensure_idempotent
from streamsub.services.payment_gateway import PaymentGateway


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("/subscribe", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
async def subscribe(
    body: SubscribeRequest,
    auth=Depends(require_auth),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    user_id = auth["user_id"]
    await check_rate_limit(user_id)
    return await ledger.subscribe(
        user_id,
        body.plan_id,
        billing_cycle=body.billing_cycle,
        payment_method=body.payment_method,
        auto_renew=body.auto_renew,
        email=auth["email"],
        authorization_code=body.authorization_code,
    )


@router.post("/initialize", response_model=PaymentInitResponse, status_code=status.HTTP_201_CREATED)
async def initialize_payment(
    body: InitializePaymentRequest,
    auth=Depends(require_auth),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    user_id = auth["user_id"]
    await check_rate_limit(user_id, scope="payments")
    await ensure_idempotent(user_id, idempotency_key)

    subscription, authorization_url, reference = await ledger.initialize_payment(
        user_id,
        auth["email"],
        body.plan_id,
        billing_cycle=body.billing_cycle,
        auto_renew=body.auto_renew,
    )
    return {
        "subscription": subscription,
        "authorization_url": authorization_url,
        "reference": reference,
    }


@router.get("/verify/{reference}", response_model=SubscriptionRead)
async def verify_payment(
    reference: str,
    auth=Depends(require_auth),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    await check_rate_limit(auth["user_id"], scope="payments")
    return await ledger.verify_payment(reference, auth["user_id"])


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    gateway: PaymentGateway = Depends(get_payment_gateway),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    """Gateway push notifications. Accepted events are always acknowledged."""

    body = await request.body()
    if settings.paystack.verify_webhook_signature and not gateway.verify_signature(
        body, request.headers.get("x-paystack-signature")
    ):
        logger.warning("Rejected webhook with an invalid signature")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature")

    try:
        event = WebhookEvent.model_validate_json(body)
    except ValidationError:
        logger.warning("Unparseable webhook payload acknowledged without processing")
        return {"status": "success"}

    await ledger.handle_webhook(event)
    return {"status": "success"}


@router.get("/me", response_model=SubscriptionRead)
async def my_subscription(
    auth=Depends(require_auth),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    return await ledger.current(auth["user_id"])


@router.get("/me/history", response_model=List[SubscriptionRead])
async def my_subscription_history(
    auth=Depends(require_auth),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    return await ledger.history(auth["user_id"])


@router.get("/me/access", response_model=AccessRead)
async def my_access(subscription: UserSubscription = Depends(require_active_subscription)):
    plan = subscription.plan
    return AccessRead(
        granted=True,
        subscription_id=subscription.id,
        plan_name=subscription.plan_name,
        quality=plan.quality if plan else None,
        resolution=plan.resolution if plan else None,
        screens=plan.screens if plan else None,
        devices=plan.devices if plan else None,
        end_date=subscription.end_date,
    )


@router.post("/change-plan", response_model=ChangePlanResponse)
async def change_plan(
    body: ChangePlanRequest,
    auth=Depends(require_auth),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    await check_rate_limit(auth["user_id"])
    previous, current = await ledger.change_plan(
        auth["user_id"], body.plan_id, billing_cycle=body.billing_cycle
    )
    return {"previous": previous, "current": current}


@router.post("/{subscription_id}/cancel", response_model=SubscriptionRead)
async def cancel_subscription(
    subscription_id: UUID,
    auth=Depends(require_auth),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    await check_rate_limit(auth["user_id"])
    return await ledger.cancel(auth["user_id"], subscription_id)


@router.patch("/{subscription_id}/auto-renew", response_model=SubscriptionRead)
async def toggle_auto_renew(
    subscription_id: UUID,
    body: AutoRenewRequest,
    auth=Depends(require_auth),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    await check_rate_limit(auth["user_id"])
    return await ledger.set_auto_renew(auth["user_id"], subscription_id, body.auto_renew)


@router.post("/{subscription_id}/renew", response_model=SubscriptionRead)
async def renew_subscription(
    subscription_id: UUID,
    auth=Depends(require_auth),
    ledger: SubscriptionLedger = Depends(get_ledger),
):
    await check_rate_limit(auth["user_id"])
    return await ledger.renew(auth["user_id"], subscription_id)
