"""Pydantic schemas for user subscriptions"""
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from streamsub.schemas.plan import BillingCycle, PlanRead

PaymentMethod = Literal["paystack", "credit_card", "bank_transfer"]


class SubscribeRequest(BaseModel):
    """Direct activation of a plan."""

    plan_id: UUID
    billing_cycle: Optional[BillingCycle] = Field(
        default=None, description="Defaults to the plan's own billing cycle"
    )
    payment_method: PaymentMethod = "paystack"
    auto_renew: bool = True
    authorization_code: Optional[str] = Field(
        default=None, description="Previously issued gateway authorization for renewals"
    )


class InitializePaymentRequest(BaseModel):
    """Start a gateway checkout for a plan."""

    plan_id: UUID
    billing_cycle: Optional[BillingCycle] = None
    auto_renew: bool = True


class ChangePlanRequest(BaseModel):
    plan_id: UUID
    billing_cycle: Optional[BillingCycle] = None


class AutoRenewRequest(BaseModel):
    auto_renew: bool


class PaymentRecordRead(BaseModel):
    amount: Decimal
    reference: str
    status: str
    paid_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SubscriptionRead(BaseModel):
    """Schema returned when reading a subscription instance."""

    id: UUID
    user_id: str
    plan_id: UUID
    plan_name: str
    amount: Decimal
    currency: str
    billing_cycle: str
    status: str
    start_date: datetime
    end_date: datetime
    cancelled_at: Optional[datetime] = None
    auto_renew: bool
    payment_method: str
    payment_reference: Optional[str] = None
    card_type: Optional[str] = None
    last4: Optional[str] = None
    bank: Optional[str] = None
    payments: List[PaymentRecordRead] = Field(default_factory=list)
    plan: Optional[PlanRead] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentInitResponse(BaseModel):
    subscription: SubscriptionRead
    authorization_url: str
    reference: str


class ChangePlanResponse(BaseModel):
    previous: SubscriptionRead
    current: SubscriptionRead


class AccessRead(BaseModel):
    """Entitlement handed to content-serving code."""

    granted: bool
    subscription_id: UUID
    plan_name: str
    quality: Optional[str] = None
    resolution: Optional[str] = None
    screens: Optional[int] = None
    devices: Optional[str] = None
    end_date: datetime
