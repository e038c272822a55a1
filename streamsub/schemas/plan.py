"""Pydantic schemas for subscription plans"""
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

PlanName = Literal["Basic", "Standard", "Premium"]
Currency = Literal["USD", "EUR", "GBP", "NGN"]
BillingCycle = Literal["monthly", "yearly"]
Quality = Literal["Good", "Better", "Best"]
Resolution = Literal["720p", "1080p", "4K+HDR"]


class PlanCreate(BaseModel):
    """Schema for creating a plan. Omitted terms fall back to the name's defaults."""

    name: PlanName = Field(..., description="Plan display name")
    amount: Decimal = Field(..., ge=0, description="Price per billing cycle")
    currency: Currency = Field(default="NGN", description="ISO currency code")
    billing_cycle: BillingCycle = Field(default="monthly")
    features: Optional[List[str]] = None
    quality: Optional[Quality] = None
    resolution: Optional[Resolution] = None
    screens: Optional[int] = Field(default=None, ge=1, le=4)
    devices: Optional[str] = None


class PlanUpdate(BaseModel):
    """Partial update of a plan's terms."""

    name: Optional[PlanName] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)
    currency: Optional[Currency] = None
    billing_cycle: Optional[BillingCycle] = None
    features: Optional[List[str]] = None
    quality: Optional[Quality] = None
    resolution: Optional[Resolution] = None
    screens: Optional[int] = Field(default=None, ge=1, le=4)
    devices: Optional[str] = None

    @field_validator("name", "amount", "currency", "billing_cycle", "features")
    @classmethod
    def reject_null(cls, value):
        # Omit a field to leave it unchanged; these columns cannot be cleared.
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class PlanRead(BaseModel):
    """Schema returned when reading a plan."""

    id: UUID
    name: str
    amount: Decimal
    currency: str
    billing_cycle: str
    features: List[str] = Field(default_factory=list)
    quality: Optional[str] = None
    resolution: Optional[str] = None
    screens: Optional[int] = None
    devices: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
