"""Inbound payment gateway webhook payloads"""
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CardAuthorization(BaseModel):
    """Reusable card authorization issued by the gateway."""

    authorization_code: Optional[str] = None
    card_type: Optional[str] = None
    last4: Optional[str] = None
    exp_month: Optional[str] = None
    exp_year: Optional[str] = None
    bank: Optional[str] = None
    account_name: Optional[str] = None

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class WebhookData(BaseModel):
    reference: Optional[str] = None
    amount: Optional[int] = Field(default=None, description="Amount in minor units")
    currency: Optional[str] = None
    metadata: Any = None
    authorization: Optional[CardAuthorization] = None

    model_config = ConfigDict(extra="ignore")


class WebhookEvent(BaseModel):
    event: str
    data: WebhookData = Field(default_factory=WebhookData)

    model_config = ConfigDict(extra="ignore")
