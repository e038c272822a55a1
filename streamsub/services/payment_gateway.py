"""Contract the ledger expects from a payment provider."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from streamsub.schemas.webhook import CardAuthorization


class InitializeResult(BaseModel):
    reference: str
    access_code: Optional[str] = None
    authorization_url: str


class VerifyResult(BaseModel):
    status: str
    amount: Decimal
    currency: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    authorization: Optional[CardAuthorization] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class ChargeResult(BaseModel):
    reference: str
    status: str

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


@runtime_checkable
class PaymentGateway(Protocol):
    """Remote charge provider.

    Implementations raise :class:`~streamsub.core.exceptions.GatewayException`
    when the provider cannot be reached or answers with an error envelope.
    A reachable provider reporting a declined charge returns a result whose
    ``status`` is not ``"success"``.
    """

    async def initialize(
        self,
        email: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
    ) -> InitializeResult: ...

    async def verify(self, reference: str) -> VerifyResult: ...

    async def charge_authorization(
        self,
        authorization_code: str,
        email: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
    ) -> ChargeResult: ...

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool: ...
