"""Paystack implementation of the payment gateway contract."""
from __future__ import annotations

import hashlib
import hmac
import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from streamsub.core.config import PaystackSettings
from streamsub.core.exceptions import GatewayException
from streamsub.services.payment_gateway import ChargeResult, InitializeResult, VerifyResult


logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Paystack amounts are integers in kobo/cents."""

    return int((Decimal(amount) * 100).to_integral_value())


def from_minor_units(amount: Any) -> Decimal:
    return (Decimal(str(amount or 0)) / 100).quantize(Decimal("0.01"))


class PaystackGateway:
    """Thin async client for the Paystack transaction API."""

    def __init__(
        self,
        config: PaystackSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.config.secret_key}",
                "Content-Type": "application/json",
            },
        )

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"HTTP error calling Paystack {path}: {e.response.status_code} - {e.response.text}"
            )
            raise GatewayException(f"Paystack API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Error reaching Paystack {path}: {e!r}")
            raise GatewayException("Payment gateway unavailable") from e

        try:
            body = response.json()
        except ValueError as e:
            raise GatewayException("Malformed response from payment gateway") from e

        if not isinstance(body, dict) or not body.get("status"):
            message = body.get("message") if isinstance(body, dict) else None
            raise GatewayException(message or "Payment gateway rejected the request")
        data = body.get("data")
        if not isinstance(data, dict):
            raise GatewayException("Malformed response from payment gateway")
        return data

    async def initialize(
        self,
        email: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
    ) -> InitializeResult:
        payload = {
            "email": email,
            "amount": to_minor_units(amount),
            "currency": currency,
            "metadata": metadata,
        }
        if self.config.callback_url:
            payload["callback_url"] = self.config.callback_url

        data = await self._request("POST", "/transaction/initialize", payload)
        try:
            result = InitializeResult.model_validate(data)
        except ValidationError as e:
            raise GatewayException("Malformed response from payment gateway") from e
        logger.info(f"Initialized Paystack transaction {result.reference}")
        return result

    async def verify(self, reference: str) -> VerifyResult:
        data = await self._request("GET", f"/transaction/verify/{reference}")
        metadata = data.get("metadata")
        try:
            return VerifyResult(
                status=data["status"],
                amount=from_minor_units(data.get("amount")),
                currency=data.get("currency"),
                metadata=metadata if isinstance(metadata, dict) else {},
                authorization=data.get("authorization") or None,
            )
        except (KeyError, ValidationError) as e:
            raise GatewayException("Malformed response from payment gateway") from e

    async def charge_authorization(
        self,
        authorization_code: str,
        email: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
    ) -> ChargeResult:
        data = await self._request(
            "POST",
            "/transaction/charge_authorization",
            {
                "authorization_code": authorization_code,
                "email": email,
                "amount": to_minor_units(amount),
                "currency": currency,
                "metadata": metadata,
            },
        )
        try:
            return ChargeResult.model_validate(data)
        except ValidationError as e:
            raise GatewayException("Malformed response from payment gateway") from e

    def verify_signature(self, body: bytes, signature: Optional[str]) -> bool:
        """Check the ``x-paystack-signature`` HMAC-SHA512 of the raw body."""

        if not signature or not self.config.secret_key:
            return False
        computed = hmac.new(
            key=self.config.secret_key.encode("utf-8"),
            msg=body,
            digestmod=hashlib.sha512,
        ).hexdigest()
        return hmac.compare_digest(computed, signature)
