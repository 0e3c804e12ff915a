"""
Payment gateway contract and HTTP implementation.

Gateways receive integer minor units. A declined or failed charge is a
``ChargeResult`` with ``success=False``; gateways never raise for declines.
"""

from enum import Enum
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

logger = structlog.get_logger(__name__)


class PaymentMethodType(str, Enum):
    CREDIT_CARD = "credit_card"
    PIX = "pix"
    BOLETO = "boleto"


class PaymentMethod(BaseModel):
    """Payment method descriptor collected in the payment step."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    type: PaymentMethodType
    token: str | None = Field(None, description="Gateway token for a tokenized card")
    card_holder_name: str | None = None
    card_last4: str | None = Field(None, min_length=4, max_length=4)
    card_exp_month: int | None = Field(None, ge=1, le=12)
    card_exp_year: int | None = Field(None, ge=2000)
    payer_document: str | None = Field(None, description="CPF/CNPJ for PIX and boleto")

    @model_validator(mode="after")
    def validate_card(self) -> "PaymentMethod":
        """Cards must be tokenized before reaching the engine."""
        if self.type == PaymentMethodType.CREDIT_CARD and not self.token:
            raise ValueError("credit_card payments require a card token")
        return self


class ChargeResult(BaseModel):
    """Outcome of a gateway charge."""

    model_config = ConfigDict(frozen=True)

    success: bool
    payment_reference: str | None = None
    error: str | None = None


@runtime_checkable
class PaymentGateway(Protocol):
    """Charges a tenant. ``amount`` is in minor currency units and never negative."""

    async def charge(
        self,
        tenant_id: str,
        amount: int,
        payment_method: PaymentMethod,
        *,
        currency: str = "BRL",
        idempotency_key: str | None = None,
    ) -> ChargeResult: ...


class HttpPaymentGateway:
    """Posts charges to the billing backend."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=httpx.Timeout(self.timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def charge(
        self,
        tenant_id: str,
        amount: int,
        payment_method: PaymentMethod,
        *,
        currency: str = "BRL",
        idempotency_key: str | None = None,
    ) -> ChargeResult:
        client = await self._get_client()
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        body: dict[str, Any] = {
            "tenant_id": tenant_id,
            "amount": amount,
            "currency": currency,
            "payment_method": payment_method.model_dump(mode="json", exclude_none=True),
        }

        try:
            response = await client.post("/billing/process-upgrade", json=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.error("Payment gateway timeout", tenant_id=tenant_id, error=str(e))
            return ChargeResult(success=False, error="Payment gateway timed out")
        except httpx.RequestError as e:
            logger.error("Payment gateway unreachable", tenant_id=tenant_id, error=str(e))
            return ChargeResult(success=False, error="Payment gateway unavailable")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400 or not data.get("success", False):
            error = data.get("error") or data.get("detail") or f"HTTP {response.status_code}"
            logger.warning(
                "Payment declined",
                tenant_id=tenant_id,
                amount=amount,
                status_code=response.status_code,
                error=error,
            )
            return ChargeResult(success=False, error=str(error))

        return ChargeResult(success=True, payment_reference=data.get("payment_reference"))
