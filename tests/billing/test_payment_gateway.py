"""Tests for the HTTP payment gateway."""

import json

import httpx
import pytest
from pydantic import ValidationError

from codesolve.platform.billing.payments import (
    HttpPaymentGateway,
    PaymentGateway,
    PaymentMethod,
    PaymentMethodType,
)

pytestmark = pytest.mark.unit


def gateway_for(handler) -> HttpPaymentGateway:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://billing.test/api"
    )
    return HttpPaymentGateway("http://billing.test/api", http_client=client)


class TestPaymentMethod:
    def test_card_requires_token(self):
        with pytest.raises(ValidationError, match="card token"):
            PaymentMethod(type=PaymentMethodType.CREDIT_CARD)

    def test_pix_without_token(self):
        method = PaymentMethod(type=PaymentMethodType.PIX, payer_document=" 123.456.789-00 ")

        assert method.payer_document == "123.456.789-00"

    def test_card_last4_length(self):
        with pytest.raises(ValidationError):
            PaymentMethod(type=PaymentMethodType.CREDIT_CARD, token="tok", card_last4="42")


class TestHttpPaymentGateway:
    async def test_successful_charge(self, card):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True, "payment_reference": "ch_123"})

        gateway = gateway_for(handler)

        result = await gateway.charge("tenant-1", 7000, card, idempotency_key="wf-1:1")

        assert result.success
        assert result.payment_reference == "ch_123"
        [request] = seen
        assert request.url.path == "/api/billing/process-upgrade"
        assert request.headers["Idempotency-Key"] == "wf-1:1"
        body = json.loads(request.content)
        assert body["amount"] == 7000
        assert body["currency"] == "BRL"
        assert body["payment_method"]["token"] == "tok_visa"
        assert "payer_document" not in body["payment_method"]

    async def test_declined_charge(self, card):
        gateway = gateway_for(
            lambda request: httpx.Response(402, json={"success": False, "error": "Card declined"})
        )

        result = await gateway.charge("tenant-1", 7000, card)

        assert not result.success
        assert result.error == "Card declined"

    async def test_unsuccessful_body_with_ok_status(self, card):
        gateway = gateway_for(lambda request: httpx.Response(200, json={"success": False}))

        result = await gateway.charge("tenant-1", 100, card)

        assert not result.success
        assert result.error == "HTTP 200"

    async def test_non_json_error(self, card):
        gateway = gateway_for(lambda request: httpx.Response(502, text="Bad Gateway"))

        result = await gateway.charge("tenant-1", 100, card)

        assert result.error == "HTTP 502"

    async def test_no_idempotency_header_without_key(self, card):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True})

        await gateway_for(handler).charge("tenant-1", 100, card)

        assert "Idempotency-Key" not in seen[0].headers

    @pytest.mark.parametrize(
        ("exc", "message"),
        [
            (httpx.ConnectTimeout("slow"), "Payment gateway timed out"),
            (httpx.ConnectError("refused"), "Payment gateway unavailable"),
        ],
    )
    async def test_transport_errors_become_failed_results(self, card, exc, message):
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc

        result = await gateway_for(handler).charge("tenant-1", 100, card)

        assert not result.success
        assert result.error == message

    async def test_close(self):
        gateway = HttpPaymentGateway("http://billing.test/api/")
        client = await gateway._get_client()

        assert gateway.base_url == "http://billing.test/api"
        assert isinstance(gateway, PaymentGateway)

        await gateway.close()
        assert client.is_closed
        assert gateway._client is None
