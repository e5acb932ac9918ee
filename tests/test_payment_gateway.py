"""Tests for the Razorpay client and signature helpers."""

import hashlib
import hmac
import json

import httpx
import pytest

from learngate.errors import GatewayUnavailable
from learngate.services.payment_gateway import (
    RazorpayGateway,
    compute_signature,
    make_receipt,
    signature_matches,
    webhook_signature_matches,
)


def _gateway(handler, key_id="rzp_test_key", key_secret="rzp_test_secret"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RazorpayGateway(
        key_id=key_id,
        key_secret=key_secret,
        api_base="https://api.razorpay.test/v1",
        timeout=5,
        client=client,
    )


class TestSignatures:
    def test_signature_round_trip(self):
        signature = compute_signature("order_1", "pay_1", "secret")
        assert len(signature) == 64
        assert signature_matches("order_1", "pay_1", signature, "secret")

    def test_tampered_signature_rejected(self):
        signature = compute_signature("order_1", "pay_1", "secret")
        tampered = ("0" if signature[0] != "0" else "1") + signature[1:]
        assert not signature_matches("order_1", "pay_1", tampered, "secret")
        assert not signature_matches("order_1", "pay_2", signature, "secret")
        assert not signature_matches("order_1", "pay_1", "", "secret")

    def test_webhook_signature(self):
        body = b'{"event":"payment.captured"}'
        expected = hmac.new(b"whsec", body, hashlib.sha256).hexdigest()
        assert webhook_signature_matches(body, expected, "whsec")
        assert not webhook_signature_matches(body + b" ", expected, "whsec")
        assert not webhook_signature_matches(body, expected, "other")


class TestReceipt:
    def test_capped_at_forty_characters(self):
        receipt = make_receipt(10**30, 1767268800000)
        assert len(receipt) <= 40
        assert receipt.startswith("sub_")

    def test_distinct_inputs_give_distinct_receipts(self):
        assert make_receipt(1, 1000) != make_receipt(1, 1001)
        assert make_receipt(1, 1000) != make_receipt(2, 1000)
        assert make_receipt(1, 1000) == make_receipt(1, 1000)


class TestRazorpayGateway:
    @pytest.mark.asyncio
    async def test_create_order_sends_minor_units(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"id": "order_ABC", "amount": 29900, "currency": "INR", "receipt": "sub_1_x"}
            )

        order = await _gateway(handler).create_order(299, "INR", "sub_1_x")

        assert order.order_id == "order_ABC"
        assert seen["path"] == "/v1/orders"
        assert seen["body"] == {"amount": 29900, "currency": "INR", "receipt": "sub_1_x"}
        assert seen["auth"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_server_error_is_gateway_unavailable(self):
        def handler(request):
            return httpx.Response(502, text="bad gateway")

        with pytest.raises(GatewayUnavailable) as exc:
            await _gateway(handler).create_order(299, "INR", "r")
        assert exc.value.details["gateway_status"] == 502

    @pytest.mark.asyncio
    async def test_client_error_is_gateway_unavailable(self):
        def handler(request):
            return httpx.Response(400, json={"error": {"description": "amount too low"}})

        with pytest.raises(GatewayUnavailable):
            await _gateway(handler).create_order(299, "INR", "r")

    @pytest.mark.asyncio
    async def test_transport_error_is_gateway_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        with pytest.raises(GatewayUnavailable):
            await _gateway(handler).fetch_payment_details("pay_1")

    @pytest.mark.asyncio
    async def test_non_json_body_is_gateway_unavailable(self):
        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(GatewayUnavailable):
            await _gateway(handler).fetch_payment_details("pay_1")

    @pytest.mark.asyncio
    async def test_unconfigured_gateway(self):
        def handler(request):
            raise AssertionError("no request expected")

        gateway = _gateway(handler, key_id="", key_secret="")
        with pytest.raises(GatewayUnavailable) as exc:
            await gateway.create_order(299, "INR", "r")
        assert exc.value.code == "gateway_not_configured"

    @pytest.mark.asyncio
    async def test_fetch_payment_details(self):
        def handler(request):
            assert request.url.path == "/v1/payments/pay_1"
            return httpx.Response(
                200, json={"id": "pay_1", "status": "captured", "method": "card", "bank": None, "vpa": None}
            )

        details = await _gateway(handler).fetch_payment_details("pay_1")
        assert details.payment_id == "pay_1"
        assert details.method == "card"
        assert details.status == "captured"
