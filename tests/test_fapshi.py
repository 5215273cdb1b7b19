"""Fapshi client against a mocked transport."""

import json

import httpx
import pytest

from marketbot.core.errors import PaymentProviderError
from marketbot.integrations.payments import FapshiClient


def client_for(handler) -> FapshiClient:
    return FapshiClient(
        api_user="user",
        api_key="key",
        base_url="https://sandbox.fapshi.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_initiate_pay():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"link": "https://checkout.fapshi.test/abc", "transId": "T1"})

    payment = await client_for(handler).create_checkout_payment(105000.0, "MP-11", user_id="u1")

    assert payment.link == "https://checkout.fapshi.test/abc"
    assert payment.trans_id == "T1"
    assert seen["path"] == "/initiate-pay"
    assert seen["headers"]["apiuser"] == "user"
    assert seen["headers"]["apikey"] == "key"
    assert seen["body"]["amount"] == 105000
    assert seen["body"]["externalId"] == "MP-11"
    assert seen["body"]["userId"] == "u1"


@pytest.mark.asyncio
async def test_direct_pay():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.url.path == "/direct-pay"
        assert body["phone"] == "670000000"
        return httpx.Response(200, json={"transId": "D9"})

    trans_id = await client_for(handler).direct_pay(1500, "670000000", "direct_u1_1", name="Jane")

    assert trans_id == "D9"


@pytest.mark.asyncio
async def test_http_error_becomes_provider_error():
    def handler(request):
        return httpx.Response(400, json={"message": "invalid amount"})

    with pytest.raises(PaymentProviderError):
        await client_for(handler).create_checkout_payment(5000, "checkout_u1_c1")


@pytest.mark.asyncio
async def test_network_error_becomes_provider_error():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    with pytest.raises(PaymentProviderError):
        await client_for(handler).direct_pay(5000, "670000000", "direct_u1_1")


@pytest.mark.asyncio
async def test_amount_below_minimum_is_rejected_locally():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(PaymentProviderError):
        await client_for(handler).create_checkout_payment(50, "checkout_u1_c1")
    assert calls == []


@pytest.mark.asyncio
async def test_missing_link_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"transId": "T1"})

    with pytest.raises(PaymentProviderError):
        await client_for(handler).create_checkout_payment(5000, "checkout_u1_c1")


def test_credentials_required(monkeypatch):
    from marketbot.config import settings

    monkeypatch.setattr(settings, "fapshi_api_user", None)
    monkeypatch.setattr(settings, "fapshi_api_key", None)

    with pytest.raises(ValueError):
        FapshiClient()
