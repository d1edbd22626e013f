import asyncio
import json
from datetime import datetime

import httpx
import pytest

from app.core.exceptions import PaymentGatewayError
from app.services import paystack
from app.services.paystack import PaystackClient


def run(coro):
    return asyncio.run(coro)


def _client(handler):
    return PaystackClient(secret_key="sk_test_secret", base_url="https://api.paystack.test",
                          timeout=5, transport=httpx.MockTransport(handler))


def test_initialize_sends_split_fields():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "status": True,
            "data": {"authorization_url": "https://checkout.paystack.com/abc", "access_code": "abc",
                     "reference": "apt_1_x"},
        })

    result = run(_client(handler).initialize(
        amount_minor=20000, currency="GHS", reference="apt_1_x", email="ama@example.com",
        subaccount="ACCT_1", transaction_charge=1000, bearer="subaccount",
    ))

    assert result.access_code == "abc"
    assert seen["auth"] == "Bearer sk_test_secret"
    assert seen["body"]["amount"] == 20000
    assert seen["body"]["subaccount"] == "ACCT_1"
    assert seen["body"]["transaction_charge"] == 1000
    assert seen["body"]["bearer"] == "subaccount"


def test_initialize_without_subaccount_omits_split_fields():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": True, "data": {"reference": "apt_2_y"}})

    run(_client(handler).initialize(amount_minor=500, currency="GHS", reference="apt_2_y", email="a@b.co",
                                    transaction_charge=25, bearer="subaccount"))
    assert "subaccount" not in seen["body"]
    assert "transaction_charge" not in seen["body"]


def test_verify_normalizes_status_and_paid_at():
    def handler(request):
        assert request.url.path == "/transaction/verify/apt_1_x"
        return httpx.Response(200, json={
            "status": True,
            "data": {"reference": "apt_1_x", "status": "success", "amount": 20000, "currency": "GHS",
                     "paid_at": "2025-01-09T10:00:00.000Z", "gateway_response": "Approved"},
        })

    result = run(_client(handler).verify("apt_1_x"))
    assert result.status == paystack.SUCCESS
    assert result.amount_minor == 20000
    assert result.paid_at == datetime(2025, 1, 9, 10, 0)
    assert result.raw["gateway_response"] == "Approved"


@pytest.mark.parametrize("gateway_status,expected", [
    ("success", paystack.SUCCESS),
    ("abandoned", paystack.FAILED),
    ("failed", paystack.FAILED),
    ("reversed", paystack.FAILED),
    ("ongoing", paystack.PENDING),
    (None, paystack.PENDING),
])
def test_normalize_status(gateway_status, expected):
    assert paystack.normalize_status(gateway_status) == expected


def test_error_responses_raise_gateway_error():
    def handler(request):
        return httpx.Response(400, json={"status": False, "message": "Invalid key"})

    with pytest.raises(PaymentGatewayError) as exc:
        run(_client(handler).verify("apt_1_x"))
    assert "Invalid key" in exc.value.message


def test_status_false_body_raises_even_on_200():
    def handler(request):
        return httpx.Response(200, json={"status": False, "message": "Transaction reference not found"})

    with pytest.raises(PaymentGatewayError):
        run(_client(handler).verify("apt_404"))


def test_timeout_raises_gateway_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(PaymentGatewayError) as exc:
        run(_client(handler).list_banks())
    assert "timed out" in exc.value.message


def test_create_subaccount_requires_code():
    def handler(request):
        return httpx.Response(200, json={"status": True, "data": {}})

    with pytest.raises(PaymentGatewayError):
        run(_client(handler).create_subaccount("Biz", "040", "0123456789", 5.0))


def test_resolve_account_passes_query():
    def handler(request):
        assert request.url.params["account_number"] == "0123456789"
        assert request.url.params["bank_code"] == "040"
        return httpx.Response(200, json={"status": True, "data": {"account_name": "KOFI MENSAH"}})

    assert run(_client(handler).resolve_account("0123456789", "040"))["account_name"] == "KOFI MENSAH"
