import base64
import json
from decimal import Decimal

import httpx
import pytest

from tikiti.errors import ProviderError, ReconciliationAmbiguity
from tikiti.orders.models import Order, PaymentMethod
from tikiti.payments.base import FlowShape, Outcome
from tikiti.payments.mpesa import MpesaAdapter, account_reference


def _order(**overrides):
    values = dict(
        id="0f8c2d4e-1111-2222-3333-444455556666", user_id="u1", currency="KES",
        payment_method=PaymentMethod.MPESA, subtotal=Decimal("2000"), platform_fee=Decimal("100"),
        grand_total=Decimal("2100"), phone_number="254712345678", provider="mpesa",
        provider_reference="ws_CO_123",
    )
    values.update(overrides)
    return Order(**values)


def _adapter(handler):
    return MpesaAdapter(
        httpx.Client(transport=httpx.MockTransport(handler)),
        base_url="https://sandbox.safaricom.co.ke",
        consumer_key="key", consumer_secret="secret", shortcode="174379", passkey="pk",
        callback_url="https://tikiti.test/api/v1/payments/webhooks/mpesa?token=cb",
        callback_token="cb",
    )


def test_initiate_sends_stk_push_and_returns_checkout_request_id():
    seen = {}

    def handler(request: httpx.Request):
        if request.url.path == "/oauth/v1/generate":
            assert request.headers["Authorization"].startswith("Basic ")
            return httpx.Response(200, json={"access_token": "tok", "expires_in": "3599"})
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "MerchantRequestID": "29115", "CheckoutRequestID": "ws_CO_191220191020363925",
            "ResponseCode": "0", "ResponseDescription": "Success", "CustomerMessage": "Success. Request accepted",
        })

    handle = _adapter(handler).initiate(_order())

    assert handle.reference == "ws_CO_191220191020363925"
    assert handle.flow is FlowShape.PUSH
    assert seen["auth"] == "Bearer tok"
    body = seen["body"]
    assert body["Amount"] == 2100
    assert body["PhoneNumber"] == "254712345678"
    assert body["AccountReference"] == account_reference(_order().id) == "TIKITI-0F8C2D4E"
    decoded = base64.b64decode(body["Password"]).decode()
    assert decoded == f"174379pk{body['Timestamp']}"


def test_initiate_rejected_request_is_provider_error():
    def handler(request):
        if request.url.path == "/oauth/v1/generate":
            return httpx.Response(200, json={"access_token": "tok"})
        return httpx.Response(200, json={"ResponseCode": "1", "ResponseDescription": "Invalid PhoneNumber"})

    with pytest.raises(ProviderError):
        _adapter(handler).initiate(_order())


def test_initiate_http_error_is_provider_error():
    def handler(request):
        return httpx.Response(500, text="upstream down")

    with pytest.raises(ProviderError):
        _adapter(handler).initiate(_order())


def _callback(result_code=0, items=None):
    stk = {"MerchantRequestID": "29115", "CheckoutRequestID": "ws_CO_123", "ResultCode": result_code,
           "ResultDesc": "The service request is processed successfully." if result_code == 0 else "Request cancelled by user"}
    if items is not None:
        stk["CallbackMetadata"] = {"Item": items}
    return json.dumps({"Body": {"stkCallback": stk}}).encode()


def test_parse_success_callback():
    items = [{"Name": "Amount", "Value": 2100}, {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
             {"Name": "PhoneNumber", "Value": 254712345678}]
    signal = _adapter(lambda r: None).parse_webhook(_callback(0, items), {}, {"token": "cb"})
    assert signal.outcome is Outcome.SUCCESS
    assert signal.provider_reference == "ws_CO_123"
    assert signal.confirmation_id == "NLJ7RT61SV"
    assert signal.amount == Decimal("2100")


def test_parse_failure_callback():
    signal = _adapter(lambda r: None).parse_webhook(_callback(1032), {}, {"token": "cb"})
    assert signal.outcome is Outcome.FAILURE
    assert signal.reason == "Request cancelled by user"


@pytest.mark.parametrize("body,query", [
    (_callback(0, []), {"token": "wrong"}),
    (_callback(0, []), {}),
    (b"not json", {"token": "cb"}),
    (json.dumps({"Body": {}}).encode(), {"token": "cb"}),
])
def test_unverifiable_callback_is_ambiguous(body, query):
    with pytest.raises(ReconciliationAmbiguity):
        _adapter(lambda r: None).parse_webhook(body, {}, query)


def test_fetch_status_maps_result_code():
    codes = iter(["0", "1032"])

    def handler(request):
        if request.url.path == "/oauth/v1/generate":
            return httpx.Response(200, json={"access_token": "tok"})
        assert json.loads(request.content)["CheckoutRequestID"] == "ws_CO_123"
        return httpx.Response(200, json={"ResultCode": next(codes), "ResultDesc": "desc"})

    adapter = _adapter(handler)
    assert adapter.fetch_status(_order()).outcome is Outcome.SUCCESS
    assert adapter.fetch_status(_order()).outcome is Outcome.FAILURE


@pytest.mark.parametrize("result_code,desc", [
    ("4999", "The transaction is still under processing"),
    ("500.001.1001", "The transaction is being processed"),
    ("9999", "Request cancelled by system"),
])
def test_fetch_status_non_final_code_leaves_order_pending(result_code, desc):
    def handler(request):
        if request.url.path == "/oauth/v1/generate":
            return httpx.Response(200, json={"access_token": "tok"})
        return httpx.Response(200, json={"ResultCode": result_code, "ResultDesc": desc})

    assert _adapter(handler).fetch_status(_order()) is None
