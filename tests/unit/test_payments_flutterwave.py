import json
from decimal import Decimal

import httpx
import pytest

from tikiti.errors import ProviderError, ReconciliationAmbiguity
from tikiti.orders.models import Order, PaymentMethod
from tikiti.payments.base import Outcome
from tikiti.payments.flutterwave import FlutterwaveAdapter, order_id_from_tx_ref, tx_ref_for


def _order(currency="KES", method=PaymentMethod.CARD, total="2100"):
    return Order(
        id="order-1", user_id="u1", currency=currency, payment_method=method,
        subtotal=Decimal(total), platform_fee=Decimal(0), grand_total=Decimal(total),
        phone_number="256712345678" if method is PaymentMethod.AIRTEL else None,
        provider="flutterwave", provider_reference=tx_ref_for("order-1"),
    )


def _adapter(handler, method="card"):
    return FlutterwaveAdapter(
        method, httpx.Client(transport=httpx.MockTransport(handler)),
        base_url="https://api.flutterwave.com/v3", secret_key="FLWSECK_TEST", webhook_hash="hash",
    )


def test_tx_ref_round_trip():
    assert order_id_from_tx_ref(tx_ref_for("abc")) == "abc"
    assert order_id_from_tx_ref("OTHER-abc") is None


def test_card_initiate_returns_hosted_link():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        assert request.headers["Authorization"] == "Bearer FLWSECK_TEST"
        return httpx.Response(200, json={"status": "success", "data": {"link": "https://checkout.flutterwave.com/pay/x"}})

    handle = _adapter(handler).initiate(_order(), customer_email="buyer@example.com")
    assert handle.redirect_url == "https://checkout.flutterwave.com/pay/x"
    assert handle.reference == "TIKITI-order-1"
    assert seen["path"] == "/v3/payments"
    assert seen["body"]["amount"] == 2100
    assert seen["body"]["customer"]["email"] == "buyer@example.com"


def test_airtel_initiate_uses_mobile_money_charge():
    seen = {}

    def handler(request):
        seen["type"] = request.url.params.get("type")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": "success", "data": {"id": 1}})

    handle = _adapter(handler, "airtel").initiate(_order("UGX", PaymentMethod.AIRTEL, "5000"))
    assert seen["type"] == "mobile_money_uganda"
    assert seen["body"]["network"] == "AIRTEL"
    assert seen["body"]["phone_number"] == "256712345678"
    assert handle.reference == "TIKITI-order-1"


def test_initiate_error_status_is_provider_error():
    def handler(request):
        return httpx.Response(200, json={"status": "error", "message": "Invalid currency"})

    with pytest.raises(ProviderError):
        _adapter(handler).initiate(_order())


def _webhook(tx_ref="TIKITI-order-1", event="charge.completed"):
    return json.dumps({"event": event, "data": {"id": 4242, "tx_ref": tx_ref, "status": "successful"}}).encode()


def _verify_handler(status="successful", tx_ref="TIKITI-order-1", amount=2100, currency="KES"):
    def handler(request):
        assert request.url.path == "/v3/transactions/4242/verify"
        return httpx.Response(200, json={"status": "success", "data": {
            "id": 4242, "tx_ref": tx_ref, "status": status, "amount": amount, "currency": currency,
            "processor_response": "Declined",
        }})
    return handler


def test_webhook_is_verified_server_side():
    signal = _adapter(_verify_handler()).parse_webhook(_webhook(), {"verif-hash": "hash"}, {})
    assert signal.outcome is Outcome.SUCCESS
    assert signal.provider_reference == "TIKITI-order-1"
    assert signal.order_id == "order-1"
    assert signal.confirmation_id == "4242"
    assert signal.amount == Decimal("2100")
    assert signal.currency == "KES"


def test_webhook_failed_transaction():
    signal = _adapter(_verify_handler(status="failed")).parse_webhook(_webhook(), {"verif-hash": "hash"}, {})
    assert signal.outcome is Outcome.FAILURE
    assert signal.reason == "Declined"


def test_webhook_bad_hash_is_ambiguous():
    with pytest.raises(ReconciliationAmbiguity):
        _adapter(_verify_handler()).parse_webhook(_webhook(), {"verif-hash": "nope"}, {})


def test_webhook_verification_failure_is_ambiguous():
    def handler(request):
        return httpx.Response(503)

    with pytest.raises(ReconciliationAmbiguity):
        _adapter(handler).parse_webhook(_webhook(), {"verif-hash": "hash"}, {})


def test_webhook_tx_ref_mismatch_is_ambiguous():
    with pytest.raises(ReconciliationAmbiguity):
        _adapter(_verify_handler(tx_ref="TIKITI-other")).parse_webhook(_webhook(), {"verif-hash": "hash"}, {})


def test_webhook_other_events_are_ignored():
    with pytest.raises(ReconciliationAmbiguity):
        _adapter(_verify_handler()).parse_webhook(_webhook(event="transfer.completed"), {"verif-hash": "hash"}, {})


def test_fetch_status_by_reference():
    def handler(request):
        assert request.url.params.get("tx_ref") == "TIKITI-order-1"
        return httpx.Response(200, json={"status": "success", "data": {"id": 1, "tx_ref": "TIKITI-order-1", "status": "pending"}})

    assert _adapter(handler).fetch_status(_order()) is None
