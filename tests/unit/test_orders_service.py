from decimal import Decimal

import pytest

from tikiti.errors import InsufficientInventory, MaterializationError, ValidationError, VirtualNotSupported, OrderNotFound
from tikiti.orders import service as orders_service
from tikiti.orders.models import PaymentMethod, PaymentStatus, TicketStatus
from tikiti.utils.qrcode_utils import parse_qr_payload


def test_split_unit_price_is_exact():
    for price, currency in [("1000", "KES"), ("1050", "KES"), ("999", "UGX"), ("12.50", "USD"), ("0.01", "EUR")]:
        split = orders_service.split_unit_price(Decimal(price), currency)
        assert split.organizer_payout + split.platform_fee_share == Decimal(price)


def test_materialize_creates_one_ticket_per_unit(make_cart, fake_db):
    cart = make_cart(("evt-1", "regular", 2, False), ("evt-1", "vip", 1, False))
    order, tickets = orders_service.materialize_order(
        cart, user_id="test-user", payment_method="mpesa", phone_number="0712345678"
    )

    assert order.payment_status is PaymentStatus.PENDING
    assert order.payment_method is PaymentMethod.MPESA
    assert order.phone_number == "254712345678"
    assert order.subtotal == Decimal("4500")
    assert order.platform_fee == Decimal("225")
    assert order.grand_total == Decimal("4725")
    assert order.ticket_count == 3

    assert len(tickets) == 3
    assert all(t.payment_status is TicketStatus.PENDING for t in tickets)
    assert sorted(t.platform_fee_share for t in tickets) == [Decimal("50"), Decimal("50"), Decimal("125")]
    assert all(t.organizer_payout + t.platform_fee_share == t.unit_price for t in tickets)

    assert fake_db.row("orders", order.id)["grand_total"] == "4725"
    assert len([r for r in fake_db.rows("tickets") if r["order_id"] == order.id]) == 3


def test_materialized_tickets_carry_signed_qr(make_cart):
    order, tickets = orders_service.materialize_order(
        make_cart(), user_id="test-user", payment_method="card"
    )
    data = parse_qr_payload(tickets[0].qr_payload)
    assert data["ticketId"] == tickets[0].id
    assert data["orderId"] == order.id
    assert data["userId"] == "test-user"


def test_virtual_tickets_get_stream_token(make_cart):
    cart = make_cart(("evt-1", "regular", 1, True), **{"evt-1": {"has_virtual_tickets": True}})
    _, tickets = orders_service.materialize_order(cart, user_id="test-user", payment_method="card")
    assert tickets[0].is_virtual
    assert tickets[0].stream_token


def test_free_order_is_completed_immediately(make_cart, fake_db):
    free_types = [{"id": "free", "name": "Free entry", "price": "0", "quantity": 50, "sold": 0}]
    cart = make_cart(("evt-1", "free", 2, False), **{"evt-1": {"ticket_types": free_types}})
    order, tickets = orders_service.materialize_order(cart, user_id="test-user", payment_method="mpesa")

    assert order.payment_method is PaymentMethod.FREE
    assert order.payment_status is PaymentStatus.COMPLETED
    assert order.payout_status == orders_service.PAYOUT_SKIPPED
    assert all(t.payment_status is TicketStatus.ACTIVE for t in tickets)


def test_validation_happens_before_any_write(make_cart, fake_db):
    cart = make_cart()
    with pytest.raises(ValidationError) as exc:
        orders_service.materialize_order(cart, user_id="test-user", payment_method="mpesa")
    assert exc.value.code == "missing_phone"

    with pytest.raises(ValidationError) as exc:
        orders_service.materialize_order(cart, user_id="test-user", payment_method="stripe")
    assert exc.value.code == "invalid_payment_method"

    with pytest.raises(ValidationError) as exc:
        orders_service.materialize_order(cart, user_id="", payment_method="card")
    assert exc.value.code == "missing_user"

    with pytest.raises(ValidationError) as exc:
        orders_service.materialize_order(cart, user_id="test-user", payment_method="mpesa", phone_number="123")
    assert exc.value.code == "invalid_phone"

    assert fake_db.rows("orders") == []
    assert fake_db.rows("tickets") == []


def test_empty_cart_is_rejected(make_cart):
    from tikiti.cart.models import Cart
    with pytest.raises(ValidationError) as exc:
        orders_service.materialize_order(Cart(), user_id="test-user", payment_method="card")
    assert exc.value.code == "empty_cart"


def test_recheck_uses_fresh_inventory(make_cart, fake_db):
    cart = make_cart(("evt-1", "vip", 2, False))
    # Un autre acheteur a pris les dernières places entre-temps
    event = fake_db.row("events", "evt-1")
    event["ticket_types"][1]["sold"] = 9
    with pytest.raises(InsufficientInventory):
        orders_service.materialize_order(cart, user_id="test-user", payment_method="card")
    assert fake_db.rows("orders") == []


def test_recheck_rejects_virtual_no_longer_offered(make_cart, fake_db):
    cart = make_cart(("evt-1", "regular", 1, True), **{"evt-1": {"has_virtual_tickets": True}})
    fake_db.row("events", "evt-1")["has_virtual_tickets"] = False
    with pytest.raises(VirtualNotSupported):
        orders_service.materialize_order(cart, user_id="test-user", payment_method="card")


def test_ticket_write_failure_rolls_back_order(make_cart, fake_db):
    cart = make_cart()
    fake_db.fail("tickets", "insert")
    with pytest.raises(MaterializationError):
        orders_service.materialize_order(cart, user_id="test-user", payment_method="card")
    assert fake_db.rows("orders") == []
    assert fake_db.rows("tickets") == []


def test_order_write_failure_writes_nothing(make_cart, fake_db):
    cart = make_cart()
    fake_db.fail("orders", "insert")
    with pytest.raises(MaterializationError):
        orders_service.materialize_order(cart, user_id="test-user", payment_method="card")
    assert fake_db.rows("tickets") == []


def test_get_order_for_user_hides_other_buyers_orders(pending_order):
    order = pending_order()
    assert orders_service.get_order_for_user(order.id, {"id": "test-user"}).id == order.id
    assert orders_service.get_order_for_user(order.id, {"id": "admin", "role": "admin"}).id == order.id
    with pytest.raises(OrderNotFound):
        orders_service.get_order_for_user(order.id, {"id": "someone-else"})
