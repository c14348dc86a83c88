from decimal import Decimal

import pytest

from tikiti.errors import OrderStateError
from tikiti.orders import repository as orders_repo
from tikiti.orders.models import PaymentStatus, Ticket, TicketStatus
from tikiti.payouts import service as payouts_service


def _ticket(ticket_id, organizer_id, payout, currency="KES"):
    payout = Decimal(payout)
    return Ticket(
        id=ticket_id, order_id="o1", user_id="u1", event_id="e1", organizer_id=organizer_id,
        ticket_type_id="regular", ticket_type="Regular", unit_price=payout + Decimal(50),
        platform_fee_share=Decimal(50), organizer_payout=payout, currency=currency, qr_payload="{}",
        payment_status=TicketStatus.ACTIVE,
    )


def test_aggregate_groups_by_organizer_and_conserves_amounts():
    tickets = [_ticket("t1", "org-a", "950"), _ticket("t2", "org-b", "2375"), _ticket("t3", "org-a", "950")]
    records = payouts_service.aggregate_payouts(tickets, order_id="o1")

    by_org = {r.organizer_id: r for r in records}
    assert set(by_org) == {"org-a", "org-b"}
    assert by_org["org-a"].amount == Decimal("1900")
    assert by_org["org-a"].ticket_ids == ("t1", "t3")
    assert sum(r.amount for r in records) == sum(t.organizer_payout for t in tickets)


def test_aggregate_skips_zero_amounts():
    assert payouts_service.aggregate_payouts([_ticket("t1", "org-a", "0")]) == []


def _complete(order):
    orders_repo.transition_order(order.id, PaymentStatus.COMPLETED)
    orders_repo.transition_tickets(order.id, TicketStatus.PENDING, TicketStatus.ACTIVE)
    return orders_repo.get_order(order.id)


def test_process_order_payouts_runs_once(pending_order, fake_db):
    order = _complete(pending_order())

    first = payouts_service.process_order_payouts(order)
    second = payouts_service.process_order_payouts(order)

    assert len(first) == 1
    assert second == []
    assert len(fake_db.rows("payouts")) == 1
    assert fake_db.row("orders", order.id)["payout_status"] == "processed"


def test_multi_organizer_order(make_cart, fake_db):
    from tikiti.orders import service as orders_service
    cart = make_cart(("evt-1", "regular", 1, False), ("evt-2", "vip", 2, False), **{"evt-2": {"organizer_id": "org-2"}})
    order, tickets = orders_service.materialize_order(cart, user_id="test-user", payment_method="card")
    order = _complete(order)

    records = payouts_service.process_order_payouts(order)
    assert {r.organizer_id for r in records} == {"org-1", "org-2"}
    assert sum(r.amount for r in records) == sum(t.organizer_payout for t in tickets)


def test_pending_order_is_refused(pending_order):
    with pytest.raises(OrderStateError) as exc:
        payouts_service.process_order_payouts(pending_order())
    assert exc.value.code == "order_not_completed"


def test_inactive_tickets_release_the_claim(pending_order, fake_db):
    order = pending_order()
    orders_repo.transition_order(order.id, PaymentStatus.COMPLETED)
    order = orders_repo.get_order(order.id)

    with pytest.raises(OrderStateError) as exc:
        payouts_service.process_order_payouts(order)
    assert exc.value.code == "tickets_not_active"
    assert fake_db.row("orders", order.id)["payout_status"] is None
    assert fake_db.rows("payouts") == []


def test_run_payout_batch_picks_up_unprocessed_orders(pending_order, fake_db):
    done = _complete(pending_order(reference="ref-1"))
    _complete(pending_order(reference="ref-2"))
    pending_order(reference="ref-3")
    payouts_service.process_order_payouts(done)

    summary = payouts_service.run_payout_batch()
    assert summary == {"orders": 1, "payouts": 1, "failed": 0}
    assert len(fake_db.rows("payouts")) == 2


def test_run_payout_batch_counts_failures(pending_order, fake_db):
    _complete(pending_order())
    fake_db.fail("payouts", "insert")
    assert payouts_service.run_payout_batch()["failed"] == 1
