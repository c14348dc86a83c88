import pytest

from tikiti.orders import repository as orders_repo
from tikiti.orders.models import TicketStatus
from tikiti.utils.security import get_current_user


@pytest.fixture
def paid_order(pending_order):
    order = pending_order()
    orders_repo.transition_tickets(order.id, TicketStatus.PENDING, TicketStatus.ACTIVE)
    return order


def test_list_and_count_tickets(client, paid_order):
    tickets = client.get("/api/v1/tickets").json()
    assert len(tickets) == 2
    assert all(t["qr_payload"] for t in tickets)
    assert client.get("/api/v1/tickets/count").json() == {"count": 2}


def test_qrcode_for_paid_ticket(client, paid_order):
    ticket_id = client.get("/api/v1/tickets").json()[0]["id"]
    res = client.get(f"/api/v1/tickets/{ticket_id}/qrcode")
    assert res.status_code == 200
    assert res.json()["qr_code"].startswith("data:image/png;base64,")


def test_qrcode_for_pending_ticket_is_conflict(client, pending_order):
    pending_order()
    ticket_id = client.get("/api/v1/tickets").json()[0]["id"]
    res = client.get(f"/api/v1/tickets/{ticket_id}/qrcode")
    assert res.status_code == 409
    assert res.json()["code"] == "ticket_not_active"


def test_scan_checks_in_once(organizer_client, paid_order):
    payload = organizer_client.get("/api/v1/tickets").json()[0]["qr_payload"]

    res = organizer_client.post("/api/v1/validation/scan", json={"payload": payload, "event_id": "evt-1"})
    assert res.status_code == 200
    assert res.json()["status"] == "checked_in"

    res = organizer_client.post("/api/v1/validation/scan", json={"payload": payload, "event_id": "evt-1"})
    assert res.json()["status"] == "already_checked_in"


def test_scan_requires_event_organizer(organizer_client, paid_order, fake_db):
    fake_db.tables["events"][0]["organizer_id"] = "org-2"
    payload = organizer_client.get("/api/v1/tickets").json()[0]["qr_payload"]
    res = organizer_client.post("/api/v1/validation/scan", json={"payload": payload, "event_id": "evt-1"})
    assert res.status_code == 403
    res = organizer_client.post("/api/v1/validation/scan", json={"payload": payload, "event_id": "evt-9"})
    assert res.status_code == 404


def test_capacity_endpoint_follows_scans(organizer_client, paid_order):
    res = organizer_client.get("/api/v1/validation/events/evt-1/capacity")
    assert res.status_code == 200
    assert res.json()["current_capacity"] == 0
    assert res.json()["venue_capacity"] == 500

    payload = organizer_client.get("/api/v1/tickets").json()[0]["qr_payload"]
    organizer_client.post("/api/v1/validation/scan", json={"payload": payload, "event_id": "evt-1"})

    body = organizer_client.get("/api/v1/validation/events/evt-1/capacity").json()
    assert body["current_capacity"] == 1
    assert body["percentage"] == 0.2


def test_capacity_endpoint_is_scoped_to_event_organizer(organizer_client, paid_order, fake_db):
    fake_db.tables["events"][0]["organizer_id"] = "org-2"
    assert organizer_client.get("/api/v1/validation/events/evt-1/capacity").status_code == 403
    assert organizer_client.get("/api/v1/validation/events/evt-9/capacity").status_code == 404


def test_capacity_endpoint_requires_organizer(app, client, paid_order):
    assert client.get("/api/v1/validation/events/evt-1/capacity").status_code == 401
    app.dependency_overrides[get_current_user] = lambda: {"id": "test-user", "role": "user"}
    try:
        assert client.get("/api/v1/validation/events/evt-1/capacity").status_code == 403
    finally:
        app.dependency_overrides.pop(get_current_user, None)
