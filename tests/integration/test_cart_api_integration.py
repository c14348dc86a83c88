def _add(client, **overrides):
    body = {"event_id": "evt-1", "ticket_type_id": "regular", "quantity": 2, "is_virtual": False}
    body.update(overrides)
    return client.post("/api/v1/cart/lines", json=body)


def test_add_and_merge_lines(client, seed_event):
    seed_event()
    res = _add(client)
    assert res.status_code == 200
    res = _add(client, quantity=1)
    data = res.json()
    assert len(data["items"]) == 1
    assert data["items"][0]["quantity"] == 3
    assert data["totals"]["subtotal"] == "3000"
    assert data["totals"]["platform_fee"] == "150"
    assert data["totals"]["grand_total"] == "3150"
    assert "mpesa" in data["payment_methods"]

    # Le panier vit dans la session: relu par un GET
    assert client.get("/api/v1/cart").json()["totals"]["item_count"] == 3


def test_unknown_event_and_ticket_type(client, seed_event):
    seed_event()
    assert _add(client, event_id="nope").status_code == 404
    assert _add(client, ticket_type_id="nope").status_code == 404


def test_virtual_not_supported(client, seed_event):
    seed_event()
    res = _add(client, is_virtual=True)
    assert res.status_code == 400
    assert res.json()["code"] == "virtual_not_supported"


def test_insufficient_inventory_reports_remaining(client, seed_event):
    seed_event()
    res = _add(client, ticket_type_id="vip", quantity=3)
    assert res.status_code == 409
    body = res.json()
    assert body["code"] == "insufficient_inventory"
    assert body["remaining"] == 2
    assert body["detail"] == "Only 2 left"


def test_update_and_remove_line(client, seed_event):
    seed_event()
    item_id = _add(client).json()["items"][0]["cart_item_id"]

    res = client.patch(f"/api/v1/cart/lines/{item_id}", json={"quantity": 5})
    assert res.json()["items"][0]["quantity"] == 5

    assert client.patch("/api/v1/cart/lines/unknown", json={"quantity": 1}).status_code == 404

    res = client.delete(f"/api/v1/cart/lines/{item_id}")
    assert res.json()["items"] == []
    assert res.json()["payment_methods"] == []


def test_clear_cart(client, seed_event):
    seed_event()
    _add(client)
    assert client.delete("/api/v1/cart").json()["items"] == []
