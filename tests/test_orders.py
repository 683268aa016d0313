import pytest
from fastapi import HTTPException

import orders
from conftest import advance


def test_create_order_totals_line_items(client, customer, make_product, place_order):
    a = make_product(name="Kibble A", price=10000)
    b = make_product(name="Catnip B", category="Toys", price=5000)

    order = place_order((a, 2), (b, 1))

    assert order["total_amount"] == 25000
    assert order["status"] == "pending"
    assert order["user_id"] == customer["user"]["_id"]
    assert order["can_review"] is False
    assert [e["status"] for e in order["tracking_info"]["timeline"]] == ["pending"]
    assert order["next_statuses"] == ["confirmed", "cancelled"]


def test_full_lifecycle_builds_five_entry_timeline(client, admin, make_product, place_order):
    order = place_order((make_product(), 1))

    final = advance(client, admin, order["_id"], "confirmed", "processing", "shipped", "delivered")

    timeline = final["tracking_info"]["timeline"]
    assert [e["status"] for e in timeline] == ["pending", "confirmed", "processing", "shipped", "delivered"]
    assert timeline[3]["description"] == orders.STATUS_MESSAGES["shipped"]
    assert final["tracking_info"]["status"] == "delivered"
    assert final["can_review"] is True
    assert final["next_statuses"] == []


def test_custom_description_is_recorded(client, admin, make_product, place_order):
    order = place_order((make_product(), 1))
    res = client.put(
        f"/api/orders/{order['_id']}/status",
        json={"status": "confirmed", "description": "Payment verified"},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    assert res.json()["data"]["tracking_info"]["timeline"][-1]["description"] == "Payment verified"


def test_skipping_states_is_rejected(client, admin, make_product, place_order):
    order = place_order((make_product(), 1))

    res = client.put(f"/api/orders/{order['_id']}/status", json={"status": "shipped"}, headers=admin["headers"])

    assert res.status_code == 400
    assert res.json()["success"] is False
    stored = client.get(f"/api/orders/{order['_id']}", headers=admin["headers"]).json()["data"]
    assert stored["status"] == "pending"
    assert len(stored["tracking_info"]["timeline"]) == 1


def test_terminal_states_do_not_move(client, admin, make_product, place_order):
    order = place_order((make_product(), 1))
    advance(client, admin, order["_id"], "confirmed", "processing", "shipped", "delivered")

    for status in ("pending", "cancelled", "delivered"):
        res = client.put(f"/api/orders/{order['_id']}/status", json={"status": status}, headers=admin["headers"])
        assert res.status_code == 400


def test_unknown_status_fails_validation(client, admin, make_product, place_order):
    order = place_order((make_product(), 1))
    res = client.put(f"/api/orders/{order['_id']}/status", json={"status": "lost"}, headers=admin["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Validation error"


def test_status_update_requires_admin(client, customer, make_product, place_order):
    order = place_order((make_product(), 1))
    res = client.put(f"/api/orders/{order['_id']}/status", json={"status": "confirmed"}, headers=customer["headers"])
    assert res.status_code == 403


def test_missing_order_is_404(client, admin):
    res = client.put("/api/orders/65f000000000000000000000/status", json={"status": "confirmed"}, headers=admin["headers"])
    assert res.status_code == 404
    assert res.json()["message"] == "Order not found"


def test_stale_transition_loses_to_concurrent_update(client, admin, make_product, place_order, monkeypatch):
    order = place_order((make_product(), 1))
    stale = orders.find_order(order["_id"])
    advance(client, admin, order["_id"], "confirmed")

    # Replay the read that happened before the concurrent update landed.
    monkeypatch.setattr(orders, "find_order", lambda order_id: stale)
    with pytest.raises(HTTPException) as err:
        orders.transition_order(order["_id"], "cancelled")
    assert err.value.status_code == 409


def test_customer_can_cancel_only_pending_own_order(client, admin, customer, other_customer, make_product, place_order):
    first = place_order((make_product(), 1))
    res = client.delete(f"/api/orders/{first['_id']}", headers=other_customer["headers"])
    assert res.status_code == 403

    res = client.delete(f"/api/orders/{first['_id']}", headers=customer["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["status"] == "cancelled"

    second = place_order((make_product(name="Leash"), 1))
    advance(client, admin, second["_id"], "confirmed")
    res = client.delete(f"/api/orders/{second['_id']}", headers=customer["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Only pending orders can be cancelled"


def test_admin_can_cancel_shipped_order(client, admin, make_product, place_order):
    order = place_order((make_product(), 1))
    advance(client, admin, order["_id"], "confirmed", "processing", "shipped")

    res = client.delete(f"/api/orders/{order['_id']}", headers=admin["headers"])

    assert res.status_code == 200
    assert res.json()["data"]["status"] == "cancelled"
    assert res.json()["data"]["can_review"] is False


def test_order_visibility(client, admin, customer, other_customer, make_product, place_order):
    order = place_order((make_product(), 1))

    assert client.get(f"/api/orders/{order['_id']}", headers=customer["headers"]).status_code == 200
    assert client.get(f"/api/orders/{order['_id']}", headers=other_customer["headers"]).status_code == 403
    assert client.get(f"/api/orders/{order['_id']}").status_code == 401

    mine = client.get("/api/orders/user", headers=customer["headers"]).json()["data"]
    assert [o["_id"] for o in mine] == [order["_id"]]
    assert client.get("/api/orders/user", headers=other_customer["headers"]).json()["data"] == []


def test_admin_listing_stats_and_status_filter(client, admin, make_product, place_order):
    p = make_product(price=1000)
    o1 = place_order((p, 1))
    o2 = place_order((p, 3))
    place_order((p, 5))
    advance(client, admin, o1["_id"], "confirmed")
    client.delete(f"/api/orders/{o2['_id']}", headers=admin["headers"])

    listing = client.get("/api/orders?page=1&limit=2", headers=admin["headers"]).json()["data"]
    assert len(listing["orders"]) == 2
    assert listing["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}

    stats = client.get("/api/orders/stats/overview", headers=admin["headers"]).json()["data"]
    assert stats["total"] == 3
    assert stats["pending"] == 1
    assert stats["confirmed"] == 1
    assert stats["cancelled"] == 1
    assert stats["total_revenue"] == 6000

    confirmed = client.get("/api/orders/status/confirmed", headers=admin["headers"]).json()["data"]
    assert [o["_id"] for o in confirmed] == [o1["_id"]]
    assert client.get("/api/orders/status/bogus", headers=admin["headers"]).status_code == 400


def test_order_requires_items(client, customer):
    body = {
        "items": [],
        "customer_info": {
            "name": "Rina",
            "email": "rina@animalmart.id",
            "phone": "081234567890",
            "address": {"street": "Jl. Merdeka 10", "city": "Bandung", "province": "Jabar", "postal_code": "40115"},
        },
        "payment_method": "cod",
    }
    res = client.post("/api/orders", json=body, headers=customer["headers"])
    assert res.status_code == 400


def test_soft_deleted_product_keeps_order_snapshot(client, admin, make_product, place_order):
    product = make_product(name="Parrot Perch", price=7500)
    order = place_order((product, 1))

    client.delete(f"/api/products/{product['_id']}", headers=admin["headers"])

    listing = client.get("/api/products").json()["data"]["products"]
    assert product["_id"] not in [p["_id"] for p in listing]
    stored = client.get(f"/api/orders/{order['_id']}", headers=admin["headers"]).json()["data"]
    assert stored["items"][0]["name"] == "Parrot Perch"
    assert stored["items"][0]["price"] == 7500


def test_transition_table_shape():
    assert orders.can_transition("pending", "confirmed")
    assert orders.can_transition("shipped", "cancelled")
    assert not orders.can_transition("delivered", "pending")
    assert not orders.can_transition("cancelled", "pending")
    assert orders.allowed_transitions("processing") == ["shipped", "cancelled"]
