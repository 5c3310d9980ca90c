"""
HTTP surface tests: status codes, response shapes and error mapping.

Business rules are covered by the service tests; these only check that the
routes parse, delegate and serialize correctly.
"""

import pytest


@pytest.fixture
def product(make_product):
    return make_product(name="Diamond studs", price_cents=50000, unit_cost_cents=20000, on_hand=1)


def _create(client, headers, product_id, **extra):
    payload = {"items": [{"product_id": product_id, "quantity": 1}], **extra}
    return client.post("/api/deposit-orders/", json=payload, headers=headers)


def test_actor_header_required(client, product):
    response = _create(client, {}, product.id)

    assert response.status_code == 401
    assert response.get_json() == {"error": "Actor identity required"}

    bad = _create(client, {"X-Actor-Id": "abc"}, product.id)
    assert bad.status_code == 401


def test_order_flow_over_http(client, actor_headers, product):
    created = _create(
        client,
        actor_headers,
        product.id,
        initial_payment={"amount_cents": 10000, "method": "cash"},
    )
    assert created.status_code == 201
    order = created.get_json()["order"]
    assert order["status"] == "active"
    assert order["balance_due_cents"] == 40000
    assert order["payments"][0]["balance_after_cents"] == 40000
    assert order["payments"][0]["received_by"] == 7

    paid = client.post(
        f"/api/deposit-orders/{order['id']}/payments",
        json={"amount_cents": 40000, "method": "card"},
        headers=actor_headers,
    )
    assert paid.status_code == 201
    assert paid.get_json()["order"]["balance_due_cents"] == 0

    completed = client.post(f"/api/deposit-orders/{order['id']}/complete", headers=actor_headers)
    assert completed.status_code == 200
    body = completed.get_json()
    assert body["order"]["status"] == "completed"
    assert body["sale"]["total_cents"] == 50000
    assert body["advisories"] == []

    sale = client.get(f"/api/sales/{body['sale']['id']}", headers=actor_headers)
    assert sale.status_code == 200
    assert sale.get_json()["sale"]["lines"][0]["product_name"] == "Diamond studs"

    pending = client.get("/api/cash-movements/pending", headers=actor_headers).get_json()
    assert {m["movement_type"] for m in pending["movements"]} == {"deposit_cash_in", "deposit_applied"}


def test_insufficient_stock_error_shape(client, actor_headers, product):
    response = client.post(
        "/api/deposit-orders/",
        json={"items": [{"product_id": product.id, "quantity": 3}]},
        headers=actor_headers,
    )

    assert response.status_code == 409
    body = response.get_json()
    assert body["error_type"] == "InsufficientStockError"
    assert body["retryable"] is False
    assert body["details"]["items"][0] == {
        "product_id": product.id,
        "product_name": "Diamond studs",
        "requested_quantity": 3,
        "available_quantity": 1,
    }


def test_validation_error_shape(client, actor_headers, product):
    response = client.post(
        "/api/deposit-orders/",
        json={"items": [{"product_id": product.id, "quantity": 1.5}]},
        headers=actor_headers,
    )

    assert response.status_code == 400
    body = response.get_json()
    assert body["error_type"] == "ValidationError"
    assert body["details"] == {"field": "quantity"}


def test_overpayment_and_not_found(client, actor_headers, product):
    order = _create(client, actor_headers, product.id).get_json()["order"]

    over = client.post(
        f"/api/deposit-orders/{order['id']}/payments",
        json={"amount_cents": 60000, "method": "cash"},
        headers=actor_headers,
    )
    assert over.status_code == 409
    assert over.get_json()["details"]["remaining_cents"] == 50000

    missing = client.get("/api/deposit-orders/9999", headers=actor_headers)
    assert missing.status_code == 404
    assert missing.get_json()["error_type"] == "NotFoundError"


def test_complete_with_balance_due_is_conflict(client, actor_headers, product):
    order = _create(client, actor_headers, product.id).get_json()["order"]

    response = client.post(f"/api/deposit-orders/{order['id']}/complete", headers=actor_headers)

    assert response.status_code == 409
    assert response.get_json()["details"]["balance_due_cents"] == 50000


def test_void_with_reason_then_void_again(client, actor_headers, product):
    order = _create(
        client,
        actor_headers,
        product.id,
        initial_payment={"amount_cents": 2500, "method": "card"},
    ).get_json()["order"]

    voided = client.post(
        f"/api/deposit-orders/{order['id']}/void",
        json={"reason": "Customer moved away"},
        headers=actor_headers,
    )
    assert voided.status_code == 200
    body = voided.get_json()
    assert body["refund_due_cents"] == 2500
    assert body["order"]["status"] == "voided"
    assert body["released"] == [{"product_id": product.id, "quantity": 1}]

    again = client.post(f"/api/deposit-orders/{order['id']}/void", headers=actor_headers)
    assert again.status_code == 409
    assert again.get_json()["details"]["status"] == "voided"


def test_list_and_stats(client, actor_headers, product):
    _create(client, actor_headers, product.id)

    listed = client.get("/api/deposit-orders/?status=active", headers=actor_headers).get_json()
    assert listed["count"] == 1

    bad_status = client.get("/api/deposit-orders/?status=archived", headers=actor_headers)
    assert bad_status.status_code == 400

    stats = client.get("/api/deposit-orders/stats", headers=actor_headers).get_json()
    assert stats["counts"]["active"] == 1
    assert stats["active_balance_due_cents"] == 50000


def test_custom_item_cost_backfill(client, actor_headers):
    order = client.post(
        "/api/deposit-orders/",
        json={"items": [{"product_name": "Bespoke pendant", "quantity": 1, "unit_price_cents": 80000}]},
        headers=actor_headers,
    ).get_json()["order"]
    assert order["unset_custom_costs"] == [order["items"][0]["id"]]

    response = client.patch(
        f"/api/deposit-orders/{order['id']}/items/{order['items'][0]['id']}/cost",
        json={"unit_cost_cents": 30000},
        headers=actor_headers,
    )
    assert response.status_code == 200
    assert response.get_json()["item"]["unit_cost_cents"] == 30000

    summary = client.get(f"/api/deposit-orders/{order['id']}", headers=actor_headers).get_json()["order"]
    assert summary["unset_custom_costs"] == []
    assert summary["balance_due_cents"] == 80000


def test_inventory_routes(client, actor_headers, product):
    received = client.post(
        f"/api/inventory/{product.id}/receive",
        json={"quantity": 2, "note": "PO-1001"},
        headers=actor_headers,
    )
    assert received.status_code == 201
    assert received.get_json()["position"]["on_hand"] == 3

    _create(client, actor_headers, product.id)
    position = client.get(f"/api/inventory/{product.id}", headers=actor_headers).get_json()
    assert position["reserved"] == 1
    assert position["available"] == 2

    adjust = client.post(
        f"/api/inventory/{product.id}/adjust",
        json={"quantity_delta": -1},
        headers=actor_headers,
    )
    assert adjust.status_code == 400

    reserved = client.get("/api/inventory/reserved", headers=actor_headers).get_json()
    assert reserved["count"] == 1


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"


def test_order_events(client, actor_headers, product):
    order = _create(client, actor_headers, product.id).get_json()["order"]
    client.post(f"/api/deposit-orders/{order['id']}/cancel", json={"reason": "Duplicate"}, headers=actor_headers)

    response = client.get(f"/api/deposit-orders/{order['id']}/events", headers=actor_headers)

    assert response.status_code == 200
    event_types = [e["event_type"] for e in response.get_json()["events"]]
    assert event_types[0] == "deposit_order.created"
    assert "deposit_order.cancelled" in event_types
    assert "inventory.reservation_released" in event_types

    missing = client.get("/api/deposit-orders/9999/events", headers=actor_headers)
    assert missing.status_code == 404
