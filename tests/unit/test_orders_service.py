import re
from datetime import datetime, timezone

import pytest
from fastapi import HTTPException
from postgrest.exceptions import APIError

from storefront.orders import service as orders_service
from storefront.orders.models import CreateOrderRequest, UpdateStatusRequest


def _request(items, address, payment_method="stripe"):
    return CreateOrderRequest.model_validate({
        "orderItems": [{"product": pid, "quantity": qty} for pid, qty in items],
        "shippingAddress": address,
        "paymentMethod": payment_method,
    })


def test_generate_order_number_format():
    number = orders_service.generate_order_number(datetime(2024, 3, 9, tzinfo=timezone.utc))
    assert re.fullmatch(r"ORD-20240309-[0-9A-F]{8}", number)


def test_create_order_snapshots_items_and_prices(store, user, address):
    store.add_product("p1", "Widget", "15.00", stock=5)

    order = orders_service.create_order(user=user, request=_request([("p1", 3)], address))

    assert order["user_id"] == "test-user"
    assert order["status"] == "pending"
    assert order["is_paid"] is False
    assert order["is_delivered"] is False
    assert re.fullmatch(r"ORD-\d{8}-[0-9A-F]{8}", order["order_number"])
    assert order["order_items"] == [
        {"product": "p1", "name": "Widget", "image": "https://img.test/p1.png", "price": "15.00", "quantity": 3}
    ]
    assert order["items_price"] == "45.00"
    assert order["tax_price"] == "3.60"
    assert order["shipping_price"] == "10.00"
    assert order["total_price"] == "58.60"
    assert order["shipping_address"]["zipCode"] == "62701"
    assert order["payment_method"] == "stripe"
    assert store.products["p1"]["stock"] == 2


def test_snapshot_is_independent_of_later_catalog_changes(store, user, address):
    store.add_product("p1", "Widget", "15.00", stock=5)
    order = orders_service.create_order(user=user, request=_request([("p1", 1)], address))

    store.products["p1"]["price"] = "99.00"
    store.products["p1"]["name"] = "Widget Pro"

    saved = store.get_order(order["id"])
    assert saved["order_items"][0]["price"] == "15.00"
    assert saved["order_items"][0]["name"] == "Widget"


def test_unknown_product_is_404_and_nothing_written(store, user, address):
    store.add_product("p1", "Widget", "15.00", stock=5)

    with pytest.raises(HTTPException) as exc:
        orders_service.create_order(user=user, request=_request([("p1", 1), ("ghost", 1)], address))

    assert exc.value.status_code == 404
    assert "ghost" in exc.value.detail
    assert store.products["p1"]["stock"] == 5
    assert store.orders == {}
    assert store.reserve_calls == []


def test_insufficient_stock_is_400_with_available_quantity(store, user, address):
    store.add_product("p1", "Widget", "15.00", stock=5)
    store.add_product("p2", "Gadget", "8.00", stock=1)

    with pytest.raises(HTTPException) as exc:
        orders_service.create_order(user=user, request=_request([("p1", 2), ("p2", 2)], address))

    assert exc.value.status_code == 400
    assert exc.value.detail == "Stock insuffisant pour Gadget. Disponible: 1"
    # Tout ou rien: la ligne valide n'a pas été décrémentée
    assert store.products["p1"]["stock"] == 5
    assert store.orders == {}


def test_duplicate_lines_are_checked_together(store, user, address):
    store.add_product("p1", "Widget", "15.00", stock=3)

    with pytest.raises(HTTPException) as exc:
        orders_service.create_order(user=user, request=_request([("p1", 2), ("p1", 2)], address))

    assert exc.value.status_code == 400
    assert store.products["p1"]["stock"] == 3


def test_duplicate_lines_are_merged(store, user, address):
    store.add_product("p1", "Widget", "15.00", stock=5)

    order = orders_service.create_order(user=user, request=_request([("p1", 1), ("p1", 2)], address))

    assert order["order_items"][0]["quantity"] == 3
    assert len(order["order_items"]) == 1
    assert store.reserve_calls == [{"p1": 3}]


def test_lost_reservation_race_is_400_without_order(store, user, address, monkeypatch):
    store.add_product("p1", "Widget", "15.00", stock=5)
    monkeypatch.setattr("storefront.products.repository.reserve_stock", lambda quantities: False)

    with pytest.raises(HTTPException) as exc:
        orders_service.create_order(user=user, request=_request([("p1", 1)], address))

    assert exc.value.status_code == 400
    assert store.orders == {}
    assert store.insert_attempts == 0


def test_insert_failure_releases_reserved_stock(store, user, address):
    store.add_product("p1", "Widget", "15.00", stock=5)
    store.fail_insert = APIError({"code": "08006", "message": "connection failure", "details": None, "hint": None})

    with pytest.raises(APIError):
        orders_service.create_order(user=user, request=_request([("p1", 2)], address))

    assert store.release_calls == [{"p1": 2}]
    assert store.products["p1"]["stock"] == 5


def test_order_number_collision_is_retried(store, user, address):
    store.add_product("p1", "Widget", "15.00", stock=5)
    store.forced_collisions = 2

    order = orders_service.create_order(user=user, request=_request([("p1", 1)], address))

    assert store.insert_attempts == 3
    assert order["order_number"].startswith("ORD-")
    assert store.release_calls == []


def test_order_number_collisions_exhausted(store, user, address, monkeypatch):
    store.add_product("p1", "Widget", "15.00", stock=5)
    monkeypatch.setattr(orders_service, "ORDER_NUMBER_MAX_ATTEMPTS", 2)
    store.forced_collisions = 5

    with pytest.raises(RuntimeError):
        orders_service.create_order(user=user, request=_request([("p1", 1)], address))

    assert store.insert_attempts == 2
    assert store.products["p1"]["stock"] == 5


def test_mark_paid_transitions_once(store):
    store.add_order(id="o1")
    receipt = {"id": "pi_1", "status": "succeeded", "update_time": "t", "email_address": "test@example.com"}

    first = orders_service.mark_paid("o1", receipt)
    assert first["is_paid"] is True
    assert first["status"] == "confirmed"
    assert first["payment_result"] == receipt
    paid_at = first["paid_at"]
    assert paid_at

    second = orders_service.mark_paid("o1", {"id": "pi_2"})
    assert second is None
    saved = store.get_order("o1")
    assert saved["paid_at"] == paid_at
    assert saved["payment_result"]["id"] == "pi_1"


@pytest.mark.parametrize("order_id", ["missing", ""])
def test_mark_paid_unknown_order_is_noop(store, order_id):
    assert orders_service.mark_paid(order_id, {"id": "pi_1"}) is None


def test_ensure_owner(user, admin_user):
    order = {"id": "o1", "user_id": "someone-else"}
    with pytest.raises(HTTPException) as exc:
        orders_service.ensure_owner(order, user)
    assert exc.value.status_code == 403

    with pytest.raises(HTTPException):
        orders_service.ensure_owner(order, admin_user)
    orders_service.ensure_owner(order, admin_user, allow_admin=True)
    orders_service.ensure_owner({"id": "o2", "user_id": "test-user"}, user)


def test_get_order_for_user(store, user):
    store.add_order(id="mine")
    store.add_order(id="theirs", user_id="other")

    assert orders_service.get_order_for_user("mine", user)["id"] == "mine"
    with pytest.raises(HTTPException) as exc:
        orders_service.get_order_for_user("theirs", user)
    assert exc.value.status_code == 403
    with pytest.raises(HTTPException) as exc:
        orders_service.get_order_for_user("nope", user)
    assert exc.value.status_code == 404


def test_update_status_delivered_sets_flag_once(store):
    store.add_order(id="o1", is_paid=True, paid_at="2024-01-02T00:00:00+00:00", status="confirmed")

    updated = orders_service.update_status("o1", UpdateStatusRequest(status="delivered"))
    assert updated["status"] == "delivered"
    assert updated["is_delivered"] is True
    delivered_at = updated["delivered_at"]

    again = orders_service.update_status("o1", UpdateStatusRequest(status="delivered"))
    assert again["delivered_at"] == delivered_at
    # Le statut admin ne touche jamais au paiement
    assert again["is_paid"] is True
    assert again["paid_at"] == "2024-01-02T00:00:00+00:00"


def test_update_status_with_tracking_and_notes(store):
    store.add_order(id="o1")

    updated = orders_service.update_status(
        "o1", UpdateStatusRequest(status="shipped", trackingNumber="1Z999", notes="Colis remis")
    )
    assert updated["status"] == "shipped"
    assert updated["tracking_number"] == "1Z999"
    assert updated["notes"] == "Colis remis"
    assert updated["is_delivered"] is False


def test_update_status_unknown_order_is_404(store):
    with pytest.raises(HTTPException) as exc:
        orders_service.update_status("missing", UpdateStatusRequest(status="shipped"))
    assert exc.value.status_code == 404


def test_list_orders_for_user_only_returns_own_orders(store):
    store.add_order(id="a", created_at="2024-01-01T00:00:00+00:00")
    store.add_order(id="b", created_at="2024-02-01T00:00:00+00:00")
    store.add_order(id="c", user_id="other")

    orders = orders_service.list_orders_for_user("test-user")
    assert [o["id"] for o in orders] == ["b", "a"]
    assert len(orders_service.list_all_orders()) == 3
