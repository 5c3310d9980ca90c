import pytest

from layaway.errors import InsufficientStockError, NotFoundError, ValidationError
from layaway.models import LedgerEvent, StockMovement
from layaway.services import inventory_service, lifecycle_service

ACTOR_ID = 7


def test_available_is_on_hand_minus_active_reservations(db_session, make_product, make_order):
    product = make_product(on_hand=5)
    make_order({"items": [{"product_id": product.id, "quantity": 2}]})
    cancelled = make_order({"items": [{"product_id": product.id, "quantity": 1}]})
    lifecycle_service.cancel_order(cancelled.id, actor_id=ACTOR_ID)

    assert inventory_service.get_quantity_on_hand(product.id) == 5
    assert inventory_service.get_reserved_quantity(product.id) == 2
    assert inventory_service.get_available_quantity(product.id) == 3
    assert inventory_service.check_availability(product.id, 3)
    assert not inventory_service.check_availability(product.id, 4)


def test_exclude_order_ignores_its_own_reservation(db_session, make_product, make_order):
    product = make_product(on_hand=2)
    order = make_order({"items": [{"product_id": product.id, "quantity": 2}]})

    assert inventory_service.get_available_quantity(product.id) == 0
    assert inventory_service.get_available_quantity(product.id, exclude_order_id=order.id) == 2


def test_untracked_products_are_always_available(db_session, make_product):
    service = make_product(name="Ring resize", track_stock=False)

    assert inventory_service.check_availability(service.id, 1000)
    position = inventory_service.get_stock_position(service.id)
    assert position["track_stock"] is False
    assert position["available"] is None


def test_check_availability_rejects_non_positive_quantity(db_session, make_product):
    product = make_product()
    with pytest.raises(ValidationError):
        inventory_service.check_availability(product.id, 0)


def test_ensure_available_reports_every_shortfall(db_session, make_product):
    ring = make_product(name="Ring", on_hand=1)
    watch = make_product(name="Watch", on_hand=0)
    chain = make_product(name="Chain", on_hand=9)

    requests = {
        ring.id: {"product": ring, "quantity": 2},
        watch.id: {"product": watch, "quantity": 1},
        chain.id: {"product": chain, "quantity": 1},
    }
    with pytest.raises(InsufficientStockError) as excinfo:
        inventory_service.ensure_available(requests)
    db_session.rollback()

    shortfalls = {item["product_name"]: item for item in excinfo.value.details["items"]}
    assert set(shortfalls) == {"Ring", "Watch"}
    assert shortfalls["Ring"]["requested_quantity"] == 2
    assert shortfalls["Ring"]["available_quantity"] == 1
    assert shortfalls["Watch"]["available_quantity"] == 0


def test_receive_stock_creates_movement_and_event(db_session, make_product):
    product = make_product(on_hand=0)

    movement = inventory_service.receive_stock(product.id, 4, actor_id=ACTOR_ID, note="Supplier delivery")

    assert movement.movement_type == "RECEIVE"
    assert movement.quantity_after == 4
    assert inventory_service.get_quantity_on_hand(product.id) == 4
    event = db_session.query(LedgerEvent).filter_by(event_type="inventory.received").one()
    assert event.entity_id == movement.id
    assert event.note == "Supplier delivery"


def test_receive_stock_validation(db_session, make_product):
    untracked = make_product(track_stock=False)
    with pytest.raises(ValidationError):
        inventory_service.receive_stock(untracked.id, 1)
    with pytest.raises(ValidationError):
        inventory_service.receive_stock(untracked.id, 0)
    with pytest.raises(NotFoundError):
        inventory_service.receive_stock(424242, 1)


def test_adjust_stock_requires_reason_and_never_goes_negative(db_session, make_product):
    product = make_product(on_hand=2)

    with pytest.raises(ValidationError):
        inventory_service.adjust_stock(product.id, -1, "  ")
    with pytest.raises(InsufficientStockError):
        inventory_service.adjust_stock(product.id, -3, "Stock count")

    assert inventory_service.get_quantity_on_hand(product.id) == 2
    assert db_session.query(StockMovement).count() == 0

    movement = inventory_service.adjust_stock(product.id, -2, "Stock count", actor_id=ACTOR_ID)
    assert movement.quantity_delta == -2
    assert movement.note == "Stock count"
    assert inventory_service.get_quantity_on_hand(product.id) == 0


def test_adjust_below_reserved_leaves_negative_availability(db_session, make_product, make_order):
    product = make_product(on_hand=1)
    make_order({"items": [{"product_id": product.id, "quantity": 1}]})

    inventory_service.adjust_stock(product.id, -1, "Lost")

    position = inventory_service.get_stock_position(product.id)
    assert position == {
        "product_id": product.id,
        "track_stock": True,
        "on_hand": 0,
        "reserved": 1,
        "available": -1,
    }


def test_release_reservation_records_event_only(db_session, make_product, make_order):
    product = make_product(on_hand=3)
    order = make_order({"items": [{"product_id": product.id, "quantity": 2}]})

    closure = lifecycle_service.void_order(order.id, actor_id=ACTOR_ID)

    assert closure.released == [{"product_id": product.id, "quantity": 2}]
    event = db_session.query(LedgerEvent).filter_by(event_type="inventory.reservation_released").one()
    assert event.deposit_order_id == order.id
    assert inventory_service.get_quantity_on_hand(product.id) == 3
    assert db_session.query(StockMovement).count() == 0


def test_list_reserved_items(db_session, make_product, make_order):
    ring = make_product(name="Ring", on_hand=5)
    watch = make_product(name="Watch", on_hand=2)
    make_order({"items": [{"product_id": ring.id, "quantity": 1}]})
    make_order({"items": [
        {"product_id": ring.id, "quantity": 2},
        {"product_id": watch.id, "quantity": 1},
    ]})

    rows = inventory_service.list_reserved_items()

    assert [row["product_name"] for row in rows] == ["Ring", "Watch"]
    assert rows[0]["reserved"] == 3
    assert rows[0]["order_count"] == 2
    assert rows[0]["available"] == 2
    assert rows[1]["reserved"] == 1


def test_duplicate_lines_aggregate_per_product(db_session, make_product, make_order):
    product = make_product(on_hand=2)

    with pytest.raises(InsufficientStockError) as excinfo:
        make_order({"items": [
            {"product_id": product.id, "quantity": 1},
            {"product_id": product.id, "quantity": 2},
        ]})

    assert excinfo.value.details["items"][0]["requested_quantity"] == 3
