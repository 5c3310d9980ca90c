import pytest
from datetime import date

from layaway.errors import ValidationError
from layaway.validation import (
    parse_adjust_stock,
    parse_create_order,
    parse_id_list,
    parse_item_cost_update,
    parse_order_item,
    parse_payment,
    parse_reason,
    parse_receive_stock,
)


def test_create_order_parses_full_payload():
    data = parse_create_order({
        "items": [
            {"product_id": 12, "quantity": 2},
            {"product_name": "Engraving", "quantity": 1, "unit_price_cents": 1500},
        ],
        "part_exchanges": [{"product_name": "Old ring", "allowance_cents": 2000}],
        "initial_payment": {"amount_cents": 500, "method": "CASH"},
        "customer_name": "  Ann Lee ",
        "expected_pickup_date": "2026-12-24",
    })

    assert data.items[0].product_id == 12
    assert data.items[0].is_custom_order is False
    assert data.items[1].is_custom_order is True
    assert data.part_exchanges[0].allowance_cents == 2000
    assert data.initial_payment.method == "cash"
    assert data.customer_name == "Ann Lee"
    assert data.expected_pickup_date == date(2026, 12, 24)


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"items": []}, "items"),
        ({"items": "nope"}, "items"),
        ({"items": [{"product_id": 1, "quantity": 0}]}, "quantity"),
        ({"items": [{"product_id": 1, "quantity": 1.5}]}, "quantity"),
        ({"items": [{"product_id": 1, "quantity": True}]}, "quantity"),
        ({"items": [{"product_id": 1, "quantity": "1e3"}]}, "quantity"),
        ({"items": [{"product_id": 1, "quantity": "2"}]}, "quantity"),
        ({"items": [{"product_id": "1", "quantity": 1}]}, "product_id"),
        ({"items": [{"quantity": 1, "unit_price_cents": 100}]}, "product_name"),
        ({"items": [{"product_name": "X", "quantity": 1}]}, "unit_price_cents"),
        ({"items": [{"product_id": 1, "quantity": 1, "unit_price_cents": -1}]}, "unit_price_cents"),
        ({"items": [{"product_id": 1, "quantity": 1, "colour": "red"}]}, "colour"),
        ({"items": [{"product_id": 1, "quantity": 1}], "total_amount_cents": 5}, "total_amount_cents"),
        ({"items": [{"product_id": 1, "quantity": 1}], "expected_pickup_date": "next week"}, "expected_pickup_date"),
        ({"items": [{"product_id": 1, "quantity": 1}], "customer_id": 0}, "customer_id"),
    ],
)
def test_create_order_rejects_bad_payloads(payload, field):
    with pytest.raises(ValidationError) as excinfo:
        parse_create_order(payload)

    assert excinfo.value.details["field"] == field


def test_non_catalog_item_must_be_custom():
    with pytest.raises(ValidationError) as excinfo:
        parse_order_item({"product_name": "Loose stone", "quantity": 1, "unit_price_cents": 100, "is_custom_order": False})

    assert excinfo.value.details["field"] == "is_custom_order"


def test_zero_initial_payment_is_dropped():
    data = parse_create_order({
        "items": [{"product_id": 1, "quantity": 1}],
        "initial_payment": {"amount_cents": 0, "method": "cash"},
    })

    assert data.initial_payment is None


@pytest.mark.parametrize(
    "payload",
    [
        {"amount_cents": 0, "method": "cash"},
        {"amount_cents": -5, "method": "cash"},
        {"amount_cents": "10.50", "method": "cash"},
        {"amount_cents": 10, "method": "cheque"},
        {"amount_cents": 10},
        {"amount_cents": 1_000_000_000, "method": "card"},
    ],
)
def test_payment_rejects_bad_values(payload):
    with pytest.raises(ValidationError):
        parse_payment(payload)


def test_payment_parses_integer_amount_and_rejects_strings():
    payment = parse_payment({"amount_cents": 2500, "method": "transfer", "reference": "TRX-9"})

    assert payment.amount_cents == 2500
    assert payment.reference == "TRX-9"

    with pytest.raises(ValidationError) as excinfo:
        parse_payment({"amount_cents": "2500", "method": "transfer"})
    assert excinfo.value.details["field"] == "amount_cents"


def test_reason_parsing():
    assert parse_reason({}) is None
    assert parse_reason({"reason": " Wrong size "}) == "Wrong size"
    with pytest.raises(ValidationError):
        parse_reason({}, required=True)
    with pytest.raises(ValidationError):
        parse_reason({"why": "x"})


def test_item_cost_update():
    update = parse_item_cost_update({"unit_cost_cents": 800, "category": "Rings"})
    assert update.unit_cost_cents == 800
    assert update.category == "Rings"

    with pytest.raises(ValidationError):
        parse_item_cost_update({})


def test_stock_payloads():
    assert parse_receive_stock({"quantity": 3, "note": "Delivery"}) == (3, "Delivery")
    assert parse_adjust_stock({"quantity_delta": -2, "reason": "Damaged"}) == (-2, "Damaged")

    with pytest.raises(ValidationError):
        parse_receive_stock({"quantity": -1})
    with pytest.raises(ValidationError):
        parse_adjust_stock({"quantity_delta": 0, "reason": "Count"})
    with pytest.raises(ValidationError):
        parse_adjust_stock({"quantity_delta": 1})


def test_id_list():
    assert parse_id_list({"ids": [3, 4]}) == [3, 4]
    with pytest.raises(ValidationError):
        parse_id_list({"ids": [3, "4"]})
    with pytest.raises(ValidationError):
        parse_id_list({"ids": []})
    with pytest.raises(ValidationError):
        parse_id_list({"ids": [0]})
