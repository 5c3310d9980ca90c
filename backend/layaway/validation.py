"""
Boundary parsing for deposit order payloads.

Loosely-typed JSON from the point-of-sale UI is turned into the strict,
frozen input shapes below before anything reaches a service. Anything
partial or duck-typed is rejected with ValidationError rather than coerced:

- unknown keys are rejected
- *_cents, quantity and id fields must be JSON integers (strings, floats
  and decimal strings are rejected)
- booleans are never accepted where an integer is expected
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from .errors import ValidationError
from .models import DepositPayment
from .time_utils import parse_iso_date

# Maximum amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999
MAX_QUANTITY = 100_000
MAX_ITEMS_PER_ORDER = 200


def _require_dict(payload: Any, what: str) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError(f"Invalid {what} payload", details={"field": what})
    return payload


def _reject_unknown(payload: dict, allowed: set[str], what: str) -> None:
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown field(s) in {what}: {', '.join(unknown)}",
            details={"field": unknown[0]},
        )


def _coerce_int(value: Any, field: str) -> int:
    # JSON integers only; bool is a subclass of int and is not one
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", details={"field": field})
    if isinstance(value, str):
        raise ValidationError(f"{field} must be a JSON integer, not a string", details={"field": field})
    raise ValidationError(f"{field} must be an integer", details={"field": field})


def _int_field(payload: dict, field: str, *, required: bool = True, default: int | None = None) -> int | None:
    raw = payload.get(field)
    if raw is None:
        if required:
            raise ValidationError(f"{field} is required", details={"field": field})
        return default
    return _coerce_int(raw, field)


def _cents(payload: dict, field: str, *, required: bool = True, default: int | None = None) -> int | None:
    value = _int_field(payload, field, required=required, default=default)
    if value is None:
        return None
    if value < 0:
        raise ValidationError(f"{field} cannot be negative", details={"field": field})
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum of {MAX_AMOUNT_CENTS}", details={"field": field})
    return value


def _str_field(payload: dict, field: str, *, required: bool = False, max_len: int = 255) -> str | None:
    raw = payload.get(field)
    if raw is None:
        if required:
            raise ValidationError(f"{field} is required", details={"field": field})
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{field} must be a string", details={"field": field})
    value = raw.strip()
    if not value:
        if required:
            raise ValidationError(f"{field} is required", details={"field": field})
        return None
    if len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters", details={"field": field})
    return value


def _bool_field(payload: dict, field: str, default: bool | None) -> bool | None:
    raw = payload.get(field)
    if raw is None:
        return default
    if not isinstance(raw, bool):
        raise ValidationError(f"{field} must be true or false", details={"field": field})
    return raw


@dataclass(frozen=True)
class OrderItemInput:
    product_id: int | None
    product_name: str | None
    quantity: int
    unit_price_cents: int | None
    unit_cost_cents: int | None = None
    is_custom_order: bool = False
    category: str | None = None
    description: str | None = None

    def __post_init__(self):
        if self.quantity <= 0 or self.quantity > MAX_QUANTITY:
            raise ValidationError(
                f"quantity must be between 1 and {MAX_QUANTITY}",
                details={"field": "quantity"},
            )
        if self.product_id is None:
            if not self.product_name:
                raise ValidationError(
                    "product_name is required for custom items",
                    details={"field": "product_name"},
                )
            if self.unit_price_cents is None:
                raise ValidationError(
                    "unit_price_cents is required for custom items",
                    details={"field": "unit_price_cents"},
                )
            if not self.is_custom_order:
                raise ValidationError(
                    "items without product_id must be custom orders",
                    details={"field": "is_custom_order"},
                )
        elif self.product_id <= 0:
            raise ValidationError("product_id must be positive", details={"field": "product_id"})


@dataclass(frozen=True)
class PartExchangeInput:
    product_name: str
    allowance_cents: int
    category: str | None = None
    serial: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PaymentInput:
    amount_cents: int
    method: str
    reference: str | None = None
    notes: str | None = None

    def __post_init__(self):
        if self.amount_cents <= 0:
            raise ValidationError("amount_cents must be positive", details={"field": "amount_cents"})
        if self.method not in DepositPayment.VALID_METHODS:
            raise ValidationError(
                f"method must be one of: {', '.join(DepositPayment.VALID_METHODS)}",
                details={"field": "method"},
            )


@dataclass(frozen=True)
class CreateOrderInput:
    items: tuple[OrderItemInput, ...]
    part_exchanges: tuple[PartExchangeInput, ...] = ()
    initial_payment: PaymentInput | None = None
    customer_id: int | None = None
    customer_name: str | None = None
    notes: str | None = None
    location_id: int | None = None
    expected_pickup_date: date | None = None

    def __post_init__(self):
        if not self.items:
            raise ValidationError("At least one item is required", details={"field": "items"})
        if len(self.items) > MAX_ITEMS_PER_ORDER:
            raise ValidationError(
                f"An order may have at most {MAX_ITEMS_PER_ORDER} items",
                details={"field": "items"},
            )


@dataclass(frozen=True)
class ItemCostUpdate:
    unit_cost_cents: int
    category: str | None = None
    description: str | None = None


_ITEM_FIELDS = {
    "product_id", "product_name", "quantity", "unit_price_cents", "unit_cost_cents",
    "is_custom_order", "category", "description",
}
_PART_EXCHANGE_FIELDS = {"product_name", "allowance_cents", "category", "serial", "notes"}
_PAYMENT_FIELDS = {"amount_cents", "method", "reference", "notes"}
_ORDER_FIELDS = {
    "items", "part_exchanges", "initial_payment", "customer_id", "customer_name",
    "notes", "location_id", "expected_pickup_date",
}


def parse_order_item(payload: Any) -> OrderItemInput:
    payload = _require_dict(payload, "item")
    _reject_unknown(payload, _ITEM_FIELDS, "item")

    product_id = _int_field(payload, "product_id", required=False)
    return OrderItemInput(
        product_id=product_id,
        product_name=_str_field(payload, "product_name"),
        quantity=_int_field(payload, "quantity"),
        unit_price_cents=_cents(payload, "unit_price_cents", required=product_id is None),
        unit_cost_cents=_cents(payload, "unit_cost_cents", required=False),
        # Non-catalog items are always custom orders
        is_custom_order=_bool_field(payload, "is_custom_order", product_id is None),
        category=_str_field(payload, "category", max_len=128),
        description=_str_field(payload, "description", max_len=2000),
    )


def parse_part_exchange(payload: Any) -> PartExchangeInput:
    payload = _require_dict(payload, "part_exchange")
    _reject_unknown(payload, _PART_EXCHANGE_FIELDS, "part_exchange")
    return PartExchangeInput(
        product_name=_str_field(payload, "product_name", required=True),
        allowance_cents=_cents(payload, "allowance_cents"),
        category=_str_field(payload, "category", max_len=128),
        serial=_str_field(payload, "serial", max_len=128),
        notes=_str_field(payload, "notes", max_len=2000),
    )


def parse_payment(payload: Any) -> PaymentInput:
    payload = _require_dict(payload, "payment")
    _reject_unknown(payload, _PAYMENT_FIELDS, "payment")
    amount = _int_field(payload, "amount_cents")
    if amount > MAX_AMOUNT_CENTS:
        raise ValidationError(
            f"amount_cents exceeds maximum of {MAX_AMOUNT_CENTS}",
            details={"field": "amount_cents"},
        )
    method = _str_field(payload, "method", required=True, max_len=16).lower()
    return PaymentInput(
        amount_cents=amount,
        method=method,
        reference=_str_field(payload, "reference", max_len=128),
        notes=_str_field(payload, "notes", max_len=2000),
    )


def parse_create_order(payload: Any) -> CreateOrderInput:
    payload = _require_dict(payload, "order")
    _reject_unknown(payload, _ORDER_FIELDS, "order")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list", details={"field": "items"})
    raw_px = payload.get("part_exchanges") or []
    if not isinstance(raw_px, list):
        raise ValidationError("part_exchanges must be a list", details={"field": "part_exchanges"})

    # A zero initial payment means "nothing taken yet"
    initial_payment = None
    raw_payment = payload.get("initial_payment")
    if raw_payment is not None:
        raw_payment = _require_dict(raw_payment, "initial_payment")
        if _int_field(raw_payment, "amount_cents", required=False, default=0) != 0:
            initial_payment = parse_payment(raw_payment)

    raw_pickup = payload.get("expected_pickup_date")
    if raw_pickup is not None and not isinstance(raw_pickup, str):
        raise ValidationError("expected_pickup_date must be YYYY-MM-DD", details={"field": "expected_pickup_date"})
    try:
        pickup = parse_iso_date(raw_pickup)
    except ValueError:
        raise ValidationError("expected_pickup_date must be YYYY-MM-DD", details={"field": "expected_pickup_date"})

    customer_id = _int_field(payload, "customer_id", required=False)
    location_id = _int_field(payload, "location_id", required=False)
    for field, value in (("customer_id", customer_id), ("location_id", location_id)):
        if value is not None and value <= 0:
            raise ValidationError(f"{field} must be positive", details={"field": field})

    return CreateOrderInput(
        items=tuple(parse_order_item(i) for i in raw_items),
        part_exchanges=tuple(parse_part_exchange(px) for px in raw_px),
        initial_payment=initial_payment,
        customer_id=customer_id,
        customer_name=_str_field(payload, "customer_name"),
        notes=_str_field(payload, "notes", max_len=4000),
        location_id=location_id,
        expected_pickup_date=pickup,
    )


def parse_item_cost_update(payload: Any) -> ItemCostUpdate:
    payload = _require_dict(payload, "item_cost")
    _reject_unknown(payload, {"unit_cost_cents", "category", "description"}, "item_cost")
    return ItemCostUpdate(
        unit_cost_cents=_cents(payload, "unit_cost_cents"),
        category=_str_field(payload, "category", max_len=128),
        description=_str_field(payload, "description", max_len=2000),
    )


def parse_reason(payload: Any, *, required: bool = False) -> str | None:
    payload = _require_dict(payload, "reason")
    _reject_unknown(payload, {"reason"}, "request")
    return _str_field(payload, "reason", required=required, max_len=255)


def parse_receive_stock(payload: Any) -> tuple[int, str | None]:
    payload = _require_dict(payload, "receive")
    _reject_unknown(payload, {"quantity", "note"}, "receive")
    quantity = _int_field(payload, "quantity")
    if quantity <= 0 or quantity > MAX_QUANTITY:
        raise ValidationError(f"quantity must be between 1 and {MAX_QUANTITY}", details={"field": "quantity"})
    return quantity, _str_field(payload, "note")


def parse_adjust_stock(payload: Any) -> tuple[int, str]:
    payload = _require_dict(payload, "adjust")
    _reject_unknown(payload, {"quantity_delta", "reason"}, "adjust")
    delta = _int_field(payload, "quantity_delta")
    if delta == 0 or abs(delta) > MAX_QUANTITY:
        raise ValidationError(
            f"quantity_delta must be non-zero and at most {MAX_QUANTITY} in size",
            details={"field": "quantity_delta"},
        )
    return delta, _str_field(payload, "reason", required=True)


def parse_id_list(payload: Any, field: str = "ids") -> list[int]:
    payload = _require_dict(payload, field)
    _reject_unknown(payload, {field}, "request")
    raw = payload.get(field)
    if not isinstance(raw, list) or not raw:
        raise ValidationError(f"{field} must be a non-empty list", details={"field": field})
    ids = [_coerce_int(v, field) for v in raw]
    if any(i <= 0 for i in ids):
        raise ValidationError(f"{field} must contain positive ids", details={"field": field})
    return ids
