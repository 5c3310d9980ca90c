# Overview: Service-layer operations for the deposit order aggregate; totals, queries and item cost backfill.

from __future__ import annotations

from sqlalchemy import func

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import DepositOrder, DepositOrderItem
from ..time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
"""
Deposit Order Aggregate Invariants (authoritative)

Financial state is a pure function of the order's children:
    total_amount       = SUM(item.unit_price_cents * item.quantity)
    part_exchange_total = SUM(part_exchange.allowance_cents)
    amount_paid        = SUM(payment.amount_cents)
    balance_due        = max(0, total_amount - part_exchange_total - amount_paid)

- recompute_totals() runs after every change to items, part exchanges or
  payments, inside the same transaction as the change.
- Cached columns on DepositOrder are never written from client input.
- Terminal orders (completed, cancelled, voided, expired) are read-only.
"""

TERMINAL_STATUSES = (
    DepositOrder.STATUS_COMPLETED,
    DepositOrder.STATUS_CANCELLED,
    DepositOrder.STATUS_VOIDED,
    DepositOrder.STATUS_EXPIRED,
)
ALL_STATUSES = (DepositOrder.STATUS_ACTIVE,) + TERMINAL_STATUSES


def compute_balance_due(total_amount_cents: int, part_exchange_total_cents: int, amount_paid_cents: int) -> int:
    return max(0, total_amount_cents - part_exchange_total_cents - amount_paid_cents)


def recompute_totals(order: DepositOrder) -> DepositOrder:
    """Refresh the cached totals from items, part exchanges and payments."""
    order.total_amount_cents = sum(item.unit_price_cents * item.quantity for item in order.items)
    order.part_exchange_total_cents = sum(px.allowance_cents for px in order.part_exchanges)
    order.amount_paid_cents = sum(p.amount_cents for p in order.payments)
    order.balance_due_cents = compute_balance_due(
        order.total_amount_cents,
        order.part_exchange_total_cents,
        order.amount_paid_cents,
    )
    return order


def payable_total(order: DepositOrder) -> int:
    """What the customer owes in money: total less trade-in allowances."""
    return max(0, order.total_amount_cents - order.part_exchange_total_cents)


def get_order(order_id: int, *, lock: bool = False) -> DepositOrder:
    query = db.session.query(DepositOrder).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise NotFoundError(
            f"Deposit order {order_id} not found",
            details={"entity": "deposit_order", "id": order_id},
        )
    return order


def require_active(order: DepositOrder, action: str) -> None:
    if order.status != DepositOrder.STATUS_ACTIVE:
        raise InvalidStateError(
            f"Cannot {action} a {order.status} deposit order",
            details={"order_id": order.id, "status": order.status},
        )


def list_orders(*, status: str | None = None, limit: int = 200) -> list[DepositOrder]:
    if status is not None and status not in ALL_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(ALL_STATUSES)}",
            details={"field": "status"},
        )
    query = db.session.query(DepositOrder)
    if status is not None:
        query = query.filter_by(status=status)
    return query.order_by(DepositOrder.created_at.desc(), DepositOrder.id.desc()).limit(limit).all()


def payment_history(order: DepositOrder) -> list[dict]:
    """Payments in received_at order, each with the balance still owed after it."""
    payable = payable_total(order)
    paid_so_far = 0
    history = []
    for payment in order.payments:
        paid_so_far += payment.amount_cents
        entry = payment.to_dict()
        entry["balance_after_cents"] = max(0, payable - paid_so_far)
        history.append(entry)
    return history


def get_order_summary(order_id: int) -> dict:
    """
    Order with its children and the payment history.

    Payments are ordered by received_at; balance_after shows what was still
    owed after each one.
    """
    order = get_order(order_id)
    payments = payment_history(order)

    data = order.to_dict(include_children=True)
    data["payments"] = payments
    data["payable_total_cents"] = payable_total(order)
    data["item_count"] = len(order.items)
    data["payment_count"] = len(payments)
    data["unset_custom_costs"] = [item.id for item in unset_custom_cost_items(order)]
    return data


def unset_custom_cost_items(order: DepositOrder) -> list[DepositOrderItem]:
    return [item for item in order.items if item.is_custom_order and not item.unit_cost_cents]


def get_order_stats() -> dict:
    """Per-status counts and the money tied up in active orders."""
    counts = dict(
        db.session.query(DepositOrder.status, func.count(DepositOrder.id))
        .group_by(DepositOrder.status)
        .all()
    )
    total_value, total_paid, total_due = (
        db.session.query(
            func.coalesce(func.sum(DepositOrder.total_amount_cents), 0),
            func.coalesce(func.sum(DepositOrder.amount_paid_cents), 0),
            func.coalesce(func.sum(DepositOrder.balance_due_cents), 0),
        )
        .filter(DepositOrder.status == DepositOrder.STATUS_ACTIVE)
        .one()
    )
    return {
        "counts": {status: int(counts.get(status, 0)) for status in ALL_STATUSES},
        "total_orders": int(sum(counts.values())),
        "active_total_value_cents": int(total_value),
        "active_total_paid_cents": int(total_paid),
        "active_balance_due_cents": int(total_due),
    }


def update_custom_item_cost(
    order_id: int,
    item_id: int,
    unit_cost_cents: int,
    *,
    category: str | None = None,
    description: str | None = None,
    actor_id: int | None = None,
    attempts: int = 3,
) -> DepositOrderItem:
    """
    Backfill cost (and optionally category/description) on a custom item.

    Only while the order is active. The balance is untouched: cost feeds
    profit and commission reporting, not what the customer owes.
    """
    if not isinstance(unit_cost_cents, int) or isinstance(unit_cost_cents, bool) or unit_cost_cents < 0:
        raise ValidationError("unit_cost_cents must be a non-negative integer", details={"field": "unit_cost_cents"})

    def _op():
        begin_write_transaction()
        order = get_order(order_id, lock=True)
        require_active(order, "update items on")

        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError(
                f"Item {item_id} not found on deposit order {order_id}",
                details={"entity": "deposit_order_item", "id": item_id},
            )
        if not item.is_custom_order:
            raise ValidationError(
                "Only custom items can have their cost updated",
                details={"field": "item_id", "item_id": item_id},
            )

        previous = item.unit_cost_cents
        item.unit_cost_cents = unit_cost_cents
        if category is not None:
            item.category = category
        if description is not None:
            item.description = description
        db.session.flush()

        append_ledger_event(
            event_type="deposit_item.cost_updated",
            event_category="deposits",
            entity_type="deposit_order_item",
            entity_id=item.id,
            actor_id=actor_id,
            deposit_order_id=order.id,
            occurred_at=utcnow(),
            payload={"previous_cost_cents": previous, "unit_cost_cents": unit_cost_cents},
        )

        db.session.commit()
        return item

    return run_with_retry(_op, attempts=attempts)
