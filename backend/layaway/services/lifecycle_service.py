# Overview: Service-layer operations for the deposit order lifecycle; create, complete, void, cancel, expire.

"""
Deposit Order Lifecycle Controller

================================================================================
PURPOSE: Drive deposit orders through their states, orchestrating the
inventory ledger, the order aggregate and the sale finalizer atomically
================================================================================

STATE MACHINE:
    active -> completed | cancelled | voided | expired

    active:     Goods reserved, payments accepted
    completed:  Paid in full, converted to exactly one Sale, stock deducted
    cancelled:  Closed before money changed hands (reservation released)
    voided:     Closed after payments (reservation released, refund due)
    expired:    Closed by the overdue-pickup sweep (reservation released)

RULES (NON-NEGOTIABLE):
1. Every state other than active is terminal; nothing changes afterwards
2. Completion requires balance_due == 0
3. Completion re-checks stock against the CURRENT state, not the state at
   creation; a shortfall aborts everything and the order stays active
4. Cancel / void / expire never touch on-hand stock (nothing was deducted)
5. Each operation is one transaction: all side effects or none

CONCURRENCY:
- Every transition locks the order row first, then stock rows in ascending
  product_id. Competing terminal transitions are serialized; the loser
  re-reads the order and gets InvalidStateError.
- Sale.source_deposit_order_id is unique, so a second sale for the same
  order cannot be committed even if every other check were bypassed.

================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError

from ..config import DepositPolicy
from ..errors import InvalidStateError, ValidationError
from ..extensions import db
from ..models import DepositOrder, DepositOrderItem, DepositOrderPartExchange, Sale
from ..time_utils import utcnow
from ..validation import CreateOrderInput
from .cash_service import record_deposit_applied
from .concurrency import begin_write_transaction, run_with_retry
from .deposit_service import ALL_STATUSES, get_order, recompute_totals, unset_custom_cost_items
from .document_service import DOC_DEPOSIT_ORDER, next_document_number
from .inventory_service import commit_sale_deduction, ensure_available, get_product, release_reservation, tracked_requests
from .ledger_service import append_ledger_event
from .payment_service import apply_payment
from .sales_service import finalize_sale

ORDER_NUMBER_PREFIX = "D"
DEFAULT_CUSTOMER_NAME = "Walk-in Customer"

VALID_TRANSITIONS = {
    (DepositOrder.STATUS_ACTIVE, DepositOrder.STATUS_COMPLETED),
    (DepositOrder.STATUS_ACTIVE, DepositOrder.STATUS_CANCELLED),
    (DepositOrder.STATUS_ACTIVE, DepositOrder.STATUS_VOIDED),
    (DepositOrder.STATUS_ACTIVE, DepositOrder.STATUS_EXPIRED),
}

# Prefix written into order notes when an order is closed with a reason
_CLOSURE_NOTE_LABELS = {
    DepositOrder.STATUS_CANCELLED: "Cancellation reason",
    DepositOrder.STATUS_VOIDED: "Void reason",
    DepositOrder.STATUS_EXPIRED: "Expiry reason",
}


@dataclass
class CompletionResult:
    sale: Sale
    order: DepositOrder
    advisories: list[dict] = field(default_factory=list)


@dataclass
class OrderClosure:
    """Outcome of cancel / void / expire. refund_due_cents is for the caller to action."""
    order: DepositOrder
    refund_due_cents: int
    released: list[dict] = field(default_factory=list)


def validate_status(status: str) -> None:
    if status not in ALL_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ALL_STATUSES)}",
            details={"field": "status"},
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Valid transitions all start at active. Terminal states go nowhere,
    including to themselves (voiding twice is an error, not a no-op).
    """
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in VALID_TRANSITIONS


def _require_transition(order: DepositOrder, to_status: str) -> None:
    if not can_transition(order.status, to_status):
        raise InvalidStateError(
            f"Deposit order {order.document_number} is already {order.status}",
            details={
                "order_id": order.id,
                "status": order.status,
                "balance_due_cents": order.balance_due_cents,
            },
        )


# =============================================================================
# CREATE
# =============================================================================

def _build_item(item_input) -> DepositOrderItem:
    if item_input.product_id is None:
        return DepositOrderItem(
            product_id=None,
            product_name=item_input.product_name,
            quantity=item_input.quantity,
            unit_price_cents=item_input.unit_price_cents,
            unit_cost_cents=item_input.unit_cost_cents or 0,
            is_custom_order=True,
            category=item_input.category,
            description=item_input.description,
        )

    product = get_product(item_input.product_id, require_active=True)
    unit_price = item_input.unit_price_cents if item_input.unit_price_cents is not None else product.price_cents
    if unit_price is None:
        raise ValidationError(
            f"Product '{product.name}' has no price; unit_price_cents is required",
            details={"field": "unit_price_cents", "product_id": product.id},
        )
    if item_input.unit_cost_cents is not None:
        unit_cost = item_input.unit_cost_cents
    else:
        unit_cost = 0 if item_input.is_custom_order else (product.unit_cost_cents or 0)

    return DepositOrderItem(
        product_id=product.id,
        product_name=item_input.product_name or product.name,
        quantity=item_input.quantity,
        unit_price_cents=unit_price,
        unit_cost_cents=unit_cost,
        is_custom_order=item_input.is_custom_order,
        category=item_input.category,
        description=item_input.description,
    )


def create_order(data: CreateOrderInput, *, actor_id: int, policy: DepositPolicy) -> DepositOrder:
    """
    Create an active deposit order, reserving stock for its tracked items.

    Availability for every tracked product is checked (and the stock rows
    locked) before anything is written; any shortfall raises
    InsufficientStockError listing each offending item and nothing is
    persisted. An initial payment is applied in the same transaction.
    """
    def _op():
        begin_write_transaction()

        # Items stay transient until stock is confirmed, so they are not
        # counted as reservations by the availability queries
        items = [_build_item(item_input) for item_input in data.items]
        ensure_available(tracked_requests(items))

        now = utcnow()
        order = DepositOrder(
            document_number=next_document_number(
                document_type=DOC_DEPOSIT_ORDER, prefix=ORDER_NUMBER_PREFIX
            ),
            status=DepositOrder.STATUS_ACTIVE,
            customer_id=data.customer_id,
            customer_name=data.customer_name or DEFAULT_CUSTOMER_NAME,
            notes=data.notes,
            location_id=data.location_id,
            expected_pickup_date=data.expected_pickup_date,
            created_by=actor_id,
            created_at=now,
        )
        order.items = items
        order.part_exchanges = [
            DepositOrderPartExchange(
                product_name=px.product_name,
                category=px.category,
                serial=px.serial,
                allowance_cents=px.allowance_cents,
                notes=px.notes,
            )
            for px in data.part_exchanges
        ]
        recompute_totals(order)
        db.session.add(order)
        db.session.flush()

        append_ledger_event(
            event_type="deposit_order.created",
            event_category="deposits",
            entity_type="deposit_order",
            entity_id=order.id,
            actor_id=actor_id,
            deposit_order_id=order.id,
            occurred_at=now,
            payload={
                "document_number": order.document_number,
                "total_amount_cents": order.total_amount_cents,
                "part_exchange_total_cents": order.part_exchange_total_cents,
                "item_count": len(items),
            },
        )

        if data.initial_payment is not None:
            apply_payment(
                order,
                amount_cents=data.initial_payment.amount_cents,
                method=data.initial_payment.method,
                reference=data.initial_payment.reference,
                notes=data.initial_payment.notes,
                received_by=actor_id,
                policy=policy,
                received_at=now,
            )

        db.session.commit()
        return order

    return run_with_retry(_op, attempts=policy.lock_retry_attempts)


# =============================================================================
# COMPLETE
# =============================================================================

def complete_order(order_id: int, *, actor_id: int, policy: DepositPolicy) -> CompletionResult:
    """
    Convert a fully paid active order into a Sale.

    Steps, as one transaction:
        (a) re-validate and deduct stock (commit_sale_deduction)
        (b) create the sale and its line snapshot
        (c) create consignment settlements for consigned lines
        (d) persist part exchanges as pending trade-ins
        (e) mark the order completed

    Custom items without a cost produce advisories (or a ValidationError
    when policy.allow_unset_custom_cost is off). Any failure rolls back
    everything: no sale, no deduction, order still active.
    """
    def _op():
        begin_write_transaction()
        order = get_order(order_id, lock=True)
        _require_transition(order, DepositOrder.STATUS_COMPLETED)

        recompute_totals(order)
        if order.balance_due_cents > 0:
            raise InvalidStateError(
                f"Deposit order {order.document_number} still has a balance due",
                details={
                    "order_id": order.id,
                    "status": order.status,
                    "balance_due_cents": order.balance_due_cents,
                },
            )

        unset = unset_custom_cost_items(order)
        if unset and not policy.allow_unset_custom_cost:
            raise ValidationError(
                "Custom items need a cost before completion",
                details={"field": "unit_cost_cents", "item_ids": [item.id for item in unset]},
            )
        advisories = [
            {
                "code": "custom_cost_unset",
                "item_id": item.id,
                "product_name": item.product_name,
                "message": f"Cost not set for custom item '{item.product_name}'",
            }
            for item in unset
        ]

        now = utcnow()
        movements = commit_sale_deduction(
            order.items,
            exclude_order_id=order.id,
            actor_id=actor_id,
            occurred_at=now,
        )
        sale = finalize_sale(order, actor_id=actor_id, sold_at=now)
        for movement in movements:
            movement.sale_id = sale.id

        order.status = DepositOrder.STATUS_COMPLETED
        order.completed_at = now
        order.sale_id = sale.id
        db.session.flush()

        append_ledger_event(
            event_type="deposit_order.completed",
            event_category="deposits",
            entity_type="deposit_order",
            entity_id=order.id,
            actor_id=actor_id,
            deposit_order_id=order.id,
            sale_id=sale.id,
            occurred_at=now,
            payload={
                "sale_document_number": sale.document_number,
                "total_cents": sale.total_cents,
                "advisory_count": len(advisories),
            },
        )
        record_deposit_applied(order, sale, actor_id=actor_id)

        db.session.commit()
        return CompletionResult(sale=sale, order=order, advisories=advisories)

    try:
        return run_with_retry(_op, attempts=policy.lock_retry_attempts)
    except IntegrityError as exc:
        if not _lost_completion_race(exc, order_id):
            raise
        raise InvalidStateError(
            "Deposit order was completed by another request",
            details={"order_id": order_id, "status": DepositOrder.STATUS_COMPLETED},
        ) from exc


def _lost_completion_race(exc: IntegrityError, order_id: int) -> bool:
    """
    True when the violation is the one-sale-per-order constraint, or the
    order turns out to be completed already. run_with_retry has rolled back.
    """
    diag = getattr(exc.orig, "diag", None)
    if getattr(diag, "constraint_name", None) == "uq_sales_source_deposit_order":
        return True
    order = db.session.get(DepositOrder, order_id)
    return order is not None and order.status == DepositOrder.STATUS_COMPLETED


# =============================================================================
# VOID / CANCEL / EXPIRE
# =============================================================================

def _close_order(
    order_id: int,
    to_status: str,
    *,
    actor_id: int | None,
    reason: str | None,
    attempts: int,
    eligible=None,
) -> OrderClosure:
    def _op():
        begin_write_transaction()
        order = get_order(order_id, lock=True)
        _require_transition(order, to_status)
        # Re-checked under the lock; the caller may have decided on a stale read
        if eligible is not None and not eligible(order):
            raise InvalidStateError(
                f"Deposit order {order.document_number} no longer qualifies to be {to_status}",
                details={
                    "order_id": order.id,
                    "status": order.status,
                    "balance_due_cents": order.balance_due_cents,
                },
            )

        recompute_totals(order)
        now = utcnow()
        order.status = to_status
        order.closed_by = actor_id
        order.closed_at = now
        order.refund_due_cents = order.amount_paid_cents
        if reason:
            order.closed_reason = reason[:255]
            line = f"{_CLOSURE_NOTE_LABELS[to_status]}: {reason}"
            order.notes = f"{order.notes}\n{line}" if order.notes else line
        db.session.flush()

        append_ledger_event(
            event_type=f"deposit_order.{to_status}",
            event_category="deposits",
            entity_type="deposit_order",
            entity_id=order.id,
            actor_id=actor_id,
            deposit_order_id=order.id,
            occurred_at=now,
            note=reason,
            payload={"refund_due_cents": order.refund_due_cents},
        )
        released = release_reservation(order, actor_id=actor_id, occurred_at=now)

        db.session.commit()
        return OrderClosure(order=order, refund_due_cents=order.refund_due_cents, released=released)

    return run_with_retry(_op, attempts=attempts)


def void_order(order_id: int, *, actor_id: int, reason: str | None = None, attempts: int = 3) -> OrderClosure:
    """
    Void an active order that has taken money.

    Releases the reservation and surfaces amount_paid as refund_due_cents;
    moving the money back is the caller's job.
    """
    return _close_order(order_id, DepositOrder.STATUS_VOIDED, actor_id=actor_id, reason=reason, attempts=attempts)


def cancel_order(order_id: int, *, actor_id: int, reason: str | None = None, attempts: int = 3) -> OrderClosure:
    """Cancel an active order. Same mechanics as void_order; used when no money changed hands."""
    return _close_order(order_id, DepositOrder.STATUS_CANCELLED, actor_id=actor_id, reason=reason, attempts=attempts)


def expire_order(
    order_id: int,
    *,
    actor_id: int | None = None,
    reason: str | None = None,
    attempts: int = 3,
    eligible=None,
) -> OrderClosure:
    """
    System-driven close for overdue pickups; no reason required.

    eligible(order), when given, is evaluated on the locked order and a
    False result raises InvalidStateError with the order left active.
    """
    return _close_order(
        order_id,
        DepositOrder.STATUS_EXPIRED,
        actor_id=actor_id,
        reason=reason,
        attempts=attempts,
        eligible=eligible,
    )
