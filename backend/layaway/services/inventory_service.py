# Overview: Service-layer operations for the inventory ledger; availability, reservations and on-hand changes.

from __future__ import annotations

from sqlalchemy import func

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import DepositOrder, DepositOrderItem, Product, StockItem, StockMovement
from ..time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
"""
Inventory Ledger Invariants (authoritative)

Stock model:
- StockItem.quantity_on_hand is the physical count. It changes ONLY on
  RECEIVE / ADJUST movements and on SALE deductions at order completion.
- Reserved quantity is derived, never stored:
    reserved(p) = SUM(item.quantity) over items of ACTIVE deposit orders
                  with item.product_id = p (custom-flagged lines included)
- available(p) = on_hand(p) - reserved(p)
- Products with track_stock = false are always available and never reserved.

Business invariants:
- On-hand may never go negative (also enforced by a CHECK constraint).
- Order creation never pushes reserved beyond on-hand.
- Leaving ACTIVE releases a reservation implicitly; no stock row is touched.

Locking:
- Callers lock the order row first, then StockItem rows in ascending
  product_id (lock_stock_items does the sorting).
"""

MOVEMENT_RECEIVE = "RECEIVE"
MOVEMENT_ADJUST = "ADJUST"
MOVEMENT_SALE = "SALE"


def get_product(product_id: int, *, require_active: bool = False) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(
            f"Product {product_id} not found",
            details={"entity": "product", "id": product_id},
        )
    if require_active and not product.is_active:
        raise ValidationError(
            f"Product '{product.name}' is inactive",
            details={"field": "product_id", "product_id": product_id},
        )
    return product


def lock_stock_items(product_ids) -> dict[int, StockItem]:
    """Lock StockItem rows in ascending product_id order. Missing rows are simply absent."""
    ids = sorted(set(product_ids))
    if not ids:
        return {}
    rows = (
        lock_for_update(db.session.query(StockItem).filter(StockItem.product_id.in_(ids)))
        .order_by(StockItem.product_id)
        .all()
    )
    return {row.product_id: row for row in rows}


def get_quantity_on_hand(product_id: int) -> int:
    on_hand = (
        db.session.query(StockItem.quantity_on_hand)
        .filter_by(product_id=product_id)
        .scalar()
    )
    return int(on_hand or 0)


def get_reserved_quantity(product_id: int, *, exclude_order_id: int | None = None) -> int:
    """
    Quantity claimed by active deposit orders.

    exclude_order_id leaves one order out, which is what completion needs:
    the completing order's own items must not count against themselves.
    """
    q = (
        db.session.query(func.coalesce(func.sum(DepositOrderItem.quantity), 0))
        .join(DepositOrder, DepositOrder.id == DepositOrderItem.deposit_order_id)
        .filter(
            DepositOrderItem.product_id == product_id,
            DepositOrder.status == DepositOrder.STATUS_ACTIVE,
        )
    )
    if exclude_order_id is not None:
        q = q.filter(DepositOrder.id != exclude_order_id)
    return int(q.scalar() or 0)


def get_available_quantity(product_id: int, *, exclude_order_id: int | None = None) -> int:
    return get_quantity_on_hand(product_id) - get_reserved_quantity(
        product_id, exclude_order_id=exclude_order_id
    )


def check_availability(product_id: int, requested_qty: int, *, exclude_order_id: int | None = None) -> bool:
    """True when requested_qty can be reserved or sold right now. Untracked products always pass."""
    if requested_qty <= 0:
        raise ValidationError("requested quantity must be positive", details={"field": "quantity"})
    product = get_product(product_id)
    if not product.track_stock:
        return True
    return get_available_quantity(product_id, exclude_order_id=exclude_order_id) >= requested_qty


def tracked_requests(items) -> dict[int, dict]:
    """
    Aggregate line items into per-product stock requests.

    Items without a product and products that do not track stock are
    skipped. A custom-order flag does not exempt a catalog product. Returns
    {product_id: {"product", "quantity"}} keyed in ascending product_id order.
    """
    requests: dict[int, dict] = {}
    for item in items:
        if item.product_id is None:
            continue
        entry = requests.get(item.product_id)
        if entry is None:
            product = get_product(item.product_id)
            if not product.track_stock:
                continue
            entry = requests[item.product_id] = {"product": product, "quantity": 0}
        entry["quantity"] += item.quantity
    return {pid: requests[pid] for pid in sorted(requests)}


def ensure_available(requests: dict[int, dict], *, exclude_order_id: int | None = None) -> dict[int, StockItem]:
    """
    Lock the affected stock rows and verify every request fits.

    All shortfalls are reported together so staff can fix the order in one go.
    Returns the locked StockItem rows keyed by product_id.
    """
    stock_rows = lock_stock_items(requests.keys())

    shortfalls = []
    for product_id, entry in requests.items():
        row = stock_rows.get(product_id)
        on_hand = row.quantity_on_hand if row is not None else 0
        available = on_hand - get_reserved_quantity(product_id, exclude_order_id=exclude_order_id)
        if available < entry["quantity"]:
            shortfalls.append({
                "product_id": product_id,
                "product_name": entry["product"].name,
                "requested_quantity": entry["quantity"],
                "available_quantity": max(0, available),
            })

    if shortfalls:
        names = ", ".join(
            f"{s['product_name']} (requested {s['requested_quantity']}, available {s['available_quantity']})"
            for s in shortfalls
        )
        raise InsufficientStockError(f"Insufficient stock: {names}", details={"items": shortfalls})

    return stock_rows


def release_reservation(order: DepositOrder, *, actor_id: int | None = None, occurred_at=None) -> list[dict]:
    """
    Record that an order's reservation no longer applies.

    Nothing is mutated: the status change that precedes this call is what
    removes the items from get_reserved_quantity(). The ledger event keeps
    the released quantities for audit.
    """
    released = [
        {"product_id": pid, "quantity": entry["quantity"]}
        for pid, entry in tracked_requests(order.items).items()
    ]
    append_ledger_event(
        event_type="inventory.reservation_released",
        event_category="inventory",
        entity_type="deposit_order",
        entity_id=order.id,
        actor_id=actor_id,
        deposit_order_id=order.id,
        occurred_at=occurred_at,
        payload={"released": released, "status": order.status},
    )
    return released


def _apply_movement(
    stock: StockItem,
    *,
    movement_type: str,
    quantity_delta: int,
    actor_id: int | None,
    note: str | None,
    occurred_at,
) -> StockMovement:
    new_qty = stock.quantity_on_hand + quantity_delta
    if new_qty < 0:
        raise InsufficientStockError(
            "On-hand quantity cannot go negative",
            details={"items": [{
                "product_id": stock.product_id,
                "product_name": stock.product.name,
                "requested_quantity": -quantity_delta,
                "available_quantity": stock.quantity_on_hand,
            }]},
        )
    stock.quantity_on_hand = new_qty
    movement = StockMovement(
        product_id=stock.product_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        quantity_after=new_qty,
        note=note,
        actor_id=actor_id,
        occurred_at=occurred_at,
    )
    db.session.add(movement)
    return movement


def commit_sale_deduction(
    sale_items,
    *,
    exclude_order_id: int | None = None,
    actor_id: int | None = None,
    occurred_at=None,
) -> list[StockMovement]:
    """
    Deduct on-hand for every tracked item being sold.

    Runs inside the caller's transaction (completion). Availability is
    re-read from the current state; stock drained by other sales since the
    order was created raises InsufficientStockError and the caller's whole
    unit of work rolls back.
    """
    occurred_at = occurred_at or utcnow()
    requests = tracked_requests(sale_items)
    stock_rows = ensure_available(requests, exclude_order_id=exclude_order_id)

    movements = []
    for product_id, entry in requests.items():
        movement = _apply_movement(
            stock_rows[product_id],
            movement_type=MOVEMENT_SALE,
            quantity_delta=-entry["quantity"],
            actor_id=actor_id,
            note=None,
            occurred_at=occurred_at,
        )
        movements.append(movement)

    db.session.flush()
    for movement in movements:
        append_ledger_event(
            event_type="inventory.sale_deducted",
            event_category="inventory",
            entity_type="stock_movement",
            entity_id=movement.id,
            actor_id=actor_id,
            deposit_order_id=exclude_order_id,
            occurred_at=occurred_at,
            payload={"product_id": movement.product_id, "quantity_delta": movement.quantity_delta},
        )
    return movements


def _get_or_create_stock_item(product: Product) -> StockItem:
    rows = lock_stock_items([product.id])
    stock = rows.get(product.id)
    if stock is None:
        stock = StockItem(product_id=product.id, quantity_on_hand=0)
        db.session.add(stock)
        db.session.flush()
    return stock


def receive_stock(
    product_id: int,
    quantity: int,
    *,
    actor_id: int | None = None,
    note: str | None = None,
    attempts: int = 3,
) -> StockMovement:
    """Goods in. Creates the StockItem row on first receipt."""
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"field": "quantity"})

    def _op():
        begin_write_transaction()
        product = get_product(product_id, require_active=True)
        if not product.track_stock:
            raise ValidationError(
                f"Product '{product.name}' does not track stock",
                details={"field": "product_id", "product_id": product_id},
            )
        stock = _get_or_create_stock_item(product)
        now = utcnow()
        movement = _apply_movement(
            stock,
            movement_type=MOVEMENT_RECEIVE,
            quantity_delta=quantity,
            actor_id=actor_id,
            note=note,
            occurred_at=now,
        )
        db.session.flush()

        append_ledger_event(
            event_type="inventory.received",
            event_category="inventory",
            entity_type="stock_movement",
            entity_id=movement.id,
            actor_id=actor_id,
            occurred_at=now,
            note=note,
            payload={"product_id": product_id, "quantity_delta": quantity},
        )

        db.session.commit()
        return movement

    return run_with_retry(_op, attempts=attempts)


def adjust_stock(
    product_id: int,
    quantity_delta: int,
    reason: str,
    *,
    actor_id: int | None = None,
    attempts: int = 3,
) -> StockMovement:
    """
    Manual correction (count differences, damage, found stock).

    A reason is mandatory. On-hand may drop below reserved (shrinkage is
    real); completion of the affected orders then fails its stock re-check.
    """
    if not isinstance(quantity_delta, int) or isinstance(quantity_delta, bool) or quantity_delta == 0:
        raise ValidationError("quantity_delta must be a non-zero integer", details={"field": "quantity_delta"})
    if not reason or not reason.strip():
        raise ValidationError("reason is required", details={"field": "reason"})

    def _op():
        begin_write_transaction()
        product = get_product(product_id)
        if not product.track_stock:
            raise ValidationError(
                f"Product '{product.name}' does not track stock",
                details={"field": "product_id", "product_id": product_id},
            )
        stock = _get_or_create_stock_item(product)
        now = utcnow()
        movement = _apply_movement(
            stock,
            movement_type=MOVEMENT_ADJUST,
            quantity_delta=quantity_delta,
            actor_id=actor_id,
            note=reason.strip(),
            occurred_at=now,
        )
        db.session.flush()

        append_ledger_event(
            event_type="inventory.adjusted",
            event_category="inventory",
            entity_type="stock_movement",
            entity_id=movement.id,
            actor_id=actor_id,
            occurred_at=now,
            note=reason.strip(),
            payload={"product_id": product_id, "quantity_delta": quantity_delta},
        )

        db.session.commit()
        return movement

    return run_with_retry(_op, attempts=attempts)


def get_stock_position(product_id: int) -> dict:
    product = get_product(product_id)
    on_hand = get_quantity_on_hand(product_id)
    if not product.track_stock:
        return {
            "product_id": product_id,
            "track_stock": False,
            "on_hand": on_hand,
            "reserved": 0,
            "available": None,
        }
    reserved = get_reserved_quantity(product_id)
    return {
        "product_id": product_id,
        "track_stock": True,
        "on_hand": on_hand,
        "reserved": reserved,
        "available": on_hand - reserved,
    }


def list_reserved_items() -> list[dict]:
    """Active reservations per product, largest first."""
    reserved = func.sum(DepositOrderItem.quantity).label("reserved")
    rows = (
        db.session.query(
            Product.id,
            Product.sku,
            Product.name,
            reserved,
            func.count(func.distinct(DepositOrder.id)).label("order_count"),
        )
        .join(DepositOrderItem, DepositOrderItem.product_id == Product.id)
        .join(DepositOrder, DepositOrder.id == DepositOrderItem.deposit_order_id)
        .filter(
            DepositOrder.status == DepositOrder.STATUS_ACTIVE,
            Product.track_stock.is_(True),
        )
        .group_by(Product.id, Product.sku, Product.name)
        .order_by(reserved.desc(), Product.id)
        .all()
    )

    results = []
    for product_id, sku, name, qty, order_count in rows:
        on_hand = get_quantity_on_hand(product_id)
        results.append({
            "product_id": product_id,
            "sku": sku,
            "product_name": name,
            "reserved": int(qty),
            "order_count": int(order_count),
            "on_hand": on_hand,
            "available": on_hand - int(qty),
        })
    return results
