"""
Sale Finalizer - turns a fully paid deposit order into an immutable sale

WHY: Once the customer has paid in full, the goods leave the shop and the
order becomes a normal sale for reporting, commission and consignment
payouts. The sale is a snapshot: price and cost are copied at completion
time, never read back from the live catalog.

Also owns the downstream records a sale produces:
- ConsignmentSettlement: one per sold line whose product is consigned
  (payout = unit cost x quantity, sale price = unit price x quantity)
- PartExchange: trade-ins handed in against the order, pending disposition
"""

from __future__ import annotations

from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ConsignmentSettlement, DepositOrder, PartExchange, Product, Sale, SaleLine
from ..time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .document_service import DOC_SALE, next_document_number
from .ledger_service import append_ledger_event

SALE_NUMBER_PREFIX = "S"


# =============================================================================
# TOTALS
# =============================================================================

def compute_line_amounts(
    unit_price_cents: int,
    quantity: int,
    *,
    discount_cents: int = 0,
    tax_rate_bps: int = 0,
) -> dict:
    """
    Amounts for one sale line.

    Tax applies to the post-discount amount: rate in basis points
    (2000 = 20%), rounded half-up to the nearest cent.
    """
    gross = unit_price_cents * quantity
    if discount_cents < 0 or discount_cents > gross:
        raise ValidationError("discount must be between 0 and the line amount", details={"field": "discount_cents"})
    if tax_rate_bps < 0:
        raise ValidationError("tax rate cannot be negative", details={"field": "tax_rate_bps"})
    taxable = gross - discount_cents
    tax = (taxable * tax_rate_bps + 5_000) // 10_000
    return {
        "gross_cents": gross,
        "discount_cents": discount_cents,
        "tax_cents": tax,
        "line_total_cents": taxable + tax,
    }


def compute_sale_totals(lines) -> dict:
    """subtotal = sum of gross; total = subtotal - discount + tax."""
    subtotal = sum(line.unit_price_cents * line.quantity for line in lines)
    discount = sum(line.discount_cents or 0 for line in lines)
    tax = sum(line.tax_cents or 0 for line in lines)
    return {
        "subtotal_cents": subtotal,
        "discount_cents": discount,
        "tax_cents": tax,
        "total_cents": subtotal - discount + tax,
    }


# =============================================================================
# FINALIZATION
# =============================================================================

def finalize_sale(
    order: DepositOrder,
    *,
    actor_id: int | None = None,
    sold_at=None,
) -> Sale:
    """
    Build the sale snapshot for an order inside the caller's transaction.

    Deposit prices are all-in, so converted lines carry no discount and no
    separate tax: the sale total equals the order total. Never commits.
    """
    sold_at = sold_at or utcnow()
    document_number = next_document_number(document_type=DOC_SALE, prefix=SALE_NUMBER_PREFIX)

    sale = Sale(
        document_number=document_number,
        source_deposit_order_id=order.id,
        customer_id=order.customer_id,
        customer_name=order.customer_name,
        location_id=order.location_id,
        notes=order.notes,
        subtotal_cents=0,
        total_cents=0,
        part_exchange_total_cents=order.part_exchange_total_cents,
        amount_paid_cents=order.amount_paid_cents,
        sold_at=sold_at,
        created_by=actor_id,
    )
    db.session.add(sale)

    for item in order.items:
        amounts = compute_line_amounts(item.unit_price_cents, item.quantity)
        sale.lines.append(SaleLine(
            product_id=item.product_id,
            deposit_order_item_id=item.id,
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price_cents=item.unit_price_cents,
            unit_cost_cents=item.unit_cost_cents,
            discount_cents=amounts["discount_cents"],
            tax_rate_bps=0,
            tax_cents=amounts["tax_cents"],
            line_total_cents=amounts["line_total_cents"],
            is_custom_order=item.is_custom_order,
            category=item.category,
        ))

    totals = compute_sale_totals(sale.lines)
    sale.subtotal_cents = totals["subtotal_cents"]
    sale.discount_cents = totals["discount_cents"]
    sale.tax_cents = totals["tax_cents"]
    sale.total_cents = totals["total_cents"]
    db.session.flush()  # Get sale and line IDs

    settlements = _create_consignment_settlements(sale)
    part_exchanges = _create_part_exchanges(order, sale)

    append_ledger_event(
        event_type="sale.created",
        event_category="sales",
        entity_type="sale",
        entity_id=sale.id,
        actor_id=actor_id,
        deposit_order_id=order.id,
        sale_id=sale.id,
        occurred_at=sold_at,
        payload={
            "document_number": sale.document_number,
            "total_cents": sale.total_cents,
            "line_count": len(sale.lines),
            "settlement_count": len(settlements),
            "part_exchange_count": len(part_exchanges),
        },
    )
    for settlement in settlements:
        append_ledger_event(
            event_type="consignment_settlement.created",
            event_category="consignment",
            entity_type="consignment_settlement",
            entity_id=settlement.id,
            actor_id=actor_id,
            sale_id=sale.id,
            occurred_at=sold_at,
            payload={
                "supplier_id": settlement.supplier_id,
                "payout_amount_cents": settlement.payout_amount_cents,
            },
        )
    return sale


def _create_consignment_settlements(sale: Sale) -> list[ConsignmentSettlement]:
    settlements = []
    for line in sale.lines:
        if line.product_id is None:
            continue
        product = db.session.get(Product, line.product_id)
        if product is None or not product.is_consignment:
            continue
        settlement = ConsignmentSettlement(
            product_id=line.product_id,
            sale_id=sale.id,
            sale_line_id=line.id,
            supplier_id=product.consignment_supplier_id,
            sale_price_cents=line.unit_price_cents * line.quantity,
            payout_amount_cents=line.unit_cost_cents * line.quantity,
        )
        db.session.add(settlement)
        settlements.append(settlement)
    db.session.flush()
    return settlements


def _create_part_exchanges(order: DepositOrder, sale: Sale) -> list[PartExchange]:
    records = []
    for px in order.part_exchanges:
        record = PartExchange(
            sale_id=sale.id,
            deposit_order_id=order.id,
            title=px.product_name,
            category=px.category,
            serial=px.serial,
            allowance_cents=px.allowance_cents,
            customer_name=order.customer_name,
            notes=px.notes,
            status=PartExchange.STATUS_PENDING,
        )
        db.session.add(record)
        records.append(record)
    db.session.flush()
    return records


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"entity": "sale", "id": sale_id})
    return sale


def get_sale_detail(sale_id: int) -> dict:
    sale = get_sale(sale_id)
    data = sale.to_dict()
    data["lines"] = [line.to_dict() for line in sale.lines]
    data["consignment_settlements"] = [s.to_dict() for s in sale.consignment_settlements]
    data["part_exchanges"] = [px.to_dict() for px in sale.part_exchanges]
    return data


def list_unsettled_consignments(*, supplier_id: int | None = None) -> list[ConsignmentSettlement]:
    query = db.session.query(ConsignmentSettlement).filter(ConsignmentSettlement.paid_at.is_(None))
    if supplier_id is not None:
        query = query.filter_by(supplier_id=supplier_id)
    return query.order_by(ConsignmentSettlement.created_at, ConsignmentSettlement.id).all()


# =============================================================================
# CONSIGNMENT PAYOUTS & TRADE-INS
# =============================================================================

def mark_settlement_paid(settlement_id: int, *, paid_by: int, attempts: int = 3) -> ConsignmentSettlement:
    """Stamp a settlement as paid. A settlement is paid exactly once."""
    def _op():
        begin_write_transaction()
        settlement = lock_for_update(
            db.session.query(ConsignmentSettlement).filter_by(id=settlement_id)
        ).first()
        if settlement is None:
            raise NotFoundError(
                f"Consignment settlement {settlement_id} not found",
                details={"entity": "consignment_settlement", "id": settlement_id},
            )
        if settlement.paid_at is not None:
            raise InvalidStateError(
                f"Consignment settlement {settlement_id} is already paid",
                details={"settlement_id": settlement_id, "status": "paid"},
            )

        settlement.paid_at = utcnow()
        settlement.paid_by = paid_by
        db.session.flush()

        append_ledger_event(
            event_type="consignment_settlement.paid",
            event_category="consignment",
            entity_type="consignment_settlement",
            entity_id=settlement.id,
            actor_id=paid_by,
            sale_id=settlement.sale_id,
            occurred_at=settlement.paid_at,
            payload={"payout_amount_cents": settlement.payout_amount_cents},
        )

        db.session.commit()
        return settlement

    return run_with_retry(_op, attempts=attempts)


def _get_part_exchange_locked(part_exchange_id: int) -> PartExchange:
    record = lock_for_update(db.session.query(PartExchange).filter_by(id=part_exchange_id)).first()
    if record is None:
        raise NotFoundError(
            f"Part exchange {part_exchange_id} not found",
            details={"entity": "part_exchange", "id": part_exchange_id},
        )
    return record


def _record_part_exchange_event(record: PartExchange, event_type: str, actor_id: int | None, note: str | None = None) -> None:
    append_ledger_event(
        event_type=event_type,
        event_category="sales",
        entity_type="part_exchange",
        entity_id=record.id,
        actor_id=actor_id,
        deposit_order_id=record.deposit_order_id,
        sale_id=record.sale_id,
        occurred_at=utcnow(),
        note=note,
        payload={"status": record.status},
    )


def hold_part_exchange(part_exchange_id: int, reason: str, *, actor_id: int | None = None, attempts: int = 3) -> PartExchange:
    """Park a pending trade-in (e.g. awaiting checks). Only pending trade-ins can be held."""
    if not reason or not reason.strip():
        raise ValidationError("reason is required", details={"field": "reason"})

    def _op():
        begin_write_transaction()
        record = _get_part_exchange_locked(part_exchange_id)
        if record.status != PartExchange.STATUS_PENDING:
            raise InvalidStateError(
                f"Cannot hold a part exchange in status {record.status}",
                details={"part_exchange_id": record.id, "status": record.status},
            )
        record.status = PartExchange.STATUS_HOLD
        record.hold_reason = reason.strip()[:255]
        record.hold_at = utcnow()
        record.hold_by = actor_id
        db.session.flush()

        _record_part_exchange_event(record, "part_exchange.held", actor_id, note=record.hold_reason)

        db.session.commit()
        return record

    return run_with_retry(_op, attempts=attempts)


def release_part_exchange_hold(part_exchange_id: int, *, actor_id: int | None = None, attempts: int = 3) -> PartExchange:
    """Return a held trade-in to pending."""
    def _op():
        begin_write_transaction()
        record = _get_part_exchange_locked(part_exchange_id)
        if record.status != PartExchange.STATUS_HOLD:
            raise InvalidStateError(
                f"Part exchange {record.id} is not on hold",
                details={"part_exchange_id": record.id, "status": record.status},
            )
        record.status = PartExchange.STATUS_PENDING
        record.hold_reason = None
        record.hold_at = None
        record.hold_by = None
        db.session.flush()

        _record_part_exchange_event(record, "part_exchange.released", actor_id)

        db.session.commit()
        return record

    return run_with_retry(_op, attempts=attempts)
