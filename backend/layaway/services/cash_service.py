# Overview: Service-layer outbox of cash movement facts for the external cash-drawer ledger.

"""
Cash Movement Outbox

This engine never keeps drawer balances. It records cash facts in the same
transaction as the payment or completion that caused them, and the cash
drawer ledger polls pending rows and acknowledges them once recorded.

MOVEMENTS:
- deposit_cash_in (IN): a cash payment was taken against a deposit order
- deposit_applied (RECLASS): on completion, the cash held as deposit
  becomes takings of the resulting sale (reference = sale number)
"""

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import CashMovement, DepositOrder, DepositPayment, Sale
from ..time_utils import utcnow
from .concurrency import begin_write_transaction, run_with_retry


# =============================================================================
# MOVEMENT TYPES (CONSTANTS)
# =============================================================================

MOVEMENT_DEPOSIT_CASH_IN = "deposit_cash_in"
MOVEMENT_DEPOSIT_APPLIED = "deposit_applied"

DIRECTION_IN = "IN"
DIRECTION_RECLASS = "RECLASS"


def cash_paid_cents(order: DepositOrder) -> int:
    return sum(p.amount_cents for p in order.payments if p.method == DepositPayment.METHOD_CASH)


def record_deposit_cash_in(order: DepositOrder, payment: DepositPayment) -> CashMovement | None:
    """Emit an IN movement for a cash payment. Other methods move no drawer cash."""
    if payment.method != DepositPayment.METHOD_CASH:
        return None
    movement = CashMovement(
        movement_type=MOVEMENT_DEPOSIT_CASH_IN,
        direction=DIRECTION_IN,
        amount_cents=payment.amount_cents,
        reference=order.document_number,
        location_id=order.location_id,
        deposit_order_id=order.id,
        payment_id=payment.id,
        actor_id=payment.received_by,
        occurred_at=payment.received_at,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def record_deposit_applied(order: DepositOrder, sale: Sale, *, actor_id: int | None = None) -> CashMovement | None:
    """Reclassify the order's deposit cash as sale takings. Nothing to do when no cash was taken."""
    amount = cash_paid_cents(order)
    if amount <= 0:
        return None
    movement = CashMovement(
        movement_type=MOVEMENT_DEPOSIT_APPLIED,
        direction=DIRECTION_RECLASS,
        amount_cents=amount,
        reference=sale.document_number,
        location_id=order.location_id,
        deposit_order_id=order.id,
        sale_id=sale.id,
        actor_id=actor_id,
        occurred_at=sale.sold_at,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def list_pending_cash_movements(*, limit: int = 500) -> list[CashMovement]:
    return (
        db.session.query(CashMovement)
        .filter(CashMovement.acknowledged_at.is_(None))
        .order_by(CashMovement.occurred_at, CashMovement.id)
        .limit(limit)
        .all()
    )


def acknowledge_cash_movements(ids: list[int], *, attempts: int = 3) -> list[CashMovement]:
    """
    Mark movements as recorded by the drawer ledger.

    Re-acknowledging is harmless (the first timestamp is kept); unknown ids
    fail the whole batch.
    """
    def _op():
        begin_write_transaction()
        wanted = sorted(set(ids))
        rows = (
            db.session.query(CashMovement)
            .filter(CashMovement.id.in_(wanted))
            .order_by(CashMovement.id)
            .all()
        )
        missing = sorted(set(wanted) - {row.id for row in rows})
        if missing:
            raise NotFoundError(
                f"Cash movement(s) not found: {', '.join(str(i) for i in missing)}",
                details={"entity": "cash_movement", "id": missing[0]},
            )

        now = utcnow()
        for row in rows:
            if row.acknowledged_at is None:
                row.acknowledged_at = now

        db.session.commit()
        return rows

    return run_with_retry(_op, attempts=attempts)
