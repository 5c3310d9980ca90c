# Overview: Service-layer operations for deposit payments; the payment recorder.

"""
Deposit Payment Recorder

WHY: Layaway customers pay in installments. Each installment is an
already-settled external fact (cash in the drawer, card authorised,
transfer received) that this engine records against the order.

DESIGN PRINCIPLES:
- Payments are append-only: never edited, never deleted
- Only ACTIVE orders accept payments
- amount_paid never exceeds the payable total by more than the configured
  overpayment tolerance (default 0: no overpayment at all)
- Totals are recomputed in the same transaction as the payment
- Cash payments emit a deposit_cash_in movement for the drawer ledger
"""

from __future__ import annotations

from datetime import datetime

from ..config import DepositPolicy
from ..errors import OverpaymentError, ValidationError
from ..extensions import db
from ..models import DepositOrder, DepositPayment
from ..time_utils import utcnow
from .cash_service import record_deposit_cash_in
from .concurrency import begin_write_transaction, run_with_retry
from .deposit_service import get_order, payable_total, payment_history, recompute_totals, require_active
from .ledger_service import append_ledger_event


def remaining_payable_cents(order: DepositOrder) -> int:
    return max(0, payable_total(order) - order.amount_paid_cents)


def apply_payment(
    order: DepositOrder,
    *,
    amount_cents: int,
    method: str,
    received_by: int,
    policy: DepositPolicy,
    reference: str | None = None,
    notes: str | None = None,
    received_at: datetime | None = None,
) -> DepositPayment:
    """
    Append a payment to an order that the caller already holds locked.

    Used by record_payment and by order creation (initial deposit); never
    commits.
    """
    require_active(order, "record a payment on")

    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError("Payment amount must be a positive integer", details={"field": "amount_cents"})
    if method not in DepositPayment.VALID_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method}. Must be one of {list(DepositPayment.VALID_METHODS)}",
            details={"field": "method"},
        )
    if received_by is None:
        raise ValidationError("received_by is required", details={"field": "received_by"})

    # Tolerance is a ceiling on the cumulative amount paid, not a per-payment allowance
    remaining = remaining_payable_cents(order)
    if order.amount_paid_cents + amount_cents > payable_total(order) + policy.overpayment_tolerance_cents:
        raise OverpaymentError(
            f"Payment of {amount_cents} exceeds remaining balance of {remaining}",
            details={
                "order_id": order.id,
                "amount_cents": amount_cents,
                "remaining_cents": remaining,
                "tolerance_cents": policy.overpayment_tolerance_cents,
            },
        )

    received_at = received_at or utcnow()
    payment = DepositPayment(
        amount_cents=amount_cents,
        method=method,
        reference=reference,
        notes=notes,
        received_by=received_by,
        received_at=received_at,
    )
    order.payments.append(payment)
    order.last_payment_at = received_at
    recompute_totals(order)
    db.session.flush()  # Get payment ID

    append_ledger_event(
        event_type="deposit_payment.recorded",
        event_category="payments",
        entity_type="deposit_payment",
        entity_id=payment.id,
        actor_id=received_by,
        deposit_order_id=order.id,
        payment_id=payment.id,
        occurred_at=received_at,
        payload={
            "amount_cents": amount_cents,
            "method": method,
            "balance_due_cents": order.balance_due_cents,
        },
    )
    record_deposit_cash_in(order, payment)
    return payment


def record_payment(
    order_id: int,
    amount_cents: int,
    method: str,
    *,
    received_by: int,
    policy: DepositPolicy,
    reference: str | None = None,
    notes: str | None = None,
) -> DepositPayment:
    """
    Record a payment against an active deposit order.

    Args:
        order_id: Deposit order being paid
        amount_cents: Amount received (positive, in cents)
        method: cash, card, transfer or other
        received_by: Actor who took the payment
        policy: Deposit policy (overpayment tolerance, retry attempts)
        reference: Card auth code, transfer reference, etc. (optional)
        notes: Free text (optional)

    Returns:
        The new DepositPayment; payment.order carries the updated balance.

    Raises:
        ValidationError: amount not positive, unknown method
        InvalidStateError: order is not active
        OverpaymentError: amount exceeds the remaining balance beyond tolerance
        ContentionError: the order stayed locked by another request
    """
    def _op():
        begin_write_transaction()
        order = get_order(order_id, lock=True)
        payment = apply_payment(
            order,
            amount_cents=amount_cents,
            method=method,
            received_by=received_by,
            policy=policy,
            reference=reference,
            notes=notes,
        )
        db.session.commit()
        return payment

    return run_with_retry(_op, attempts=policy.lock_retry_attempts)


def get_payment_summary(order_id: int) -> dict:
    """
    Payment state of an order.

    Returns:
        Dict with payable total, amount paid, balance due and the payment
        history with the running balance after each payment.
    """
    order = get_order(order_id)
    return {
        "order_id": order.id,
        "status": order.status,
        "total_amount_cents": order.total_amount_cents,
        "part_exchange_total_cents": order.part_exchange_total_cents,
        "payable_total_cents": payable_total(order),
        "amount_paid_cents": order.amount_paid_cents,
        "balance_due_cents": order.balance_due_cents,
        "payments": payment_history(order),
    }
