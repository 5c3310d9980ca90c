# Overview: Service-layer maintenance jobs; the overdue-pickup expiry sweep.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import or_

from ..config import DepositPolicy
from ..errors import InvalidStateError
from ..extensions import db
from ..models import DepositOrder
from ..time_utils import utcnow
from .lifecycle_service import expire_order


def is_overdue(order: DepositOrder, cutoff: datetime) -> bool:
    """Python form of the find_overdue_orders filter, for re-checking a locked order."""
    if order.status != DepositOrder.STATUS_ACTIVE or order.expected_pickup_date is None:
        return False
    if order.expected_pickup_date >= cutoff.date():
        return False
    return order.last_payment_at is None or order.last_payment_at < cutoff


def find_overdue_orders(policy: DepositPolicy, *, now: datetime | None = None) -> list[DepositOrder]:
    """
    Active orders whose pickup date is more than expiry_overdue_days in the
    past and which have had no payment within that window.

    Orders without an expected pickup date are never overdue.
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=policy.expiry_overdue_days)
    return (
        db.session.query(DepositOrder)
        .filter(
            DepositOrder.status == DepositOrder.STATUS_ACTIVE,
            DepositOrder.expected_pickup_date.isnot(None),
            DepositOrder.expected_pickup_date < cutoff.date(),
            or_(DepositOrder.last_payment_at.is_(None), DepositOrder.last_payment_at < cutoff),
        )
        .order_by(DepositOrder.expected_pickup_date, DepositOrder.id)
        .all()
    )


def expire_overdue_orders(
    policy: DepositPolicy,
    now: datetime | None = None,
    *,
    actor_id: int | None = None,
    dry_run: bool = False,
) -> dict:
    """
    Expire every overdue order, one transaction per order.

    Eligibility is re-checked on the locked order, so an order that left
    active or took a payment between the scan and its own transaction is
    reported under "skipped".
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=policy.expiry_overdue_days)
    candidates = [(o.id, o.document_number, o.expected_pickup_date) for o in find_overdue_orders(policy, now=now)]
    # End the read transaction before taking write locks order by order
    db.session.rollback()

    result = {"expired": [], "skipped": [], "dry_run": dry_run}
    for order_id, document_number, pickup_date in candidates:
        if dry_run:
            result["expired"].append({"order_id": order_id, "document_number": document_number})
            continue
        days_over = (now.date() - pickup_date).days
        try:
            closure = expire_order(
                order_id,
                actor_id=actor_id,
                reason=f"Pickup overdue by {days_over} days",
                attempts=policy.lock_retry_attempts,
                eligible=lambda order: is_overdue(order, cutoff),
            )
        except InvalidStateError as exc:
            result["skipped"].append({
                "order_id": order_id,
                "document_number": document_number,
                "status": exc.details.get("status"),
                "reason": exc.message,
            })
            continue
        result["expired"].append({
            "order_id": order_id,
            "document_number": document_number,
            "refund_due_cents": closure.refund_due_cents,
        })
    return result
