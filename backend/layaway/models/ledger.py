from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class LedgerEvent(db.Model):
    """
    Append-only audit log of domain events.

    Written in the same DB transaction as the change it records, so an
    event exists if and only if its change was committed.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_order_occurred", "deposit_order_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., deposit_order.created, inventory.sale_deducted
    event_category = db.Column(db.String(32), nullable=False, index=True)  # deposits, payments, inventory, sales, consignment

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    # Actor and cross-module references
    actor_id = db.Column(db.Integer, nullable=True, index=True)
    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("deposit_payments.id"), nullable=True, index=True)

    # Business vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Optional structured metadata (keep small; do not denormalize domain state)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "deposit_order_id": self.deposit_order_id,
            "sale_id": self.sale_id,
            "payment_id": self.payment_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }


class DocumentSequence(db.Model):
    """
    Atomic document sequences.

    WHY: Prevent race conditions when generating document numbers
    (deposit orders, sales).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class CashMovement(db.Model):
    """
    Cash movement fact for the external cash-drawer ledger (outbox).

    This engine does not keep drawer balances. It records what happened and
    the drawer ledger picks pending rows up and acknowledges them.

    TYPES:
    - deposit_cash_in (IN): cash payment taken against a deposit order
    - deposit_applied (RECLASS): deposit cash becomes sale takings on completion
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_pending", "acknowledged_at", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    movement_type = db.Column(db.String(32), nullable=False, index=True)
    direction = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    reference = db.Column(db.String(128), nullable=False)

    location_id = db.Column(db.Integer, nullable=True, index=True)
    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("deposit_payments.id"), nullable=True)

    actor_id = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "movement_type": self.movement_type,
            "direction": self.direction,
            "amount_cents": self.amount_cents,
            "reference": self.reference,
            "location_id": self.location_id,
            "deposit_order_id": self.deposit_order_id,
            "sale_id": self.sale_id,
            "payment_id": self.payment_id,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "acknowledged_at": to_utc_z(self.acknowledged_at),
        }
