from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class DepositOrder(db.Model):
    """
    Deposit (layaway) order: goods held for a customer who pays in installments.

    LIFECYCLE:
        active -> completed | cancelled | voided | expired

    All states other than active are terminal; nothing on a terminal order
    may change again.

    CACHED TOTALS:
    total_amount_cents, part_exchange_total_cents, amount_paid_cents and
    balance_due_cents are recomputed from items, part exchanges and payments
    by deposit_service.recompute_totals() inside the same transaction as the
    change that triggered them. They are never written from client input.
    """
    __tablename__ = "deposit_orders"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_deposit_orders_document_number"),
        db.UniqueConstraint("sale_id", name="uq_deposit_orders_sale"),
        db.Index("ix_deposit_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    STATUS_ACTIVE = "active"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"
    STATUS_VOIDED = "voided"
    STATUS_EXPIRED = "expired"

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "D-0042")
    document_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE, index=True)

    # Customer (CRM reference is optional; walk-ins only have a name)
    customer_id = db.Column(db.Integer, nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=False, default="Walk-in Customer")
    notes = db.Column(db.Text, nullable=True)
    location_id = db.Column(db.Integer, nullable=True, index=True)
    expected_pickup_date = db.Column(db.Date, nullable=True, index=True)

    # Cached financial state (all amounts in cents)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    part_exchange_total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_due_cents = db.Column(db.Integer, nullable=False, default=0)
    last_payment_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Attribution and timestamps
    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Completion link; Sale.source_deposit_order_id holds the foreign key
    sale_id = db.Column(db.Integer, nullable=True)

    # Void / cancel / expire audit trail
    closed_by = db.Column(db.Integer, nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_reason = db.Column(db.String(255), nullable=True)
    # Money held for the customer when the order closed without a sale
    refund_due_cents = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "DepositOrderItem",
        back_populates="order",
        order_by="DepositOrderItem.id",
        lazy=True,
    )
    part_exchanges = db.relationship(
        "DepositOrderPartExchange",
        back_populates="order",
        order_by="DepositOrderPartExchange.id",
        lazy=True,
    )
    payments = db.relationship(
        "DepositPayment",
        back_populates="order",
        order_by=lambda: [DepositPayment.received_at, DepositPayment.id],
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE

    def to_dict(self, *, include_children: bool = False) -> dict:
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "status": self.status,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "notes": self.notes,
            "location_id": self.location_id,
            "expected_pickup_date": to_iso_date(self.expected_pickup_date),
            "total_amount_cents": self.total_amount_cents,
            "part_exchange_total_cents": self.part_exchange_total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "last_payment_at": to_utc_z(self.last_payment_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "sale_id": self.sale_id,
            "closed_by": self.closed_by,
            "closed_at": to_utc_z(self.closed_at),
            "closed_reason": self.closed_reason,
            "refund_due_cents": self.refund_due_cents,
            "version_id": self.version_id,
        }
        if include_children:
            data["items"] = [item.to_dict() for item in self.items]
            data["part_exchanges"] = [px.to_dict() for px in self.part_exchanges]
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class DepositOrderItem(db.Model):
    """
    Line item on a deposit order.

    product_id is null for custom (non-catalog) items. A catalog item whose
    product tracks stock reserves that stock for as long as the order is
    active.
    """
    __tablename__ = "deposit_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="unit_price_non_negative"),
        db.CheckConstraint("unit_cost_cents >= 0", name="unit_cost_non_negative"),
        db.Index("ix_deposit_order_items_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    is_custom_order = db.Column(db.Boolean, nullable=False, default=False)

    # Backfilled on custom items before completion
    category = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("DepositOrder", back_populates="items")
    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deposit_order_id": self.deposit_order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "is_custom_order": self.is_custom_order,
            "category": self.category,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class DepositOrderPartExchange(db.Model):
    """Trade-in allowance offered against a deposit order. Reduces the payable total, never stock."""
    __tablename__ = "deposit_order_part_exchanges"
    __table_args__ = (
        db.CheckConstraint("allowance_cents >= 0", name="allowance_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    serial = db.Column(db.String(128), nullable=True)
    allowance_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("DepositOrder", back_populates="part_exchanges")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deposit_order_id": self.deposit_order_id,
            "product_name": self.product_name,
            "category": self.category,
            "serial": self.serial,
            "allowance_cents": self.allowance_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class DepositPayment(db.Model):
    """
    Payment received against a deposit order.

    IMMUTABLE: payments are appended, never edited or deleted. Mistakes are
    corrected by voiding the order (which surfaces the refund obligation).

    METHODS: cash, card, transfer, other
    """
    __tablename__ = "deposit_payments"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="amount_positive"),
        db.Index("ix_deposit_payments_order_received", "deposit_order_id", "received_at"),
        {"sqlite_autoincrement": True},
    )

    METHOD_CASH = "cash"
    METHOD_CARD = "card"
    METHOD_TRANSFER = "transfer"
    METHOD_OTHER = "other"
    VALID_METHODS = (METHOD_CASH, METHOD_CARD, METHOD_TRANSFER, METHOD_OTHER)

    id = db.Column(db.Integer, primary_key=True)
    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False, index=True)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    received_by = db.Column(db.Integer, nullable=False, index=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    order = db.relationship("DepositOrder", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "deposit_order_id": self.deposit_order_id,
            "amount_cents": self.amount_cents,
            "method": self.method,
            "reference": self.reference,
            "notes": self.notes,
            "received_by": self.received_by,
            "received_at": to_utc_z(self.received_at),
        }


@event.listens_for(DepositPayment, "before_update")
def _reject_payment_update(mapper, connection, target):
    raise ValueError("Deposit payments are immutable")


@event.listens_for(DepositPayment, "before_delete")
def _reject_payment_delete(mapper, connection, target):
    raise ValueError("Deposit payments are immutable")
