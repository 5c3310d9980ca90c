from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Finalized sale produced by completing a deposit order.

    IMMUTABLE SNAPSHOT: lines copy price and cost at completion time rather
    than referencing live product data. Corrections go through a separate
    void-sale path, never by editing a sale.

    The unique source_deposit_order_id guarantees at most one sale per order,
    even if two completions race past every other check.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_sales_document_number"),
        db.UniqueConstraint("source_deposit_order_id", name="uq_sales_source_deposit_order"),
        db.Index("ix_sales_sold_at", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "S-001234")
    document_number = db.Column(db.String(64), nullable=False)

    source_deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=False)

    customer_id = db.Column(db.Integer, nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    location_id = db.Column(db.Integer, nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    # Totals (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    part_exchange_total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_by = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    source_deposit_order = db.relationship("DepositOrder", foreign_keys=[source_deposit_order_id])
    lines = db.relationship("SaleLine", back_populates="sale", order_by="SaleLine.id", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "source_deposit_order_id": self.source_deposit_order_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "location_id": self.location_id,
            "notes": self.notes,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "part_exchange_total_cents": self.part_exchange_total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "sold_at": to_utc_z(self.sold_at),
            "created_by": self.created_by,
            "version_id": self.version_id,
        }


class SaleLine(db.Model):
    """Line snapshot on a sale document."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    deposit_order_item_id = db.Column(db.Integer, db.ForeignKey("deposit_order_items.id"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)
    is_custom_order = db.Column(db.Boolean, nullable=False, default=False)
    category = db.Column(db.String(128), nullable=True)

    sale = db.relationship("Sale", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "deposit_order_item_id": self.deposit_order_item_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "discount_cents": self.discount_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "tax_cents": self.tax_cents,
            "line_total_cents": self.line_total_cents,
            "is_custom_order": self.is_custom_order,
            "category": self.category,
        }


class ConsignmentSettlement(db.Model):
    """
    Payout owed to a supplier for a consigned item that sold.

    One row per sold line whose product is consignment-flagged.
    paid_at stays NULL until the payout is recorded.
    """
    __tablename__ = "consignment_settlements"
    __table_args__ = (
        db.Index("ix_consignment_settlements_unpaid", "paid_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    sale_line_id = db.Column(db.Integer, db.ForeignKey("sale_lines.id"), nullable=False)
    supplier_id = db.Column(db.Integer, nullable=True, index=True)

    sale_price_cents = db.Column(db.Integer, nullable=False)
    payout_amount_cents = db.Column(db.Integer, nullable=False)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("consignment_settlements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sale_id": self.sale_id,
            "sale_line_id": self.sale_line_id,
            "supplier_id": self.supplier_id,
            "sale_price_cents": self.sale_price_cents,
            "payout_amount_cents": self.payout_amount_cents,
            "paid_at": to_utc_z(self.paid_at),
            "paid_by": self.paid_by,
            "created_at": to_utc_z(self.created_at),
        }


class PartExchange(db.Model):
    """
    Trade-in item handed in against a sale, awaiting disposition.

    STATUS:
    - pending: received, not yet processed into stock
    - hold: parked with a reason (e.g. awaiting checks)
    - linked: turned into a catalog product (done outside this engine)
    """
    __tablename__ = "part_exchanges"
    __table_args__ = (
        db.CheckConstraint("allowance_cents >= 0", name="allowance_non_negative"),
        {"sqlite_autoincrement": True},
    )

    STATUS_PENDING = "pending"
    STATUS_HOLD = "hold"
    STATUS_LINKED = "linked"

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    deposit_order_id = db.Column(db.Integer, db.ForeignKey("deposit_orders.id"), nullable=True, index=True)

    title = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    serial = db.Column(db.String(128), nullable=True)
    allowance_cents = db.Column(db.Integer, nullable=False, default=0)
    customer_name = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    hold_reason = db.Column(db.String(255), nullable=True)
    hold_at = db.Column(db.DateTime(timezone=True), nullable=True)
    hold_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("part_exchanges", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "deposit_order_id": self.deposit_order_id,
            "title": self.title,
            "category": self.category,
            "serial": self.serial,
            "allowance_cents": self.allowance_cents,
            "customer_name": self.customer_name,
            "notes": self.notes,
            "status": self.status,
            "hold_reason": self.hold_reason,
            "hold_at": to_utc_z(self.hold_at),
            "hold_by": self.hold_by,
            "created_at": to_utc_z(self.created_at),
        }
