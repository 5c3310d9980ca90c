from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StockItem(db.Model):
    """
    On-hand stock for one tracked product.

    WHY a row per product: it is the lock target for every operation that
    checks or moves stock (SELECT ... FOR UPDATE), so availability checks and
    deductions for the same SKU are serialized.

    Reservations are NOT stored here. Reserved quantity is derived from the
    items of active deposit orders (see inventory_service.get_reserved_quantity).
    quantity_on_hand only changes on confirmed sales and stock adjustments.
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_stock_items_product"),
        db.CheckConstraint("quantity_on_hand >= 0", name="on_hand_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    quantity_on_hand = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("stock_item", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_on_hand": self.quantity_on_hand,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only audit trail of on-hand changes.

    TYPES:
    - RECEIVE: goods in (positive delta)
    - ADJUST: manual correction (either sign)
    - SALE: deduction at sale completion (negative delta)
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    quantity_after = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)

    actor_id = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "quantity_after": self.quantity_after,
            "sale_id": self.sale_id,
            "note": self.note,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
