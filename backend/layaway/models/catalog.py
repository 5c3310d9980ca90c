from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog product (read model).

    The catalog is owned elsewhere; the deposit engine only reads the fields
    it needs for stock checks, cost snapshots and consignment settlements.

    CONSIGNMENT:
    Consigned goods belong to a supplier until sold. Selling one produces a
    ConsignmentSettlement owed to consignment_supplier_id.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=True)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    # Untracked products (services, made-to-order) are always available
    track_stock = db.Column(db.Boolean, nullable=False, default=True)

    is_consignment = db.Column(db.Boolean, nullable=False, default=False)
    consignment_supplier_id = db.Column(db.Integer, nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "track_stock": self.track_stock,
            "is_consignment": self.is_consignment,
            "consignment_supplier_id": self.consignment_supplier_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
