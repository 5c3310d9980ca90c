"""Deposit order engine schema

Revision ID: 20261017_deposit_engine
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_deposit_engine"
down_revision = None
branch_labels = None
depends_on = None


def _now():
    return sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("track_stock", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_consignment", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("consignment_supplier_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_products"),
        sa.UniqueConstraint("sku", name="uq_products_sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_name", ["name"], unique=False)
        batch_op.create_index("ix_products_consignment_supplier_id", ["consignment_supplier_id"], unique=False)

    op.create_table(
        "stock_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity_on_hand", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.CheckConstraint("quantity_on_hand >= 0", name="ck_stock_items_on_hand_non_negative"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_stock_items_product_id_products"),
        sa.PrimaryKeyConstraint("id", name="pk_stock_items"),
        sa.UniqueConstraint("product_id", name="uq_stock_items_product"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "deposit_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=False, server_default="Walk-in Customer"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("expected_pickup_date", sa.Date(), nullable=True),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("part_exchange_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("balance_due_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_payment_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("closed_by", sa.Integer(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_reason", sa.String(255), nullable=True),
        sa.Column("refund_due_cents", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id", name="pk_deposit_orders"),
        sa.UniqueConstraint("document_number", name="uq_deposit_orders_document_number"),
        sa.UniqueConstraint("sale_id", name="uq_deposit_orders_sale"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("deposit_orders", schema=None) as batch_op:
        batch_op.create_index("ix_deposit_orders_status", ["status"], unique=False)
        batch_op.create_index("ix_deposit_orders_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_deposit_orders_location_id", ["location_id"], unique=False)
        batch_op.create_index("ix_deposit_orders_expected_pickup_date", ["expected_pickup_date"], unique=False)
        batch_op.create_index("ix_deposit_orders_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "deposit_order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("deposit_order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_custom_order", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("category", sa.String(128), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_deposit_order_items_quantity_positive"),
        sa.CheckConstraint("unit_price_cents >= 0", name="ck_deposit_order_items_unit_price_non_negative"),
        sa.CheckConstraint("unit_cost_cents >= 0", name="ck_deposit_order_items_unit_cost_non_negative"),
        sa.ForeignKeyConstraint(["deposit_order_id"], ["deposit_orders.id"], name="fk_deposit_order_items_deposit_order_id_deposit_orders"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_deposit_order_items_product_id_products"),
        sa.PrimaryKeyConstraint("id", name="pk_deposit_order_items"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("deposit_order_items", schema=None) as batch_op:
        batch_op.create_index("ix_deposit_order_items_deposit_order_id", ["deposit_order_id"], unique=False)
        batch_op.create_index("ix_deposit_order_items_product", ["product_id"], unique=False)

    op.create_table(
        "deposit_order_part_exchanges",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("deposit_order_id", sa.Integer(), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(128), nullable=True),
        sa.Column("serial", sa.String(128), nullable=True),
        sa.Column("allowance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.CheckConstraint("allowance_cents >= 0", name="ck_deposit_order_part_exchanges_allowance_non_negative"),
        sa.ForeignKeyConstraint(["deposit_order_id"], ["deposit_orders.id"], name="fk_deposit_order_part_exchanges_deposit_order_id_deposit_orders"),
        sa.PrimaryKeyConstraint("id", name="pk_deposit_order_part_exchanges"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("deposit_order_part_exchanges", schema=None) as batch_op:
        batch_op.create_index("ix_deposit_order_part_exchanges_deposit_order_id", ["deposit_order_id"], unique=False)

    op.create_table(
        "deposit_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("deposit_order_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("method", sa.String(16), nullable=False),
        sa.Column("reference", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("received_by", sa.Integer(), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("amount_cents > 0", name="ck_deposit_payments_amount_positive"),
        sa.ForeignKeyConstraint(["deposit_order_id"], ["deposit_orders.id"], name="fk_deposit_payments_deposit_order_id_deposit_orders"),
        sa.PrimaryKeyConstraint("id", name="pk_deposit_payments"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("deposit_payments", schema=None) as batch_op:
        batch_op.create_index("ix_deposit_payments_deposit_order_id", ["deposit_order_id"], unique=False)
        batch_op.create_index("ix_deposit_payments_method", ["method"], unique=False)
        batch_op.create_index("ix_deposit_payments_received_by", ["received_by"], unique=False)
        batch_op.create_index("ix_deposit_payments_received_at", ["received_at"], unique=False)
        batch_op.create_index("ix_deposit_payments_order_received", ["deposit_order_id", "received_at"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_number", sa.String(64), nullable=False),
        sa.Column("source_deposit_order_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("subtotal_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_cents", sa.Integer(), nullable=False),
        sa.Column("part_exchange_total_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("sold_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["source_deposit_order_id"], ["deposit_orders.id"], name="fk_sales_source_deposit_order_id_deposit_orders"),
        sa.PrimaryKeyConstraint("id", name="pk_sales"),
        sa.UniqueConstraint("document_number", name="uq_sales_document_number"),
        sa.UniqueConstraint("source_deposit_order_id", name="uq_sales_source_deposit_order"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_sales_location_id", ["location_id"], unique=False)
        batch_op.create_index("ix_sales_sold_at", ["sold_at"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(16), nullable=False),
        sa.Column("quantity_delta", sa.Integer(), nullable=False),
        sa.Column("quantity_after", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_stock_movements_product_id_products"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], name="fk_stock_movements_sale_id_sales"),
        sa.PrimaryKeyConstraint("id", name="pk_stock_movements"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stock_movements_movement_type", ["movement_type"], unique=False)
        batch_op.create_index("ix_stock_movements_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_stock_movements_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_stock_movements_product_occurred", ["product_id", "occurred_at"], unique=False)

    op.create_table(
        "sale_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("deposit_order_item_id", sa.Integer(), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("unit_cost_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("tax_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("line_total_cents", sa.Integer(), nullable=False),
        sa.Column("is_custom_order", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("category", sa.String(128), nullable=True),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], name="fk_sale_lines_sale_id_sales"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_sale_lines_product_id_products"),
        sa.ForeignKeyConstraint(["deposit_order_item_id"], ["deposit_order_items.id"], name="fk_sale_lines_deposit_order_item_id_deposit_order_items"),
        sa.PrimaryKeyConstraint("id", name="pk_sale_lines"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sale_lines", schema=None) as batch_op:
        batch_op.create_index("ix_sale_lines_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_lines_product_id", ["product_id"], unique=False)

    op.create_table(
        "consignment_settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("sale_line_id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=True),
        sa.Column("sale_price_cents", sa.Integer(), nullable=False),
        sa.Column("payout_amount_cents", sa.Integer(), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], name="fk_consignment_settlements_product_id_products"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], name="fk_consignment_settlements_sale_id_sales"),
        sa.ForeignKeyConstraint(["sale_line_id"], ["sale_lines.id"], name="fk_consignment_settlements_sale_line_id_sale_lines"),
        sa.PrimaryKeyConstraint("id", name="pk_consignment_settlements"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("consignment_settlements", schema=None) as batch_op:
        batch_op.create_index("ix_consignment_settlements_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_consignment_settlements_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_consignment_settlements_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_consignment_settlements_unpaid", ["paid_at"], unique=False)

    op.create_table(
        "part_exchanges",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("deposit_order_id", sa.Integer(), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("category", sa.String(128), nullable=True),
        sa.Column("serial", sa.String(128), nullable=True),
        sa.Column("allowance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("hold_reason", sa.String(255), nullable=True),
        sa.Column("hold_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("hold_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.CheckConstraint("allowance_cents >= 0", name="ck_part_exchanges_allowance_non_negative"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], name="fk_part_exchanges_sale_id_sales"),
        sa.ForeignKeyConstraint(["deposit_order_id"], ["deposit_orders.id"], name="fk_part_exchanges_deposit_order_id_deposit_orders"),
        sa.PrimaryKeyConstraint("id", name="pk_part_exchanges"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("part_exchanges", schema=None) as batch_op:
        batch_op.create_index("ix_part_exchanges_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_part_exchanges_deposit_order_id", ["deposit_order_id"], unique=False)
        batch_op.create_index("ix_part_exchanges_status", ["status"], unique=False)

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("event_category", sa.String(32), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("deposit_order_id", sa.Integer(), nullable=True),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["deposit_order_id"], ["deposit_orders.id"], name="fk_ledger_events_deposit_order_id_deposit_orders"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], name="fk_ledger_events_sale_id_sales"),
        sa.ForeignKeyConstraint(["payment_id"], ["deposit_payments.id"], name="fk_ledger_events_payment_id_deposit_payments"),
        sa.PrimaryKeyConstraint("id", name="pk_ledger_events"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ledger_events", schema=None) as batch_op:
        batch_op.create_index("ix_ledger_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_ledger_events_event_category", ["event_category"], unique=False)
        batch_op.create_index("ix_ledger_events_entity_type", ["entity_type"], unique=False)
        batch_op.create_index("ix_ledger_events_entity_id", ["entity_id"], unique=False)
        batch_op.create_index("ix_ledger_events_actor_id", ["actor_id"], unique=False)
        batch_op.create_index("ix_ledger_events_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_ledger_events_payment_id", ["payment_id"], unique=False)
        batch_op.create_index("ix_ledger_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_ledger_events_order_occurred", ["deposit_order_id", "occurred_at"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_document_sequences"),
        sa.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "cash_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(32), nullable=False),
        sa.Column("direction", sa.String(16), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(128), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("deposit_order_id", sa.Integer(), nullable=True),
        sa.Column("sale_id", sa.Integer(), nullable=True),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=_now(), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["deposit_order_id"], ["deposit_orders.id"], name="fk_cash_movements_deposit_order_id_deposit_orders"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], name="fk_cash_movements_sale_id_sales"),
        sa.ForeignKeyConstraint(["payment_id"], ["deposit_payments.id"], name="fk_cash_movements_payment_id_deposit_payments"),
        sa.PrimaryKeyConstraint("id", name="pk_cash_movements"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("cash_movements", schema=None) as batch_op:
        batch_op.create_index("ix_cash_movements_movement_type", ["movement_type"], unique=False)
        batch_op.create_index("ix_cash_movements_location_id", ["location_id"], unique=False)
        batch_op.create_index("ix_cash_movements_deposit_order_id", ["deposit_order_id"], unique=False)
        batch_op.create_index("ix_cash_movements_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_cash_movements_pending", ["acknowledged_at", "occurred_at"], unique=False)


def downgrade():
    for table in (
        "cash_movements",
        "document_sequences",
        "ledger_events",
        "part_exchanges",
        "consignment_settlements",
        "sale_lines",
        "stock_movements",
        "sales",
        "deposit_payments",
        "deposit_order_part_exchanges",
        "deposit_order_items",
        "deposit_orders",
        "stock_items",
        "products",
    ):
        op.drop_table(table)
