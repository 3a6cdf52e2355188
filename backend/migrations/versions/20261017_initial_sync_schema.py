"""Initial pharmacy sync schema

Revision ID: 20261017_initial_sync_schema
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_initial_sync_schema"
down_revision = None
branch_labels = None
depends_on = None


NOW = sa.text("(CURRENT_TIMESTAMP)")


def _ts(name, nullable=False):
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), server_default=NOW, nullable=False)


def _version():
    return sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1"))


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _ts("created_at"),
        sa.CheckConstraint("role IN ('OWNER', 'EMPLOYEE')", name="ck_users_role"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("token_hash", sa.String(255), nullable=False),
        _ts("created_at"),
        _ts("last_used_at"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_revoked", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        _ts("revoked_at", nullable=True),
        sa.Column("revoked_reason", sa.String(255), nullable=True),
        sa.Column("device_label", sa.String(128), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token_hash"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("session_tokens", schema=None) as batch_op:
        batch_op.create_index("ix_session_tokens_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_session_tokens_token_hash", ["token_hash"], unique=False)
        batch_op.create_index("ix_session_tokens_expires_at", ["expires_at"], unique=False)
        batch_op.create_index("ix_session_tokens_is_revoked", ["is_revoked"], unique=False)
        batch_op.create_index("ix_session_tokens_user_active", ["user_id", "is_revoked"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(128), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("price_buy", sa.Integer(), nullable=True),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_stock", sa.Integer(), nullable=False, server_default=sa.text("10")),
        _ts("modified_at"),
        _ts("created_at"),
        _ts("updated_at"),
        _version(),
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_name", ["name"], unique=False)
        batch_op.create_index("ix_products_updated_at", ["updated_at"], unique=False)

    op.create_table(
        "suppliers",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("payment_terms_days", sa.Integer(), nullable=False, server_default=sa.text("30")),
        _ts("modified_at"),
        _ts("created_at"),
        _ts("updated_at"),
        _version(),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        batch_op.create_index("ix_suppliers_updated_at", ["updated_at"], unique=False)

    op.create_table(
        "supplier_orders",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("supplier_id", sa.String(64), nullable=False),
        _ts("order_date"),
        _ts("delivery_date", nullable=True),
        sa.Column("total_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("calculated_total", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("amount_paid", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _ts("due_date", nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="PENDING"),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("modified_at"),
        _ts("created_at"),
        _ts("updated_at"),
        _version(),
        sa.CheckConstraint("amount_paid >= 0", name="ck_supplier_orders_amount_paid_non_negative"),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("supplier_orders", schema=None) as batch_op:
        batch_op.create_index("ix_supplier_orders_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_supplier_orders_updated_at", ["updated_at"], unique=False)
        batch_op.create_index("ix_supplier_orders_status", ["status"], unique=False)

    op.create_table(
        "product_batches",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("lot_number", sa.String(128), nullable=False),
        sa.Column("expiration_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("initial_qty", sa.Integer(), nullable=False),
        sa.Column("unit_cost", sa.Integer(), nullable=True),
        sa.Column("supplier_order_id", sa.String(64), nullable=True),
        _ts("received_date"),
        _ts("modified_at"),
        _ts("created_at"),
        _ts("updated_at"),
        _version(),
        sa.CheckConstraint("quantity >= 0", name="ck_product_batches_quantity_non_negative"),
        sa.CheckConstraint("quantity <= initial_qty", name="ck_product_batches_quantity_le_initial"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["supplier_order_id"], ["supplier_orders.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("product_batches", schema=None) as batch_op:
        batch_op.create_index("ix_product_batches_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_batches_supplier_order_id", ["supplier_order_id"], unique=False)
        batch_op.create_index(
            "ix_product_batches_product_expiration", ["product_id", "expiration_date"], unique=False
        )
        batch_op.create_index("ix_product_batches_updated_at", ["updated_at"], unique=False)

    op.create_table(
        "product_suppliers",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("supplier_id", sa.String(64), nullable=False),
        sa.Column("supplier_product_code", sa.String(128), nullable=True),
        sa.Column("supplier_product_name", sa.String(255), nullable=True),
        sa.Column("default_price", sa.Integer(), nullable=True),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        _ts("last_ordered_date", nullable=True),
        _ts("modified_at"),
        _ts("created_at"),
        _ts("updated_at"),
        _version(),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "supplier_id", name="uq_product_suppliers_pair"),
    )
    with op.batch_alter_table("product_suppliers", schema=None) as batch_op:
        batch_op.create_index("ix_product_suppliers_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_suppliers_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_product_suppliers_updated_at", ["updated_at"], unique=False)

    op.create_table(
        "supplier_order_items",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("order_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(128), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("subtotal", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("recorded_at"),
        sa.CheckConstraint("quantity > 0", name="ck_supplier_order_items_quantity_positive"),
        sa.ForeignKeyConstraint(["order_id"], ["supplier_orders.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("supplier_order_items", schema=None) as batch_op:
        batch_op.create_index("ix_supplier_order_items_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_supplier_order_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "supplier_returns",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("supplier_id", sa.String(64), nullable=False),
        sa.Column("supplier_order_id", sa.String(64), nullable=True),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("credit_amount", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _ts("return_date"),
        sa.Column("applied", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("applied_to_order_id", sa.String(64), nullable=True),
        _ts("modified_at"),
        _ts("created_at"),
        _ts("updated_at"),
        _version(),
        sa.CheckConstraint("quantity > 0", name="ck_supplier_returns_quantity_positive"),
        sa.CheckConstraint("credit_amount >= 0", name="ck_supplier_returns_credit_non_negative"),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.ForeignKeyConstraint(["supplier_order_id"], ["supplier_orders.id"]),
        sa.ForeignKeyConstraint(["applied_to_order_id"], ["supplier_orders.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("supplier_returns", schema=None) as batch_op:
        batch_op.create_index("ix_supplier_returns_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_supplier_returns_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_supplier_returns_updated_at", ["updated_at"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("total", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default="CASH"),
        sa.Column("payment_status", sa.String(32), nullable=False, server_default="PAID"),
        sa.Column("payment_ref", sa.String(128), nullable=True),
        sa.Column("amount_paid", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("amount_due", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _ts("due_date", nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_phone", sa.String(64), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        _ts("created_at"),
        _ts("modified_at", nullable=True),
        sa.Column("modified_by", sa.String(64), nullable=True),
        sa.Column("edit_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _ts("updated_at"),
        _version(),
        sa.CheckConstraint("total >= 0", name="ck_sales_total_non_negative"),
        sa.CheckConstraint("amount_paid >= 0", name="ck_sales_amount_paid_non_negative"),
        sa.CheckConstraint("amount_due >= 0", name="ck_sales_amount_due_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_sales_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_sales_updated_at", ["updated_at"], unique=False)
        batch_op.create_index("ix_sales_payment_status", ["payment_status"], unique=False)

    op.create_table(
        "sale_items",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("sale_id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("product_batch_id", sa.String(64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Integer(), nullable=False),
        sa.Column("subtotal", sa.Integer(), nullable=False),
        _ts("recorded_at"),
        sa.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["product_batch_id"], ["product_batches.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("sale_items", schema=None) as batch_op:
        batch_op.create_index("ix_sale_items_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "credit_payments",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("sale_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default="CASH"),
        sa.Column("payment_ref", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("payment_date"),
        sa.Column("recorded_by", sa.String(64), nullable=True),
        _ts("recorded_at"),
        sa.CheckConstraint("amount > 0", name="ck_credit_payments_amount_positive"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.ForeignKeyConstraint(["recorded_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("credit_payments", schema=None) as batch_op:
        batch_op.create_index("ix_credit_payments_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_credit_payments_recorded_at", ["recorded_at"], unique=False)

    op.create_table(
        "sale_prescriptions",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("sale_id", sa.String(64), nullable=False),
        sa.Column("image_data", sa.Text(), nullable=False),
        sa.Column("image_type", sa.String(64), nullable=False, server_default="image/jpeg"),
        _ts("captured_at"),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("recorded_at"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("sale_prescriptions", schema=None) as batch_op:
        batch_op.create_index("ix_sale_prescriptions_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_sale_prescriptions_recorded_at", ["recorded_at"], unique=False)

    op.create_table(
        "expenses",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _ts("date"),
        sa.Column("user_id", sa.String(64), nullable=True),
        _ts("modified_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        _version(),
        sa.CheckConstraint("amount >= 0", name="ck_expenses_amount_non_negative"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("expenses", schema=None) as batch_op:
        batch_op.create_index("ix_expenses_date", ["date"], unique=False)
        batch_op.create_index("ix_expenses_updated_at", ["updated_at"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=False),
        sa.Column("product_batch_id", sa.String(64), nullable=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("user_id", sa.String(64), nullable=True),
        _ts("created_at"),
        _ts("recorded_at"),
        sa.CheckConstraint("quantity_change != 0", name="ck_stock_movements_non_zero"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["product_batch_id"], ["product_batches.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index(
            "ix_stock_movements_product_created", ["product_id", "created_at"], unique=False
        )
        batch_op.create_index("ix_stock_movements_recorded_at", ["recorded_at"], unique=False)

    op.create_table(
        "stock_movement_allocations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("movement_id", sa.String(64), nullable=False),
        sa.Column("batch_id", sa.String(64), nullable=False),
        sa.Column("lot_number", sa.String(128), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movement_allocations_positive"),
        sa.ForeignKeyConstraint(["movement_id"], ["stock_movements.id"]),
        sa.ForeignKeyConstraint(["batch_id"], ["product_batches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("movement_id", "batch_id", name="uq_stock_movement_allocations_movement_batch"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movement_allocations", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movement_allocations_movement_id", ["movement_id"], unique=False)
        batch_op.create_index("ix_stock_movement_allocations_batch_id", ["batch_id"], unique=False)

    op.create_table(
        "stockout_reports",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("product_id", sa.String(64), nullable=True),
        sa.Column("requested_qty", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_phone", sa.String(64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("reported_by", sa.String(64), nullable=True),
        _ts("created_at"),
        _ts("recorded_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("stockout_reports", schema=None) as batch_op:
        batch_op.create_index("ix_stockout_reports_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_stockout_reports_recorded_at", ["recorded_at"], unique=False)

    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("idempotency_key", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.String(64), nullable=False),
        _ts("created_at"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("idempotency_keys", schema=None) as batch_op:
        batch_op.create_index("ix_idempotency_keys_idempotency_key", ["idempotency_key"], unique=True)
        batch_op.create_index("ix_idempotency_keys_expires_at", ["expires_at"], unique=False)


def downgrade():
    for table in (
        "idempotency_keys",
        "stockout_reports",
        "stock_movement_allocations",
        "stock_movements",
        "expenses",
        "sale_prescriptions",
        "credit_payments",
        "sale_items",
        "sales",
        "supplier_returns",
        "supplier_order_items",
        "product_suppliers",
        "product_batches",
        "supplier_orders",
        "suppliers",
        "products",
        "session_tokens",
        "users",
    ):
        op.drop_table(table)
