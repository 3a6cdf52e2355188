from __future__ import annotations

from ..extensions import db
from pharmasync.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Product master data.

    ID DESIGN DECISION:
    Products are born on a client with a stable string id. The server never
    reassigns it, so "create" and "update" collapse into one upsert keyed by id.

    STOCK OWNERSHIP:
    `stock` is the denormalized on-hand total. Clients may only set it when the
    product is first created; afterwards it changes exclusively through stock
    movements applied by stock_service, inside one transaction with the
    movement row. When batches exist, stock == SUM(ProductBatch.quantity).

    TIMESTAMPS:
    - modified_at: client-authored modification time (wire name `updatedAt`),
      compared for last-write-wins.
    - updated_at: server write clock, compared against pull watermarks.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_updated_at", "updated_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)

    # Integer amounts in the store currency (no minor unit)
    price = db.Column(db.Integer, nullable=False)
    price_buy = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=10)

    modified_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price": self.price,
            "priceBuy": self.price_buy,
            "stock": self.stock,
            "minStock": self.min_stock,
            "updatedAt": to_utc_z(self.modified_at),
            "createdAt": to_utc_z(self.created_at),
            "serverUpdatedAt": to_utc_z(self.updated_at),
        }


class ProductBatch(db.Model):
    """
    One physical lot of a product.

    FEFO: batches are consumed in ascending expiration_date order (ties by
    received_date, then id). `quantity` is what remains of `initial_qty`;
    like Product.stock it is server-owned after the first insert.
    """
    __tablename__ = "product_batches"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_product_batches_quantity_non_negative"),
        db.CheckConstraint("quantity <= initial_qty", name="ck_product_batches_quantity_le_initial"),
        db.Index("ix_product_batches_product_expiration", "product_id", "expiration_date"),
        db.Index("ix_product_batches_updated_at", "updated_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)

    lot_number = db.Column(db.String(128), nullable=False)
    expiration_date = db.Column(db.DateTime(timezone=True), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    initial_qty = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Integer, nullable=True)

    supplier_order_id = db.Column(db.String(64), db.ForeignKey("supplier_orders.id"), nullable=True, index=True)
    received_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    modified_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProductBatch id={self.id!r} lot={self.lot_number!r} qty={self.quantity}/{self.initial_qty}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "lot_number": self.lot_number,
            "expiration_date": to_utc_z(self.expiration_date),
            "quantity": self.quantity,
            "initial_qty": self.initial_qty,
            "unit_cost": self.unit_cost,
            "supplier_order_id": self.supplier_order_id,
            "received_date": to_utc_z(self.received_date),
            "updatedAt": to_utc_z(self.modified_at),
            "createdAt": to_utc_z(self.created_at),
            "serverUpdatedAt": to_utc_z(self.updated_at),
        }
