from __future__ import annotations

from ..extensions import db
from pharmasync.time_utils import to_utc_z, utcnow


class Supplier(db.Model):
    """Wholesaler the pharmacy buys from."""
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_updated_at", "updated_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    payment_terms_days = db.Column(db.Integer, nullable=False, default=30)

    modified_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "paymentTermsDays": self.payment_terms_days,
            "updatedAt": to_utc_z(self.modified_at),
            "serverUpdatedAt": to_utc_z(self.updated_at),
        }


class ProductSupplier(db.Model):
    """
    Which supplier carries which product, and at what default price.

    One row per (product, supplier) pair. A second client-side id for an
    existing pair is merged into the stored row instead of inserted.
    """
    __tablename__ = "product_suppliers"
    __table_args__ = (
        db.UniqueConstraint("product_id", "supplier_id", name="uq_product_suppliers_pair"),
        db.Index("ix_product_suppliers_updated_at", "updated_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.String(64), db.ForeignKey("suppliers.id"), nullable=False, index=True)

    supplier_product_code = db.Column(db.String(128), nullable=True)
    supplier_product_name = db.Column(db.String(255), nullable=True)
    default_price = db.Column(db.Integer, nullable=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)
    last_ordered_date = db.Column(db.DateTime(timezone=True), nullable=True)

    modified_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "supplier_id": self.supplier_id,
            "supplier_product_code": self.supplier_product_code,
            "supplier_product_name": self.supplier_product_name,
            "default_price": self.default_price,
            "is_primary": self.is_primary,
            "last_ordered_date": to_utc_z(self.last_ordered_date),
            "updatedAt": to_utc_z(self.modified_at),
            "serverUpdatedAt": to_utc_z(self.updated_at),
        }


class SupplierOrder(db.Model):
    """
    Purchase order placed with a supplier.

    totalAmount is what the supplier invoiced; calculatedTotal is the server
    sum of the order's item subtotals.
    """
    __tablename__ = "supplier_orders"
    __table_args__ = (
        db.CheckConstraint("amount_paid >= 0", name="ck_supplier_orders_amount_paid_non_negative"),
        db.Index("ix_supplier_orders_updated_at", "updated_at"),
        db.Index("ix_supplier_orders_status", "status"),
    )

    id = db.Column(db.String(64), primary_key=True)
    supplier_id = db.Column(db.String(64), db.ForeignKey("suppliers.id"), nullable=False, index=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    total_amount = db.Column(db.Integer, nullable=False, default=0)
    calculated_total = db.Column(db.Integer, nullable=False, default=0)
    amount_paid = db.Column(db.Integer, nullable=False, default=0)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # PENDING | DELIVERED | PARTIALLY_PAID | PAID | CANCELLED
    status = db.Column(db.String(32), nullable=False, default="PENDING")
    notes = db.Column(db.Text, nullable=True)

    modified_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "SupplierOrderItem",
        backref="order",
        lazy=True,
        order_by="SupplierOrderItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "supplierId": self.supplier_id,
            "orderDate": to_utc_z(self.order_date),
            "deliveryDate": to_utc_z(self.delivery_date),
            "totalAmount": self.total_amount,
            "calculatedTotal": self.calculated_total,
            "amountPaid": self.amount_paid,
            "dueDate": to_utc_z(self.due_date),
            "status": self.status,
            "notes": self.notes,
            "updatedAt": to_utc_z(self.modified_at),
            "serverUpdatedAt": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SupplierOrderItem(db.Model):
    """Line of a supplier order. product_id is optional for free-text lines."""
    __tablename__ = "supplier_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_supplier_order_items_quantity_positive"),
    )

    id = db.Column(db.String(64), primary_key=True)
    order_id = db.Column(db.String(64), db.ForeignKey("supplier_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    subtotal = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "category": self.category,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "subtotal": self.subtotal,
            "notes": self.notes,
        }


class SupplierReturn(db.Model):
    """
    Goods sent back to a supplier for credit.

    Once `applied`, the credit has been set against appliedToOrderId.
    """
    __tablename__ = "supplier_returns"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_supplier_returns_quantity_positive"),
        db.CheckConstraint("credit_amount >= 0", name="ck_supplier_returns_credit_non_negative"),
        db.Index("ix_supplier_returns_updated_at", "updated_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    supplier_id = db.Column(db.String(64), db.ForeignKey("suppliers.id"), nullable=False, index=True)
    supplier_order_id = db.Column(db.String(64), db.ForeignKey("supplier_orders.id"), nullable=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=True)
    credit_amount = db.Column(db.Integer, nullable=False, default=0)
    return_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    applied = db.Column(db.Boolean, nullable=False, default=False)
    applied_to_order_id = db.Column(db.String(64), db.ForeignKey("supplier_orders.id"), nullable=True)

    modified_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplierId": self.supplier_id,
            "supplierOrderId": self.supplier_order_id,
            "productId": self.product_id,
            "quantity": self.quantity,
            "reason": self.reason,
            "creditAmount": self.credit_amount,
            "returnDate": to_utc_z(self.return_date),
            "applied": self.applied,
            "appliedToOrderId": self.applied_to_order_id,
            "updatedAt": to_utc_z(self.modified_at),
            "serverUpdatedAt": to_utc_z(self.updated_at),
        }
