from __future__ import annotations

from ..extensions import db
from pharmasync.time_utils import to_utc_z, utcnow
from pharmasync.validation import derive_payment_status


class Sale(db.Model):
    """
    Sale header, created offline on a POS device.

    MONEY: integer amounts. amount_paid + amount_due == total always holds;
    payment_status is derived on the server from those amounts and due_date.
    The stored column is the status at the last push; reads re-derive it so
    an unpaid sale turns OVERDUE once due_date passes.

    TIMESTAMPS:
    - created_at: business time of the sale, as the device recorded it
    - modified_at: client edit time, compared for last-write-wins
    - updated_at: server write clock (pull watermark); touched when items
      or credit payments are added so the embedded view stays fresh
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("total >= 0", name="ck_sales_total_non_negative"),
        db.CheckConstraint("amount_paid >= 0", name="ck_sales_amount_paid_non_negative"),
        db.CheckConstraint("amount_due >= 0", name="ck_sales_amount_due_non_negative"),
        db.Index("ix_sales_created_at", "created_at"),
        db.Index("ix_sales_updated_at", "updated_at"),
        db.Index("ix_sales_payment_status", "payment_status"),
    )

    id = db.Column(db.String(64), primary_key=True)

    total = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="CASH")
    payment_status = db.Column(db.String(32), nullable=False, default="PAID")
    payment_ref = db.Column(db.String(128), nullable=True)

    amount_paid = db.Column(db.Integer, nullable=False, default=0)
    amount_due = db.Column(db.Integer, nullable=False, default=0)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    # Seller, taken from the authenticated session
    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    modified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    modified_by = db.Column(db.String(64), nullable=True)
    edit_count = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def current_payment_status(self, now=None) -> str:
        return derive_payment_status(
            amount_paid=self.amount_paid,
            amount_due=self.amount_due,
            due_date=self.due_date,
            now=now or utcnow(),
        )

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "total": self.total,
            "payment_method": self.payment_method,
            "payment_status": self.current_payment_status(),
            "payment_ref": self.payment_ref,
            "amount_paid": self.amount_paid,
            "amount_due": self.amount_due,
            "due_date": to_utc_z(self.due_date),
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "modified_at": to_utc_z(self.modified_at),
            "modified_by": self.modified_by,
            "edit_count": self.edit_count,
            "serverUpdatedAt": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """One line of a sale. Immutable once synced."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.Index("ix_sale_items_sale_id", "sale_id"),
    )

    id = db.Column(db.String(64), primary_key=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=False)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)
    product_batch_id = db.Column(db.String(64), db.ForeignKey("product_batches.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)
    # Always quantity * unit_price, recomputed on the server
    subtotal = db.Column(db.Integer, nullable=False)

    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_batch_id": self.product_batch_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "subtotal": self.subtotal,
        }


class CreditPayment(db.Model):
    """
    A repayment against a CREDIT sale.

    Append-only. The device pushes the sale's new amounts as a separate sale
    update; recording a payment never rewrites the sale here.
    """
    __tablename__ = "credit_payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_credit_payments_amount_positive"),
        db.Index("ix_credit_payments_recorded_at", "recorded_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="CASH")
    payment_ref = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    recorded_by = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    sale = db.relationship("Sale", backref=db.backref("credit_payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "amount": self.amount,
            "payment_method": self.payment_method,
            "payment_ref": self.payment_ref,
            "notes": self.notes,
            "payment_date": to_utc_z(self.payment_date),
            "recorded_by": self.recorded_by,
        }


class SalePrescription(db.Model):
    """Prescription photo captured at the counter for a sale."""
    __tablename__ = "sale_prescriptions"
    __table_args__ = (
        db.Index("ix_sale_prescriptions_recorded_at", "recorded_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=False, index=True)

    # Base64 image payload as captured by the device
    image_data = db.Column(db.Text, nullable=False)
    image_type = db.Column(db.String(64), nullable=False, default="image/jpeg")
    captured_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    notes = db.Column(db.Text, nullable=True)

    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "image_data": self.image_data,
            "image_type": self.image_type,
            "captured_at": to_utc_z(self.captured_at),
            "notes": self.notes,
        }
