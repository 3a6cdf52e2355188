from __future__ import annotations

from ..extensions import db
from pharmasync.time_utils import to_utc_z, utcnow


class StockMovement(db.Model):
    """
    Append-only record of a change to a product's on-hand stock.

    WHY: The movement log is the audit trail behind Product.stock. A movement
    row is written in the same transaction as the stock change it describes,
    so one never exists without the other. Decrements on batch-tracked
    products also record which batches were drawn (StockMovementAllocation).

    created_at is the business time from the device; recorded_at is when the
    server accepted it (pull watermark).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity_change != 0", name="ck_stock_movements_non_zero"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_recorded_at", "recorded_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False)
    # Batch named by the client; when unset, decrements are allocated FEFO
    product_batch_id = db.Column(db.String(64), db.ForeignKey("product_batches.id"), nullable=True)

    # SALE | ADJUSTMENT | INVENTORY | RECEIPT | DAMAGED | EXPIRED
    type = db.Column(db.String(32), nullable=False)
    quantity_change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("stock_movements", lazy=True))
    allocations = db.relationship(
        "StockMovementAllocation",
        backref="movement",
        lazy=True,
        order_by="StockMovementAllocation.position",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_batch_id": self.product_batch_id,
            "type": self.type,
            "quantity_change": self.quantity_change,
            "reason": self.reason,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "allocations": [a.to_dict() for a in self.allocations],
        }


class StockMovementAllocation(db.Model):
    """Quantity drawn from one batch by a decrementing movement."""
    __tablename__ = "stock_movement_allocations"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movement_allocations_positive"),
        db.UniqueConstraint("movement_id", "batch_id", name="uq_stock_movement_allocations_movement_batch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    movement_id = db.Column(db.String(64), db.ForeignKey("stock_movements.id"), nullable=False, index=True)
    batch_id = db.Column(db.String(64), db.ForeignKey("product_batches.id"), nullable=False, index=True)

    lot_number = db.Column(db.String(128), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    # Order in which the batch was drawn (0 = earliest expiry)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "lot_number": self.lot_number,
            "quantity": self.quantity,
        }


class StockoutReport(db.Model):
    """
    A customer asked for something the shelf could not supply.

    product_id is optional and deliberately not a foreign key: reports are
    often filed for products the pharmacy does not stock yet.
    """
    __tablename__ = "stockout_reports"
    __table_args__ = (
        db.Index("ix_stockout_reports_recorded_at", "recorded_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_id = db.Column(db.String(64), nullable=True, index=True)
    requested_qty = db.Column(db.Integer, nullable=False, default=1)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    reported_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_name": self.product_name,
            "product_id": self.product_id,
            "requested_qty": self.requested_qty,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "reported_by": self.reported_by,
            "created_at": to_utc_z(self.created_at),
        }
