from __future__ import annotations

from ..extensions import db
from pharmasync.time_utils import to_utc_z, utcnow


class Expense(db.Model):
    """Operating expense. Visible to OWNER sessions only."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount >= 0", name="ck_expenses_amount_non_negative"),
        db.Index("ix_expenses_date", "date"),
        db.Index("ix_expenses_updated_at", "updated_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    amount = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user_id = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True)

    modified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount": self.amount,
            "category": self.category,
            "description": self.description,
            "date": to_utc_z(self.date),
            "user_id": self.user_id,
            "modified_at": to_utc_z(self.modified_at),
            "serverUpdatedAt": to_utc_z(self.updated_at),
        }
