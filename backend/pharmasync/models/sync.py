from __future__ import annotations

from ..extensions import db
from pharmasync.time_utils import to_utc_z, utcnow


class IdempotencyKey(db.Model):
    """
    Client-chosen key that makes a push of one entity safe to replay.

    WHY: A device that lost the push response resubmits the same entity with
    the same key. While the key is unexpired the server answers "synced"
    without applying anything twice.

    A key is bound to exactly one (entity_type, entity_id). Presenting it for
    a different entity is rejected.
    """
    __tablename__ = "idempotency_keys"
    __table_args__ = (
        db.Index("ix_idempotency_keys_expires_at", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    idempotency_key = db.Column(db.String(128), nullable=False, unique=True, index=True)

    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def is_expired(self, now) -> bool:
        return self.expires_at <= now

    def to_dict(self) -> dict:
        return {
            "idempotency_key": self.idempotency_key,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
        }
