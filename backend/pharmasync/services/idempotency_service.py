# Overview: Idempotency key store for replay-safe pushes.

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import IdempotencyKey
from pharmasync.time_utils import utcnow
from pharmasync.validation import IdempotencyKeyReusedError

logger = logging.getLogger(__name__)


def key_ttl() -> timedelta:
    return timedelta(hours=current_app.config["SYNC_IDEMPOTENCY_TTL_HOURS"])


def lookup(key: str, *, entity_type: str, entity_id: str, now: datetime | None = None) -> bool:
    """
    Return True when `key` has already been applied for this entity.

    Expired keys count as a miss; `remember` later reuses their row.
    Raises IdempotencyKeyReusedError if an unexpired key is bound to a
    different entity.
    """
    now = now or utcnow()
    record = db.session.query(IdempotencyKey).filter_by(idempotency_key=key).first()
    if record is None or record.is_expired(now):
        return False

    if record.entity_type != entity_type or record.entity_id != entity_id:
        raise IdempotencyKeyReusedError(
            f"Idempotency key {key} already used for {record.entity_type} {record.entity_id}"
        )
    return True


def remember(key: str, *, entity_type: str, entity_id: str, now: datetime | None = None) -> IdempotencyKey:
    """
    Bind `key` to an entity for the configured TTL.

    Runs inside the caller's transaction so the key and the entity it
    protects commit or roll back together. Does not commit.
    """
    now = now or utcnow()
    expires_at = now + key_ttl()

    record = db.session.query(IdempotencyKey).filter_by(idempotency_key=key).first()
    if record is None:
        record = IdempotencyKey(
            idempotency_key=key,
            entity_type=entity_type,
            entity_id=entity_id,
            created_at=now,
            expires_at=expires_at,
        )
        db.session.add(record)
    else:
        # Expired key being rebound
        record.entity_type = entity_type
        record.entity_id = entity_id
        record.created_at = now
        record.expires_at = expires_at

    db.session.flush()
    return record


def purge_expired(*, now: datetime | None = None) -> int:
    """Delete expired keys. Returns how many were removed."""
    now = now or utcnow()
    deleted = db.session.query(IdempotencyKey).filter(
        IdempotencyKey.expires_at <= now
    ).delete(synchronize_session=False)
    db.session.commit()
    logger.info("Purged %d expired idempotency keys", deleted)
    return deleted
