# Overview: Pytest coverage for the idempotency key store.

from datetime import timedelta

import pytest

from pharmasync.models import IdempotencyKey
from pharmasync.services import idempotency_service
from pharmasync.time_utils import utcnow
from pharmasync.validation import IdempotencyKeyReusedError


def test_unknown_key_is_a_miss(db_session):
    assert idempotency_service.lookup("k-1", entity_type="sale", entity_id="s-1") is False


def test_remembered_key_is_a_hit(db_session):
    idempotency_service.remember("k-1", entity_type="sale", entity_id="s-1")
    db_session.commit()

    assert idempotency_service.lookup("k-1", entity_type="sale", entity_id="s-1") is True


def test_key_expires_after_ttl(app, db_session):
    now = utcnow()
    idempotency_service.remember("k-1", entity_type="sale", entity_id="s-1", now=now)
    db_session.commit()

    ttl = app.config["SYNC_IDEMPOTENCY_TTL_HOURS"]
    later = now + timedelta(hours=ttl, seconds=1)
    assert idempotency_service.lookup("k-1", entity_type="sale", entity_id="s-1", now=later) is False


def test_live_key_bound_elsewhere_is_rejected(db_session):
    idempotency_service.remember("k-1", entity_type="sale", entity_id="s-1")
    db_session.commit()

    with pytest.raises(IdempotencyKeyReusedError):
        idempotency_service.lookup("k-1", entity_type="sale", entity_id="s-2")


def test_expired_key_is_rebound_in_place(app, db_session):
    now = utcnow()
    idempotency_service.remember("k-1", entity_type="sale", entity_id="s-1", now=now)
    db_session.commit()

    later = now + timedelta(hours=app.config["SYNC_IDEMPOTENCY_TTL_HOURS"] + 1)
    assert idempotency_service.lookup("k-1", entity_type="expense", entity_id="e-1", now=later) is False
    idempotency_service.remember("k-1", entity_type="expense", entity_id="e-1", now=later)
    db_session.commit()

    rows = db_session.query(IdempotencyKey).filter_by(idempotency_key="k-1").all()
    assert len(rows) == 1
    assert (rows[0].entity_type, rows[0].entity_id) == ("expense", "e-1")


def test_purge_removes_only_expired(app, db_session):
    now = utcnow()
    old = now - timedelta(hours=app.config["SYNC_IDEMPOTENCY_TTL_HOURS"] + 1)
    idempotency_service.remember("k-old", entity_type="sale", entity_id="s-1", now=old)
    idempotency_service.remember("k-new", entity_type="sale", entity_id="s-2", now=now)
    db_session.commit()

    assert idempotency_service.purge_expired(now=now) == 1
    assert [k.idempotency_key for k in db_session.query(IdempotencyKey).all()] == ["k-new"]
