# Overview: Pytest coverage for expiry, key purge, health endpoints and JSON error pages.

from datetime import timedelta

import pytest

from pharmasync.models import IdempotencyKey
from pharmasync.services import idempotency_service
from pharmasync.time_utils import utcnow


class TestExpiring:

    def test_lists_batches_with_alert_level(self, client, owner_headers, make_product, make_batch):
        make_product("prod-1", stock=20)
        make_batch("prod-1", "b-critical", quantity=5, expires_in_days=10)
        make_batch("prod-1", "b-warning", quantity=5, expires_in_days=45)
        make_batch("prod-1", "b-ok", quantity=10, expires_in_days=300)

        resp = client.get("/api/inventory/expiring", headers=owner_headers)

        assert resp.status_code == 200
        rows = [(b["id"], b["alert_level"]) for b in resp.json["batches"]]
        assert rows == [("b-critical", "CRITICAL"), ("b-warning", "WARNING")]

    def test_custom_window(self, client, employee_headers, make_product, make_batch):
        make_product("prod-1", stock=5)
        make_batch("prod-1", "b1", quantity=5, expires_in_days=45)

        resp = client.get("/api/inventory/expiring?days=30", headers=employee_headers)

        assert resp.json["batches"] == []

    @pytest.mark.parametrize("days", ["soon", "-1"])
    def test_bad_window(self, client, owner_headers, days):
        resp = client.get(f"/api/inventory/expiring?days={days}", headers=owner_headers)
        assert resp.status_code == 400


class TestPurgeKeys:

    def _seed_keys(self, app, db_session):
        old = utcnow() - timedelta(hours=app.config["SYNC_IDEMPOTENCY_TTL_HOURS"] + 1)
        idempotency_service.remember("k-old", entity_type="sale", entity_id="s-1", now=old)
        idempotency_service.remember("k-new", entity_type="sale", entity_id="s-2")
        db_session.commit()

    def test_owner_can_purge(self, app, client, owner_headers, db_session):
        self._seed_keys(app, db_session)

        resp = client.post("/api/inventory/idempotency-keys/purge", headers=owner_headers)

        assert resp.status_code == 200
        assert resp.json == {"success": True, "deleted": 1}
        db_session.expire_all()
        assert db_session.query(IdempotencyKey).count() == 1

    def test_employee_forbidden(self, app, client, employee_headers, db_session):
        self._seed_keys(app, db_session)

        resp = client.post("/api/inventory/idempotency-keys/purge", headers=employee_headers)

        assert resp.status_code == 403
        assert db_session.query(IdempotencyKey).count() == 2


class TestSystem:

    def test_health(self, client, db_session):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        assert resp.json["status"] == "ok"
        assert resp.json["checks"]["database"]["status"] == "healthy"

    def test_version(self, client):
        resp = client.get("/api/version")

        assert resp.status_code == 200
        assert resp.json["api_version"] == "1.0.0"

    def test_unknown_route_is_json_404(self, client):
        resp = client.get("/api/no-such-thing")

        assert resp.status_code == 404
        assert resp.json["success"] is False
        assert resp.json["errors"]

    def test_wrong_method_is_json_405(self, client):
        resp = client.get("/api/sync/push")

        assert resp.status_code == 405
        assert resp.json["success"] is False
