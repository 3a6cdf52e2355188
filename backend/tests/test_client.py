# Overview: Pytest coverage for the device-side ledger and sync worker.

"""
Client tests.

The worker talks to the real Flask app in-process through
httpx.WSGITransport, so these cover the whole round trip:
ledger -> outbox -> push -> settle -> pull -> ledger.
"""

from datetime import datetime, timedelta

import httpx
import pytest

from pharmasync.client import LocalLedger, SyncApiClient, SyncWorker
from pharmasync.client.ledger import STATUS_PENDING, STATUS_REJECTED
from pharmasync.models import Product, Sale
from pharmasync.time_utils import to_utc_z, utcnow


@pytest.fixture
def ledger(tmp_path):
    return LocalLedger(f"sqlite:///{tmp_path / 'ledger.sqlite3'}")


@pytest.fixture
def api(app, owner_token):
    client = SyncApiClient("http://pharmasync.test", owner_token, transport=httpx.WSGITransport(app=app))
    yield client
    client.close()


@pytest.fixture
def worker(ledger, api):
    return SyncWorker(ledger, api, max_attempts=2)


class TestLedger:

    def test_record_requires_id(self, ledger):
        with pytest.raises(ValueError):
            ledger.record("sales", {"total": 100})

    def test_record_queues_with_fresh_key(self, ledger):
        seq_1 = ledger.record("expenses", {"id": "e-1", "amount": 100, "category": "Rent"})
        seq_2 = ledger.record("expenses", {"id": "e-1", "amount": 150, "category": "Rent"})

        pending = ledger.pending()
        assert [e.seq for e in pending] == [seq_1, seq_2]
        assert pending[0].idempotency_key != pending[1].idempotency_key
        assert pending[1].payload["idempotencyKey"] == pending[1].idempotency_key
        assert ledger.get("expenses", "e-1") == {"id": "e-1", "amount": 150, "category": "Rent"}
        assert not ledger.is_synced("expenses", "e-1")

    def test_cursor_stops_at_first_pending(self, ledger):
        seq_1 = ledger.record("expenses", {"id": "e-1", "amount": 1, "category": "A"})
        seq_2 = ledger.record("expenses", {"id": "e-2", "amount": 1, "category": "A"})
        seq_3 = ledger.record("expenses", {"id": "e-3", "amount": 1, "category": "A"})

        ledger.mark_synced([seq_1, seq_3])
        assert ledger.advance_cursor() == seq_1

        ledger.mark_failed(seq_2, "boom", permanent=True)
        assert ledger.advance_cursor() == seq_3
        assert ledger.pending() == []
        assert [e.seq for e in ledger.rejected()] == [seq_2]

    def test_pull_skips_entities_with_local_edits(self, ledger):
        ledger.record("products", {"id": "prod-1", "name": "Local edit", "price": 100})

        applied = ledger.apply_pull(
            {"products": [
                {"id": "prod-1", "name": "Server copy", "price": 90},
                {"id": "prod-2", "name": "Other", "price": 50},
            ]},
            "2026-10-17T08:00:00.000Z",
        )

        assert applied == 1
        assert ledger.get("products", "prod-1")["name"] == "Local edit"
        assert ledger.is_synced("products", "prod-2")
        # Skipped rows must come back on the next pull
        assert ledger.watermark is None

    def test_pull_moves_watermark_when_nothing_skipped(self, ledger):
        ledger.apply_pull({"products": [{"id": "prod-2", "name": "Other", "price": 50}]}, "2026-10-17T08:00:00.000Z")

        assert ledger.watermark == datetime(2026, 10, 17, 8, 0)

    def test_server_copies_replace_settled_local_rows(self, ledger):
        seq = ledger.record("products", {"id": "prod-1", "name": "Stale local", "price": 100})
        ledger.mark_synced([seq])

        applied = ledger.apply_server_copies({"products": [{"id": "prod-1", "name": "Server name", "price": 90}]})

        assert applied == 1
        assert ledger.get("products", "prod-1")["name"] == "Server name"


class TestSyncWorker:

    def test_push_settles_synced_entries(self, worker, ledger, make_product, fresh):
        make_product("prod-1", stock=10)
        ledger.record("sales", {"id": "sale-1", "total": 3000, "payment_method": "CASH"})
        ledger.record("saleItems", {"id": "item-1", "sale_id": "sale-1", "product_id": "prod-1",
                                    "quantity": 2, "unit_price": 1500})
        ledger.record("stockMovements", {"id": "mv-1", "product_id": "prod-1", "type": "SALE",
                                         "quantity_change": -2})

        report = worker.push_once()

        assert (report.pushed, report.synced, report.rejected) == (3, 3, 0)
        assert ledger.pending() == []
        assert ledger.is_synced("sales", "sale-1")
        assert fresh(Product, "prod-1").stock == 8
        assert fresh(Sale, "sale-1") is not None

    def test_permanent_failure_goes_to_operator(self, worker, ledger, make_product):
        make_product("prod-1", stock=1)
        ledger.record("stockMovements", {"id": "mv-1", "product_id": "prod-1", "type": "SALE",
                                         "quantity_change": -5})

        report = worker.push_once()

        assert report.rejected == 1
        rejected = ledger.rejected()
        assert [e.entity_id for e in rejected] == ["mv-1"]
        assert rejected[0].last_error.startswith("Insufficient stock")
        assert ledger.pending() == []

    def test_retryable_failure_rejected_after_max_attempts(self, worker, ledger, make_product):
        make_product("prod-1", stock=5)
        ledger.record("saleItems", {"id": "item-1", "sale_id": "sale-late", "product_id": "prod-1",
                                    "quantity": 1, "unit_price": 1500})

        first = worker.push_once()
        assert first.retrying == 1
        pending = ledger.pending()
        assert [(e.status, e.attempts) for e in pending] == [(STATUS_PENDING, 1)]

        second = worker.push_once()
        assert second.rejected == 1
        assert [e.status for e in ledger.rejected()] == [STATUS_REJECTED]

    def test_unauthorized_leaves_queue_untouched(self, app, ledger, db_session):
        api = SyncApiClient("http://pharmasync.test", "bad-token", transport=httpx.WSGITransport(app=app))
        worker = SyncWorker(ledger, api)
        ledger.record("expenses", {"id": "e-1", "amount": 100, "category": "Rent"})

        report = worker.push_once()

        assert report.errors == ["HTTP 401"]
        assert [(e.entity_id, e.attempts) for e in ledger.pending()] == [("e-1", 0)]

    def test_run_once_pushes_then_pulls(self, worker, ledger, make_product):
        make_product("prod-1", name="Zinc tablets", stock=10)
        ledger.record("stockMovements", {"id": "mv-1", "product_id": "prod-1", "type": "DAMAGED",
                                         "quantity_change": -1})

        report = worker.run_once()

        assert report.synced == 1
        assert report.pulled >= 2
        assert ledger.get("products", "prod-1")["stock"] == 9
        assert ledger.is_synced("stockMovements", "mv-1")
        assert ledger.watermark is not None

    def test_unreachable_server_is_a_no_op(self, ledger):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        api = SyncApiClient("http://pharmasync.test", "token", transport=httpx.MockTransport(refuse))
        worker = SyncWorker(ledger, api)
        ledger.record("expenses", {"id": "e-1", "amount": 100, "category": "Rent"})

        report = worker.run_once()

        assert report.errors == ["Server unreachable"]
        assert len(ledger.pending()) == 1

    def test_failed_push_skips_pull(self, ledger):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if request.url.path == "/api/health":
                return httpx.Response(200, json={"status": "ok"})
            raise httpx.ReadTimeout("timed out", request=request)

        api = SyncApiClient("http://pharmasync.test", "token", transport=httpx.MockTransport(handler))
        worker = SyncWorker(ledger, api)
        ledger.record("expenses", {"id": "e-1", "amount": 100, "category": "Rent"})

        report = worker.run_once()

        assert report.push_failed
        assert paths == ["/api/health", "/api/sync/push"]
        assert ledger.watermark is None

    def test_stale_offline_edit_converges_to_server_copy(self, worker, ledger, make_product):
        now = utcnow()
        make_product("prod-1", name="Server name", modified_at=now)
        ledger.record("products", {"id": "prod-1", "name": "Stale local", "price": 1500,
                                   "updatedAt": to_utc_z(now - timedelta(hours=1))})

        def time_out(request):
            raise httpx.ReadTimeout("timed out", request=request)

        offline = SyncWorker(ledger, SyncApiClient("http://pharmasync.test", "token",
                                                   transport=httpx.MockTransport(time_out)))
        assert offline.push_once().push_failed

        for _ in range(3):
            worker.run_once()

        assert ledger.get("products", "prod-1")["name"] == "Server name"
        assert ledger.is_synced("products", "prod-1")
        assert ledger.pending() == []

    def test_kept_copy_applied_even_when_watermark_is_past_it(self, worker, ledger, make_product):
        now = utcnow()
        make_product("prod-1", name="Server name", modified_at=now)
        worker.pull_once()
        ledger.record("products", {"id": "prod-1", "name": "Stale local", "price": 1500,
                                   "updatedAt": to_utc_z(now - timedelta(hours=1))})

        report = worker.push_once()

        assert report.synced == 1
        assert ledger.get("products", "prod-1")["name"] == "Server name"
