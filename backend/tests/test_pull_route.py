# Overview: Pytest coverage for GET /api/sync/pull.

import time
from datetime import timedelta

from pharmasync.models import Expense, Sale
from pharmasync.time_utils import parse_iso_datetime, to_utc_z, utcnow


PULL_URL = "/api/sync/pull"
PUSH_URL = "/api/sync/push"


def test_requires_auth(client, db_session):
    assert client.get(PULL_URL).status_code == 401


def test_invalid_watermark_is_400(client, owner_headers):
    resp = client.get(PULL_URL, query_string={"lastSyncAt": "yesterday"}, headers=owner_headers)

    assert resp.status_code == 400
    assert resp.json["success"] is False


def test_first_sync_returns_everything(client, owner_headers, make_product, make_batch):
    make_product("prod-1", stock=15)
    make_batch("prod-1", "b1", quantity=15)

    resp = client.get(PULL_URL, headers=owner_headers)

    assert resp.status_code == 200
    body = resp.json
    assert body["success"] is True
    assert [p["id"] for p in body["data"]["products"]] == ["prod-1"]
    assert body["data"]["products"][0]["stock"] == 15
    assert [b["id"] for b in body["data"]["productBatches"]] == ["b1"]
    assert parse_iso_datetime(body["serverTime"]) is not None


def test_pushed_sale_comes_back_with_items(client, owner_headers, make_product):
    make_product("prod-1", stock=10)
    client.post(PUSH_URL, json={
        "sales": [{"id": "sale-1", "total": 3000}],
        "saleItems": [{"id": "item-1", "sale_id": "sale-1", "product_id": "prod-1", "quantity": 2, "unit_price": 1500}],
        "stockMovements": [{"id": "mv-1", "product_id": "prod-1", "type": "SALE", "quantity_change": -2}],
    }, headers=owner_headers)

    data = client.get(PULL_URL, headers=owner_headers).json["data"]

    sale = data["sales"][0]
    assert sale["id"] == "sale-1"
    assert [item["id"] for item in sale["items"]] == ["item-1"]
    assert data["stockMovements"][0]["quantity_change"] == -2
    assert data["products"][0]["stock"] == 8


def test_watermark_returns_only_later_changes(client, owner_headers, make_product):
    make_product("prod-1")
    # serverTime has millisecond precision
    time.sleep(0.01)
    first = client.get(PULL_URL, headers=owner_headers).json
    watermark = first["serverTime"]

    resp = client.get(PULL_URL, query_string={"lastSyncAt": watermark}, headers=owner_headers)
    assert all(rows == [] for rows in resp.json["data"].values())

    client.post(PUSH_URL, json={"expenses": [{"id": "e-1", "amount": 500, "category": "Rent"}]},
                headers=owner_headers)
    resp = client.get(PULL_URL, query_string={"lastSyncAt": watermark}, headers=owner_headers)

    assert [e["id"] for e in resp.json["data"]["expenses"]] == ["e-1"]
    assert resp.json["data"]["products"] == []


def test_stock_change_moves_product_past_watermark(client, owner_headers, make_product):
    make_product("prod-1", stock=10)
    watermark = client.get(PULL_URL, headers=owner_headers).json["serverTime"]

    client.post(PUSH_URL, json={"stockMovements": [
        {"id": "mv-1", "product_id": "prod-1", "type": "DAMAGED", "quantity_change": -1},
    ]}, headers=owner_headers)
    data = client.get(PULL_URL, query_string={"lastSyncAt": watermark}, headers=owner_headers).json["data"]

    assert [(p["id"], p["stock"]) for p in data["products"]] == [("prod-1", 9)]


def test_pull_is_read_only(client, owner_headers, make_product):
    make_product("prod-1")

    first = client.get(PULL_URL, headers=owner_headers).json["data"]
    second = client.get(PULL_URL, headers=owner_headers).json["data"]

    assert first == second


def test_employee_sees_no_expenses_and_recent_sales_only(client, owner, employee_headers, db_session):
    now = utcnow()
    db_session.add_all([
        Expense(id="e-1", amount=100, category="Rent", date=now, user_id=owner.id),
        Sale(id="sale-recent", total=100, amount_paid=100, amount_due=0, created_at=now - timedelta(days=2)),
        Sale(id="sale-old", total=100, amount_paid=100, amount_due=0, created_at=now - timedelta(days=90)),
    ])
    db_session.commit()

    data = client.get(PULL_URL, headers=employee_headers).json["data"]

    assert data["expenses"] == []
    assert [s["id"] for s in data["sales"]] == ["sale-recent"]


def test_owner_sees_full_history(client, owner, owner_headers, db_session):
    now = utcnow()
    db_session.add_all([
        Expense(id="e-1", amount=100, category="Rent", date=now, user_id=owner.id),
        Sale(id="sale-old", total=100, amount_paid=100, amount_due=0, created_at=now - timedelta(days=90)),
    ])
    db_session.commit()

    data = client.get(PULL_URL, query_string={"lastSyncAt": to_utc_z(now - timedelta(days=1))},
                      headers=owner_headers).json["data"]

    # Inserted just now on the server clock, so past the watermark
    assert [e["id"] for e in data["expenses"]] == ["e-1"]
    assert [s["id"] for s in data["sales"]] == ["sale-old"]


def test_overlap_redelivers_rows_just_behind_watermark(app, client, owner_headers, make_product, monkeypatch):
    monkeypatch.setitem(app.config, "SYNC_PULL_OVERLAP_SECONDS", 60)
    make_product("prod-1")
    time.sleep(0.01)
    watermark = client.get(PULL_URL, headers=owner_headers).json["serverTime"]

    data = client.get(PULL_URL, query_string={"lastSyncAt": watermark}, headers=owner_headers).json["data"]

    assert [p["id"] for p in data["products"]] == ["prod-1"]


def test_unpaid_credit_sale_turns_overdue_without_new_push(client, owner_headers, db_session, fresh):
    client.post(PUSH_URL, json={"sales": [{
        "id": "sale-credit",
        "total": 5000,
        "payment_method": "CREDIT",
        "due_date": to_utc_z(utcnow() + timedelta(days=14)),
    }]}, headers=owner_headers)
    assert client.get(PULL_URL, headers=owner_headers).json["data"]["sales"][0]["payment_status"] == "PENDING"

    sale = fresh(Sale, "sale-credit")
    sale.due_date = utcnow() - timedelta(days=1)
    db_session.commit()

    sale = client.get(PULL_URL, headers=owner_headers).json["data"]["sales"][0]
    assert sale["payment_status"] == "OVERDUE"
