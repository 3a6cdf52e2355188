# Overview: Pytest coverage for POST /api/sync/audit.

from pharmasync.models import Expense, Sale


AUDIT_URL = "/api/sync/audit"


def test_healthy_when_snapshots_match(client, owner_headers, make_product):
    make_product("prod-1", stock=12)

    resp = client.post(AUDIT_URL, json={"products": [{"id": "prod-1", "stock": 12}]}, headers=owner_headers)

    assert resp.status_code == 200
    body = resp.json
    assert body["audit"]["products"] == {"matches": 1, "mismatches": []}
    assert body["summary"] == {"totalChecked": 1, "totalMismatches": 0, "status": "HEALTHY"}


def test_reports_each_kind_of_divergence(client, owner, owner_headers, make_product, db_session):
    make_product("prod-1", name="Cetirizine", stock=12)
    db_session.add_all([
        Sale(id="sale-1", total=4000, amount_paid=4000, amount_due=0),
        Expense(id="e-1", amount=700, category="Power", user_id=owner.id),
    ])
    db_session.commit()

    resp = client.post(AUDIT_URL, json={
        "products": [{"id": "prod-1", "stock": 10}],
        "sales": [{"id": "sale-1", "total": 4500}, {"id": "sale-ghost", "total": 100}],
        "stockMovements": [],
        "expenses": [{"id": "e-1", "amount": 700}],
    }, headers=owner_headers)

    body = resp.json
    product_mismatch = body["audit"]["products"]["mismatches"][0]
    assert product_mismatch["type"] == "STOCK_MISMATCH"
    assert product_mismatch["local"] == {"stock": 10}
    assert product_mismatch["server"] == {"stock": 12}

    sale_types = [m["type"] for m in body["audit"]["sales"]["mismatches"]]
    assert sale_types == ["TOTAL_MISMATCH", "MISSING_ON_SERVER"]
    assert body["audit"]["expenses"]["matches"] == 1
    assert body["summary"] == {"totalChecked": 4, "totalMismatches": 3, "status": "ISSUES_FOUND"}


def test_batch_total_drift_is_reported(client, owner_headers, make_product, make_batch):
    make_product("prod-1", name="Amoxicillin", stock=12)
    make_batch("prod-1", "b1", quantity=10)

    resp = client.post(AUDIT_URL, json={"products": [{"id": "prod-1", "stock": 12}]}, headers=owner_headers)

    mismatch = resp.json["audit"]["products"]["mismatches"][0]
    assert mismatch["type"] == "BATCH_STOCK_MISMATCH"
    assert mismatch["server"] == {"stock": 12, "batchTotal": 10}
    assert resp.json["summary"]["status"] == "ISSUES_FOUND"


def test_batch_tracked_product_in_balance(client, owner_headers, make_product, make_batch):
    make_product("prod-1", stock=10)
    make_batch("prod-1", "b1", quantity=4)
    make_batch("prod-1", "b2", quantity=6)

    resp = client.post(AUDIT_URL, json={"products": [{"id": "prod-1", "stock": 10}]}, headers=owner_headers)

    assert resp.json["audit"]["products"] == {"matches": 1, "mismatches": []}


def test_movement_snapshot_accepts_camel_case(client, owner_headers, make_product):
    make_product("prod-1", stock=5)
    client.post("/api/sync/push", json={"stockMovements": [
        {"id": "mv-1", "product_id": "prod-1", "type": "ADJUSTMENT", "quantity_change": -1},
    ]}, headers=owner_headers)

    resp = client.post(AUDIT_URL, json={"stockMovements": [{"id": "mv-1", "quantityChange": -2}]},
                       headers=owner_headers)

    mismatch = resp.json["audit"]["stockMovements"]["mismatches"][0]
    assert mismatch["type"] == "QUANTITY_MISMATCH"
    assert mismatch["server"] == {"quantityChange": -1}


def test_employee_expense_snapshots_are_not_checked(client, employee_headers, db_session):
    resp = client.post(AUDIT_URL, json={"expenses": [{"id": "e-unknown", "amount": 1}]},
                       headers=employee_headers)

    assert resp.json["audit"]["expenses"] == {"matches": 0, "mismatches": []}
    assert resp.json["summary"]["status"] == "HEALTHY"


def test_non_list_field_is_400(client, owner_headers):
    resp = client.post(AUDIT_URL, json={"products": {"id": "prod-1"}}, headers=owner_headers)
    assert resp.status_code == 400


def test_entry_without_id_is_400(client, owner_headers):
    resp = client.post(AUDIT_URL, json={"sales": [{"total": 100}]}, headers=owner_headers)
    assert resp.status_code == 400


def test_requires_auth(client, db_session):
    assert client.post(AUDIT_URL, json={}).status_code == 401
