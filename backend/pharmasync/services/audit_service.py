# Overview: Compares device snapshots with server state to find silent divergence.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Expense, Product, Sale, StockMovement
from ..models.auth import ROLE_OWNER
from . import fefo_service
from pharmasync.time_utils import to_utc_z, utcnow
from pharmasync.validation import ValidationError

STATUS_HEALTHY = "HEALTHY"
STATUS_ISSUES_FOUND = "ISSUES_FOUND"

MISSING_ON_SERVER = "MISSING_ON_SERVER"
# Product.stock no longer equals the sum of its batch quantities
BATCH_STOCK_MISMATCH = "BATCH_STOCK_MISMATCH"


@dataclass(frozen=True)
class AuditRule:
    field: str
    model: type
    # Attribute compared on the server row
    attribute: str
    # Keys the device may use for that value in its snapshot
    snapshot_keys: tuple[str, ...]
    mismatch_type: str
    owner_only: bool = False


AUDIT_RULES: tuple[AuditRule, ...] = (
    AuditRule("products", Product, "stock", ("stock",), "STOCK_MISMATCH"),
    AuditRule("sales", Sale, "total", ("total",), "TOTAL_MISMATCH"),
    AuditRule(
        "stockMovements",
        StockMovement,
        "quantity_change",
        ("quantityChange", "quantity_change"),
        "QUANTITY_MISMATCH",
    ),
    AuditRule("expenses", Expense, "amount", ("amount",), "AMOUNT_MISMATCH", owner_only=True),
)


def _snapshot_value(entry: dict, keys: tuple[str, ...]):
    for key in keys:
        if key in entry:
            return entry[key]
    return None


def _audit_rule(rule: AuditRule, snapshots: list) -> dict:
    ids = []
    for entry in snapshots:
        if not isinstance(entry, dict) or not entry.get("id"):
            raise ValidationError(f"{rule.field} snapshots must be objects with an id")
        ids.append(entry["id"])

    rows = {}
    if ids:
        rows = {
            row.id: row
            for row in db.session.query(rule.model).filter(rule.model.id.in_(ids)).all()
        }

    matches = 0
    mismatches = []
    for entry in snapshots:
        local_value = _snapshot_value(entry, rule.snapshot_keys)
        local = {rule.snapshot_keys[0]: local_value}
        server = rows.get(entry["id"])

        if server is None:
            mismatches.append({"id": entry["id"], "type": MISSING_ON_SERVER, "local": local, "server": None})
            continue

        server_value = getattr(server, rule.attribute)
        if server_value != local_value:
            mismatch = {
                "id": entry["id"],
                "type": rule.mismatch_type,
                "local": local,
                "server": {rule.snapshot_keys[0]: server_value},
            }
            if rule.model is Product:
                mismatch["name"] = server.name
            mismatches.append(mismatch)
            continue

        if rule.model is Product and fefo_service.has_batches(server.id):
            batch_total = fefo_service.get_total_batch_stock(server.id)
            if batch_total != server.stock:
                mismatches.append({
                    "id": entry["id"],
                    "type": BATCH_STOCK_MISMATCH,
                    "name": server.name,
                    "local": local,
                    "server": {"stock": server.stock, "batchTotal": batch_total},
                })
                continue

        matches += 1

    return {"matches": matches, "mismatches": mismatches}


def audit_snapshots(body, *, role: str, user_id: str) -> dict:
    """
    Check device snapshots against the server.

    Raises ValidationError for a malformed body. Expense snapshots are only
    checked for OWNER sessions.
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    audit = {}
    for rule in AUDIT_RULES:
        snapshots = body.get(rule.field)
        if snapshots is None:
            snapshots = []
        if not isinstance(snapshots, list):
            raise ValidationError(f"{rule.field} must be an array")
        if rule.owner_only and role != ROLE_OWNER:
            audit[rule.field] = {"matches": 0, "mismatches": []}
            continue
        audit[rule.field] = _audit_rule(rule, snapshots)

    total_mismatches = sum(len(r["mismatches"]) for r in audit.values())
    total_checked = sum(r["matches"] for r in audit.values()) + total_mismatches
    status = STATUS_HEALTHY if total_mismatches == 0 else STATUS_ISSUES_FOUND

    current_app.logger.info(
        "Sync audit for %s: checked=%d mismatches=%d",
        user_id,
        total_checked,
        total_mismatches,
    )
    return {
        "success": True,
        "audit": audit,
        "summary": {
            "totalChecked": total_checked,
            "totalMismatches": total_mismatches,
            "status": status,
        },
        "serverTime": to_utc_z(utcnow()),
    }
