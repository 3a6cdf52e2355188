# Overview: Pull Synchronizer; read-only delta of server state since a watermark.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import (
    CreditPayment,
    Expense,
    Product,
    ProductBatch,
    ProductSupplier,
    Sale,
    SalePrescription,
    StockMovement,
    StockoutReport,
    Supplier,
    SupplierOrder,
    SupplierReturn,
)
from ..models.auth import ROLE_OWNER
from pharmasync.time_utils import to_utc_z, utcnow


@dataclass(frozen=True)
class PullSource:
    field: str
    model: type
    # Server write clock compared against the watermark
    clock: str
    order_by: str
    # Business-time column limiting what EMPLOYEE sessions see
    history_column: str | None = None
    owner_only: bool = False
    eager: tuple[str, ...] = ()


PULL_SOURCES: tuple[PullSource, ...] = (
    PullSource("products", Product, "updated_at", "name"),
    PullSource("productBatches", ProductBatch, "updated_at", "expiration_date"),
    PullSource("suppliers", Supplier, "updated_at", "name"),
    PullSource("productSuppliers", ProductSupplier, "updated_at", "id"),
    PullSource("supplierOrders", SupplierOrder, "updated_at", "order_date", eager=("items",)),
    PullSource("supplierReturns", SupplierReturn, "updated_at", "return_date"),
    PullSource("sales", Sale, "updated_at", "created_at", history_column="created_at", eager=("items",)),
    PullSource("creditPayments", CreditPayment, "recorded_at", "payment_date", history_column="payment_date"),
    PullSource("salePrescriptions", SalePrescription, "recorded_at", "captured_at", history_column="captured_at"),
    PullSource("expenses", Expense, "updated_at", "date", owner_only=True),
    PullSource(
        "stockMovements",
        StockMovement,
        "recorded_at",
        "created_at",
        history_column="created_at",
        eager=("allocations",),
    ),
    PullSource("stockoutReports", StockoutReport, "recorded_at", "created_at"),
)


def _query_source(source: PullSource, *, since, role: str, history_cutoff: datetime):
    model = source.model
    query = db.session.query(model)
    for relation in source.eager:
        query = query.options(selectinload(getattr(model, relation)))

    if since is not None:
        query = query.filter(getattr(model, source.clock) > since)
    if role != ROLE_OWNER and source.history_column:
        query = query.filter(getattr(model, source.history_column) >= history_cutoff)

    return query.order_by(getattr(model, source.order_by), model.id).all()


def pull_changes(*, last_sync_at: datetime | None, role: str) -> dict:
    """
    Every entity changed after `last_sync_at` (everything when None).

    serverTime is taken before the first query. A push stamps updated_at
    inside its transaction and commits a moment later, so a row can carry a
    clock older than serverTime yet be invisible to this pull. The query
    therefore reaches SYNC_PULL_OVERLAP_SECONDS behind the watermark; rows
    in that window may be delivered twice, which clients apply idempotently.
    """
    server_time = utcnow()
    history_days = current_app.config["SYNC_EMPLOYEE_HISTORY_DAYS"]
    history_cutoff = server_time - timedelta(days=history_days)
    since = None
    if last_sync_at is not None:
        since = last_sync_at - timedelta(seconds=current_app.config["SYNC_PULL_OVERLAP_SECONDS"])

    data: dict[str, list[dict]] = {}
    for source in PULL_SOURCES:
        if source.owner_only and role != ROLE_OWNER:
            data[source.field] = []
            continue
        rows = _query_source(
            source,
            since=since,
            role=role,
            history_cutoff=history_cutoff,
        )
        data[source.field] = [row.to_dict() for row in rows]

    current_app.logger.info(
        "Sync pull (role=%s, since=%s): %s",
        role,
        to_utc_z(last_sync_at) if last_sync_at else "beginning",
        {field: len(rows) for field, rows in data.items() if rows},
    )
    return {"success": True, "data": data, "serverTime": to_utc_z(server_time)}
