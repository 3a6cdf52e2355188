# Overview: Stock Validator; applies stock movements atomically and never lets stock go negative.

"""
Stock invariants (authoritative)

- Product.stock is server-owned. It changes only here, in the same
  transaction as the StockMovement row that explains the change.
- Product.stock never goes below zero. The guard is a conditional UPDATE
  (stock + delta >= 0) checked by rowcount, so two devices decrementing the
  same product cannot both succeed against the same stock reading.
- When a product is batch-tracked, decrements also draw down its batches
  (FEFO, or the batch named on the movement) and the drawn quantities are
  recorded as StockMovementAllocation rows. Increments never touch batches.
- Nothing here commits. The caller commits the movement together with its
  idempotency key, or rolls everything back.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Product, StockMovement, StockMovementAllocation
from pharmasync.time_utils import utcnow
from pharmasync.validation import (
    InsufficientStockError,
    MissingReferenceError,
    enforce_rules_stock_movement,
)
from . import fefo_service
from .concurrency import lock_for_update


def _compare_and_swap_stock(product_id: str, delta: int, *, now: datetime) -> bool:
    products = Product.__table__
    result = db.session.execute(
        update(products)
        .where(products.c.id == product_id, products.c.stock + delta >= 0)
        .values(
            stock=products.c.stock + delta,
            updated_at=now,
            version_id=products.c.version_id + 1,
        )
    )
    return result.rowcount == 1


def get_stock(product_id: str) -> int | None:
    return db.session.query(Product.stock).filter_by(id=product_id).scalar()


def apply_stock_movement(
    *,
    movement_id: str,
    product_id: str,
    movement_type: str,
    quantity_change: int,
    user_id: str | None,
    reason: str | None = None,
    created_at: datetime | None = None,
    product_batch_id: str | None = None,
    now: datetime | None = None,
) -> StockMovement:
    """
    Validate and apply one stock movement. Returns the (flushed) movement.

    Raises:
        MissingReferenceError: product or named batch does not exist
        InsufficientStockError: the movement would drive stock below zero
        AllocationError: the product's batches cannot cover the decrement
    """
    now = now or utcnow()
    enforce_rules_stock_movement({"type": movement_type, "quantity_change": quantity_change})

    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise MissingReferenceError("Product", product_id, f"stock movement {movement_id}")
    product_name = product.name

    requested = -quantity_change
    if quantity_change < 0 and product.stock + quantity_change < 0:
        raise InsufficientStockError(
            product_id=product_id,
            product_name=product_name,
            available=product.stock,
            requested=requested,
        )

    # Plan before any write so a shortfall leaves every batch untouched
    plan = None
    if quantity_change < 0:
        if product_batch_id:
            plan = fefo_service.plan_targeted_allocation(product_id, product_batch_id, requested)
        elif fefo_service.has_batches(product_id):
            plan = fefo_service.plan_fefo_allocation(product_id, requested)
    elif product_batch_id:
        fefo_service.get_product_batch(product_id, product_batch_id)

    if not _compare_and_swap_stock(product_id, quantity_change, now=now):
        # Another writer got there first; report what is left now
        db.session.expire(product)
        raise InsufficientStockError(
            product_id=product_id,
            product_name=product_name,
            available=get_stock(product_id) or 0,
            requested=requested,
        )
    db.session.expire(product)

    if plan is not None:
        fefo_service.apply_allocation(plan, now=now)

    movement = StockMovement(
        id=movement_id,
        product_id=product_id,
        product_batch_id=product_batch_id,
        type=movement_type,
        quantity_change=quantity_change,
        reason=reason,
        user_id=user_id,
        created_at=created_at or now,
        recorded_at=now,
    )
    db.session.add(movement)
    if plan is not None:
        for position, allocation in enumerate(plan.allocations):
            db.session.add(StockMovementAllocation(
                movement_id=movement_id,
                batch_id=allocation.batch_id,
                lot_number=allocation.lot_number,
                quantity=allocation.quantity,
                position=position,
            ))
    db.session.flush()

    current_app.logger.debug(
        "Stock movement %s applied to %s: %+d (%d batch allocations)",
        movement_id,
        product_id,
        quantity_change,
        len(plan.allocations) if plan else 0,
    )
    return movement

