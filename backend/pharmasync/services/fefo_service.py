# Overview: First-expired-first-out batch allocation for stock decrements.

"""
FEFO Batch Allocation

Pharmacy stock must leave the shelf in expiry order so write-offs stay low.
Allocation is split into two steps:

- plan:  read-only; decides which batches cover a quantity and fails as a
         whole when they cannot (no batch is touched)
- apply: decrements the planned batches inside the caller's transaction

Ordering is deterministic (expiration_date, received_date, id) so a plan
can be replayed for audit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, update

from ..extensions import db
from ..models import ProductBatch
from pharmasync.time_utils import utcnow
from pharmasync.validation import AllocationError, MissingReferenceError, ValidationError

ALERT_EXPIRED = "EXPIRED"
ALERT_CRITICAL = "CRITICAL"
ALERT_WARNING = "WARNING"
ALERT_OK = "OK"

CRITICAL_DAYS = 30
WARNING_DAYS = 60


@dataclass(frozen=True)
class BatchAllocation:
    batch_id: str
    lot_number: str
    quantity: int

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "lot_number": self.lot_number,
            "quantity": self.quantity,
        }


@dataclass(frozen=True)
class AllocationPlan:
    product_id: str
    requested: int
    allocations: tuple[BatchAllocation, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return sum(a.quantity for a in self.allocations)


def fefo_sort_key(batch) -> tuple:
    return (batch.expiration_date, batch.received_date or datetime.min, batch.id)


def plan_from_batches(product_id: str, batches, quantity: int) -> AllocationPlan:
    """
    Greedy FEFO over an in-memory collection of batch-like objects.

    Batches with nothing left are ignored. Raises AllocationError when the
    batches hold less than `quantity` in total.
    """
    if quantity <= 0:
        raise ValidationError("Allocation quantity must be a positive integer")

    available = [b for b in batches if b.quantity > 0]
    total_available = sum(b.quantity for b in available)
    if total_available < quantity:
        raise AllocationError(product_id=product_id, available=total_available, requested=quantity)

    remaining = quantity
    allocations: list[BatchAllocation] = []
    for batch in sorted(available, key=fefo_sort_key):
        if remaining == 0:
            break
        take = min(batch.quantity, remaining)
        allocations.append(BatchAllocation(batch.id, batch.lot_number, take))
        remaining -= take

    return AllocationPlan(product_id=product_id, requested=quantity, allocations=tuple(allocations))


def plan_fefo_allocation(product_id: str, quantity: int) -> AllocationPlan:
    """Plan a FEFO allocation from the stored batches of a product. No writes."""
    batches = (
        db.session.query(ProductBatch)
        .filter(ProductBatch.product_id == product_id, ProductBatch.quantity > 0)
        .order_by(ProductBatch.expiration_date, ProductBatch.received_date, ProductBatch.id)
        .all()
    )
    return plan_from_batches(product_id, batches, quantity)


def get_product_batch(product_id: str, batch_id: str) -> ProductBatch:
    batch = db.session.query(ProductBatch).filter_by(id=batch_id).first()
    if batch is None:
        raise MissingReferenceError("ProductBatch", batch_id, f"product {product_id}")
    if batch.product_id != product_id:
        raise ValidationError(f"Batch {batch_id} does not belong to product {product_id}")
    return batch


def plan_targeted_allocation(product_id: str, batch_id: str, quantity: int) -> AllocationPlan:
    """Plan a decrement against one named batch. No writes."""
    if quantity <= 0:
        raise ValidationError("Allocation quantity must be a positive integer")

    batch = get_product_batch(product_id, batch_id)
    if batch.quantity < quantity:
        raise AllocationError(
            product_id=product_id,
            available=batch.quantity,
            requested=quantity,
            lot_number=batch.lot_number,
        )

    return AllocationPlan(
        product_id=product_id,
        requested=quantity,
        allocations=(BatchAllocation(batch.id, batch.lot_number, quantity),),
    )


def apply_allocation(plan: AllocationPlan, *, now: datetime | None = None) -> None:
    """
    Decrement every batch in the plan. Does not commit.

    Each decrement is conditional on the batch still holding enough, so a
    plan made from stale reads fails instead of driving a batch negative.
    The caller rolls back the whole unit on AllocationError.
    """
    now = now or utcnow()
    batches = ProductBatch.__table__
    touched = set()

    for allocation in plan.allocations:
        result = db.session.execute(
            update(batches)
            .where(
                batches.c.id == allocation.batch_id,
                batches.c.product_id == plan.product_id,
                batches.c.quantity >= allocation.quantity,
            )
            .values(
                quantity=batches.c.quantity - allocation.quantity,
                updated_at=now,
                version_id=batches.c.version_id + 1,
            )
        )
        if result.rowcount != 1:
            current = db.session.query(ProductBatch.quantity).filter_by(id=allocation.batch_id).scalar()
            raise AllocationError(
                product_id=plan.product_id,
                available=current or 0,
                requested=allocation.quantity,
                lot_number=allocation.lot_number,
            )
        touched.add(allocation.batch_id)

    # In-session copies no longer match the rows
    for obj in list(db.session.identity_map.values()):
        if isinstance(obj, ProductBatch) and obj.id in touched:
            db.session.expire(obj)


def has_batches(product_id: str) -> bool:
    """Batch tracking is active once a product has any batch row."""
    return db.session.query(ProductBatch.id).filter_by(product_id=product_id).first() is not None


def get_total_batch_stock(product_id: str) -> int:
    total = db.session.query(func.coalesce(func.sum(ProductBatch.quantity), 0)).filter(
        ProductBatch.product_id == product_id
    ).scalar()
    return int(total or 0)


def get_expiring_batches(days: int, *, now: datetime | None = None) -> list[ProductBatch]:
    """Batches with stock left that expire within `days` (already expired included)."""
    now = now or utcnow()
    cutoff = now + timedelta(days=days)
    return (
        db.session.query(ProductBatch)
        .filter(ProductBatch.quantity > 0, ProductBatch.expiration_date <= cutoff)
        .order_by(ProductBatch.expiration_date, ProductBatch.id)
        .all()
    )


def expiration_alert_level(expiration_date: datetime, *, now: datetime | None = None) -> str:
    now = now or utcnow()
    if expiration_date <= now:
        return ALERT_EXPIRED
    days_left = (expiration_date - now).days
    if days_left <= CRITICAL_DAYS:
        return ALERT_CRITICAL
    if days_left <= WARNING_DAYS:
        return ALERT_WARNING
    return ALERT_OK
