from __future__ import annotations

from datetime import datetime


# Sale payment statuses, derived server-side from amounts and due date
PAYMENT_PENDING = "PENDING"
PAYMENT_PARTIALLY_PAID = "PARTIALLY_PAID"
PAYMENT_PAID = "PAID"
PAYMENT_OVERDUE = "OVERDUE"

PAYMENT_METHODS = {"CASH", "MOBILE_MONEY", "CREDIT"}

MOVEMENT_TYPES = {"SALE", "ADJUSTMENT", "INVENTORY", "RECEIPT", "DAMAGED", "EXPIRED"}


class ValidationError(ValueError):
    """400-level input problem."""

    code = "INVALID"
    permanent = True


class MissingReferenceError(ValidationError):
    """A pushed entity points at a parent the server does not have (yet)."""

    code = "MISSING_REFERENCE"
    # The parent may arrive in a later push, so clients should retry.
    permanent = False

    def __init__(self, entity_label: str, entity_id: str, context: str | None = None):
        message = f"{entity_label} {entity_id} not found"
        if context:
            message = f"{message} for {context}"
        super().__init__(message)
        self.entity_label = entity_label
        self.entity_id = entity_id


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., reused idempotency key)."""

    code = "CONFLICT"
    permanent = True


class IdempotencyKeyReusedError(ConflictError):
    code = "IDEMPOTENCY_KEY_REUSED"


class InsufficientStockError(ConflictError):
    """Applying a movement would drive Product.stock below zero."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, *, product_id: str, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for {product_name}: "
            f"{available} available, {requested} requested"
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


class AllocationError(ConflictError):
    """The batches of a product cannot cover the requested quantity."""

    code = "ALLOCATION_SHORTFALL"

    def __init__(self, *, product_id: str, available: int, requested: int, lot_number: str | None = None):
        if lot_number:
            message = (
                f"Batch {lot_number} of product {product_id} has {available} left, "
                f"{requested} requested"
            )
        else:
            message = (
                f"Batches of product {product_id} hold {available} in total, "
                f"{requested} requested"
            )
        super().__init__(message)
        self.product_id = product_id
        self.available = available
        self.requested = requested


def derive_payment_status(
    *,
    amount_paid: int,
    amount_due: int,
    due_date: datetime | None,
    now: datetime,
) -> str:
    if amount_due <= 0:
        return PAYMENT_PAID
    if due_date is not None and due_date < now:
        return PAYMENT_OVERDUE
    if amount_paid > 0:
        return PAYMENT_PARTIALLY_PAID
    return PAYMENT_PENDING


def enforce_rules_sale(patch: dict) -> None:
    """
    Amount invariants for a sale: amount_paid + amount_due == total.

    amount_due is derived when the client leaves it out.
    """
    total = patch["total"]
    paid = patch["amount_paid"]
    if total < 0:
        raise ValidationError("total must be >= 0")
    if paid < 0:
        raise ValidationError("amount_paid must be >= 0")

    if patch.get("amount_due") is None:
        patch["amount_due"] = total - paid

    due = patch["amount_due"]
    if due < 0:
        raise ValidationError("amount_due must be >= 0")
    if paid + due != total:
        raise ValidationError(
            f"amount_paid ({paid}) + amount_due ({due}) must equal total ({total})"
        )

    if patch.get("payment_method") != "CREDIT":
        patch["due_date"] = None


def enforce_rules_batch(patch: dict) -> None:
    quantity = patch["quantity"]
    initial = patch["initial_qty"]
    if initial < 0:
        raise ValidationError("initial_qty must be >= 0")
    if quantity < 0 or quantity > initial:
        raise ValidationError(f"quantity must be between 0 and initial_qty ({initial})")


def enforce_rules_stock_movement(patch: dict) -> None:
    if patch["type"] not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown stock movement type: {patch['type']}")
    if patch["quantity_change"] == 0:
        raise ValidationError("quantity_change must be non-zero")
    # A SALE only ever takes stock out
    if patch["type"] == "SALE" and patch["quantity_change"] > 0:
        raise ValidationError("quantity_change must be < 0 for SALE")
