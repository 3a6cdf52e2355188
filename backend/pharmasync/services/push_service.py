# Overview: Push Synchronizer; merges entities pushed by POS devices into server state.

"""
Push Synchronizer

Devices create every entity locally with a stable id and push them later,
possibly more than once. For each pushed entity:

1. A known, unexpired idempotency key means "already applied": report the
   id as synced and do nothing else.
2. Unknown id: insert it under the client's id.
3. Known id, mutable entity: last-write-wins on the client modification
   timestamp. Strictly newer incoming data replaces the stored entity as a
   whole; otherwise the server copy stays as it is. Concurrent edits to
   different fields of the same entity are NOT merged: the older one is lost.
4. Known id, append-only entity: nothing to do.
   When a mutable entity keeps its server copy, that copy is returned under
   `kept` so the device can replace its stale version at once.
5. The idempotency key, if any, is stored with the entity before commit.

Each entity is its own transaction. A failing entity is rolled back and
reported in `errors` / `failures`; the rest of the push still commits.
Types are processed parents-first so one push can carry a whole graph.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    CreditPayment,
    Expense,
    Product,
    ProductBatch,
    ProductSupplier,
    Sale,
    SaleItem,
    SalePrescription,
    StockMovement,
    StockoutReport,
    Supplier,
    SupplierOrder,
    SupplierOrderItem,
    SupplierReturn,
)
from pharmasync.time_utils import utcnow
from pharmasync.validation import (
    ConflictError,
    MissingReferenceError,
    ValidationError,
    derive_payment_status,
    enforce_rules_batch,
    enforce_rules_sale,
)
from . import fefo_service, idempotency_service, stock_service
from .concurrency import run_with_retry
from .sync_schemas import (
    PUSH_ORDER,
    CreditPaymentIn,
    ExpenseIn,
    ProductBatchIn,
    ProductIn,
    ProductSupplierIn,
    SaleIn,
    SaleItemIn,
    SalePrescriptionIn,
    StockMovementIn,
    StockoutReportIn,
    SupplierIn,
    SupplierOrderIn,
    SupplierOrderItemIn,
    SupplierReturnIn,
    SyncEntity,
    parse_entity,
    split_push_body,
)

OUTCOME_CREATED = "created"
OUTCOME_UPDATED = "updated"
# Server copy won, or an append-only row was already there
OUTCOME_KEPT = "kept"
# Idempotency key hit
OUTCOME_REPLAYED = "replayed"


@dataclass
class PushContext:
    user_id: str
    role: str
    now: datetime


@dataclass
class PushResult:
    synced: dict[str, list[str]] = field(
        default_factory=lambda: {schema.push_field: [] for schema in PUSH_ORDER}
    )
    errors: list[str] = field(default_factory=list)
    failures: list[dict] = field(default_factory=list)
    # Server copies of mutable entities that won last-write-wins
    kept: dict[str, list[dict]] = field(default_factory=dict)
    outcomes: dict[str, int] = field(default_factory=dict)

    def record_success(self, schema: type[SyncEntity], entity_id: str, outcome: str) -> None:
        self.synced[schema.push_field].append(entity_id)
        self.outcomes[outcome] = self.outcomes.get(outcome, 0) + 1

    def record_failure(self, schema: type[SyncEntity], entity_id: str | None, exc: Exception) -> None:
        label = schema.entity_type.replace("_", " ")
        message = str(exc)
        self.errors.append(f"Failed to sync {label} {entity_id or '<no id>'}: {message}")
        self.failures.append({
            "entityType": schema.push_field,
            "id": entity_id,
            "code": getattr(exc, "code", "INVALID"),
            "message": message,
            "permanent": getattr(exc, "permanent", True),
        })

    def to_dict(self) -> dict:
        data = {"success": True, "synced": self.synced, "failures": self.failures}
        if self.kept:
            data["kept"] = self.kept
        if self.errors:
            data["errors"] = self.errors
        return data


# --- lookups ---------------------------------------------------------------

def _get(model, entity_id: str | None):
    if not entity_id:
        return None
    return db.session.query(model).filter_by(id=entity_id).first()


def _require(model, entity_id: str, context: str):
    obj = _get(model, entity_id)
    if obj is None:
        raise MissingReferenceError(model.__name__, entity_id, context)
    return obj


def _is_newer(incoming: datetime | None, stored: datetime | None) -> bool:
    # No incoming timestamp: the server copy wins
    if incoming is None:
        return False
    if stored is None:
        return True
    return incoming > stored


def _upsert(entity: SyncEntity, existing, *, build, apply, stored_time=None) -> str:
    if existing is None:
        db.session.add(build())
        db.session.flush()
        return OUTCOME_CREATED

    stored = stored_time(existing) if stored_time else existing.modified_at
    if not _is_newer(entity.modification_time(), stored):
        return OUTCOME_KEPT

    apply(existing)
    db.session.flush()
    return OUTCOME_UPDATED


# --- catalog ---------------------------------------------------------------

def _push_product(e: ProductIn, ctx: PushContext) -> str:
    def build():
        return Product(
            id=e.id,
            name=e.name,
            category=e.category,
            price=e.price,
            price_buy=e.price_buy,
            stock=e.stock,
            min_stock=e.min_stock,
            modified_at=e.updated_at or ctx.now,
        )

    def apply(product: Product):
        # stock is server-owned after the first insert
        product.name = e.name
        product.category = e.category
        product.price = e.price
        product.price_buy = e.price_buy
        product.min_stock = e.min_stock
        product.modified_at = e.updated_at

    return _upsert(e, _get(Product, e.id), build=build, apply=apply)


def _push_product_batch(e: ProductBatchIn, ctx: PushContext) -> str:
    context = f"product batch {e.id}"
    initial_qty = e.initial_qty if e.initial_qty is not None else e.quantity
    enforce_rules_batch({"quantity": e.quantity, "initial_qty": initial_qty})

    existing = _get(ProductBatch, e.id)
    if existing is None:
        _require(Product, e.product_id, context)
    if e.supplier_order_id:
        _require(SupplierOrder, e.supplier_order_id, context)

    def build():
        return ProductBatch(
            id=e.id,
            product_id=e.product_id,
            lot_number=e.lot_number,
            expiration_date=e.expiration_date,
            quantity=e.quantity,
            initial_qty=initial_qty,
            unit_cost=e.unit_cost,
            supplier_order_id=e.supplier_order_id,
            received_date=e.received_date or ctx.now,
            modified_at=e.updated_at or ctx.now,
        )

    def apply(batch: ProductBatch):
        # quantity and initial_qty are server-owned after the first insert
        batch.lot_number = e.lot_number
        batch.expiration_date = e.expiration_date
        batch.unit_cost = e.unit_cost
        batch.supplier_order_id = e.supplier_order_id
        if e.received_date is not None:
            batch.received_date = e.received_date
        batch.modified_at = e.updated_at

    return _upsert(e, existing, build=build, apply=apply)


# --- suppliers -------------------------------------------------------------

def _push_supplier(e: SupplierIn, ctx: PushContext) -> str:
    def build():
        return Supplier(
            id=e.id,
            name=e.name,
            phone=e.phone,
            payment_terms_days=e.payment_terms_days,
            modified_at=e.updated_at or ctx.now,
        )

    def apply(supplier: Supplier):
        supplier.name = e.name
        supplier.phone = e.phone
        supplier.payment_terms_days = e.payment_terms_days
        supplier.modified_at = e.updated_at

    return _upsert(e, _get(Supplier, e.id), build=build, apply=apply)


def _push_product_supplier(e: ProductSupplierIn, ctx: PushContext) -> str:
    context = f"product supplier {e.id}"
    _require(Product, e.product_id, context)
    _require(Supplier, e.supplier_id, context)

    existing = _get(ProductSupplier, e.id)
    if existing is None:
        # Same pair recorded under another id on another device
        existing = db.session.query(ProductSupplier).filter_by(
            product_id=e.product_id,
            supplier_id=e.supplier_id,
        ).first()

    def build():
        return ProductSupplier(
            id=e.id,
            product_id=e.product_id,
            supplier_id=e.supplier_id,
            supplier_product_code=e.supplier_product_code,
            supplier_product_name=e.supplier_product_name,
            default_price=e.default_price,
            is_primary=e.is_primary,
            last_ordered_date=e.last_ordered_date,
            modified_at=e.updated_at or ctx.now,
        )

    def apply(link: ProductSupplier):
        link.supplier_product_code = e.supplier_product_code
        link.supplier_product_name = e.supplier_product_name
        link.default_price = e.default_price
        link.is_primary = e.is_primary
        link.last_ordered_date = e.last_ordered_date
        link.modified_at = e.updated_at

    return _upsert(e, existing, build=build, apply=apply)


def _push_supplier_order(e: SupplierOrderIn, ctx: PushContext) -> str:
    _require(Supplier, e.supplier_id, f"supplier order {e.id}")

    def build():
        return SupplierOrder(
            id=e.id,
            supplier_id=e.supplier_id,
            order_date=e.order_date or ctx.now,
            delivery_date=e.delivery_date,
            total_amount=e.total_amount,
            calculated_total=0,
            amount_paid=e.amount_paid,
            due_date=e.due_date,
            status=e.status,
            notes=e.notes,
            modified_at=e.updated_at or ctx.now,
        )

    def apply(order: SupplierOrder):
        # calculated_total is derived from the order's items
        order.supplier_id = e.supplier_id
        if e.order_date is not None:
            order.order_date = e.order_date
        order.delivery_date = e.delivery_date
        order.total_amount = e.total_amount
        order.amount_paid = e.amount_paid
        order.due_date = e.due_date
        order.status = e.status
        order.notes = e.notes
        order.modified_at = e.updated_at

    return _upsert(e, _get(SupplierOrder, e.id), build=build, apply=apply)


def _push_supplier_order_item(e: SupplierOrderItemIn, ctx: PushContext) -> str:
    if _get(SupplierOrderItem, e.id) is not None:
        return OUTCOME_KEPT

    context = f"supplier order item {e.id}"
    order = _require(SupplierOrder, e.order_id, context)
    if e.product_id:
        _require(Product, e.product_id, context)

    db.session.add(SupplierOrderItem(
        id=e.id,
        order_id=e.order_id,
        product_id=e.product_id,
        product_name=e.product_name,
        category=e.category,
        quantity=e.quantity,
        unit_price=e.unit_price,
        subtotal=e.quantity * e.unit_price,
        notes=e.notes,
        recorded_at=ctx.now,
    ))
    db.session.flush()

    order.calculated_total = db.session.query(
        func.coalesce(func.sum(SupplierOrderItem.subtotal), 0)
    ).filter(SupplierOrderItem.order_id == order.id).scalar()
    order.updated_at = ctx.now
    db.session.flush()
    return OUTCOME_CREATED


def _push_supplier_return(e: SupplierReturnIn, ctx: PushContext) -> str:
    context = f"supplier return {e.id}"
    _require(Supplier, e.supplier_id, context)
    _require(Product, e.product_id, context)
    if e.supplier_order_id:
        _require(SupplierOrder, e.supplier_order_id, context)
    if e.applied_to_order_id:
        _require(SupplierOrder, e.applied_to_order_id, context)

    def build():
        return SupplierReturn(
            id=e.id,
            supplier_id=e.supplier_id,
            supplier_order_id=e.supplier_order_id,
            product_id=e.product_id,
            quantity=e.quantity,
            reason=e.reason,
            credit_amount=e.credit_amount,
            return_date=e.return_date or ctx.now,
            applied=e.applied,
            applied_to_order_id=e.applied_to_order_id,
            modified_at=e.updated_at or ctx.now,
        )

    def apply(ret: SupplierReturn):
        ret.supplier_id = e.supplier_id
        ret.supplier_order_id = e.supplier_order_id
        ret.product_id = e.product_id
        ret.quantity = e.quantity
        ret.reason = e.reason
        ret.credit_amount = e.credit_amount
        if e.return_date is not None:
            ret.return_date = e.return_date
        ret.applied = e.applied
        ret.applied_to_order_id = e.applied_to_order_id
        ret.modified_at = e.updated_at

    return _upsert(e, _get(SupplierReturn, e.id), build=build, apply=apply)


# --- sales -----------------------------------------------------------------

def _sale_amounts(e: SaleIn, ctx: PushContext) -> dict:
    amount_paid = e.amount_paid
    if amount_paid is None:
        amount_paid = 0 if e.payment_method == "CREDIT" else e.total

    patch = {
        "total": e.total,
        "amount_paid": amount_paid,
        "amount_due": e.amount_due,
        "payment_method": e.payment_method,
        "due_date": e.due_date,
    }
    enforce_rules_sale(patch)
    patch["payment_status"] = derive_payment_status(
        amount_paid=patch["amount_paid"],
        amount_due=patch["amount_due"],
        due_date=patch["due_date"],
        now=ctx.now,
    )
    return patch


def _push_sale(e: SaleIn, ctx: PushContext) -> str:
    amounts = _sale_amounts(e, ctx)

    def build():
        return Sale(
            id=e.id,
            payment_ref=e.payment_ref,
            customer_name=e.customer_name,
            customer_phone=e.customer_phone,
            user_id=ctx.user_id,
            created_at=e.created_at or ctx.now,
            modified_at=e.modified_at,
            modified_by=e.modified_by,
            edit_count=e.edit_count,
            **amounts,
        )

    def apply(sale: Sale):
        for name, value in amounts.items():
            setattr(sale, name, value)
        sale.payment_ref = e.payment_ref
        sale.customer_name = e.customer_name
        sale.customer_phone = e.customer_phone
        sale.modified_at = e.modified_at
        sale.modified_by = e.modified_by
        sale.edit_count = e.edit_count

    return _upsert(
        e,
        _get(Sale, e.id),
        build=build,
        apply=apply,
        stored_time=lambda sale: sale.modified_at or sale.created_at,
    )


def _push_sale_item(e: SaleItemIn, ctx: PushContext) -> str:
    if _get(SaleItem, e.id) is not None:
        return OUTCOME_KEPT

    context = f"sale item {e.id}"
    sale = _require(Sale, e.sale_id, context)
    _require(Product, e.product_id, context)
    if e.product_batch_id:
        fefo_service.get_product_batch(e.product_id, e.product_batch_id)

    db.session.add(SaleItem(
        id=e.id,
        sale_id=e.sale_id,
        product_id=e.product_id,
        product_batch_id=e.product_batch_id,
        quantity=e.quantity,
        unit_price=e.unit_price,
        subtotal=e.quantity * e.unit_price,
        recorded_at=ctx.now,
    ))
    # Pulled sales embed their items
    sale.updated_at = ctx.now
    db.session.flush()
    return OUTCOME_CREATED


def _push_credit_payment(e: CreditPaymentIn, ctx: PushContext) -> str:
    if _get(CreditPayment, e.id) is not None:
        return OUTCOME_KEPT

    _require(Sale, e.sale_id, f"credit payment {e.id}")
    db.session.add(CreditPayment(
        id=e.id,
        sale_id=e.sale_id,
        amount=e.amount,
        payment_method=e.payment_method.upper(),
        payment_ref=e.payment_ref,
        notes=e.notes,
        payment_date=e.payment_date or ctx.now,
        recorded_by=ctx.user_id,
        recorded_at=ctx.now,
    ))
    db.session.flush()
    return OUTCOME_CREATED


def _push_sale_prescription(e: SalePrescriptionIn, ctx: PushContext) -> str:
    if _get(SalePrescription, e.id) is not None:
        return OUTCOME_KEPT

    _require(Sale, e.sale_id, f"sale prescription {e.id}")
    db.session.add(SalePrescription(
        id=e.id,
        sale_id=e.sale_id,
        image_data=e.image_data,
        image_type=e.image_type,
        captured_at=e.captured_at or ctx.now,
        notes=e.notes,
        recorded_at=ctx.now,
    ))
    db.session.flush()
    return OUTCOME_CREATED


# --- stock and expenses ----------------------------------------------------

def _push_expense(e: ExpenseIn, ctx: PushContext) -> str:
    def build():
        return Expense(
            id=e.id,
            amount=e.amount,
            category=e.category,
            description=e.description,
            date=e.date or ctx.now,
            user_id=ctx.user_id,
            modified_at=e.modified_at,
        )

    def apply(expense: Expense):
        expense.amount = e.amount
        expense.category = e.category
        expense.description = e.description
        if e.date is not None:
            expense.date = e.date
        expense.modified_at = e.modified_at

    return _upsert(
        e,
        _get(Expense, e.id),
        build=build,
        apply=apply,
        stored_time=lambda expense: expense.modified_at or expense.date,
    )


def _push_stock_movement(e: StockMovementIn, ctx: PushContext) -> str:
    if _get(StockMovement, e.id) is not None:
        return OUTCOME_KEPT

    stock_service.apply_stock_movement(
        movement_id=e.id,
        product_id=e.product_id,
        movement_type=e.type,
        quantity_change=e.quantity_change,
        user_id=ctx.user_id,
        reason=e.reason,
        created_at=e.created_at,
        product_batch_id=e.product_batch_id,
        now=ctx.now,
    )
    return OUTCOME_CREATED


def _push_stockout_report(e: StockoutReportIn, ctx: PushContext) -> str:
    if _get(StockoutReport, e.id) is not None:
        return OUTCOME_KEPT

    db.session.add(StockoutReport(
        id=e.id,
        product_name=e.product_name,
        product_id=e.product_id,
        requested_qty=e.requested_qty,
        customer_name=e.customer_name,
        customer_phone=e.customer_phone,
        notes=e.notes,
        reported_by=e.reported_by or ctx.user_id,
        created_at=e.created_at or ctx.now,
        recorded_at=ctx.now,
    ))
    db.session.flush()
    return OUTCOME_CREATED


HANDLERS = {
    ProductIn: _push_product,
    SupplierIn: _push_supplier,
    ProductSupplierIn: _push_product_supplier,
    SupplierOrderIn: _push_supplier_order,
    SupplierOrderItemIn: _push_supplier_order_item,
    ProductBatchIn: _push_product_batch,
    SupplierReturnIn: _push_supplier_return,
    SaleIn: _push_sale,
    SaleItemIn: _push_sale_item,
    CreditPaymentIn: _push_credit_payment,
    SalePrescriptionIn: _push_sale_prescription,
    ExpenseIn: _push_expense,
    StockMovementIn: _push_stock_movement,
    StockoutReportIn: _push_stockout_report,
}

# Rows a kept entity is read back from
SERVER_MODELS = {
    ProductIn: Product,
    ProductBatchIn: ProductBatch,
    SupplierIn: Supplier,
    ProductSupplierIn: ProductSupplier,
    SupplierOrderIn: SupplierOrder,
    SupplierReturnIn: SupplierReturn,
    SaleIn: Sale,
    ExpenseIn: Expense,
}


# --- driver ----------------------------------------------------------------

def _apply_entity(schema: type[SyncEntity], entity: SyncEntity, ctx: PushContext, *, second_try: bool = False) -> str:
    """One entity, one transaction."""
    # Fresh clock per unit so updated_at is close to commit time
    ctx = replace(ctx, now=utcnow())
    key = entity.idempotency_key
    try:
        if key and idempotency_service.lookup(
            key, entity_type=schema.entity_type, entity_id=entity.id, now=ctx.now
        ):
            return OUTCOME_REPLAYED

        outcome = HANDLERS[schema](entity, ctx)

        if key:
            idempotency_service.remember(
                key, entity_type=schema.entity_type, entity_id=entity.id, now=ctx.now
            )
        db.session.commit()
        return outcome
    except IntegrityError:
        db.session.rollback()
        if second_try:
            raise ConflictError(f"{entity.id} conflicts with data already on the server")
        # Another device may have inserted the same id or key meanwhile;
        # run again so the lookups see it.
        return _apply_entity(schema, entity, ctx, second_try=True)


def _push_one(schema: type[SyncEntity], raw, ctx: PushContext, result: PushResult) -> None:
    raw_id = raw.get("id") if isinstance(raw, dict) else None
    try:
        entity = parse_entity(schema, raw)
        outcome = run_with_retry(
            lambda: _apply_entity(schema, entity, ctx),
            label=f"{schema.entity_type} {entity.id}",
        )
    except (ValidationError, ConflictError) as exc:
        db.session.rollback()
        result.record_failure(schema, raw_id, exc)
        current_app.logger.warning(
            "Push rejected %s %s for user %s: %s",
            schema.entity_type,
            raw_id,
            ctx.user_id,
            exc,
        )
        return

    result.record_success(schema, entity.id, outcome)
    if outcome == OUTCOME_KEPT and schema.mutable:
        stored = _get(SERVER_MODELS[schema], entity.id)
        if stored is not None:
            result.kept.setdefault(schema.push_field, []).append(stored.to_dict())


def push_changes(body, *, user_id: str, role: str) -> PushResult:
    """
    Apply one push request.

    Raises ValidationError only for a malformed envelope (the route turns it
    into a 400). Per-entity problems end up in the returned result.
    """
    batches = split_push_body(body)
    ctx = PushContext(user_id=user_id, role=role, now=utcnow())
    result = PushResult()

    for schema in PUSH_ORDER:
        for raw in batches.get(schema.push_field, ()):
            _push_one(schema, raw, ctx, result)

    current_app.logger.info(
        "Sync push from %s: received=%s outcomes=%s failures=%d",
        user_id,
        {f: len(items) for f, items in batches.items()},
        result.outcomes,
        len(result.failures),
    )
    return result
