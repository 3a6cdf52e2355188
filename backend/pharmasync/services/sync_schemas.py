"""
Wire schemas for entities pushed by POS devices.

Each schema is one variant of the push payload. `entity_type` tags the
variant (used in idempotency records and the client outbox) and
`push_field` is the array of the push body it arrives in.

Field names follow what devices already send, which mixes snake_case and
camelCase per entity; aliases map camelCase onto Python attributes.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, ClassVar

from flask import current_app
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from pharmasync.time_utils import parse_iso_datetime, to_utc_naive
from pharmasync.validation import MOVEMENT_TYPES, PAYMENT_METHODS, ValidationError


def _coerce_datetime(value: Any) -> Any:
    if value is None or isinstance(value, datetime):
        return to_utc_naive(value)
    if isinstance(value, str):
        return parse_iso_datetime(value)
    return value


UtcDateTime = Annotated[datetime, BeforeValidator(_coerce_datetime)]
EntityId = Annotated[str, Field(min_length=1, max_length=64)]
Money = Annotated[int, Field(ge=0)]


class SyncEntity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    entity_type: ClassVar[str]
    push_field: ClassVar[str]
    # Mutable entities resolve concurrent edits by last-write-wins;
    # append-only ones are inserted once and never changed by a push.
    mutable: ClassVar[bool] = False

    id: EntityId
    idempotency_key: str | None = Field(default=None, alias="idempotencyKey", max_length=128)

    def modification_time(self) -> datetime | None:
        return None


# --- catalog ---------------------------------------------------------------

class ProductIn(SyncEntity):
    entity_type: ClassVar[str] = "product"
    push_field: ClassVar[str] = "products"
    mutable: ClassVar[bool] = True

    name: str = Field(min_length=1, max_length=255)
    category: str | None = None
    price: Money
    price_buy: Money | None = Field(default=None, alias="priceBuy")
    # Honoured on first insert only
    stock: int = Field(default=0, ge=0)
    min_stock: int = Field(default=10, ge=0, alias="minStock")
    updated_at: UtcDateTime | None = Field(default=None, alias="updatedAt")

    def modification_time(self):
        return self.updated_at


class ProductBatchIn(SyncEntity):
    entity_type: ClassVar[str] = "product_batch"
    push_field: ClassVar[str] = "productBatches"
    mutable: ClassVar[bool] = True

    product_id: EntityId
    lot_number: str = Field(min_length=1, max_length=128)
    expiration_date: UtcDateTime
    quantity: int = Field(ge=0)
    initial_qty: int | None = Field(default=None, ge=0)
    unit_cost: Money | None = None
    supplier_order_id: str | None = None
    received_date: UtcDateTime | None = None
    updated_at: UtcDateTime | None = Field(default=None, alias="updatedAt")

    def modification_time(self):
        return self.updated_at


# --- suppliers -------------------------------------------------------------

class SupplierIn(SyncEntity):
    entity_type: ClassVar[str] = "supplier"
    push_field: ClassVar[str] = "suppliers"
    mutable: ClassVar[bool] = True

    name: str = Field(min_length=1, max_length=255)
    phone: str | None = None
    payment_terms_days: int = Field(default=30, ge=0, alias="paymentTermsDays")
    updated_at: UtcDateTime | None = Field(default=None, alias="updatedAt")

    def modification_time(self):
        return self.updated_at


class ProductSupplierIn(SyncEntity):
    entity_type: ClassVar[str] = "product_supplier"
    push_field: ClassVar[str] = "productSuppliers"
    mutable: ClassVar[bool] = True

    product_id: EntityId
    supplier_id: EntityId
    supplier_product_code: str | None = None
    supplier_product_name: str | None = None
    default_price: Money | None = None
    is_primary: bool = False
    last_ordered_date: UtcDateTime | None = None
    updated_at: UtcDateTime | None = Field(default=None, alias="updatedAt")

    def modification_time(self):
        return self.updated_at


class SupplierOrderIn(SyncEntity):
    entity_type: ClassVar[str] = "supplier_order"
    push_field: ClassVar[str] = "supplierOrders"
    mutable: ClassVar[bool] = True

    supplier_id: EntityId = Field(alias="supplierId")
    order_date: UtcDateTime | None = Field(default=None, alias="orderDate")
    delivery_date: UtcDateTime | None = Field(default=None, alias="deliveryDate")
    total_amount: Money = Field(default=0, alias="totalAmount")
    amount_paid: Money = Field(default=0, alias="amountPaid")
    due_date: UtcDateTime | None = Field(default=None, alias="dueDate")
    status: str = Field(default="PENDING", max_length=32)
    notes: str | None = None
    updated_at: UtcDateTime | None = Field(default=None, alias="updatedAt")

    def modification_time(self):
        return self.updated_at


class SupplierOrderItemIn(SyncEntity):
    entity_type: ClassVar[str] = "supplier_order_item"
    push_field: ClassVar[str] = "supplierOrderItems"

    order_id: EntityId
    product_id: str | None = None
    product_name: str = Field(min_length=1, max_length=255)
    category: str | None = None
    quantity: int = Field(gt=0)
    unit_price: Money
    notes: str | None = None


class SupplierReturnIn(SyncEntity):
    entity_type: ClassVar[str] = "supplier_return"
    push_field: ClassVar[str] = "supplierReturns"
    mutable: ClassVar[bool] = True

    supplier_id: EntityId = Field(alias="supplierId")
    supplier_order_id: str | None = Field(default=None, alias="supplierOrderId")
    product_id: EntityId = Field(alias="productId")
    quantity: int = Field(gt=0)
    reason: str | None = None
    credit_amount: Money = Field(default=0, alias="creditAmount")
    return_date: UtcDateTime | None = Field(default=None, alias="returnDate")
    applied: bool = False
    applied_to_order_id: str | None = Field(default=None, alias="appliedToOrderId")
    updated_at: UtcDateTime | None = Field(default=None, alias="updatedAt")

    def modification_time(self):
        return self.updated_at


# --- sales -----------------------------------------------------------------

class SaleIn(SyncEntity):
    entity_type: ClassVar[str] = "sale"
    push_field: ClassVar[str] = "sales"
    mutable: ClassVar[bool] = True

    total: int
    payment_method: str = "CASH"
    payment_ref: str | None = None
    amount_paid: int | None = None
    amount_due: int | None = None
    due_date: UtcDateTime | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    created_at: UtcDateTime | None = None
    modified_at: UtcDateTime | None = None
    modified_by: str | None = None
    edit_count: int = Field(default=0, ge=0)

    @field_validator("payment_method")
    @classmethod
    def _known_payment_method(cls, value: str) -> str:
        value = value.upper()
        if value not in PAYMENT_METHODS:
            raise ValueError(f"must be one of {sorted(PAYMENT_METHODS)}")
        return value

    def modification_time(self):
        return self.modified_at or self.created_at


class SaleItemIn(SyncEntity):
    entity_type: ClassVar[str] = "sale_item"
    push_field: ClassVar[str] = "saleItems"

    sale_id: EntityId
    product_id: EntityId
    product_batch_id: str | None = None
    quantity: int = Field(gt=0)
    unit_price: Money


class CreditPaymentIn(SyncEntity):
    entity_type: ClassVar[str] = "credit_payment"
    push_field: ClassVar[str] = "creditPayments"

    sale_id: EntityId
    amount: int = Field(gt=0)
    payment_method: str = "CASH"
    payment_ref: str | None = None
    notes: str | None = None
    payment_date: UtcDateTime | None = None


class SalePrescriptionIn(SyncEntity):
    entity_type: ClassVar[str] = "sale_prescription"
    push_field: ClassVar[str] = "salePrescriptions"

    sale_id: EntityId
    image_data: str = Field(min_length=1)
    image_type: str = "image/jpeg"
    captured_at: UtcDateTime | None = None
    notes: str | None = None


# --- stock and expenses ----------------------------------------------------

class ExpenseIn(SyncEntity):
    entity_type: ClassVar[str] = "expense"
    push_field: ClassVar[str] = "expenses"
    mutable: ClassVar[bool] = True

    amount: Money
    category: str = Field(min_length=1, max_length=128)
    description: str | None = None
    date: UtcDateTime | None = None
    modified_at: UtcDateTime | None = None

    def modification_time(self):
        return self.modified_at or self.date


class StockMovementIn(SyncEntity):
    entity_type: ClassVar[str] = "stock_movement"
    push_field: ClassVar[str] = "stockMovements"

    product_id: EntityId
    type: str
    quantity_change: int
    reason: str | None = None
    created_at: UtcDateTime | None = None
    product_batch_id: str | None = None

    @field_validator("type")
    @classmethod
    def _known_movement_type(cls, value: str) -> str:
        value = value.upper()
        if value not in MOVEMENT_TYPES:
            raise ValueError(f"must be one of {sorted(MOVEMENT_TYPES)}")
        return value


class StockoutReportIn(SyncEntity):
    entity_type: ClassVar[str] = "stockout_report"
    push_field: ClassVar[str] = "stockoutReports"

    product_name: str = Field(min_length=1, max_length=255)
    product_id: str | None = None
    requested_qty: int = Field(default=1, gt=0)
    customer_name: str | None = None
    customer_phone: str | None = None
    notes: str | None = None
    reported_by: str | None = None
    created_at: UtcDateTime | None = None


# Parents before children, so a single push can carry a whole graph.
PUSH_ORDER: tuple[type[SyncEntity], ...] = (
    ProductIn,
    SupplierIn,
    ProductSupplierIn,
    SupplierOrderIn,
    SupplierOrderItemIn,
    ProductBatchIn,
    SupplierReturnIn,
    SaleIn,
    SaleItemIn,
    CreditPaymentIn,
    SalePrescriptionIn,
    ExpenseIn,
    StockMovementIn,
    StockoutReportIn,
)

SCHEMAS_BY_FIELD: dict[str, type[SyncEntity]] = {s.push_field: s for s in PUSH_ORDER}


def format_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)


def split_push_body(body: Any) -> dict[str, list]:
    """
    Check the envelope of a push request and return its entity arrays.

    Every array is optional. A present field that is not an array, or one
    larger than SYNC_MAX_BATCH_ITEMS, fails the whole request; the elements
    themselves are validated one by one later.
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")

    max_items = current_app.config["SYNC_MAX_BATCH_ITEMS"]
    batches: dict[str, list] = {}
    for field, schema in SCHEMAS_BY_FIELD.items():
        value = body.get(field)
        if value is None:
            continue
        if not isinstance(value, list):
            raise ValidationError(f"{field} must be an array")
        if len(value) > max_items:
            raise ValidationError(f"{field} has {len(value)} entries, limit is {max_items}")
        batches[field] = value
    return batches


def parse_entity(schema: type[SyncEntity], raw: Any) -> SyncEntity:
    """Validate one pushed element; raises pharmasync ValidationError."""
    if not isinstance(raw, dict):
        raise ValidationError(f"{schema.push_field} entries must be objects")
    try:
        return schema.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(format_validation_error(exc)) from exc
