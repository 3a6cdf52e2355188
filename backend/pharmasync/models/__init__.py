from .auth import User, SessionToken
from .catalog import Product, ProductBatch
from .sales import Sale, SaleItem, CreditPayment, SalePrescription
from .inventory import StockMovement, StockMovementAllocation, StockoutReport
from .suppliers import Supplier, ProductSupplier, SupplierOrder, SupplierOrderItem, SupplierReturn
from .expenses import Expense
from .sync import IdempotencyKey

__all__ = [
    'User', 'SessionToken',
    'Product', 'ProductBatch',
    'Sale', 'SaleItem', 'CreditPayment', 'SalePrescription',
    'StockMovement', 'StockMovementAllocation', 'StockoutReport',
    'Supplier', 'ProductSupplier', 'SupplierOrder', 'SupplierOrderItem', 'SupplierReturn',
    'Expense',
    'IdempotencyKey',
]
