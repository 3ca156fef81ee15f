from .tenancy import Tenant, Store
from .shifts import StoreShift
from .catalog import Category, Product, ProductVariant, BundleComponent, PriceHistory
from .inventory import InventoryStock, InventoryLog, StockBatch, ReferenceSequence
from .transactions import Transaction, TransactionItem, TransactionItemStock

__all__ = [
    'Tenant', 'Store',
    'StoreShift',
    'Category', 'Product', 'ProductVariant', 'BundleComponent', 'PriceHistory',
    'InventoryStock', 'InventoryLog', 'StockBatch', 'ReferenceSequence',
    'Transaction', 'TransactionItem', 'TransactionItemStock',
]
