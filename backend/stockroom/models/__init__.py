from .catalog import Product, PackageUnit, StorageLocation, ProductStorageLocation
from .inventory import InventoryRecord, InventoryTransaction
from .documents import (
    PurchaseOrder, PurchaseOrderItem,
    SalesOrder, SalesOrderItem,
    ReturnOrder, ReturnOrderItem,
    StockTaking, StockTakingItem,
    DocumentSequence,
)

__all__ = [
    'Product', 'PackageUnit', 'StorageLocation', 'ProductStorageLocation',
    'InventoryRecord', 'InventoryTransaction',
    'PurchaseOrder', 'PurchaseOrderItem',
    'SalesOrder', 'SalesOrderItem',
    'ReturnOrder', 'ReturnOrderItem',
    'StockTaking', 'StockTakingItem',
    'DocumentSequence',
]
