from .catalog import Product
from .parties import Customer, CustomerLedgerEntry, Supplier, SupplierLedgerEntry
from .inventory import Inventory, StockMovement
from .sales import Sale, SaleItem
from .outbox import OutboxEntry
from .expenses import Expense, EXPENSE_CATEGORIES
from .remote import (
    RemoteSale,
    RemoteSaleItem,
    RemoteCustomer,
    RemoteCustomerLedgerEntry,
    RemoteStockMovement,
    RemoteInventory,
    SyncLog,
)

__all__ = [
    'Product',
    'Customer', 'CustomerLedgerEntry', 'Supplier', 'SupplierLedgerEntry',
    'Inventory', 'StockMovement',
    'Sale', 'SaleItem',
    'OutboxEntry',
    'Expense', 'EXPENSE_CATEGORIES',
    'RemoteSale', 'RemoteSaleItem', 'RemoteCustomer', 'RemoteCustomerLedgerEntry',
    'RemoteStockMovement', 'RemoteInventory', 'SyncLog',
]
