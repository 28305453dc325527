from .tenancy import Location
from .inventory import Product, InventoryBalance
from .customers import Customer
from .cash_sessions import CashSession
from .sales import Sale, SaleItem, Payment
from .credits import Credit
from .refunds import Refund
from .ledger import CashLedgerEntry, AuditLogEntry

__all__ = [
    'Location',
    'Product', 'InventoryBalance',
    'Customer',
    'CashSession',
    'Sale', 'SaleItem', 'Payment',
    'Credit',
    'Refund',
    'CashLedgerEntry', 'AuditLogEntry',
]
