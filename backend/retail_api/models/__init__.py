from .catalog import Store, Product, PriceHistory, Supplier
from .inventory import InventoryLedger, InventoryMovement
from .sales import Sale, SaleLine
from .credits import Credit, CreditLine, CreditPayment
from .documents import (
    Transfer,
    TransferLine,
    PurchaseOrder,
    PurchaseOrderLine,
    Return,
    ReturnLine,
    ReturnExchangeLine,
    DocumentSequence,
)
from .registers import CashRegister, CashMovement
from .auth import User, SessionToken

__all__ = [
    'Store', 'Product', 'PriceHistory', 'Supplier',
    'InventoryLedger', 'InventoryMovement',
    'Sale', 'SaleLine',
    'Credit', 'CreditLine', 'CreditPayment',
    'Transfer', 'TransferLine',
    'PurchaseOrder', 'PurchaseOrderLine',
    'Return', 'ReturnLine', 'ReturnExchangeLine',
    'DocumentSequence',
    'CashRegister', 'CashMovement',
    'User', 'SessionToken',
]
