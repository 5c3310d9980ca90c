from .catalog import Product
from .inventory import StockItem, StockMovement
from .deposits import DepositOrder, DepositOrderItem, DepositOrderPartExchange, DepositPayment
from .sales import Sale, SaleLine, ConsignmentSettlement, PartExchange
from .ledger import LedgerEvent, DocumentSequence, CashMovement

__all__ = [
    'Product',
    'StockItem', 'StockMovement',
    'DepositOrder', 'DepositOrderItem', 'DepositOrderPartExchange', 'DepositPayment',
    'Sale', 'SaleLine', 'ConsignmentSettlement', 'PartExchange',
    'LedgerEvent', 'DocumentSequence', 'CashMovement',
]
