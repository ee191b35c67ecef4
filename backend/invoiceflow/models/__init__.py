from .catalog import Product, Warehouse
from .invoices import Invoice, InvoiceItem, PaymentRecord
from .purchasing import PurchaseOrder, PurchaseOrderItem
from .inventory import StockLocation, StockTransaction
from .documents import DocumentSequence

__all__ = [
    'Product', 'Warehouse',
    'Invoice', 'InvoiceItem', 'PaymentRecord',
    'PurchaseOrder', 'PurchaseOrderItem',
    'StockLocation', 'StockTransaction',
    'DocumentSequence',
]
