from .system import SystemRecord
from .catalog import (
    ANNOTATION_PREFIX,
    Category,
    Product,
    Inventory,
    CustomerGroup,
    Pricebook,
    ProductPricebook,
)
from .customers import Customer
from .invoices import Invoice, InvoiceLine
from .purchasing import PurchaseOrder, PurchaseOrderLine, LINE_STATUSES
from .changelog import ProductChangeLog

__all__ = [
    'SystemRecord',
    'ANNOTATION_PREFIX',
    'Category', 'Product', 'Inventory', 'CustomerGroup',
    'Pricebook', 'ProductPricebook',
    'Customer',
    'Invoice', 'InvoiceLine',
    'PurchaseOrder', 'PurchaseOrderLine', 'LINE_STATUSES',
    'ProductChangeLog',
]
