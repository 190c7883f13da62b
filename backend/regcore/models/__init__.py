from .tenancy import Organization, EventYear
from .catalog import Product, OrganizationPricing, OrganizationQuota, InventoryReservation, Coupon
from .orders import Order, OrderItem, Invoice, Payment
from .teams import CompanyTeam
from .documents import DocumentSequence

__all__ = [
    'Organization', 'EventYear',
    'Product', 'OrganizationPricing', 'OrganizationQuota', 'InventoryReservation', 'Coupon',
    'Order', 'OrderItem', 'Invoice', 'Payment',
    'CompanyTeam',
    'DocumentSequence',
]
