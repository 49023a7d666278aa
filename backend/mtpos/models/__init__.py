from .tenancy import Tenant, TenantCounter
from .inventory import Product, Inventory, StockMovement
from .customers import Customer, LoyaltyRule, LoyaltyTransaction
from .promotions import DiscountRule, InvoiceDiscount, CouponUsage
from .staff import Employee, EmployeeDiscountRule, EmployeeDiscountUsage
from .sales import Invoice, InvoiceItem, CustomerPayment
from .documents import SalesReturn, SalesReturnItem
from .purchasing import Supplier, Purchase, PurchaseItem, PurchaseReturn, PurchaseReturnItem, SupplierPayment
from .accounting import Account, JournalEntry, LedgerEntry, DaybookEntry, VatReport

__all__ = [
    'Tenant', 'TenantCounter',
    'Product', 'Inventory', 'StockMovement',
    'Customer', 'LoyaltyRule', 'LoyaltyTransaction',
    'DiscountRule', 'InvoiceDiscount', 'CouponUsage',
    'Employee', 'EmployeeDiscountRule', 'EmployeeDiscountUsage',
    'Invoice', 'InvoiceItem', 'CustomerPayment',
    'SalesReturn', 'SalesReturnItem',
    'Supplier', 'Purchase', 'PurchaseItem', 'PurchaseReturn', 'PurchaseReturnItem', 'SupplierPayment',
    'Account', 'JournalEntry', 'LedgerEntry', 'DaybookEntry', 'VatReport',
]
