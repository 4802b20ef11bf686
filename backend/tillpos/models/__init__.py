from .tenancy import Company, CompanySettings, ApiSettings
from .auth import AdminSession
from .catalog import Product, Employee
from .registers import CashRegister, CashRegisterSession
from .sales import Sale
from .loyalty import LoyaltyProgram, Customer, CustomerPoints, PointTransaction
from .payments import PaymentIntent

__all__ = [
    'Company', 'CompanySettings', 'ApiSettings',
    'AdminSession',
    'Product', 'Employee',
    'CashRegister', 'CashRegisterSession',
    'Sale',
    'LoyaltyProgram', 'Customer', 'CustomerPoints', 'PointTransaction',
    'PaymentIntent',
]
