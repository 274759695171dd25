from .tenancy import Company
from .inventory import Product, StockMovement, ProductUnit
from .sales import Sale

__all__ = [
    'Company',
    'Product', 'StockMovement', 'ProductUnit',
    'Sale',
]
