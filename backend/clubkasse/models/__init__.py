from .accounts import Account, AccountBarcode
from .catalog import Product, ProductBarcode
from .ledger import Transaction, StockMovement, Billing
from .clothing import ClothingItem, ClothingOrder, ClothingBilling
from .vouchers import VoucherSale
from .settings import Setting
from .auth import AdminUser

__all__ = [
    'Account', 'AccountBarcode',
    'Product', 'ProductBarcode',
    'Transaction', 'StockMovement', 'Billing',
    'ClothingItem', 'ClothingOrder', 'ClothingBilling',
    'VoucherSale',
    'Setting',
    'AdminUser',
]
