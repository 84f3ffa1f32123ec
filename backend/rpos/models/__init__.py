from .tenancy import Restaurant, User, DiningTable
from .orders import Order, Payment
from .discounts import Discount
from .receipts import ReceiptSeries
from .cash import CashRegisterShift, CashTransaction

__all__ = [
    'Restaurant', 'User', 'DiningTable',
    'Order', 'Payment',
    'Discount',
    'ReceiptSeries',
    'CashRegisterShift', 'CashTransaction',
]
