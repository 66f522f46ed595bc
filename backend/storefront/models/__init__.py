from .users import User, UserSession
from .catalog import Category, Product
from .orders import Order, OrderItem, Payment, CartItem

__all__ = [
    'User', 'UserSession',
    'Category', 'Product',
    'Order', 'OrderItem', 'Payment', 'CartItem',
]
