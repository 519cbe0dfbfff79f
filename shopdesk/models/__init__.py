"""Document models shared by the order services"""
from .order import (
    Order, OrderItem, OrderPriority, OrderStatus, ShippingAddress,
    StatusHistoryEntry, TrackingInfo,
)
from .product import Product
from .user import Identity, Role
from .carrier import Carrier, find_carrier

__all__ = [
    'Order',
    'OrderItem',
    'OrderPriority',
    'OrderStatus',
    'ShippingAddress',
    'StatusHistoryEntry',
    'TrackingInfo',
    'Product',
    'Identity',
    'Role',
    'Carrier',
    'find_carrier',
]
