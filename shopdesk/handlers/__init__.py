"""Telegram handlers of the admin bot"""
from .base_handler import BaseHandler
from .order_handlers import OrderHandler

__all__ = [
    'BaseHandler',
    'OrderHandler',
]
