"""Order services: lifecycle, bulk actions, queries, analytics and checkout"""
from .analytics_service import AnalyticsService, aggregate_orders
from .bulk_service import BulkOperation, BulkOperationCoordinator, BulkResult
from .customer_orders import CustomerOrderProjection
from .order_query_service import OrderFilters, OrderQueryService
from .order_service import OrderService
from .order_state_machine import (
    ALLOWED_TRANSITIONS, OrderStateMachine, ShippingInfo, TransitionContext,
)
from .product_service import ProductService

__all__ = [
    'ALLOWED_TRANSITIONS',
    'AnalyticsService',
    'BulkOperation',
    'BulkOperationCoordinator',
    'BulkResult',
    'CustomerOrderProjection',
    'OrderFilters',
    'OrderQueryService',
    'OrderService',
    'OrderStateMachine',
    'ProductService',
    'ShippingInfo',
    'TransitionContext',
    'aggregate_orders',
]
