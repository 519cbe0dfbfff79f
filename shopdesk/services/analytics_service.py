import io
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
from pydantic import BaseModel
from ..database.record_store import RecordStore
from ..models.base import utc_now
from ..models.order import Order, OrderPriority
from .order_query_service import OrderFilters, OrderQueryService

logger = logging.getLogger(__name__)

TOP_N = 10


class ProductStats(BaseModel):
    product_id: str
    name: str
    total_quantity: int = 0
    total_revenue: Decimal = Decimal(0)
    order_count: int = 0


class CustomerStats(BaseModel):
    customer_id: str
    email: str
    order_count: int = 0
    total_spent: Decimal = Decimal(0)
    avg_order_value: Decimal = Decimal(0)


class DailyStats(BaseModel):
    date: date
    order_count: int = 0
    revenue: Decimal = Decimal(0)
    status_breakdown: Dict[str, int] = {}


class OrderAnalytics(BaseModel):
    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    status_distribution: Dict[str, int]
    status_percentages: Dict[str, float]
    revenue_by_status: Dict[str, Decimal]
    top_products_by_quantity: List[ProductStats]
    top_products_by_revenue: List[ProductStats]
    total_unique_products: int
    top_customers: List[CustomerStats]
    total_unique_customers: int
    payment_method_stats: Dict[str, int]
    shipping_stats: Dict[str, int]
    priority_stats: Dict[str, int]
    daily_stats: Optional[List[DailyStats]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    generated_at: datetime


def _count(counter: Dict[str, Any], key: str, amount: Any = 1):
    counter[key] = counter.get(key, 0) + amount


def _order_day(order: Order) -> Optional[date]:
    if order.created_at is None:
        return None
    return order.created_at.astimezone(timezone.utc).date()


def aggregate_orders(orders: Sequence[Order], start_date: Optional[date] = None,
                     end_date: Optional[date] = None) -> OrderAnalytics:
    """Reduce an order set to summary statistics; no side effects"""
    total_orders = len(orders)
    total_revenue = sum((o.total for o in orders), Decimal(0))

    status_distribution: Dict[str, int] = {}
    revenue_by_status: Dict[str, Decimal] = {}
    payment_methods: Dict[str, int] = {}
    carriers: Dict[str, int] = {}
    priorities: Dict[str, int] = {}
    products: Dict[str, ProductStats] = {}
    customers: Dict[str, CustomerStats] = {}

    for order in orders:
        status = order.status.value
        _count(status_distribution, status)
        _count(revenue_by_status, status, order.total)
        _count(payment_methods, (order.payment.method if order.payment else None) or "Unknown")
        _count(carriers, order.carrier or "Not shipped")
        _count(priorities, (order.priority or OrderPriority.NORMAL).value)

        for item in order.items:
            stats = products.setdefault(item.product_id, ProductStats(
                product_id=item.product_id, name=item.name,
            ))
            stats.total_quantity += item.quantity
            stats.total_revenue += item.line_total
            stats.order_count += 1

        customer_id = order.user_id or "guest"
        customer = customers.setdefault(customer_id, CustomerStats(
            customer_id=customer_id, email=order.user_email or "unknown",
        ))
        customer.order_count += 1
        customer.total_spent += order.total
        customer.avg_order_value = customer.total_spent / customer.order_count

    status_percentages = {
        status: round(count * 100 / total_orders, 1)
        for status, count in status_distribution.items()
    }

    by_quantity = sorted(products.values(), key=lambda p: (-p.total_quantity, p.product_id))
    by_revenue = sorted(products.values(), key=lambda p: (-p.total_revenue, p.product_id))
    top_customers = sorted(customers.values(), key=lambda c: (-c.total_spent, c.customer_id))

    daily_stats = None
    if start_date and end_date:
        daily_stats = daily_breakdown(orders, start_date, end_date)

    return OrderAnalytics(
        total_orders=total_orders,
        total_revenue=total_revenue,
        average_order_value=total_revenue / total_orders if total_orders else Decimal(0),
        status_distribution=status_distribution,
        status_percentages=status_percentages,
        revenue_by_status=revenue_by_status,
        top_products_by_quantity=by_quantity[:TOP_N],
        top_products_by_revenue=by_revenue[:TOP_N],
        total_unique_products=len(products),
        top_customers=top_customers[:TOP_N],
        total_unique_customers=len(customers),
        payment_method_stats=payment_methods,
        shipping_stats=carriers,
        priority_stats=priorities,
        daily_stats=daily_stats,
        start_date=start_date,
        end_date=end_date,
        generated_at=utc_now(),
    )


def daily_breakdown(orders: Sequence[Order], start_date: date, end_date: date) -> List[DailyStats]:
    """One entry per calendar day (UTC) of the range, including empty days"""
    days: Dict[date, DailyStats] = {}
    day = start_date
    while day <= end_date:
        days[day] = DailyStats(date=day)
        day += timedelta(days=1)

    for order in orders:
        stats = days.get(_order_day(order))
        if stats is None:
            continue
        stats.order_count += 1
        stats.revenue += order.total
        _count(stats.status_breakdown, order.status.value)

    return [days[d] for d in sorted(days)]


class AnalyticsService:
    """Order analytics for the admin dashboard"""

    def __init__(self, store: RecordStore):
        self.query_service = OrderQueryService(store)

    async def get_order_analytics(self, filters: Optional[OrderFilters] = None) -> OrderAnalytics:
        filters = filters or OrderFilters()
        result = await self.query_service.query_orders(filters)
        analytics = aggregate_orders(result.orders, filters.start_date, filters.end_date)
        logger.info(f"Analytics generated for {analytics.total_orders} orders")
        return analytics

    async def get_recent_analytics(self, days: int = 7) -> OrderAnalytics:
        """Analytics for the last ``days`` days, today included"""
        today = utc_now().date()
        return await self.get_order_analytics(OrderFilters(
            start_date=today - timedelta(days=days - 1), end_date=today,
        ))

    @staticmethod
    def export_excel(analytics: OrderAnalytics) -> bytes:
        """Render the analytics as an .xlsx workbook"""
        import pandas as pd

        output = io.BytesIO()
        with pd.ExcelWriter(output, engine='xlsxwriter') as writer:
            summary = {
                'Metric': ['Orders', 'Revenue', 'Average order value',
                           'Unique products', 'Unique customers'],
                'Value': [
                    analytics.total_orders,
                    float(analytics.total_revenue),
                    float(analytics.average_order_value),
                    analytics.total_unique_products,
                    analytics.total_unique_customers,
                ]
            }
            pd.DataFrame(summary).to_excel(writer, sheet_name='Summary', index=False)

            statuses = pd.DataFrame([
                {
                    'Status': status,
                    'Orders': count,
                    'Share %': analytics.status_percentages.get(status, 0.0),
                    'Revenue': float(analytics.revenue_by_status.get(status, 0)),
                }
                for status, count in analytics.status_distribution.items()
            ], columns=['Status', 'Orders', 'Share %', 'Revenue'])
            statuses.to_excel(writer, sheet_name='Statuses', index=False)

            products = pd.DataFrame([
                {
                    'Product': p.product_id,
                    'Name': p.name,
                    'Quantity': p.total_quantity,
                    'Revenue': float(p.total_revenue),
                    'Orders': p.order_count,
                }
                for p in analytics.top_products_by_revenue
            ], columns=['Product', 'Name', 'Quantity', 'Revenue', 'Orders'])
            products.to_excel(writer, sheet_name='Top products', index=False)

            if analytics.daily_stats:
                daily = pd.DataFrame([
                    {'Date': d.date.isoformat(), 'Orders': d.order_count, 'Revenue': float(d.revenue)}
                    for d in analytics.daily_stats
                ])
                daily.to_excel(writer, sheet_name='Daily', index=False)

        return output.getvalue()
