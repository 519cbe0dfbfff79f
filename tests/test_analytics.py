import pytest
from datetime import date
from decimal import Decimal
from shopdesk.models.order import Order
from shopdesk.services import AnalyticsService, OrderFilters, aggregate_orders
from shopdesk.services.analytics_service import daily_breakdown


def _order(make_order, order_id, **overrides):
    return Order.from_document(order_id, make_order(**overrides))


class TestAggregateOrders:
    def test_totals_and_statuses(self, make_order):
        orders = [
            _order(make_order, "a", totalAmount=250.0),
            _order(make_order, "b", totalAmount=100.0, status="Approved"),
            _order(make_order, "c", totalAmount=150.0, status="Approved", user_id="u2"),
        ]

        report = aggregate_orders(orders)

        assert report.total_orders == 3
        assert report.total_revenue == Decimal("500")
        assert report.average_order_value.quantize(Decimal("0.01")) == Decimal("166.67")
        assert report.status_distribution == {"Placed": 1, "Approved": 2}
        assert report.status_percentages == {"Placed": 33.3, "Approved": 66.7}
        assert report.revenue_by_status["Approved"] == Decimal("250")
        assert report.total_unique_customers == 2
        assert report.top_customers[0].customer_id == "u1"
        assert report.top_customers[0].order_count == 2

    def test_products(self, make_order):
        orders = [_order(make_order, "a"), _order(make_order, "b")]

        report = aggregate_orders(orders)

        lamp = report.top_products_by_quantity[0]
        assert lamp.product_id == "p1"
        assert lamp.total_quantity == 4
        assert lamp.total_revenue == Decimal("400")
        assert lamp.order_count == 2
        assert report.total_unique_products == 2

    def test_fallback_labels(self, make_order):
        order = _order(make_order, "a", user_id=None, userEmail=None, payment=None)

        report = aggregate_orders([order])

        assert report.top_customers[0].customer_id == "guest"
        assert report.top_customers[0].email == "unknown"
        assert report.payment_method_stats == {"Unknown": 1}
        assert report.shipping_stats == {"Not shipped": 1}
        assert report.priority_stats == {"normal": 1}

    def test_empty(self):
        report = aggregate_orders([])
        assert report.total_orders == 0
        assert report.average_order_value == Decimal(0)
        assert report.status_percentages == {}

    def test_top_lists_are_capped(self, make_order):
        orders = [
            _order(make_order, f"o{i}", user_id=f"u{i}", items=[
                {"productId": f"p{i}", "name": f"Item {i}", "price": 10.0, "quantity": 1},
            ])
            for i in range(12)
        ]
        report = aggregate_orders(orders)
        assert len(report.top_products_by_revenue) == 10
        assert len(report.top_customers) == 10
        assert report.total_unique_products == 12


class TestDailyBreakdown:
    def test_every_day_is_listed(self, make_order):
        orders = [
            _order(make_order, "a", createdAt="2024-03-01T10:00:00+00:00"),
            _order(make_order, "b", createdAt="2024-03-03T23:00:00+00:00", status="Cancelled"),
        ]

        days = daily_breakdown(orders, date(2024, 3, 1), date(2024, 3, 3))

        assert [d.date for d in days] == [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3)]
        assert [d.order_count for d in days] == [1, 0, 1]
        assert days[2].status_breakdown == {"Cancelled": 1}
        assert days[0].revenue == Decimal("250")


class TestAnalyticsService:
    async def test_filters_and_daily_stats(self, store, seed_order):
        seed_order("a", createdAt="2024-03-01T10:00:00+00:00")
        seed_order("b", createdAt="2024-03-02T10:00:00+00:00")
        seed_order("c", createdAt="2024-04-01T10:00:00+00:00")

        report = await AnalyticsService(store).get_order_analytics(OrderFilters(
            start_date=date(2024, 3, 1), end_date=date(2024, 3, 2),
        ))

        assert report.total_orders == 2
        assert len(report.daily_stats) == 2
        assert report.start_date == date(2024, 3, 1)

    async def test_recent_window(self, store):
        report = await AnalyticsService(store).get_recent_analytics(days=7)
        assert len(report.daily_stats) == 7
        assert (report.end_date - report.start_date).days == 6

    def test_excel_export(self, make_order):
        report = aggregate_orders([_order(make_order, "a")], date(2024, 3, 1), date(2024, 3, 1))
        content = AnalyticsService.export_excel(report)
        assert content[:2] == b"PK"
