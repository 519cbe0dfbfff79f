from typing import List
from ..models.order import Order, OrderStatus
from ..services.analytics_service import OrderAnalytics
from ..services.bulk_service import BulkResult
from ..services.order_query_service import ProcessingQueue
from ..services.order_state_machine import ShippingConfirmation, TransitionResult
from .formatters import format_datetime, format_price

STATUS_EMOJI = {
    OrderStatus.PLACED: "🆕",
    OrderStatus.APPROVED: "👍",
    OrderStatus.PACKED: "📦",
    OrderStatus.SHIPPED: "🚚",
    OrderStatus.DELIVERED: "✅",
    OrderStatus.DECLINED: "⛔️",
    OrderStatus.CANCELLED: "❌",
    OrderStatus.REFUNDED: "↩️",
}


class Messages:
    @staticmethod
    def order_line(order: Order) -> str:
        """One-line summary used in lists"""
        return (
            f"{STATUS_EMOJI[order.status]} {order.order_number or order.id} · "
            f"{order.user_name or order.user_email or 'guest'} · "
            f"{format_price(order.total)} · {format_datetime(order.created_at)}"
        )

    @staticmethod
    def order_list(orders: List[Order], title: str = "Orders") -> str:
        if not orders:
            return f"📋 {title}: nothing found."
        lines = [f"📋 {title} ({len(orders)}):"]
        lines.extend(f"{Messages.order_line(o)}\n   /order {o.id}" for o in orders)
        return "\n".join(lines)

    @staticmethod
    def format_order(order: Order) -> str:
        """Full order card"""
        items_text = "\n".join(
            f"- {item.quantity}x {item.name}: {format_price(item.price)}"
            for item in order.items
        )
        text = (
            f"🛍 Order {order.order_number or order.id}\n"
            f"------------------\n"
            f"{items_text}\n"
            f"------------------\n"
            f"Subtotal: {format_price(order.subtotal)}\n"
            f"Tax: {format_price(order.tax)}\n"
            f"💰 Total: {format_price(order.total)}\n"
            f"📊 Status: {STATUS_EMOJI[order.status]} {order.status.value}\n"
            f"👤 Customer: {order.user_name or '-'} ({order.user_email or '-'})\n"
            f"🕒 Placed: {format_datetime(order.created_at)}\n"
        )
        if order.priority:
            text += f"⚡️ Priority: {order.priority.value}\n"
        if order.tags:
            text += f"🏷 Tags: {', '.join(order.tags)}\n"
        if order.tracking and order.tracking.code:
            text += (
                f"🚚 {order.tracking.carrier} {order.tracking.code}, "
                f"ETA {format_datetime(order.tracking.estimated_delivery)}\n"
            )
        return text

    @staticmethod
    def transition_done(result: TransitionResult) -> str:
        text = (
            f"✅ Order status updated: {result.previous_status.value} → "
            f"{result.new_status.value}"
        )
        if result.override:
            text += "\n⚠️ Outside the normal flow (admin override)."
        if result.restored_stock:
            text += f"\n📦 Stock restored for {len(result.restored_stock)} product(s)."
        return text

    @staticmethod
    def shipping_done(confirmation: ShippingConfirmation) -> str:
        text = (
            f"🚚 Shipped via {confirmation.carrier}\n"
            f"Tracking: {confirmation.tracking_number}\n"
            f"ETA: {format_datetime(confirmation.estimated_delivery)}"
        )
        if confirmation.tracking_url:
            text += f"\n{confirmation.tracking_url}"
        return text

    @staticmethod
    def bulk_done(result: BulkResult) -> str:
        text = (
            f"🔄 Bulk {result.operation.value}: {result.success_count} succeeded, "
            f"{result.failure_count} failed (of {result.total_orders})"
        )
        for failure in result.failures:
            text += f"\n- {failure.order_id}: {failure.error}"
        return text

    @staticmethod
    def queue(queue: ProcessingQueue) -> str:
        if not queue.orders:
            return "📋 Processing queue is empty."
        counts = ", ".join(f"{status}: {count}" for status, count in queue.status_counts.items())
        lines = [f"📋 Processing queue ({queue.total_count}) {counts}"]
        lines.extend(Messages.order_line(o) for o in queue.orders)
        return "\n".join(lines)

    @staticmethod
    def analytics(report: OrderAnalytics) -> str:
        text = (
            f"📊 Orders report {report.start_date or '-'} .. {report.end_date or '-'}\n\n"
            f"Orders: {report.total_orders:,}\n"
            f"Revenue: {format_price(report.total_revenue)}\n"
            f"Average order: {format_price(report.average_order_value)}\n"
            f"Customers: {report.total_unique_customers:,}\n"
        )
        if report.status_distribution:
            text += "\nBy status:\n" + "\n".join(
                f"- {status}: {count} ({report.status_percentages[status]}%)"
                for status, count in report.status_distribution.items()
            )
        if report.top_products_by_quantity:
            text += "\n\nTop products:\n" + "\n".join(
                f"- {p.name or p.product_id}: {p.total_quantity}"
                for p in report.top_products_by_quantity[:5]
            )
        return text
