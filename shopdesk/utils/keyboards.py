from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from ..models.order import Order, OrderStatus
from ..services.order_state_machine import ALLOWED_TRANSITIONS

ACTION_LABELS = {
    OrderStatus.APPROVED: "👍 Approve",
    OrderStatus.PACKED: "📦 Pack",
    OrderStatus.DELIVERED: "✅ Delivered",
    OrderStatus.DECLINED: "⛔️ Decline",
    OrderStatus.CANCELLED: "❌ Cancel",
    OrderStatus.REFUNDED: "↩️ Refund",
}


class Keyboards:
    @staticmethod
    def order_actions(order: Order) -> InlineKeyboardMarkup:
        """Buttons for the moves allowed from the order's current status.

        Shipping needs a tracking code, so it goes through /ship instead.
        """
        buttons = [
            InlineKeyboardButton(ACTION_LABELS[status], callback_data=f"order:{status.value}:{order.id}")
            for status in OrderStatus
            if status in ALLOWED_TRANSITIONS[order.status] and status in ACTION_LABELS
        ]
        keyboard = [buttons[i:i + 2] for i in range(0, len(buttons), 2)]
        keyboard.append([InlineKeyboardButton("🔄 Refresh", callback_data=f"order:view:{order.id}")])
        return InlineKeyboardMarkup(keyboard)
