import logging
from telegram import Update
from telegram.ext import CallbackQueryHandler, CommandHandler, ContextTypes
from .base_handler import BaseHandler
from ..errors import ShopdeskError
from ..services.analytics_service import AnalyticsService
from ..services.bulk_service import BulkOperation, BulkOperationCoordinator
from ..services.order_query_service import OrderFilters, OrderQueryService
from ..services.order_state_machine import OrderStateMachine, ShippingInfo

logger = logging.getLogger(__name__)

LIST_LIMIT = 10

BULK_ALIASES = {
    "status": BulkOperation.STATUS_CHANGE,
    "priority": BulkOperation.PRIORITY_CHANGE,
    "tag": BulkOperation.TAG_ADD,
    "untag": BulkOperation.TAG_REMOVE,
    "note": BulkOperation.NOTE_APPEND,
}

BULK_PAYLOAD_KEYS = {
    BulkOperation.STATUS_CHANGE: "status",
    BulkOperation.PRIORITY_CHANGE: "priority",
    BulkOperation.TAG_ADD: "tag",
    BulkOperation.TAG_REMOVE: "tag",
    BulkOperation.NOTE_APPEND: "note",
}


class OrderHandler(BaseHandler):
    """Admin order management commands"""

    def __init__(self, store):
        super().__init__(store)
        self.state_machine = OrderStateMachine(store)
        self.bulk = BulkOperationCoordinator(store, state_machine=self.state_machine)
        self.queries = OrderQueryService(store)
        self.analytics = AnalyticsService(store)

    def handlers(self):
        return [
            CommandHandler("orders", self.list_orders),
            CommandHandler("order", self.show_order),
            CommandHandler("ship", self.ship_order),
            CommandHandler("bulk", self.bulk_update),
            CommandHandler("queue", self.show_queue),
            CommandHandler("report", self.show_report),
            CallbackQueryHandler(self.handle_order_callback, pattern=r"^order:"),
        ]

    async def list_orders(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/orders [status]"""
        try:
            self.admin_id(update)
            status = context.args[0] if context.args else None
            result = await self.queries.query_orders(OrderFilters(status=status, limit=LIST_LIMIT))
            title = f"{status} orders" if status else "Latest orders"
            await self.reply(update, self.messages.order_list(result.orders, title))
        except ShopdeskError as e:
            await self.report_error(update, e)

    async def show_order(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/order <id>"""
        if not context.args:
            await self.usage(update, context, "/order <order id>")
            return
        try:
            self.admin_id(update)
            order = await self.queries.get_order(context.args[0])
            await self.reply(
                update,
                self.messages.format_order(order),
                reply_markup=self.keyboards.order_actions(order),
            )
        except ShopdeskError as e:
            await self.report_error(update, e)

    async def handle_order_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Inline buttons ``order:<status|view>:<id>``"""
        query = update.callback_query
        await query.answer()
        _, action, order_id = query.data.split(":", 2)
        try:
            admin_id = self.admin_id(update)
            if action != "view":
                result = await self.state_machine.transition(order_id, action, admin_id=admin_id)
                await query.message.reply_text(self.messages.transition_done(result))
            order = await self.queries.get_order(order_id)
            await self.reply(
                update,
                self.messages.format_order(order),
                reply_markup=self.keyboards.order_actions(order),
            )
        except ShopdeskError as e:
            await self.report_error(update, e)

    async def ship_order(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/ship <id> <carrier> <tracking number> [service]"""
        if len(context.args or []) < 3:
            await self.usage(update, context, "/ship <order id> <carrier> <tracking number> [service]")
            return
        order_id, carrier, tracking_number = context.args[:3]
        service = context.args[3] if len(context.args) > 3 else "standard"
        try:
            admin_id = self.admin_id(update)
            confirmation = await self.state_machine.attach_shipping(
                order_id,
                ShippingInfo(carrier=carrier, tracking_number=tracking_number, service=service),
                admin_id=admin_id,
            )
            await self.reply(update, self.messages.shipping_done(confirmation))
        except ShopdeskError as e:
            await self.report_error(update, e)

    async def bulk_update(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/bulk <status|priority|tag|untag|note> <value> <id> [<id> ...]"""
        args = context.args or []
        if len(args) < 3 or args[0] not in BULK_ALIASES:
            await self.usage(update, context, "/bulk <status|priority|tag|untag|note> <value> <order id> ...")
            return
        operation = BULK_ALIASES[args[0]]
        order_ids = [i for arg in args[2:] for i in arg.split(",") if i]
        try:
            admin_id = self.admin_id(update)
            result = await self.bulk.apply_bulk(
                operation, order_ids, {BULK_PAYLOAD_KEYS[operation]: args[1]}, admin_id=admin_id,
            )
            await self.reply(update, self.messages.bulk_done(result))
        except ShopdeskError as e:
            await self.report_error(update, e)

    async def show_queue(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/queue"""
        try:
            self.admin_id(update)
            queue = await self.queries.get_processing_queue()
            await self.reply(update, self.messages.queue(queue))
        except ShopdeskError as e:
            await self.report_error(update, e)

    async def show_report(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """/report [days]"""
        days = 7
        if context.args and context.args[0].isdigit():
            days = max(1, int(context.args[0]))
        try:
            self.admin_id(update)
            report = await self.analytics.get_recent_analytics(days)
            await self.reply(update, self.messages.analytics(report))
            await update.effective_message.reply_document(
                document=self.analytics.export_excel(report),
                filename=f"orders_{report.start_date}_{report.end_date}.xlsx",
            )
        except ShopdeskError as e:
            await self.report_error(update, e)
