import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel
from ..database.record_store import FieldFilter, RecordStore, get_field, _MISSING
from ..errors import NotFoundError, StoreError
from ..models.order import (
    ORDERS_COLLECTION, PRIORITY_SCORES, Order, OrderPriority, OrderStatus,
)

logger = logging.getLogger(__name__)

PROCESSING_STATUSES = (OrderStatus.PLACED, OrderStatus.APPROVED, OrderStatus.PACKED)
ONE_DAY = timedelta(days=1)


class OrderFilters(BaseModel):
    """Declarative order filters; ``status="all"`` disables the status filter"""
    status: Optional[Union[OrderStatus, str]] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    priority: Optional[OrderPriority] = None
    min_amount: Optional[Decimal] = None
    order_by: str = "createdAt"
    descending: bool = True
    search_term: Optional[str] = None
    carrier: Optional[str] = None
    limit: Optional[int] = None


class OrderQueryResult(BaseModel):
    orders: List[Order]
    total_count: int
    has_more: bool = False


class ProcessingQueue(BaseModel):
    orders: List[Order]
    by_status: Dict[str, List[Order]]
    status_counts: Dict[str, int]
    total_count: int


def _day_start(day: date) -> str:
    return datetime.combine(day, time.min, tzinfo=timezone.utc).isoformat()


def _day_end(day: date) -> str:
    return datetime.combine(day, time.max, tzinfo=timezone.utc).isoformat()


def _sort_key(value: Any):
    """Comparable key; numbers before text, missing values grouped apart"""
    if isinstance(value, bool):
        return (1, int(value), "")
    if isinstance(value, (int, float, Decimal)):
        return (1, float(value), "")
    return (2, 0, str(value))


class OrderQueryService:
    def __init__(self, store: RecordStore):
        self.store = store

    async def get_order(self, order_id: str) -> Order:
        data = await self.store.get(ORDERS_COLLECTION, order_id)
        if data is None:
            raise NotFoundError("order", order_id)
        return Order.from_document(order_id, data)

    def build_store_filters(self, filters: OrderFilters) -> List[FieldFilter]:
        """Criteria the record store evaluates itself"""
        store_filters: List[FieldFilter] = []
        if filters.status and filters.status != "all":
            status = filters.status.value if isinstance(filters.status, OrderStatus) else filters.status
            store_filters.append(FieldFilter("status", "==", status))
        if filters.user_id:
            store_filters.append(FieldFilter("userId", "==", filters.user_id))
        if filters.user_email:
            store_filters.append(FieldFilter("userEmail", "==", filters.user_email))
        # Stored timestamps may carry any UTC offset, so the text bounds are
        # one day wider and query_orders applies the exact UTC range.
        if filters.start_date:
            store_filters.append(FieldFilter("createdAt", ">=", _day_start(filters.start_date - ONE_DAY)))
        if filters.end_date:
            store_filters.append(FieldFilter("createdAt", "<=", _day_end(filters.end_date + ONE_DAY)))
        if filters.priority:
            store_filters.append(FieldFilter("priority", "==", filters.priority.value))
        if filters.min_amount is not None:
            store_filters.append(FieldFilter("totalAmount", ">=", float(filters.min_amount)))
        return store_filters

    async def query_orders(self, filters: Optional[OrderFilters] = None) -> OrderQueryResult:
        """Store-side filtering and ordering, then client-side search and carrier match"""
        filters = filters or OrderFilters()
        store_filters = self.build_store_filters(filters)

        try:
            documents = await self.store.query(
                ORDERS_COLLECTION, store_filters,
                order_by=filters.order_by, descending=filters.descending,
                limit=filters.limit,
            )
        except StoreError as e:
            logger.warning(f"Could not order by {filters.order_by}, sorting in memory: {e}")
            documents = await self.store.query(ORDERS_COLLECTION, store_filters)
            documents = self._sort_in_memory(documents, filters.order_by, filters.descending)
            if filters.limit:
                documents = documents[:filters.limit]

        orders = [Order.from_document(doc["id"], doc) for doc in documents]
        retrieved = len(orders)

        if filters.start_date or filters.end_date:
            orders = [o for o in orders if self._in_date_range(o, filters)]
        if filters.search_term:
            orders = [o for o in orders if self._matches_search(o, filters.search_term)]
        if filters.carrier:
            carrier = filters.carrier.lower()
            orders = [o for o in orders if (o.carrier or "").lower() == carrier]

        logger.info(f"Retrieved {len(orders)} orders")
        return OrderQueryResult(
            orders=orders,
            total_count=len(orders),
            has_more=bool(filters.limit) and retrieved == filters.limit,
        )

    @staticmethod
    def _sort_in_memory(documents: List[Dict[str, Any]], field: str,
                        descending: bool) -> List[Dict[str, Any]]:
        present = [d for d in documents if get_field(d, field) not in (_MISSING, None)]
        missing = [d for d in documents if get_field(d, field) in (_MISSING, None)]
        present.sort(key=lambda d: d["id"])
        present.sort(key=lambda d: _sort_key(get_field(d, field)), reverse=descending)
        missing.sort(key=lambda d: d["id"])
        return present + missing

    @staticmethod
    def _in_date_range(order: Order, filters: OrderFilters) -> bool:
        """Compare on the UTC calendar day, as the daily analytics do"""
        if order.created_at is None:
            return False
        day = order.created_at.astimezone(timezone.utc).date()
        if filters.start_date and day < filters.start_date:
            return False
        return not (filters.end_date and day > filters.end_date)

    @staticmethod
    def _matches_search(order: Order, term: str) -> bool:
        term = term.lower()
        fields = [order.id, order.order_number, order.user_name, order.user_email]
        fields.extend(item.name for item in order.items)
        return any(term in value.lower() for value in fields if value)

    async def get_processing_queue(self, filters: Optional[OrderFilters] = None) -> ProcessingQueue:
        """Orders awaiting fulfilment, highest priority and oldest first"""
        filters = filters or OrderFilters()
        orders: List[Order] = []
        for status in PROCESSING_STATUSES:
            result = await self.query_orders(filters.model_copy(update={"status": status}))
            orders.extend(result.orders)

        oldest = datetime.max.replace(tzinfo=timezone.utc)
        orders.sort(key=lambda o: (
            -PRIORITY_SCORES.get(o.priority, PRIORITY_SCORES[OrderPriority.NORMAL]),
            o.created_at or oldest,
            o.id,
        ))

        by_status: Dict[str, List[Order]] = {}
        for order in orders:
            by_status.setdefault(order.status.value, []).append(order)

        return ProcessingQueue(
            orders=orders,
            by_status=by_status,
            status_counts={status: len(items) for status, items in by_status.items()},
            total_count=len(orders),
        )
