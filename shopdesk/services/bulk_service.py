"""Apply one admin action to a batch of orders.

Items are validated one by one and failures are recorded per item. The
surviving updates are committed with a single batched write, so a store
failure at commit time fails the whole batch.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from pydantic import BaseModel
from ..config import Config
from ..database.record_store import RecordStore, Write
from ..errors import (
    LimitExceededError, NotFoundError, ShopdeskError, StoreError, ValidationError,
)
from ..models.base import utc_now
from ..models.order import ORDERS_COLLECTION, Order, OrderPriority
from .order_state_machine import OrderStateMachine, history_entry, parse_status

logger = logging.getLogger(__name__)


class BulkOperation(str, Enum):
    STATUS_CHANGE = "update_status"
    PRIORITY_CHANGE = "update_priority"
    TAG_ADD = "add_tag"
    TAG_REMOVE = "remove_tag"
    NOTE_APPEND = "add_admin_note"


class BulkItemResult(BaseModel):
    order_id: str
    success: bool
    error: Optional[str] = None
    error_type: Optional[str] = None
    changed: bool = True


class BulkResult(BaseModel):
    operation: BulkOperation
    total_orders: int
    success_count: int
    failure_count: int
    results: List[BulkItemResult]

    @property
    def failures(self) -> List[BulkItemResult]:
        return [r for r in self.results if not r.success]


class BulkOperationCoordinator:
    def __init__(self, store: RecordStore, limit: Optional[int] = None,
                 state_machine: Optional[OrderStateMachine] = None):
        self.store = store
        self.limit = Config.BULK_LIMIT if limit is None else limit
        self.state_machine = state_machine or OrderStateMachine(store)

    async def apply_bulk(self, operation, order_ids: Sequence[str],
                         payload: Optional[Dict[str, Any]] = None,
                         admin_id: str = "admin") -> BulkResult:
        """Apply an operation to every order, collecting per item results"""
        if not order_ids:
            raise ValidationError("No order IDs provided for bulk operation", field="order_ids")
        if len(order_ids) > self.limit:
            raise LimitExceededError(len(order_ids), self.limit)
        try:
            operation = BulkOperation(operation)
        except ValueError:
            raise ValidationError(f"Unknown bulk operation: {operation}", field="operation") from None

        payload = payload or {}
        logger.info(f"Performing bulk {operation.value} on {len(order_ids)} orders")

        results: List[BulkItemResult] = []
        writes: List[Write] = []
        for order_id in order_ids:
            try:
                data = await self.store.get(ORDERS_COLLECTION, order_id)
                if data is None:
                    raise NotFoundError("order", order_id)
                update = self._build_update(operation, Order.from_document(order_id, data),
                                            data, payload, admin_id)
            except ShopdeskError as e:
                results.append(BulkItemResult(
                    order_id=order_id, success=False,
                    error=str(e), error_type=type(e).__name__,
                ))
                continue

            if update:
                writes.append(Write(ORDERS_COLLECTION, order_id, update))
            results.append(BulkItemResult(order_id=order_id, success=True, changed=bool(update)))

        if writes:
            try:
                await self.store.batch_update(writes)
            except (StoreError, NotFoundError) as e:
                logger.error(f"Bulk {operation.value} commit failed: {e}", exc_info=True)
                raise StoreError(
                    f"Bulk {operation.value} commit of {len(writes)} orders failed: {e}",
                    step="batch_commit",
                ) from e

        success_count = sum(1 for r in results if r.success)
        logger.info(
            f"Bulk operation completed. Success: {success_count}, "
            f"Failed: {len(results) - success_count}"
        )
        return BulkResult(
            operation=operation,
            total_orders=len(order_ids),
            success_count=success_count,
            failure_count=len(results) - success_count,
            results=results,
        )

    def _build_update(self, operation: BulkOperation, order: Order, raw: Dict[str, Any],
                      payload: Dict[str, Any], admin_id: str) -> Dict[str, Any]:
        now = utc_now()
        base = {"updatedAt": now.isoformat(), "lastUpdatedBy": admin_id}

        if operation == BulkOperation.STATUS_CHANGE:
            target = parse_status(payload.get("status"))
            self.state_machine.check_transition(order.status, target)
            entry = history_entry(
                target, admin_id,
                note=payload.get("note") or f"Bulk status update to {target.value}",
                at=now, previous=order.status, metadata={"bulkOperation": True},
            )
            return dict(
                base,
                status=target.value,
                statusHistory=list(raw.get("statusHistory") or []) + [entry],
            )

        if operation == BulkOperation.PRIORITY_CHANGE:
            try:
                priority = OrderPriority(payload.get("priority"))
            except ValueError:
                raise ValidationError(f"Invalid priority: {payload.get('priority')}",
                                      field="priority") from None
            return dict(base, priority=priority.value)

        tag = payload.get("tag")
        if operation in (BulkOperation.TAG_ADD, BulkOperation.TAG_REMOVE) and not tag:
            raise ValidationError("A tag is required", field="tag")

        if operation == BulkOperation.TAG_ADD:
            if tag in order.tags:
                return {}
            return dict(base, tags=order.tags + [tag])

        if operation == BulkOperation.TAG_REMOVE:
            return dict(base, tags=[t for t in order.tags if t != tag])

        note = payload.get("note")
        if not note:
            raise ValidationError("A note is required", field="note")
        notes = f"{order.admin_notes}\n{note}" if order.admin_notes else note
        return dict(base, adminNotes=notes)
