"""Order lifecycle: status transitions, audit trail and their side effects.

Allowed moves::

    Placed    -> Approved, Declined, Cancelled
    Approved  -> Packed, Cancelled
    Packed    -> Shipped, Cancelled
    Shipped   -> Delivered
    Delivered -> Refunded
    Cancelled -> Refunded

Declined and Refunded are terminal. In permissive mode a move outside the
table is logged and applied anyway (admin override); in strict mode it is
rejected before anything is written.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union
from pydantic import BaseModel
from ..config import Config
from ..database.record_store import RecordStore
from ..errors import (
    InvalidStatusError, InvalidTransitionError, NotFoundError, StoreError, ValidationError,
)
from ..models.base import DocumentModel, utc_now
from ..models.carrier import DEFAULT_DELIVERY_DAYS, find_carrier
from ..models.order import ORDERS_COLLECTION, Order, OrderPriority, OrderStatus
from .customer_orders import CustomerOrderProjection
from .product_service import ProductService

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PLACED: frozenset({OrderStatus.APPROVED, OrderStatus.DECLINED, OrderStatus.CANCELLED}),
    OrderStatus.APPROVED: frozenset({OrderStatus.PACKED, OrderStatus.CANCELLED}),
    OrderStatus.PACKED: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.DECLINED: frozenset(),
    OrderStatus.CANCELLED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.REFUNDED: frozenset(),
}

RESTORING_STATUSES = (OrderStatus.DECLINED, OrderStatus.CANCELLED)
SHIPPABLE_STATUSES = (OrderStatus.PACKED, OrderStatus.SHIPPED)


def parse_status(value: Union[str, OrderStatus]) -> OrderStatus:
    """Validate a status value against the enumeration (case sensitive)"""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidStatusError(value) from None


def is_allowed(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def history_entry(status: OrderStatus, admin_id: str, note: str, at: datetime,
                  previous: Optional[OrderStatus] = None,
                  metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Status history entry in document form"""
    entry = {
        "status": status.value,
        "timestamp": at.isoformat(),
        "note": note,
        "updatedBy": admin_id,
        "metadata": metadata or {},
    }
    if previous is not None:
        entry["previousStatus"] = previous.value
    return entry


class TransitionContext(DocumentModel):
    """Optional note and status specific payload of a transition"""
    note: Optional[str] = None
    reason: Optional[str] = None
    admin_notes: Optional[str] = None
    priority: Optional[OrderPriority] = None
    packing_notes: Optional[str] = None
    tracking: Optional[Dict[str, Any]] = None
    delivery_confirmation: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    refund_method: Optional[str] = None
    metadata: Dict[str, Any] = {}


class TransitionResult(BaseModel):
    order: Order
    previous_status: OrderStatus
    new_status: OrderStatus
    timestamp: datetime
    override: bool = False
    restored_stock: Dict[str, int] = {}


class ShippingInfo(DocumentModel):
    carrier: str = ""
    tracking_number: str = ""
    service: str = "standard"
    weight: Optional[float] = None
    dimensions: Optional[str] = None
    shipping_cost: Optional[Decimal] = None
    notes: str = ""


class ShippingConfirmation(BaseModel):
    order_id: str
    tracking_number: str
    carrier: str
    tracking_url: Optional[str] = None
    estimated_delivery: datetime


class OrderStateMachine:
    def __init__(self, store: RecordStore, strict: Optional[bool] = None,
                 home_country: Optional[str] = None,
                 domestic_carrier: Optional[str] = None,
                 international_carrier: Optional[str] = None,
                 restore_guard: Optional[bool] = None):
        self.store = store
        self.products = ProductService(store)
        self.customer_orders = CustomerOrderProjection(store)
        self.strict = Config.STRICT_TRANSITIONS if strict is None else strict
        self.home_country = home_country or Config.HOME_COUNTRY
        self.domestic_carrier = domestic_carrier or Config.DOMESTIC_CARRIER
        self.international_carrier = international_carrier or Config.INTERNATIONAL_CARRIER
        self.restore_guard = Config.INVENTORY_RESTORE_GUARD if restore_guard is None else restore_guard

    async def load(self, order_id: str) -> Tuple[Order, Dict[str, Any]]:
        """Read an order; returns the model and the raw document"""
        data = await self.store.get(ORDERS_COLLECTION, order_id)
        if data is None:
            raise NotFoundError("order", order_id)
        return Order.from_document(order_id, data), data

    def check_transition(self, current: OrderStatus, target: OrderStatus) -> bool:
        """Returns True when the move is an admin override of the table"""
        if is_allowed(current, target):
            return False
        if self.strict:
            raise InvalidTransitionError(current.value, target.value)
        logger.warning(
            f"Status transition {current.value} -> {target.value} is outside the "
            f"allowed table, applying as admin override"
        )
        return True

    async def transition(self, order_id: str, target_status: Union[str, OrderStatus],
                         context: Optional[TransitionContext] = None,
                         admin_id: str = "admin") -> TransitionResult:
        """Move an order to a new status and apply its side effects"""
        target = parse_status(target_status)
        context = context or TransitionContext()
        order, raw = await self.load(order_id)
        current = order.status
        override = self.check_transition(current, target)

        now = utc_now()
        stamp = now.isoformat()
        metadata = {"updateReason": context.reason or "Status change", **context.metadata}
        if override:
            metadata["adminOverride"] = True
        entry = history_entry(
            target, admin_id,
            note=context.note or f"Order {target.value.lower()} by admin",
            at=now, previous=current, metadata=metadata,
        )
        if context.admin_notes:
            entry["adminNotes"] = context.admin_notes

        update: Dict[str, Any] = {
            "status": target.value,
            "updatedAt": stamp,
            "lastUpdatedBy": admin_id,
            "statusHistory": list(raw.get("statusHistory") or []) + [entry],
        }
        update.update(self._status_fields(order, raw, target, context, admin_id, stamp))

        restore = target in RESTORING_STATUSES
        if restore and self.restore_guard and order.inventory_restored:
            logger.info(f"Inventory of order {order_id} already restored, skipping")
            restore = False

        await self._write(order_id, update)

        # The status change is committed; the customer copy follows it
        # even when restoring the stock fails.
        restored: Dict[str, int] = {}
        try:
            if restore:
                restored = await self._restore_inventory(order_id, order, target)
                if self.restore_guard:
                    await self._write(order_id, {"inventoryRestored": True})
                    update["inventoryRestored"] = True
        finally:
            await self.customer_orders.sync(order_id, order.user_id, update)

        logger.info(f"Order {order_id} status updated from {current.value} to {target.value}")
        return TransitionResult(
            order=Order.from_document(order_id, {**raw, **update}),
            previous_status=current,
            new_status=target,
            timestamp=now,
            override=override,
            restored_stock=restored,
        )

    async def _restore_inventory(self, order_id: str, order: Order,
                                 target: OrderStatus) -> Dict[str, int]:
        try:
            return await self.products.restore_inventory(order.items)
        except (StoreError, NotFoundError) as e:
            logger.error(f"Restoring inventory for order {order_id} failed: {e}", exc_info=True)
            raise StoreError(
                f"Order {order_id} is {target.value} but its inventory was not restored: {e}",
                step="inventory_restoration",
            ) from e

    def _status_fields(self, order: Order, raw: Dict[str, Any], target: OrderStatus,
                       context: TransitionContext, admin_id: str, stamp: str) -> Dict[str, Any]:
        if target == OrderStatus.APPROVED:
            priority = context.priority or order.priority or OrderPriority.NORMAL
            return {"approvedAt": stamp, "approvedBy": admin_id, "priority": priority.value}

        if target == OrderStatus.PACKED:
            fields = {
                "packedAt": stamp,
                "packedBy": admin_id,
                "packingNotes": context.packing_notes or "",
            }
            if not order.carrier:
                fields["tracking"] = dict(raw.get("tracking") or {}, carrier=self.carrier_for(order))
            return fields

        if target == OrderStatus.SHIPPED:
            fields = {"shippedAt": stamp, "shippedBy": admin_id}
            if context.tracking:
                fields["tracking"] = {
                    **(raw.get("tracking") or {}),
                    **context.tracking,
                    "shippedDate": stamp,
                }
            return fields

        if target == OrderStatus.DELIVERED:
            return {
                "deliveredAt": stamp,
                "deliveryConfirmation": context.delivery_confirmation or "Admin marked as delivered",
            }

        if target == OrderStatus.DECLINED:
            return {
                "declinedAt": stamp,
                "declinedBy": admin_id,
                "declineReason": context.reason or "Order declined by admin",
            }

        if target == OrderStatus.CANCELLED:
            return {
                "cancelledAt": stamp,
                "cancelledBy": admin_id,
                "cancellationReason": context.reason or "Order cancelled",
            }

        if target == OrderStatus.REFUNDED:
            amount = context.refund_amount if context.refund_amount is not None else order.total
            return {
                "refundedAt": stamp,
                "refundedBy": admin_id,
                "refundAmount": float(amount),
                "refundReason": context.reason or "Refund processed",
                "refundMethod": context.refund_method or "original_payment_method",
            }

        return {}

    def carrier_for(self, order: Order) -> str:
        """Domestic carrier for home-country addresses, international otherwise"""
        country = order.shipping_address.country if order.shipping_address else None
        if country and country.strip().lower() == self.home_country.strip().lower():
            return self.domestic_carrier
        return self.international_carrier

    async def attach_shipping(self, order_id: str, shipping_info: Union[ShippingInfo, Dict[str, Any]],
                              admin_id: str = "admin") -> ShippingConfirmation:
        """Attach or replace tracking data and mark the order Shipped"""
        if isinstance(shipping_info, dict):
            shipping_info = ShippingInfo.model_validate(shipping_info)
        if not shipping_info.tracking_number.strip():
            raise ValidationError("Tracking number is required for shipping updates",
                                  field="tracking_number")
        if not shipping_info.carrier.strip():
            raise ValidationError("Shipping carrier is required for shipping updates",
                                  field="carrier")

        order, raw = await self.load(order_id)
        if order.status not in SHIPPABLE_STATUSES:
            raise InvalidTransitionError(
                order.status.value, OrderStatus.SHIPPED.value,
                reason="order must be Packed or Shipped to update shipping info",
            )

        carrier = find_carrier(shipping_info.carrier)
        if carrier is None:
            logger.warning(f"Unknown carrier {shipping_info.carrier}, using provided data")
        days = carrier.standard_days if carrier else DEFAULT_DELIVERY_DAYS

        now = utc_now()
        stamp = now.isoformat()
        eta = now + timedelta(days=days)
        carrier_name = carrier.name if carrier else shipping_info.carrier.strip()
        code = shipping_info.tracking_number.strip()
        cost = shipping_info.shipping_cost if shipping_info.shipping_cost is not None else order.shipping_cost

        tracking = {
            "code": code,
            "carrier": carrier_name,
            "carrierCode": carrier.code if carrier else carrier_name.upper(),
            "url": carrier.tracking_url if carrier else None,
            "estimatedDelivery": eta.isoformat(),
            "shippedDate": stamp,
            "service": shipping_info.service or "standard",
            "weight": shipping_info.weight,
            "dimensions": shipping_info.dimensions,
            "cost": float(cost),
            "notes": shipping_info.notes,
            "updatedBy": admin_id,
            "updatedAt": stamp,
        }
        entry = history_entry(
            OrderStatus.SHIPPED, admin_id,
            note=f"Order shipped via {carrier_name} with tracking number {code}",
            at=now, previous=order.status,
            metadata={
                "trackingNumber": code,
                "carrier": carrier_name,
                "estimatedDelivery": tracking["estimatedDelivery"],
            },
        )
        update = {
            "status": OrderStatus.SHIPPED.value,
            "tracking": tracking,
            "shippedAt": stamp,
            "shippedBy": admin_id,
            "updatedAt": stamp,
            "lastUpdatedBy": admin_id,
            "statusHistory": list(raw.get("statusHistory") or []) + [entry],
        }

        await self._write(order_id, update)
        await self.customer_orders.sync(order_id, order.user_id, update)

        logger.info(f"Shipping info updated for order {order_id}: {carrier_name} {code}")
        return ShippingConfirmation(
            order_id=order_id,
            tracking_number=code,
            carrier=carrier_name,
            tracking_url=tracking["url"],
            estimated_delivery=eta,
        )

    async def _write(self, order_id: str, update: Dict[str, Any]):
        try:
            await self.store.update(ORDERS_COLLECTION, order_id, update)
        except StoreError as e:
            logger.error(f"Updating order {order_id} failed: {e}", exc_info=True)
            raise StoreError(f"Updating order {order_id} failed: {e}", step="order_update") from e
