from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import Field, ValidationError as PydanticValidationError, field_validator
from .base import DocumentModel, Money, TimeStampedModel, as_utc
from ..errors import MalformedDocumentError

ORDERS_COLLECTION = "orders"


def customer_orders_collection(user_id: str) -> str:
    """Path of the denormalized order list kept under a customer"""
    return f"users/{user_id}/orders"


class OrderStatus(str, Enum):
    PLACED = "Placed"
    APPROVED = "Approved"
    PACKED = "Packed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    DECLINED = "Declined"
    CANCELLED = "Cancelled"
    REFUNDED = "Refunded"


class OrderPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_SCORES = {
    OrderPriority.URGENT: 4,
    OrderPriority.HIGH: 3,
    OrderPriority.NORMAL: 2,
    OrderPriority.LOW: 1,
}


class OrderItem(DocumentModel):
    """Line item snapshot taken at checkout"""
    product_id: str
    name: str = ""
    price: Money = Decimal(0)
    quantity: int = 0
    image: Optional[str] = None

    @field_validator("product_id", mode="before")
    @classmethod
    def _as_text(cls, value):
        return str(value) if isinstance(value, int) else value

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class ShippingAddress(DocumentModel):
    name: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    country: Optional[str] = None


class PaymentInfo(DocumentModel):
    method: Optional[str] = None
    details: Dict[str, Any] = {}


class TrackingInfo(DocumentModel):
    """Carrier and tracking code attached once an order is packed or shipped"""
    carrier: Optional[str] = None
    carrier_code: Optional[str] = None
    code: Optional[str] = None
    url: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    shipped_date: Optional[datetime] = None
    service: Optional[str] = None
    weight: Optional[float] = None
    dimensions: Optional[str] = None
    cost: Optional[Money] = None
    notes: Optional[str] = None
    updated_by: Optional[str] = None
    updated_at: Optional[datetime] = None


class StatusHistoryEntry(DocumentModel):
    status: OrderStatus
    timestamp: datetime
    note: str = ""
    updated_by: Optional[str] = None
    previous_status: Optional[str] = None
    metadata: Dict[str, Any] = {}

    @field_validator("timestamp")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return as_utc(value)


class Order(TimeStampedModel):
    """Order projection read from the record store"""
    id: str
    order_number: Optional[str] = Field(default=None, alias="orderId")
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    user_phone: Optional[str] = None
    items: List[OrderItem] = []
    subtotal: Money = Decimal(0)
    tax: Money = Decimal(0)
    discount: Money = Decimal(0)
    shipping_cost: Money = Decimal(0)
    total: Money = Field(default=Decimal(0), ge=0)
    shipping_address: Optional[ShippingAddress] = None
    payment: Optional[PaymentInfo] = None
    status: OrderStatus
    priority: Optional[OrderPriority] = None
    tags: List[str] = []
    admin_notes: str = ""
    tracking: Optional[TrackingInfo] = None
    status_history: List[StatusHistoryEntry] = []
    inventory_restored: bool = False

    @field_validator("order_number", "user_id", mode="before")
    @classmethod
    def _as_text(cls, value):
        return str(value) if isinstance(value, int) else value

    @property
    def computed_total(self) -> Decimal:
        """subtotal + tax + shipping - discount"""
        return self.subtotal + self.tax + self.shipping_cost - self.discount

    @property
    def carrier(self) -> Optional[str]:
        return self.tracking.carrier if self.tracking else None

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any],
                      collection: str = ORDERS_COLLECTION) -> "Order":
        """Normalize a schema-less order document into an Order"""
        payload = dict(data)
        payload["id"] = doc_id
        financials = data.get("financials") or {}

        payload["subtotal"] = _first_present(financials.get("subtotal"), data.get("subtotal"))
        for key in ("tax", "discount", "shippingCost"):
            payload[key] = _first_present(financials.get(key), data.get(key))

        payload["createdAt"] = _first_present(
            data.get("createdAt"), data.get("orderDate"), data.get("timestamp"), default=None
        )

        if not data.get("shippingAddress"):
            address = (data.get("shipping") or {}).get("address")
            if address:
                payload["shippingAddress"] = address

        for key in ("tags", "items", "statusHistory"):
            if payload.get(key) is None:
                payload[key] = []
        if payload.get("adminNotes") is None:
            payload["adminNotes"] = ""

        total = _first_present(
            financials.get("total"), data.get("total"),
            data.get("totalAmount"), data.get("amount"),
            default=None,
        )
        try:
            order = cls.model_validate(dict(payload, total=total if total is not None else 0))
            if total is None:
                order.total = order.computed_total
                if order.total < 0:
                    raise ValueError(f"computed total is negative ({order.total})")
        except (PydanticValidationError, ValueError) as e:
            raise MalformedDocumentError(collection, doc_id, str(e)) from e
        return order


def _first_present(*values, default=0):
    for value in values:
        if value is not None:
            return value
    return default
