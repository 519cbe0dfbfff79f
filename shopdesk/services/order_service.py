import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional
from ..config import Config
from ..database.record_store import RecordStore, new_document_id
from ..errors import InsufficientStockError, ValidationError
from ..models.base import utc_now
from ..models.order import (
    ORDERS_COLLECTION, Order, OrderItem, OrderStatus, ShippingAddress,
    customer_orders_collection,
)
from ..models.user import Identity
from .customer_orders import CustomerOrderProjection
from .product_service import ProductService

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


class OrderService:
    """Storefront side of orders: checkout and the customer's order history"""

    def __init__(self, store: RecordStore, tax_rate: Optional[Decimal] = None):
        self.store = store
        self.tax_rate = Config.TAX_RATE if tax_rate is None else tax_rate
        self.product_service = ProductService(store)
        self.customer_orders = CustomerOrderProjection(store)

    async def place_order(self, customer: Identity, items: List[Dict[str, Any]],
                          shipping_address: ShippingAddress,
                          payment_method: str = "COD",
                          customer_name: Optional[str] = None,
                          phone: Optional[str] = None) -> Order:
        """Create an order in status Placed from cart lines ``{product_id, quantity}``"""
        if not items:
            raise ValidationError("Cannot place an order with an empty cart", field="items")

        order_items: List[OrderItem] = []
        for line in items:
            quantity = int(line.get("quantity", 0))
            if quantity < 1:
                raise ValidationError(f"Invalid quantity {quantity} for product {line.get('product_id')}",
                                      field="quantity")
            product = await self.product_service.require_product(str(line["product_id"]))
            if product.stock < quantity:
                raise InsufficientStockError(product.id, quantity, product.stock)

            order_items.append(OrderItem(
                product_id=product.id,
                name=product.name,
                price=product.price,
                quantity=quantity,
                image=product.image,
            ))

        subtotal = sum((item.line_total for item in order_items), Decimal(0))
        tax = (subtotal * self.tax_rate).quantize(CENTS, rounding=ROUND_HALF_UP)
        discount = Decimal(0)
        total = subtotal + tax - discount

        now = utc_now().isoformat()
        order_id = new_document_id()
        document = {
            "orderId": f"ORD-{order_id[:8].upper()}",
            "userId": customer.user_id,
            "userEmail": customer.email,
            "userName": customer_name or shipping_address.name or "",
            "userPhone": phone or "",
            "orderDate": now,
            "createdAt": now,
            "updatedAt": now,
            "items": [item.to_document() for item in order_items],
            "payment": {"method": payment_method, "details": {}},
            "subtotal": float(subtotal),
            "tax": float(tax),
            "discount": float(discount),
            "shippingCost": 0.0,
            "totalAmount": float(total),
            "status": OrderStatus.PLACED.value,
            "tags": [],
            "adminNotes": "",
            "statusHistory": [{
                "status": OrderStatus.PLACED.value,
                "timestamp": now,
                "note": "Order placed successfully",
                "updatedBy": customer.user_id,
                "metadata": {},
            }],
            "shippingAddress": shipping_address.to_document(),
        }

        async with self.store.transaction() as tx:
            await tx.create(ORDERS_COLLECTION, document, doc_id=order_id)
            await tx.create(
                customer_orders_collection(customer.user_id),
                self.customer_orders.snapshot(order_id, document),
            )

        # Not atomic with the order write; see ProductService.update_stock
        for item in order_items:
            await self.product_service.update_stock(item.product_id, -item.quantity)

        logger.info(f"Order {order_id} placed by {customer.user_id} for {total}")
        return Order.from_document(order_id, document)

    async def get_customer_orders(self, user_id: str) -> List[Order]:
        """Orders from the customer's own list, newest first"""
        copies = await self.customer_orders.list_for(user_id)
        return [
            Order.from_document(c.get("globalOrderId") or c["id"], c,
                                collection=customer_orders_collection(user_id))
            for c in copies
        ]
