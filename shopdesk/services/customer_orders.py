import logging
from typing import Any, Dict, List, Optional
from ..database.record_store import FieldFilter, RecordStore
from ..errors import NotFoundError, StoreError
from ..models.order import customer_orders_collection

logger = logging.getLogger(__name__)

# Order fields mirrored into the customer's own order list
SNAPSHOT_FIELDS = (
    "orderId", "items", "subtotal", "tax", "discount", "shippingCost",
    "totalAmount", "status", "createdAt", "updatedAt", "shippingAddress",
    "payment", "statusHistory",
)


class CustomerOrderProjection:
    """Best-effort denormalized copy of orders under ``users/<uid>/orders``.

    The global order document is the source of truth. A failed sync is
    logged and dropped; the next successful sync overwrites the copy.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    @staticmethod
    def snapshot(order_id: str, order_data: Dict[str, Any]) -> Dict[str, Any]:
        copy = {k: order_data[k] for k in SNAPSHOT_FIELDS if k in order_data}
        copy["globalOrderId"] = order_id
        return copy

    async def sync(self, order_id: str, user_id: Optional[str],
                   update_data: Dict[str, Any]) -> int:
        """Apply an order update to the customer's copies; returns copies updated"""
        if not user_id:
            return 0

        collection = customer_orders_collection(user_id)
        try:
            copies = await self.store.query(
                collection, [FieldFilter("globalOrderId", "==", order_id)]
            )
            for copy in copies:
                await self.store.update(collection, copy["id"], update_data)
        except (StoreError, NotFoundError) as e:
            logger.warning(f"Could not sync customer copy of order {order_id}: {e}")
            return 0
        return len(copies)

    async def list_for(self, user_id: str) -> List[Dict[str, Any]]:
        """Customer copies, newest first"""
        copies = await self.store.query(customer_orders_collection(user_id))
        return sorted(copies, key=lambda c: (str(c.get("createdAt") or ""), c["id"]), reverse=True)
