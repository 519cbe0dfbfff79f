import logging
from typing import Dict, Iterable, List, Optional
from ..database.record_store import RecordStore, Write
from ..errors import NotFoundError
from ..models.base import utc_now
from ..models.order import OrderItem
from ..models.product import PRODUCTS_COLLECTION, Product

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(self, store: RecordStore):
        self.store = store

    async def get_product(self, product_id: str) -> Optional[Product]:
        """Read a product, None when it does not exist"""
        data = await self.store.get(PRODUCTS_COLLECTION, product_id)
        return Product.from_document(product_id, data) if data else None

    async def require_product(self, product_id: str) -> Product:
        product = await self.get_product(product_id)
        if product is None:
            raise NotFoundError("product", product_id)
        return product

    async def update_stock(self, product_id: str, delta: int) -> int:
        """Read-modify-write of the stock counter; returns the new stock.

        Not atomic: a concurrent writer between the read and the write is lost.
        """
        product = await self.require_product(product_id)
        new_stock = product.stock + delta
        await self.store.update(PRODUCTS_COLLECTION, product_id, {
            "stock": new_stock,
            "updatedAt": utc_now().isoformat(),
        })
        return new_stock

    async def restore_inventory(self, items: Iterable[OrderItem]) -> Dict[str, int]:
        """Add ordered quantities back to stock in one batch.

        Returns the restored stock per product. Missing products are skipped.
        """
        quantities: Dict[str, int] = {}
        for item in items:
            quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

        restored_at = utc_now().isoformat()
        writes: List[Write] = []
        restored: Dict[str, int] = {}
        for product_id, quantity in quantities.items():
            product = await self.get_product(product_id)
            if product is None:
                logger.warning(f"Skipping stock restore for missing product {product_id}")
                continue

            restored[product_id] = product.stock + quantity
            writes.append(Write(PRODUCTS_COLLECTION, product_id, {
                "stock": restored[product_id],
                "lastRestored": restored_at,
            }))
            logger.info(
                f"Restoring {quantity} units of {product.name or product_id} "
                f"({product.stock} -> {restored[product_id]})"
            )

        if writes:
            await self.store.batch_update(writes)
        return restored
