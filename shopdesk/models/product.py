from decimal import Decimal
from typing import Any, Dict, Optional
from pydantic import ValidationError as PydanticValidationError, field_validator
from .base import Money, TimeStampedModel
from ..errors import MalformedDocumentError

PRODUCTS_COLLECTION = "products"


class Product(TimeStampedModel):
    """Catalog product; only the fields the order services touch"""
    id: str
    name: str = ""
    price: Money = Decimal(0)
    stock: int = 0
    image: Optional[str] = None
    category: Optional[str] = None

    @field_validator("stock", mode="before")
    @classmethod
    def _missing_stock(cls, value):
        return 0 if value is None else value

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Product":
        try:
            return cls.model_validate(dict(data, id=doc_id))
        except PydanticValidationError as e:
            raise MalformedDocumentError(PRODUCTS_COLLECTION, doc_id, str(e)) from e
