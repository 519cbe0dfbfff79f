"""Exceptions raised by the order services."""

from typing import Optional


class ShopdeskError(Exception):
    """Base exception for all shopdesk errors."""

    pass


class NotFoundError(ShopdeskError):
    """Raised when a referenced order or product does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind.capitalize()} not found: {identifier}")


class ValidationError(ShopdeskError):
    """Raised when a required field is missing or malformed."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class InsufficientStockError(ValidationError):
    """Raised at checkout when a product cannot cover the requested quantity."""

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}",
            field="quantity",
        )


class InvalidStatusError(ShopdeskError):
    """Raised when a status value is not part of the order status enumeration."""

    def __init__(self, value):
        from .models.order import OrderStatus

        self.value = value
        allowed = ", ".join(s.value for s in OrderStatus)
        super().__init__(f"Invalid order status: {value}. Must be one of: {allowed}")


class InvalidTransitionError(ShopdeskError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, current: str, target: str, reason: Optional[str] = None):
        self.current = current
        self.target = target
        msg = f"Transition from {current} to {target} is not allowed"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class LimitExceededError(ShopdeskError):
    """Raised when a bulk batch is larger than the configured cap."""

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"Bulk operations are limited to {limit} orders at a time, got {count}"
        )


class StoreError(ShopdeskError):
    """Raised when the record store fails a read or write."""

    def __init__(self, message: str, step: Optional[str] = None):
        self.step = step
        if step:
            message = f"{message} (step: {step})"
        super().__init__(message)


class MalformedDocumentError(StoreError):
    """Raised when a stored document cannot be read as the expected model."""

    def __init__(self, collection: str, doc_id: str, detail: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Malformed document {collection}/{doc_id}: {detail}")


class PermissionDeniedError(ShopdeskError):
    """Raised when a non-admin identity calls an admin-only operation."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User {user_id} is not allowed to manage orders")
