import pytest
from decimal import Decimal
from shopdesk.database import InMemoryRecordStore
from shopdesk.errors import (
    InvalidStatusError, InvalidTransitionError, NotFoundError, StoreError,
)
from shopdesk.models.order import ORDERS_COLLECTION, OrderStatus, customer_orders_collection
from shopdesk.models.product import PRODUCTS_COLLECTION
from shopdesk.services import ALLOWED_TRANSITIONS, OrderStateMachine, TransitionContext
from shopdesk.services.order_state_machine import is_allowed


class FailingOrderUpdates(InMemoryRecordStore):
    async def update(self, collection, doc_id, data):
        if collection == ORDERS_COLLECTION:
            raise StoreError("connection reset")
        await super().update(collection, doc_id, data)


class FailingBatches(InMemoryRecordStore):
    async def batch_update(self, writes):
        raise StoreError("deadline exceeded")


class FlakyBatches(InMemoryRecordStore):
    """Fails the first batched write, then behaves"""
    failures = 1

    async def batch_update(self, writes):
        if self.failures:
            self.failures -= 1
            raise StoreError("deadline exceeded")
        await super().batch_update(writes)


class FailingCustomerCopies(InMemoryRecordStore):
    async def query(self, collection, *args, **kwargs):
        if collection.startswith("users/"):
            raise StoreError("permission denied")
        return await super().query(collection, *args, **kwargs)


def _store_like(cls, source):
    store = cls()
    store._collections = source._collections
    return store


class TestTransitionTable:
    def test_terminal_statuses_have_no_moves(self):
        assert ALLOWED_TRANSITIONS[OrderStatus.DECLINED] == frozenset()
        assert ALLOWED_TRANSITIONS[OrderStatus.REFUNDED] == frozenset()

    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(OrderStatus)

    @pytest.mark.parametrize("current,target", [
        (OrderStatus.PLACED, OrderStatus.APPROVED),
        (OrderStatus.APPROVED, OrderStatus.PACKED),
        (OrderStatus.PACKED, OrderStatus.SHIPPED),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
        (OrderStatus.CANCELLED, OrderStatus.REFUNDED),
    ])
    def test_allowed(self, current, target):
        assert is_allowed(current, target)

    def test_not_allowed(self):
        assert not is_allowed(OrderStatus.SHIPPED, OrderStatus.CANCELLED)
        assert not is_allowed(OrderStatus.PLACED, OrderStatus.SHIPPED)


class TestTransition:
    async def test_approve_appends_history_and_sets_priority(self, store, machine, seed_order):
        order_id = seed_order(statusHistory=[
            {"status": "Placed", "timestamp": "2024-03-01T10:00:00+00:00", "note": "Order placed successfully"},
        ])

        result = await machine.transition(order_id, "Approved", admin_id="admin-7")

        stored = store.peek(ORDERS_COLLECTION, order_id)
        assert stored["status"] == "Approved"
        assert len(stored["statusHistory"]) == 2
        entry = stored["statusHistory"][-1]
        assert entry["status"] == "Approved"
        assert entry["previousStatus"] == "Placed"
        assert entry["updatedBy"] == "admin-7"
        assert entry["note"] == "Order approved by admin"
        assert stored["approvedBy"] == "admin-7"
        assert stored["priority"] == "normal"
        assert result.previous_status == OrderStatus.PLACED
        assert result.new_status == OrderStatus.APPROVED
        assert result.override is False

    async def test_history_grows_by_one_per_transition(self, store, machine, seed_order):
        order_id = seed_order()
        for expected, status in enumerate(["Approved", "Packed", "Shipped", "Delivered"], start=1):
            await machine.transition(order_id, status)
            assert len(store.peek(ORDERS_COLLECTION, order_id)["statusHistory"]) == expected

    async def test_context_note_and_priority(self, store, machine, seed_order):
        order_id = seed_order()
        await machine.transition(order_id, OrderStatus.APPROVED, TransitionContext(
            note="Verified by phone", priority="urgent", reason="Customer confirmed",
        ))

        stored = store.peek(ORDERS_COLLECTION, order_id)
        assert stored["priority"] == "urgent"
        assert stored["statusHistory"][-1]["note"] == "Verified by phone"
        assert stored["statusHistory"][-1]["metadata"]["updateReason"] == "Customer confirmed"

    async def test_decline_restores_stock(self, store, machine, seed_order):
        order_id = seed_order()

        result = await machine.transition(order_id, "Declined")

        assert store.peek(PRODUCTS_COLLECTION, "p1")["stock"] == 7
        assert store.peek(PRODUCTS_COLLECTION, "p2")["stock"] == 11
        assert "lastRestored" in store.peek(PRODUCTS_COLLECTION, "p1")
        assert result.restored_stock == {"p1": 7, "p2": 11}
        assert store.peek(ORDERS_COLLECTION, order_id)["declineReason"] == "Order declined by admin"

    async def test_cancel_restores_stock(self, store, machine, seed_order):
        order_id = seed_order(status="Packed")

        await machine.transition(order_id, "Cancelled", TransitionContext(reason="Out of area"))

        assert store.peek(PRODUCTS_COLLECTION, "p1")["stock"] == 7
        assert store.peek(ORDERS_COLLECTION, order_id)["cancellationReason"] == "Out of area"

    async def test_repeated_product_lines_are_summed(self, store, machine, seed_order):
        order_id = seed_order(items=[
            {"productId": "p1", "name": "Brass lamp", "price": 100.0, "quantity": 2},
            {"productId": "p1", "name": "Brass lamp", "price": 100.0, "quantity": 1},
        ])

        result = await machine.transition(order_id, "Cancelled")

        assert result.restored_stock == {"p1": 8}
        assert store.peek(PRODUCTS_COLLECTION, "p1")["stock"] == 8

    async def test_missing_product_is_skipped(self, store, machine, seed_order):
        order_id = seed_order(items=[
            {"productId": "gone", "name": "Retired item", "price": 10.0, "quantity": 1},
            {"productId": "p2", "name": "Cotton throw", "price": 50.0, "quantity": 1},
        ])

        result = await machine.transition(order_id, "Declined")

        assert result.restored_stock == {"p2": 11}
        assert store.peek(ORDERS_COLLECTION, order_id)["status"] == "Declined"

    async def test_approve_does_not_touch_stock(self, store, machine, seed_order):
        order_id = seed_order()
        await machine.transition(order_id, "Approved")
        assert store.peek(PRODUCTS_COLLECTION, "p1")["stock"] == 5

    async def test_unknown_order(self, store, machine):
        with pytest.raises(NotFoundError):
            await machine.transition("missing", "Approved")
        assert store.write_count == 0

    @pytest.mark.parametrize("status", ["Shipping", "approved", "", None])
    async def test_invalid_status_is_rejected_before_reading(self, store, machine, seed_order, status):
        order_id = seed_order()
        with pytest.raises(InvalidStatusError):
            await machine.transition(order_id, status)
        assert store.write_count == 0

    async def test_invalid_status_wins_over_missing_order(self, machine):
        with pytest.raises(InvalidStatusError):
            await machine.transition("missing", "Teleported")

    async def test_permissive_mode_applies_override(self, store, machine, seed_order):
        order_id = seed_order()

        result = await machine.transition(order_id, "Delivered")

        assert result.override is True
        stored = store.peek(ORDERS_COLLECTION, order_id)
        assert stored["status"] == "Delivered"
        assert stored["statusHistory"][-1]["metadata"]["adminOverride"] is True

    async def test_strict_mode_rejects_without_writing(self, store, seed_order):
        order_id = seed_order()
        strict = OrderStateMachine(store, strict=True, restore_guard=False)

        with pytest.raises(InvalidTransitionError):
            await strict.transition(order_id, "Delivered")
        assert store.write_count == 0
        assert store.peek(ORDERS_COLLECTION, order_id)["status"] == "Placed"

    async def test_strict_mode_allows_table_moves(self, store, seed_order):
        order_id = seed_order()
        strict = OrderStateMachine(store, strict=True, restore_guard=False)
        result = await strict.transition(order_id, "Approved")
        assert result.new_status == OrderStatus.APPROVED

    async def test_refund_defaults(self, store, machine, seed_order):
        order_id = seed_order(status="Delivered", totalAmount=118.0)

        await machine.transition(order_id, "Refunded")

        stored = store.peek(ORDERS_COLLECTION, order_id)
        assert stored["refundAmount"] == 118.0
        assert stored["refundMethod"] == "original_payment_method"
        assert stored["refundReason"] == "Refund processed"

    async def test_refund_amount_from_context(self, store, machine, seed_order):
        order_id = seed_order(status="Cancelled")
        await machine.transition(order_id, "Refunded", TransitionContext(
            refund_amount=Decimal("40"), refund_method="UPI",
        ))
        stored = store.peek(ORDERS_COLLECTION, order_id)
        assert stored["refundAmount"] == 40.0
        assert stored["refundMethod"] == "UPI"

    async def test_delivered_confirmation(self, store, machine, seed_order):
        order_id = seed_order(status="Shipped")
        await machine.transition(order_id, "Delivered")
        assert store.peek(ORDERS_COLLECTION, order_id)["deliveryConfirmation"] == "Admin marked as delivered"


class TestPackingCarrier:
    async def test_domestic_address(self, store, machine, seed_order):
        order_id = seed_order(status="Approved")
        await machine.transition(order_id, "Packed", TransitionContext(packing_notes="Bubble wrap"))

        stored = store.peek(ORDERS_COLLECTION, order_id)
        assert stored["tracking"]["carrier"] == "IndiaPost"
        assert stored["packingNotes"] == "Bubble wrap"

    async def test_international_address(self, store, machine, seed_order):
        order_id = seed_order(status="Approved", shippingAddress={"city": "Berlin", "country": "Germany"})
        await machine.transition(order_id, "Packed")
        assert store.peek(ORDERS_COLLECTION, order_id)["tracking"]["carrier"] == "DHL"

    async def test_missing_country_uses_international(self, store, machine, seed_order):
        order_id = seed_order(status="Approved", shippingAddress=None)
        await machine.transition(order_id, "Packed")
        assert store.peek(ORDERS_COLLECTION, order_id)["tracking"]["carrier"] == "DHL"

    async def test_existing_carrier_is_kept(self, store, machine, seed_order):
        order_id = seed_order(status="Approved", tracking={"carrier": "BlueDart"})
        await machine.transition(order_id, "Packed")
        assert store.peek(ORDERS_COLLECTION, order_id)["tracking"]["carrier"] == "BlueDart"


class TestRestoreGuard:
    async def test_without_guard_stock_is_restored_twice(self, store, machine, seed_order):
        order_id = seed_order()
        await machine.transition(order_id, "Cancelled")
        await machine.transition(order_id, "Declined")
        assert store.peek(PRODUCTS_COLLECTION, "p1")["stock"] == 9

    async def test_guard_restores_once(self, store, seed_order):
        order_id = seed_order()
        guarded = OrderStateMachine(store, strict=False, restore_guard=True)

        await guarded.transition(order_id, "Cancelled")
        result = await guarded.transition(order_id, "Declined")

        assert store.peek(PRODUCTS_COLLECTION, "p1")["stock"] == 7
        assert result.restored_stock == {}
        assert store.peek(ORDERS_COLLECTION, order_id)["inventoryRestored"] is True


class TestCustomerCopy:
    async def test_copy_follows_status(self, store, machine, seed_order):
        order_id = seed_order()
        await machine.transition(order_id, "Approved")

        copy = store.peek(customer_orders_collection("u1"), f"copy-{order_id}")
        assert copy["status"] == "Approved"
        assert len(copy["statusHistory"]) == 1

    async def test_sync_failure_does_not_fail_transition(self, store, seed_order):
        order_id = seed_order()
        failing = _store_like(FailingCustomerCopies, store)
        machine = OrderStateMachine(failing, strict=False, restore_guard=False)

        result = await machine.transition(order_id, "Approved")

        assert result.new_status == OrderStatus.APPROVED
        assert failing.peek(ORDERS_COLLECTION, order_id)["status"] == "Approved"
        assert failing.peek(customer_orders_collection("u1"), f"copy-{order_id}")["status"] == "Placed"

    async def test_guest_order_has_no_copy(self, store, machine, seed_order):
        order_id = seed_order(user_id=None, userEmail=None)
        result = await machine.transition(order_id, "Approved")
        assert result.new_status == OrderStatus.APPROVED


class TestWriteFailures:
    async def test_primary_update_failure(self, store, seed_order):
        order_id = seed_order()
        failing = _store_like(FailingOrderUpdates, store)
        machine = OrderStateMachine(failing, strict=False, restore_guard=False)

        with pytest.raises(StoreError) as exc_info:
            await machine.transition(order_id, "Cancelled")

        assert exc_info.value.step == "order_update"
        assert failing.peek(PRODUCTS_COLLECTION, "p1")["stock"] == 5

    async def test_inventory_failure_after_status_change(self, store, seed_order):
        order_id = seed_order()
        failing = _store_like(FailingBatches, store)
        machine = OrderStateMachine(failing, strict=False, restore_guard=False)

        with pytest.raises(StoreError) as exc_info:
            await machine.transition(order_id, "Cancelled")

        assert exc_info.value.step == "inventory_restoration"
        assert failing.peek(ORDERS_COLLECTION, order_id)["status"] == "Cancelled"
        assert failing.peek(PRODUCTS_COLLECTION, "p1")["stock"] == 5
        copy = failing.peek(customer_orders_collection("u1"), f"copy-{order_id}")
        assert copy["status"] == "Cancelled"

    async def test_guarded_retry_after_failed_restore(self, store, seed_order):
        order_id = seed_order()
        flaky = _store_like(FlakyBatches, store)
        guarded = OrderStateMachine(flaky, strict=False, restore_guard=True)

        with pytest.raises(StoreError) as exc_info:
            await guarded.transition(order_id, "Cancelled")
        assert exc_info.value.step == "inventory_restoration"
        assert "inventoryRestored" not in flaky.peek(ORDERS_COLLECTION, order_id)

        result = await guarded.transition(order_id, "Cancelled")

        assert result.restored_stock == {"p1": 7, "p2": 11}
        assert flaky.peek(PRODUCTS_COLLECTION, "p1")["stock"] == 7
        assert flaky.peek(ORDERS_COLLECTION, order_id)["inventoryRestored"] is True
