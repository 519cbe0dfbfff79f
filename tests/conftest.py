import pytest
from shopdesk.database import InMemoryRecordStore
from shopdesk.models.order import ORDERS_COLLECTION, customer_orders_collection
from shopdesk.models.product import PRODUCTS_COLLECTION
from shopdesk.services import OrderStateMachine


def order_document(status="Placed", user_id="u1", **overrides):
    """A stored order in the shape written at checkout"""
    document = {
        "orderId": "ORD-0001",
        "userId": user_id,
        "userEmail": f"{user_id}@example.com",
        "userName": "Asha Rao",
        "createdAt": "2024-03-01T10:00:00+00:00",
        "items": [
            {"productId": "p1", "name": "Brass lamp", "price": 100.0, "quantity": 2},
            {"productId": "p2", "name": "Cotton throw", "price": 50.0, "quantity": 1},
        ],
        "subtotal": 250.0,
        "tax": 0.0,
        "discount": 0.0,
        "shippingCost": 0.0,
        "totalAmount": 250.0,
        "status": status,
        "payment": {"method": "COD", "details": {}},
        "shippingAddress": {"name": "Asha Rao", "city": "Pune", "country": "India"},
        "tags": [],
        "adminNotes": "",
        "statusHistory": [],
    }
    document.update(overrides)
    return document


@pytest.fixture
def store():
    store = InMemoryRecordStore()
    store.seed(PRODUCTS_COLLECTION, "p1", {"name": "Brass lamp", "price": 100.0, "stock": 5})
    store.seed(PRODUCTS_COLLECTION, "p2", {"name": "Cotton throw", "price": 50.0, "stock": 10})
    return store


@pytest.fixture
def seed_order(store):
    """Seed an order and its customer copy; returns the order id"""
    def _seed(order_id="o1", **kwargs):
        document = order_document(**kwargs)
        store.seed(ORDERS_COLLECTION, order_id, document)
        if document.get("userId"):
            store.seed(
                customer_orders_collection(document["userId"]), f"copy-{order_id}",
                {"globalOrderId": order_id, "status": document["status"]},
            )
        return order_id
    return _seed


@pytest.fixture
def machine(store):
    return OrderStateMachine(
        store, strict=False, restore_guard=False, home_country="India",
        domestic_carrier="IndiaPost", international_carrier="DHL",
    )


@pytest.fixture
def make_order():
    return order_document
