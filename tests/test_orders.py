import pytest

from cart import CartManager
from catalog import ProductRepository
from orders import PurchaseRecorder, record_purchase
from results import Status
from schemas import ProductCreate, ProductUpdate
from storage import MemoryStore

SELLER = {"id": "u-alice", "username": "alice"}
BUYER = {"id": "u-bob", "username": "bob"}


@pytest.fixture
def store(memory_store):
    # checkout needs transactions, which mongomock lacks; see test_mongo_store.py
    return memory_store


def listing(store, title, price):
    return ProductRepository(store).create(SELLER, ProductCreate(title=title, price=price, category="Furniture")).value


def test_desk_scenario(store):
    desk = listing(store, "Desk", 1500)
    cart = CartManager(store, BUYER["id"])
    assert cart.add(desk["id"]).value["quantity"] == 1
    assert cart.add(desk["id"]).value["quantity"] == 2

    before = len(PurchaseRecorder(store).history(BUYER))
    result = PurchaseRecorder(store).checkout(BUYER)
    assert result.ok

    history = PurchaseRecorder(store).history(BUYER)
    assert len(history) == before + 1
    purchase = history[0]
    assert purchase["price"] == 1500
    assert purchase["quantity"] == 2
    assert purchase["status"] == "completed"
    assert purchase["seller_id"] == "u-alice"
    assert result.value["total"] == 3000
    assert cart.list() == []


def test_one_purchase_per_line(store):
    cart = CartManager(store, BUYER["id"])
    for title, price in [("Desk", 1500), ("Lamp", 300), ("Chair", 700)]:
        cart.add(listing(store, title, price)["id"])
    order = PurchaseRecorder(store).checkout(BUYER).value
    assert len(order["items"]) == 3
    assert {p["order_id"] for p in order["items"]} == {order["id"]}


def test_empty_cart_checkout(store):
    result = PurchaseRecorder(store).checkout(BUYER)
    assert result.status is Status.INVALID
    assert store.orders == {}


def test_price_is_snapshot(store):
    desk = listing(store, "Desk", 1500)
    CartManager(store, BUYER["id"]).add(desk["id"])
    PurchaseRecorder(store).checkout(BUYER)
    ProductRepository(store).update(SELLER, desk["id"], ProductUpdate(price=2000))
    history = PurchaseRecorder(store).history(BUYER)
    assert history[0]["price"] == 1500
    assert history[0]["product"]["price"] == 2000


def test_history_survives_product_delete(store):
    desk = listing(store, "Desk", 1500)
    CartManager(store, BUYER["id"]).add(desk["id"])
    PurchaseRecorder(store).checkout(BUYER)
    ProductRepository(store).delete(SELLER, desk["id"])
    history = PurchaseRecorder(store).history(BUYER)
    assert history[0]["title"] == "Desk"
    assert history[0]["product"] is None


class FailingStore(MemoryStore):
    def commit_checkout(self, order, purchases, user_id):
        raise RuntimeError("disk full")


def test_failed_commit_records_nothing_and_keeps_cart():
    store = FailingStore()
    cart = CartManager(store, BUYER["id"])
    cart.add(listing(store, "Desk", 1500)["id"])
    cart.add(listing(store, "Lamp", 300)["id"])

    with pytest.raises(RuntimeError):
        PurchaseRecorder(store).checkout(BUYER)

    assert store.purchases == []
    assert store.orders == {}
    assert len(cart.list()) == 2


def test_seller_may_buy_own_product(store):
    desk = listing(store, "Desk", 1500)
    CartManager(store, SELLER["id"]).add(desk["id"])
    assert PurchaseRecorder(store).checkout(SELLER).ok


def test_orders_are_scoped_to_buyer(store):
    CartManager(store, BUYER["id"]).add(listing(store, "Desk", 1500)["id"])
    order = PurchaseRecorder(store).checkout(BUYER).value
    recorder = PurchaseRecorder(store)
    assert recorder.order(SELLER, order["id"]).status is Status.NOT_FOUND
    assert [o["id"] for o in recorder.orders(BUYER)] == [order["id"]]
    assert recorder.orders(SELLER) == []


def test_record_purchase_copies_product():
    product = {"id": "p1", "seller_id": "u-alice", "title": "Desk", "price": 1500.0}
    purchase = record_purchase(product, BUYER)
    assert purchase["price"] == 1500.0
    assert purchase["buyer_id"] == "u-bob"
    assert purchase["status"] == "completed"
    assert purchase["quantity"] == 1


class LateAddStore(MemoryStore):
    """Another request adds a line between staging and commit"""

    def __init__(self, late_product_id):
        super().__init__()
        self.late_product_id = late_product_id

    def commit_checkout(self, order, purchases, user_id):
        if self.late_product_id:
            self.increment_cart_item(user_id, self.late_product_id)
        return super().commit_checkout(order, purchases, user_id)


def test_line_added_during_checkout_stays_in_cart():
    store = LateAddStore(None)
    desk = listing(store, "Desk", 1500)
    lamp = listing(store, "Lamp", 300)
    store.late_product_id = lamp["id"]
    CartManager(store, BUYER["id"]).add(desk["id"])

    assert PurchaseRecorder(store).checkout(BUYER).ok

    bought = [p["product_id"] for p in PurchaseRecorder(store).history(BUYER)]
    assert bought == [desk["id"]]
    assert store.get_cart_items(BUYER["id"]) == [{"product_id": lamp["id"], "quantity": 1}]


def test_extra_quantity_added_during_checkout_stays_in_cart():
    store = LateAddStore(None)
    desk = listing(store, "Desk", 1500)
    store.late_product_id = desk["id"]
    cart = CartManager(store, BUYER["id"])
    cart.add(desk["id"])
    cart.add(desk["id"])

    order = PurchaseRecorder(store).checkout(BUYER).value
    assert order["items"][0]["quantity"] == 2
    assert store.get_cart_items(BUYER["id"]) == [{"product_id": desk["id"], "quantity": 1}]


def test_orders_group_their_own_lines(store):
    cart = CartManager(store, BUYER["id"])
    cart.add(listing(store, "Desk", 1500)["id"])
    first = PurchaseRecorder(store).checkout(BUYER).value
    cart.add(listing(store, "Lamp", 300)["id"])
    cart.add(listing(store, "Chair", 700)["id"])
    second = PurchaseRecorder(store).checkout(BUYER).value

    orders = {o["id"]: o for o in PurchaseRecorder(store).orders(BUYER)}
    assert [p["title"] for p in orders[first["id"]]["items"]] == ["Desk"]
    assert sorted(p["title"] for p in orders[second["id"]]["items"]) == ["Chair", "Lamp"]
