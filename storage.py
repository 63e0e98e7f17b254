"""
Storage port for the marketplace.

`Store` is the interface the services talk to. Two implementations ship:
`MemoryStore` (process-local dicts, used by tests and when no database is
configured) and `MongoStore` (one MongoDB collection per schema class).

Documents cross the port as plain dicts carrying a string "id"; the Mongo
"_id" never leaks out.
"""

import copy
import logging
import re
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from database import create_document, get_documents
from schemas import Cart, CartItem, Category

logger = logging.getLogger(__name__)


class DuplicateError(Exception):
    """Raised when an insert collides with a unique key"""


def to_str_id(doc):
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


def matches_search(product: dict, q: str) -> bool:
    needle = q.lower()
    return needle in product.get("title", "").lower() or needle in (product.get("description") or "").lower()


def staged_quantities(purchases: Iterable[dict]) -> Dict[str, int]:
    """Quantity bought per product_id across the staged purchase lines"""
    bought: Dict[str, int] = {}
    for p in purchases:
        bought[p["product_id"]] = bought.get(p["product_id"], 0) + int(p.get("quantity", 1))
    return bought


class Store(ABC):
    kind = "abstract"

    # Users
    @abstractmethod
    def get_user(self, user_id: str) -> Optional[dict]: ...

    @abstractmethod
    def find_user_by_email(self, email: str) -> Optional[dict]: ...

    @abstractmethod
    def insert_user(self, doc: dict) -> str: ...

    @abstractmethod
    def update_user(self, user_id: str, fields: dict) -> Optional[dict]: ...

    # Sessions
    @abstractmethod
    def create_session(self, doc: dict) -> None: ...

    @abstractmethod
    def get_session(self, token: str) -> Optional[dict]: ...

    @abstractmethod
    def delete_session(self, token: str) -> bool: ...

    # Categories
    @abstractmethod
    def list_categories(self) -> List[str]: ...

    @abstractmethod
    def seed_categories(self, names: Iterable[str]) -> int:
        """Insert `names` only when no category exists yet. Returns inserted count."""

    # Products
    @abstractmethod
    def list_products(self, q: Optional[str] = None, category: Optional[str] = None,
                      seller_id: Optional[str] = None) -> List[dict]: ...

    @abstractmethod
    def get_product(self, product_id: str) -> Optional[dict]: ...

    @abstractmethod
    def get_products(self, product_ids: Iterable[str]) -> Dict[str, dict]: ...

    @abstractmethod
    def insert_product(self, doc: dict) -> str: ...

    @abstractmethod
    def update_product(self, product_id: str, fields: dict) -> Optional[dict]: ...

    @abstractmethod
    def delete_product(self, product_id: str) -> bool:
        """Hard delete. Cart lines pointing at the product go with it."""

    # Carts
    @abstractmethod
    def get_cart_items(self, user_id: str) -> List[dict]: ...

    @abstractmethod
    def increment_cart_item(self, user_id: str, product_id: str) -> int:
        """Add one to the line for product_id, creating it at 1. Returns the new quantity."""

    @abstractmethod
    def remove_cart_item(self, user_id: str, product_id: str) -> bool: ...

    @abstractmethod
    def clear_cart(self, user_id: str) -> int: ...

    # Orders and purchases
    @abstractmethod
    def commit_checkout(self, order: dict, purchases: List[dict], user_id: str) -> str:
        """Store the order and all its purchase lines and take the bought quantities
        out of the user's cart, as one unit. Lines added after staging stay."""

    @abstractmethod
    def list_orders(self, user_id: str) -> List[dict]: ...

    @abstractmethod
    def get_order(self, order_id: str) -> Optional[dict]: ...

    @abstractmethod
    def list_purchases(self, buyer_id: str, order_id: Optional[str] = None) -> List[dict]: ...

    def describe(self) -> dict:
        return {"backend": self.kind, "collections": []}


class MemoryStore(Store):
    """Process-local store. One re-entrant lock serialises every call, since
    FastAPI runs sync handlers on a threadpool."""

    kind = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self.users: Dict[str, dict] = {}
        self.sessions: Dict[str, dict] = {}
        self.categories: List[str] = []
        self.products: Dict[str, dict] = {}
        self.carts: Dict[str, List[dict]] = {}
        self.orders: Dict[str, dict] = {}
        self.purchases: List[dict] = []

    @staticmethod
    def _new_id() -> str:
        return str(ObjectId())

    @staticmethod
    def _out(doc):
        return copy.deepcopy(doc) if doc is not None else None

    def get_user(self, user_id):
        with self._lock:
            return self._out(self.users.get(user_id))

    def find_user_by_email(self, email):
        with self._lock:
            for user in self.users.values():
                if user["email"] == email:
                    return self._out(user)
            return None

    def insert_user(self, doc):
        with self._lock:
            if self.find_user_by_email(doc["email"]) is not None:
                raise DuplicateError(doc["email"])
            user_id = self._new_id()
            self.users[user_id] = dict(copy.deepcopy(doc), id=user_id)
            return user_id

    def update_user(self, user_id, fields):
        with self._lock:
            if user_id not in self.users:
                return None
            self.users[user_id].update(copy.deepcopy(fields))
            return self.get_user(user_id)

    def create_session(self, doc):
        with self._lock:
            self.sessions[doc["token"]] = copy.deepcopy(doc)

    def get_session(self, token):
        with self._lock:
            return self._out(self.sessions.get(token))

    def delete_session(self, token):
        with self._lock:
            return self.sessions.pop(token, None) is not None

    def list_categories(self):
        with self._lock:
            return list(self.categories)

    def seed_categories(self, names):
        with self._lock:
            if self.categories:
                return 0
            self.categories = list(names)
            return len(self.categories)

    def list_products(self, q=None, category=None, seller_id=None):
        with self._lock:
            out = []
            for product in self.products.values():
                if category and product["category"] != category:
                    continue
                if seller_id and product["seller_id"] != seller_id:
                    continue
                if q and not matches_search(product, q):
                    continue
                out.append(self._out(product))
            return out

    def get_product(self, product_id):
        with self._lock:
            return self._out(self.products.get(product_id))

    def get_products(self, product_ids):
        with self._lock:
            return {pid: self._out(self.products[pid]) for pid in product_ids if pid in self.products}

    def insert_product(self, doc):
        with self._lock:
            product_id = self._new_id()
            self.products[product_id] = dict(copy.deepcopy(doc), id=product_id)
            return product_id

    def update_product(self, product_id, fields):
        with self._lock:
            if product_id not in self.products:
                return None
            self.products[product_id].update(copy.deepcopy(fields))
            return self.get_product(product_id)

    def delete_product(self, product_id):
        with self._lock:
            if self.products.pop(product_id, None) is None:
                return False
            for user_id, items in list(self.carts.items()):
                self.carts[user_id] = [it for it in items if it["product_id"] != product_id]
            return True

    def get_cart_items(self, user_id):
        with self._lock:
            return self._out(self.carts.get(user_id, []))

    def increment_cart_item(self, user_id, product_id):
        with self._lock:
            items = self.carts.setdefault(user_id, [])
            for item in items:
                if item["product_id"] == product_id:
                    item["quantity"] += 1
                    return item["quantity"]
            items.append({"product_id": product_id, "quantity": 1})
            return 1

    def remove_cart_item(self, user_id, product_id):
        with self._lock:
            items = self.carts.get(user_id, [])
            kept = [it for it in items if it["product_id"] != product_id]
            if len(kept) == len(items):
                return False
            self.carts[user_id] = kept
            return True

    def clear_cart(self, user_id):
        with self._lock:
            return len(self.carts.pop(user_id, []))

    def commit_checkout(self, order, purchases, user_id):
        with self._lock:
            # Build every record before touching state
            order_id = self._new_id()
            order_doc = dict(copy.deepcopy(order), id=order_id)
            purchase_docs = [
                dict(copy.deepcopy(p), id=self._new_id(), order_id=order_id) for p in purchases
            ]
            bought = staged_quantities(purchases)
            remaining = []
            for item in self.carts.get(user_id, []):
                left = item["quantity"] - bought.get(item["product_id"], 0)
                if left > 0:
                    remaining.append(dict(item, quantity=left))

            self.orders[order_id] = order_doc
            self.purchases.extend(purchase_docs)
            if remaining:
                self.carts[user_id] = remaining
            else:
                self.carts.pop(user_id, None)
            return order_id

    def list_orders(self, user_id):
        with self._lock:
            orders = [o for o in self.orders.values() if o["user_id"] == user_id]
            orders.sort(key=lambda o: o["created_at"], reverse=True)
            return self._out(orders)

    def get_order(self, order_id):
        with self._lock:
            return self._out(self.orders.get(order_id))

    def list_purchases(self, buyer_id, order_id=None):
        with self._lock:
            found = [
                p for p in self.purchases
                if p["buyer_id"] == buyer_id and (order_id is None or p["order_id"] == order_id)
            ]
            found.sort(key=lambda p: p["purchase_date"], reverse=True)
            return self._out(found)

    def describe(self):
        return {
            "backend": self.kind,
            "collections": ["user", "session", "category", "product", "cart", "cart_item", "order", "purchase"],
        }


def _oid(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if ObjectId.is_valid(value) else None


class MongoStore(Store):
    kind = "mongodb"

    def __init__(self, database, client=None):
        self.db = database
        self.client = client if client is not None else database.client

    def get_user(self, user_id):
        _id = _oid(user_id)
        if _id is None:
            return None
        return to_str_id(self.db["user"].find_one({"_id": _id}))

    def find_user_by_email(self, email):
        return to_str_id(self.db["user"].find_one({"email": email}))

    def insert_user(self, doc):
        try:
            return create_document("user", doc, database=self.db)
        except DuplicateKeyError as e:
            raise DuplicateError(doc["email"]) from e

    def update_user(self, user_id, fields):
        _id = _oid(user_id)
        if _id is None:
            return None
        updated = self.db["user"].find_one_and_update(
            {"_id": _id},
            {"$set": dict(fields, updated_at=datetime.now(timezone.utc))},
            return_document=ReturnDocument.AFTER,
        )
        return to_str_id(updated)

    def create_session(self, doc):
        self.db["session"].insert_one(dict(doc))

    def get_session(self, token):
        return to_str_id(self.db["session"].find_one({"token": token}))

    def delete_session(self, token):
        return self.db["session"].delete_one({"token": token}).deleted_count > 0

    def list_categories(self):
        return [c["name"] for c in get_documents("category", sort=[("_id", 1)], database=self.db)]

    def seed_categories(self, names):
        if self.db["category"].count_documents({}) > 0:
            return 0
        res = self.db["category"].insert_many([Category(name=n).model_dump() for n in names])
        return len(res.inserted_ids)

    def list_products(self, q=None, category=None, seller_id=None):
        filt = {}
        if category:
            filt["category"] = category
        if seller_id:
            filt["seller_id"] = seller_id
        if q:
            pattern = {"$regex": re.escape(q), "$options": "i"}
            filt["$or"] = [{"title": pattern}, {"description": pattern}]
        docs = get_documents("product", filter_dict=filt, sort=[("_id", 1)], database=self.db)
        return [to_str_id(d) for d in docs]

    def get_product(self, product_id):
        _id = _oid(product_id)
        if _id is None:
            return None
        return to_str_id(self.db["product"].find_one({"_id": _id}))

    def get_products(self, product_ids):
        ids = [i for i in (_oid(p) for p in product_ids) if i is not None]
        if not ids:
            return {}
        docs = self.db["product"].find({"_id": {"$in": ids}})
        return {str(d["_id"]): to_str_id(d) for d in docs}

    def insert_product(self, doc):
        return create_document("product", doc, database=self.db)

    def update_product(self, product_id, fields):
        _id = _oid(product_id)
        if _id is None:
            return None
        updated = self.db["product"].find_one_and_update(
            {"_id": _id}, {"$set": fields}, return_document=ReturnDocument.AFTER
        )
        return to_str_id(updated)

    def delete_product(self, product_id):
        _id = _oid(product_id)
        if _id is None:
            return False
        if self.db["product"].delete_one({"_id": _id}).deleted_count == 0:
            return False
        removed = self.db["cart_item"].delete_many({"product_id": product_id}).deleted_count
        if removed:
            logger.info("Dropped %d cart lines for deleted product %s", removed, product_id)
        return True

    def _cart_id(self, user_id, create=False, session=None) -> Optional[str]:
        cart = self.db["cart"].find_one({"user_id": user_id}, session=session)
        if cart is not None:
            return str(cart["_id"])
        if not create:
            return None
        try:
            return create_document(
                "cart", Cart(user_id=user_id, created_at=datetime.now(timezone.utc)),
                database=self.db, session=session,
            )
        except DuplicateKeyError:
            # a concurrent request created it first
            return str(self.db["cart"].find_one({"user_id": user_id}, session=session)["_id"])

    def get_cart_items(self, user_id):
        cart_id = self._cart_id(user_id)
        if cart_id is None:
            return []
        docs = self.db["cart_item"].find({"cart_id": cart_id}).sort("_id", 1)
        return [{"product_id": d["product_id"], "quantity": d["quantity"]} for d in docs]

    def _bump(self, cart_id, product_id):
        return self.db["cart_item"].find_one_and_update(
            {"cart_id": cart_id, "product_id": product_id},
            {"$inc": {"quantity": 1}},
            return_document=ReturnDocument.AFTER,
        )

    def increment_cart_item(self, user_id, product_id):
        cart_id = self._cart_id(user_id, create=True)
        item = self._bump(cart_id, product_id)
        if item is not None:
            return item["quantity"]
        try:
            create_document("cart_item", CartItem(cart_id=cart_id, product_id=product_id, quantity=1),
                            database=self.db)
            return 1
        except DuplicateKeyError:
            return self._bump(cart_id, product_id)["quantity"]

    def remove_cart_item(self, user_id, product_id):
        cart_id = self._cart_id(user_id)
        if cart_id is None:
            return False
        res = self.db["cart_item"].delete_one({"cart_id": cart_id, "product_id": product_id})
        return res.deleted_count > 0

    def clear_cart(self, user_id):
        cart_id = self._cart_id(user_id)
        if cart_id is None:
            return 0
        res = self.db["cart_item"].delete_many({"cart_id": cart_id})
        self.db["cart"].delete_one({"_id": ObjectId(cart_id)})
        return res.deleted_count

    def _take_from_cart(self, user_id, bought, session):
        cart_id = self._cart_id(user_id, session=session)
        if cart_id is None or not bought:
            return
        for product_id, quantity in bought.items():
            self.db["cart_item"].update_one(
                {"cart_id": cart_id, "product_id": product_id},
                {"$inc": {"quantity": -quantity}},
                session=session,
            )
        self.db["cart_item"].delete_many(
            {"cart_id": cart_id, "product_id": {"$in": list(bought)}, "quantity": {"$lte": 0}},
            session=session,
        )

    def commit_checkout(self, order, purchases, user_id):
        bought = staged_quantities(purchases)

        def _commit(session):
            order_id = create_document("order", order, database=self.db, session=session)
            docs = [dict(p, order_id=order_id) for p in purchases]
            if docs:
                self.db["purchase"].insert_many(docs, session=session)
            self._take_from_cart(user_id, bought, session)
            return order_id

        with self.client.start_session() as session:
            return session.with_transaction(_commit)

    def list_orders(self, user_id):
        docs = get_documents("order", {"user_id": user_id}, sort=[("created_at", -1)], database=self.db)
        return [to_str_id(d) for d in docs]

    def get_order(self, order_id):
        _id = _oid(order_id)
        if _id is None:
            return None
        return to_str_id(self.db["order"].find_one({"_id": _id}))

    def list_purchases(self, buyer_id, order_id=None):
        filt = {"buyer_id": buyer_id}
        if order_id is not None:
            filt["order_id"] = order_id
        docs = get_documents("purchase", filt, sort=[("purchase_date", -1), ("_id", 1)], database=self.db)
        return [to_str_id(d) for d in docs]

    def describe(self):
        return {"backend": self.kind, "collections": self.db.list_collection_names()[:10]}
