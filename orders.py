"""
Checkout and purchase history.

Checkout stages one purchase per cart line, then hands the order and the
lines to the store as a single commit that also takes the bought quantities
out of the cart. Nothing is recorded and the cart is left alone unless the
commit succeeds. Lines added to the cart after staging are kept.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone

from cart import CartManager
from results import Result
from schemas import Order, Purchase
from storage import Store

logger = logging.getLogger(__name__)


def record_purchase(product: dict, buyer: dict, quantity: int = 1, when: datetime = None) -> dict:
    purchase = Purchase(
        product_id=product["id"],
        buyer_id=buyer["id"],
        seller_id=product["seller_id"],
        title=product["title"],
        price=product["price"],
        quantity=quantity,
        purchase_date=when or datetime.now(timezone.utc),
        status='completed',
    )
    return purchase.model_dump()


class PurchaseRecorder:
    def __init__(self, store: Store):
        self.store = store

    def checkout(self, buyer: dict) -> Result:
        lines = CartManager(self.store, buyer["id"]).list()
        if not lines:
            return Result.invalid("Cart is empty")

        now = datetime.now(timezone.utc)
        purchases = [record_purchase(line["product"], buyer, line["quantity"], now) for line in lines]
        total = round(sum(p["price"] * p["quantity"] for p in purchases), 2)
        order = Order(user_id=buyer["id"], total=total, created_at=now)

        try:
            order_id = self.store.commit_checkout(order.model_dump(), purchases, buyer["id"])
        except Exception:
            logger.error("Checkout failed for user %s, nothing recorded", buyer["id"])
            raise

        logger.info("User %s checked out order %s (%d lines, total %.2f)",
                    buyer["id"], order_id, len(purchases), total)
        return self.order(buyer, order_id)

    def _with_products(self, purchases):
        products = self.store.get_products({p["product_id"] for p in purchases})
        return [dict(p, product=products.get(p["product_id"])) for p in purchases]

    def history(self, buyer: dict):
        return self._with_products(self.store.list_purchases(buyer["id"]))

    def orders(self, buyer: dict):
        by_order = defaultdict(list)
        for purchase in self._with_products(self.store.list_purchases(buyer["id"])):
            by_order[purchase["order_id"]].append(purchase)
        return [dict(order, items=by_order[order["id"]]) for order in self.store.list_orders(buyer["id"])]

    def order(self, buyer: dict, order_id: str) -> Result:
        order = self.store.get_order(order_id)
        if order is None or order["user_id"] != buyer["id"]:
            return Result.not_found("Order not found")
        items = self._with_products(self.store.list_purchases(buyer["id"], order_id=order_id))
        return Result.success(dict(order, items=items))
