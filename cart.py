from typing import List

from results import Result
from storage import Store


class CartManager:
    """One buyer's cart. Lines are (product_id, quantity) in insertion order."""

    def __init__(self, store: Store, user_id: str):
        self.store = store
        self.user_id = user_id

    def add(self, product_id: str) -> Result:
        if self.store.get_product(product_id) is None:
            return Result.not_found("Product not found")
        quantity = self.store.increment_cart_item(self.user_id, product_id)
        return Result.success({"product_id": product_id, "quantity": quantity})

    def remove(self, product_id: str) -> Result:
        # Whole line goes regardless of quantity
        if not self.store.remove_cart_item(self.user_id, product_id):
            return Result.not_found("Product not in cart")
        return Result.success()

    def clear(self) -> Result:
        return Result.success(self.store.clear_cart(self.user_id))

    def list(self) -> List[dict]:
        """Cart lines joined with their product. Lines whose product is gone are skipped."""
        items = self.store.get_cart_items(self.user_id)
        products = self.store.get_products([it["product_id"] for it in items])
        lines = []
        for it in items:
            product = products.get(it["product_id"])
            if product is None:
                continue
            qty = int(it["quantity"])
            lines.append({
                "product": product,
                "quantity": qty,
                "subtotal": round(float(product["price"]) * qty, 2),
            })
        return lines

    def summary(self) -> dict:
        lines = self.list()
        return {"items": lines, "total": round(sum(line["subtotal"] for line in lines), 2)}
