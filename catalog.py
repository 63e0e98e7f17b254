import logging
from datetime import datetime, timezone
from typing import Optional

from results import Result
from schemas import Product, ProductCreate, ProductUpdate
from storage import Store

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "All"
# Null is ignored for these; image may be cleared
REQUIRED_FIELDS = ("title", "description", "price", "category", "condition")


class ProductRepository:
    """Listings shared by all sellers, edited only by their owner."""

    def __init__(self, store: Store):
        self.store = store

    def categories(self):
        return self.store.list_categories()

    def list(self, q: Optional[str] = None, category: Optional[str] = None, seller_id: Optional[str] = None):
        if category == ALL_CATEGORIES:
            category = None
        q = q.strip() if q else None
        return self.store.list_products(q=q or None, category=category, seller_id=seller_id)

    def get(self, product_id: str) -> Result:
        product = self.store.get_product(product_id)
        if product is None:
            return Result.not_found("Product not found")
        return Result.success(product)

    def create(self, seller: dict, payload: ProductCreate) -> Result:
        now = datetime.now(timezone.utc)
        product = Product(
            **payload.model_dump(),
            seller_id=seller["id"],
            seller_name=seller["username"],
            created_at=now,
            updated_at=now,
        )
        product_id = self.store.insert_product(product.model_dump())
        logger.info("Seller %s listed product %s", seller["id"], product_id)
        return self.get(product_id)

    def _owned(self, seller: dict, product_id: str) -> Result:
        found = self.get(product_id)
        if not found.ok:
            return found
        if found.value["seller_id"] != seller["id"]:
            return Result.forbidden("Only the seller can modify this product")
        return found

    def update(self, seller: dict, product_id: str, changes: ProductUpdate) -> Result:
        owned = self._owned(seller, product_id)
        if not owned.ok:
            return owned
        fields = {
            k: v for k, v in changes.model_dump(exclude_unset=True).items()
            if v is not None or k not in REQUIRED_FIELDS
        }
        # created_at is never part of an update
        fields["updated_at"] = datetime.now(timezone.utc)
        updated = self.store.update_product(product_id, fields)
        if updated is None:
            return Result.not_found("Product not found")
        return Result.success(updated)

    def delete(self, seller: dict, product_id: str) -> Result:
        owned = self._owned(seller, product_id)
        if not owned.ok:
            return owned
        if not self.store.delete_product(product_id):
            return Result.not_found("Product not found")
        logger.info("Seller %s deleted product %s", seller["id"], product_id)
        return Result.success()
