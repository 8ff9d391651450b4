"""
CartManager: the signed-in user's cart, persisted in cart_items.

Quantities are clamped into [1, product.stock] instead of being rejected.
Every mutation waits for the remote write and then reloads, so the view
never holds a guessed state.
"""
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING

from database import DataService
from errors import Conflict, NotFound, RemoteFailure, Unauthenticated, ValidationError
from logging_setup import get_logger
from schemas import CartItem, CartSnapshot, Identity, Product

logger = get_logger("cart")

CART_ORDER = [("created_at", ASCENDING), ("_id", ASCENDING)]


def clamp_quantity(quantity: int, stock: int) -> int:
    return max(1, min(quantity, stock))


class CartManager:
    def __init__(self, data: DataService):
        self._data = data
        self._identity: Optional[Identity] = None
        self._items: Tuple[CartItem, ...] = ()

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def items(self) -> Tuple[CartItem, ...]:
        return self._items

    @property
    def count(self) -> int:
        return sum(item.quantity for item in self._items)

    @property
    def total(self) -> float:
        return round(sum(item.quantity * (item.product.price if item.product else 0) for item in self._items), 2)

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(items=list(self._items), count=self.count, total=self.total)

    def load(self, identity: Optional[Identity]) -> CartSnapshot:
        """Replace the view with the cart of `identity` (empty when None).

        Rows whose quantity exceeds the product's current stock are lowered to
        it, remotely as well as in the view.
        """
        self._identity = identity
        if identity is None:
            self._items = ()
            return self.snapshot()

        rows = self._data.select("cart_items", {"user_id": identity.id}, order=CART_ORDER)
        products = self._products_for(rows)
        for row in rows:
            product = products.get(row["product_id"])
            if product is not None and row["quantity"] > max(product.stock, 1):
                row["quantity"] = self._lower_to_stock(row, product)
        self._items = tuple(
            CartItem(**row, product=products.get(row["product_id"])) for row in rows
        )
        return self.snapshot()

    def reload(self) -> CartSnapshot:
        return self.load(self._identity)

    def add(self, product_id: str, quantity: int = 1) -> CartSnapshot:
        identity = self._require_identity()
        product = self._product(product_id)
        if product.stock < 1:
            raise ValidationError(f"{product.name} is out of stock")

        quantity = max(1, quantity)
        key = {"user_id": identity.id, "product_id": product.id}
        with self._resync_on_failure():
            exists = self._data.select_one("cart_items", key) is not None
            if not exists:
                try:
                    self._data.insert("cart_items", {**key, "quantity": clamp_quantity(quantity, product.stock)})
                except Conflict:
                    # a concurrent add created the row after our lookup
                    exists = True
            if exists:
                self._data.increment("cart_items", {"quantity": quantity}, key)
                self._data.update("cart_items", {"quantity": product.stock}, {**key, "quantity": {"$gt": product.stock}})
        snapshot = self.reload()
        logger.info("cart_add", user_id=identity.id, product_id=product.id, added=quantity, count=snapshot.count)
        return snapshot

    def update_quantity(self, item_id: str, new_quantity: int) -> CartSnapshot:
        if new_quantity < 1:
            return self.remove(item_id)

        identity = self._require_identity()
        with self._resync_on_failure():
            row = self._data.select_one("cart_items", {"id": item_id, "user_id": identity.id})
            if not row:
                raise NotFound("Cart item not found")
            product = self._product(row["product_id"])
            quantity = clamp_quantity(new_quantity, product.stock)
            self._data.update("cart_items", {"quantity": quantity}, {"id": item_id, "user_id": identity.id})
        logger.info("cart_update", user_id=identity.id, item_id=item_id, quantity=quantity)
        return self.reload()

    def remove(self, item_id: str) -> CartSnapshot:
        identity = self._require_identity()
        with self._resync_on_failure():
            self._data.delete("cart_items", {"id": item_id, "user_id": identity.id})
        logger.info("cart_remove", user_id=identity.id, item_id=item_id)
        return self.reload()

    def clear(self) -> CartSnapshot:
        if self._identity is None:
            self._items = ()
            return self.snapshot()
        with self._resync_on_failure():
            removed = self._data.delete("cart_items", {"user_id": self._identity.id})
        logger.info("cart_clear", user_id=self._identity.id, removed=removed)
        return self.reload()

    def _require_identity(self) -> Identity:
        if self._identity is None:
            raise Unauthenticated()
        return self._identity

    def _product(self, product_id: str) -> Product:
        row = self._data.select_one("products", {"id": product_id})
        if not row:
            raise NotFound("Product not found")
        return Product(**row)

    def _products_for(self, rows: List[Dict[str, Any]]) -> Dict[str, Product]:
        ids = list({row["product_id"] for row in rows})
        if not ids:
            return {}
        return {p["id"]: Product(**p) for p in self._data.select("products", {"id": {"$in": ids}})}

    def _lower_to_stock(self, row: Dict[str, Any], product: Product) -> int:
        ceiling = max(product.stock, 1)
        self._data.update("cart_items", {"quantity": ceiling}, {"id": row["id"], "quantity": {"$gt": ceiling}})
        logger.info("cart_quantity_lowered", item_id=row["id"], product_id=product.id, quantity=ceiling)
        return ceiling

    @contextmanager
    def _resync_on_failure(self):
        try:
            yield
        except RemoteFailure:
            try:
                self.reload()
            except RemoteFailure:
                logger.warning("cart_resync_failed", user_id=self._identity.id if self._identity else None)
            raise
