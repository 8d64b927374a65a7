# services/cart_sync_service.py
"""
Best-effort mirroring of the local cart to the per-user `carts` table.

The local cart is always the source of truth. On sync, local lines win and
lines only present on the server are merged back in, so items added on
another device are not lost.
"""

import logging
import math
from typing import Callable, Dict, List, Optional

from domain.models import LineItem, Product
from services.cart_service import (
    CART_CLEARED,
    CART_REPLACED,
    ITEM_ADDED,
    ITEM_REMOVED,
    ITEM_UPDATED,
    CartEvent,
    CartLedger,
)
from utils.quantity import normalize_quantity

logger = logging.getLogger(__name__)


def merge_carts(
        local_items: List[LineItem],
        remote_rows: List[Dict],
        products: Dict[str, Product],
) -> List[LineItem]:
    """
    Local items first, in their order, then server-only items for products
    still in the catalog. Server quantities are normalized and capped at
    current stock; a server line with no stock left is dropped.
    """
    merged = [LineItem(**item.to_dict()) for item in local_items]
    local_ids = {item.product_id for item in local_items}

    for row in remote_rows:
        product_id = str(row.get("product_id"))
        if product_id in local_ids:
            continue

        product = products.get(product_id)
        if product is None:
            logger.info("Dropping server cart line for unknown product %s", product_id)
            continue

        quantity = normalize_quantity(float(row.get("quantity") or 0), product.scalable, new_line=True)
        if quantity > product.stock_quantity:
            step = 0.25 if product.scalable else 1
            quantity = math.floor(product.stock_quantity / step) * step
        if quantity <= 0:
            continue

        merged.append(LineItem.from_product(product, quantity))
        local_ids.add(product_id)

    return merged


class CartMirror:
    """
    Pushes cart mutations to the server copy and pulls it back on sign-in.
    Mirror failures are logged and never undo the local change.
    """

    def __init__(self, mirror_store, catalog, user_id: str):
        self.mirror_store = mirror_store
        self.catalog = catalog
        self.user_id = user_id
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._syncing = False
        self._cart: Optional[CartLedger] = None

    def attach(self, cart: CartLedger) -> None:
        self.detach()
        self._cart = cart
        self._unsubscribe = cart.subscribe(self.on_cart_event)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_cart_event(self, event: CartEvent) -> None:
        if self._syncing:
            return

        if event.kind in (ITEM_ADDED, ITEM_UPDATED):
            ok, msg = self.mirror_store.upsert_item(self.user_id, event.product_id, event.quantity)
        elif event.kind == ITEM_REMOVED:
            ok, msg = self.mirror_store.remove_item(self.user_id, event.product_id)
        elif event.kind == CART_CLEARED:
            ok, msg = self.mirror_store.clear(self.user_id)
        elif event.kind == CART_REPLACED:
            ok, msg = self.push_all(self._cart.items)
        else:
            return

        if not ok:
            logger.warning("Cart mirror out of date after %s: %s", event.kind, msg)

    def push_all(self, items: List[LineItem]) -> tuple[bool, str]:
        for item in items:
            ok, msg = self.mirror_store.upsert_item(self.user_id, item.product_id, item.quantity)
            if not ok:
                return False, msg
        return True, "Pushed"

    def sync(self, cart: CartLedger) -> bool:
        """
        Merge the server cart into `cart` and push the result back.
        Returns False (cart untouched) if the server copy cannot be read.
        """
        ok, msg, rows = self.mirror_store.fetch(self.user_id)
        if not ok:
            logger.warning("Error syncing cart with database: %s", msg)
            return False

        local_ids = {item.product_id for item in cart.items}
        remote_only = [str(r.get("product_id")) for r in rows if str(r.get("product_id")) not in local_ids]

        products: Dict[str, Product] = {}
        if remote_only:
            ok, msg, products = self.catalog.list_products(remote_only)
            if not ok:
                logger.warning("Could not load products for server cart lines: %s", msg)
                products = {}

        merged = merge_carts(cart.items, rows, products)

        self._syncing = True
        try:
            cart.replace_items(merged)
        finally:
            self._syncing = False

        ok, msg = self.push_all(merged)
        if not ok:
            logger.warning("Could not push merged cart: %s", msg)
        return True


def start_mirror(mirror_store, catalog, user_id: str, cart: CartLedger) -> CartMirror:
    """
    Mirror `cart` for a signed-in user: merge the server copy in once, then
    follow every later mutation.
    """
    mirror = CartMirror(mirror_store, catalog, user_id)
    mirror.attach(cart)
    mirror.sync(cart)
    return mirror
