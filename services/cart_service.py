# services/cart_service.py

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from domain.models import DeliveryInfo, LineItem, Product, PromoCode
from services.cart_storage import CartSnapshot, load_snapshot
from services.promo_service import compute_discount
from services.tax_service import TaxBreakdown, aggregate_taxes, line_total
from settings import DELIVERY_ESTIMATE, DELIVERY_FEE, GST_RATE, PST_RATE
from utils.formatting import round_money
from utils.postal_code import normalize_postal_code
from utils.quantity import normalize_quantity

logger = logging.getLogger(__name__)

ITEM_ADDED = "item_added"
ITEM_UPDATED = "item_updated"
ITEM_REMOVED = "item_removed"
CART_CLEARED = "cart_cleared"
PROMO_APPLIED = "promo_applied"
PROMO_REMOVED = "promo_removed"
DELIVERY_UPDATED = "delivery_updated"
CART_REPLACED = "cart_replaced"


@dataclass
class CartEvent:
    kind: str
    product_id: Optional[str] = None
    quantity: Optional[float] = None


class EventChannel:
    """
    Synchronous publish/subscribe. Subscribers run in subscription order,
    after the cart state is fully updated.
    """

    def __init__(self):
        self._subscribers: List[Callable[[CartEvent], None]] = []

    def subscribe(self, listener: Callable[[CartEvent], None]) -> Callable[[], None]:
        self._subscribers.append(listener)

        def unsubscribe() -> None:
            if listener in self._subscribers:
                self._subscribers.remove(listener)

        return unsubscribe

    def publish(self, event: CartEvent) -> None:
        for listener in list(self._subscribers):
            try:
                listener(event)
            except Exception:
                logger.exception("Cart subscriber failed on %s", event.kind)


class CartLedger:
    """
    The shopping cart: line items, delivery info and an applied promo.

    Every total is derived from the current items on each read. Every
    mutation writes the full snapshot to `storage` and then notifies
    subscribers. A rejected mutation changes nothing and notifies no one.

    One instance is created per running app and passed to whoever needs it.
    """

    def __init__(
            self,
            storage=None,
            events: Optional[EventChannel] = None,
            delivery_fee: float = DELIVERY_FEE,
            gst_rate: float = GST_RATE,
            pst_rate: float = PST_RATE,
    ):
        self.storage = storage
        self.events = events or EventChannel()
        self.default_delivery_fee = delivery_fee
        self.gst_rate = gst_rate
        self.pst_rate = pst_rate

        self._items: List[LineItem] = []
        self._delivery_info = DeliveryInfo(fee=delivery_fee)
        self._applied_promo: Optional[PromoCode] = None

        if storage is not None:
            self._restore(load_snapshot(storage.load()))

    # ------------------------------------------------------------------
    # persistence / notification
    # ------------------------------------------------------------------

    def _restore(self, snapshot: CartSnapshot) -> None:
        self._items = list(snapshot.items)
        self._delivery_info = snapshot.delivery_info
        self._applied_promo = snapshot.applied_promo

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(
            items=[LineItem(**item.to_dict()) for item in self._items],
            delivery_info=DeliveryInfo(**vars(self._delivery_info)),
            applied_promo=self._applied_promo,
        )

    def subscribe(self, listener: Callable[[CartEvent], None]) -> Callable[[], None]:
        return self.events.subscribe(listener)

    def _commit(self, event: CartEvent) -> None:
        if self.storage is not None:
            try:
                self.storage.save(self.snapshot().to_dict())
            except OSError as e:
                logger.error("Could not persist cart: %s", e)
        self.events.publish(event)

    def _find(self, product_id: str) -> Optional[LineItem]:
        return next((item for item in self._items if item.product_id == product_id), None)

    # ------------------------------------------------------------------
    # mutators
    # ------------------------------------------------------------------

    def add_item(self, product: Product, quantity: float = 1) -> bool:
        """
        Merge `quantity` into the product's line, or start a new line.
        Returns False, leaving the cart unchanged, when the normalized
        quantity would exceed the product's stock.
        """
        if quantity is None or quantity <= 0:
            return False

        existing = self._find(product.id)
        if existing is not None:
            new_quantity = normalize_quantity(existing.quantity + quantity, product.scalable)
        else:
            new_quantity = normalize_quantity(quantity, product.scalable, new_line=True)

        if new_quantity <= 0 or new_quantity > product.stock_quantity:
            logger.info(
                "Rejected add of %s x %s: stock %s",
                quantity, product.id, product.stock_quantity,
            )
            return False

        if existing is not None:
            existing.quantity = new_quantity
            existing.unit_price = product.price
            existing.stock_available = product.stock_quantity
            existing.tax_type = product.tax_type
            existing.bottle_deposit = product.bottle_deposit
        else:
            self._items.append(LineItem.from_product(product, new_quantity))

        self._commit(CartEvent(ITEM_ADDED, product.id, new_quantity))
        return True

    def update_quantity(self, product_id: str, quantity: float) -> bool:
        item = self._find(product_id)
        if item is None:
            return False

        if quantity is None or quantity <= 0:
            self.remove_item(product_id)
            return True

        new_quantity = normalize_quantity(quantity, item.scalable)
        if new_quantity <= 0:
            self.remove_item(product_id)
            return True

        if new_quantity > item.stock_available:
            return False

        item.quantity = new_quantity
        self._commit(CartEvent(ITEM_UPDATED, product_id, new_quantity))
        return True

    def remove_item(self, product_id: str) -> None:
        if self._find(product_id) is None:
            return
        self._items = [item for item in self._items if item.product_id != product_id]
        self._commit(CartEvent(ITEM_REMOVED, product_id, 0))

    def clear(self) -> None:
        self._items = []
        self._applied_promo = None
        self._commit(CartEvent(CART_CLEARED))

    def replace_items(self, items: List[LineItem]) -> None:
        """
        Swap in a merged item list (used by cart sync).
        """
        self._items = list(items)
        self._commit(CartEvent(CART_REPLACED))

    def apply_promo_code(self, promo: PromoCode) -> Tuple[bool, str]:
        """
        Store an already validated promo. Business rules are not re-checked.
        """
        if self._applied_promo is not None and self._applied_promo.code.upper() == promo.code.upper():
            return False, "Promo code already applied"

        self._applied_promo = promo
        self._commit(CartEvent(PROMO_APPLIED))
        return True, f"{promo.description or promo.code} applied!"

    def remove_promo_code(self) -> None:
        self._applied_promo = None
        self._commit(CartEvent(PROMO_REMOVED))

    def update_delivery_info(self, postal_code: str) -> None:
        # flat fee regardless of distance
        self._delivery_info = DeliveryInfo(
            postal_code=normalize_postal_code(postal_code),
            fee=self.default_delivery_fee,
            estimated_time=DELIVERY_ESTIMATE,
        )
        self._commit(CartEvent(DELIVERY_UPDATED))

    # ------------------------------------------------------------------
    # read model
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[LineItem]:
        return list(self._items)

    @property
    def delivery_info(self) -> DeliveryInfo:
        return self._delivery_info

    @property
    def applied_promo(self) -> Optional[PromoCode]:
        return self._applied_promo

    @property
    def is_empty(self) -> bool:
        return not self._items

    @property
    def item_count(self) -> float:
        return sum(item.quantity for item in self._items)

    @property
    def subtotal(self) -> float:
        return round_money(sum(
            line_total(item.unit_price, item.quantity, item.bottle_deposit)
            for item in self._items
        ))

    def tax_breakdown(self) -> TaxBreakdown:
        return aggregate_taxes(
            ((item.unit_price * item.quantity, item.tax_type) for item in self._items),
            self.gst_rate,
            self.pst_rate,
        )

    @property
    def gst(self) -> float:
        return self.tax_breakdown().gst

    @property
    def pst(self) -> float:
        return self.tax_breakdown().pst

    @property
    def tax(self) -> float:
        return self.tax_breakdown().total

    @property
    def delivery_fee(self) -> float:
        return self._delivery_info.fee

    @property
    def discount(self) -> float:
        return round_money(compute_discount(self._applied_promo, self.subtotal, self.delivery_fee))

    @property
    def total(self) -> float:
        return max(0.0, round_money(self.subtotal + self.tax + self.delivery_fee - self.discount))

    def summary(self) -> Dict[str, float]:
        subtotal = self.subtotal
        taxes = self.tax_breakdown()
        fee = self.delivery_fee
        discount = round_money(compute_discount(self._applied_promo, subtotal, fee))
        return {
            "subtotal": subtotal,
            "gst": taxes.gst,
            "pst": taxes.pst,
            "tax": taxes.total,
            "delivery_fee": fee,
            "discount": discount,
            "total": max(0.0, round_money(subtotal + taxes.total + fee - discount)),
        }
