# services/cart_storage.py
"""
Durable client-side storage for the cart and the in-progress checkout.

Both blobs carry an explicit schema version. Loading goes through one
defaulting step: missing fields take defaults, unversioned cart blobs from
the old camelCase layout are migrated, and unknown versions reset to empty.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

from domain.models import DeliveryInfo, DeliverySlot, LineItem, PromoCode
from utils.formatting import round_money

logger = logging.getLogger(__name__)

CART_SNAPSHOT_VERSION = 1
CHECKOUT_STATE_VERSION = 1


@dataclass
class CartSnapshot:
    items: List[LineItem] = field(default_factory=list)
    delivery_info: DeliveryInfo = field(default_factory=DeliveryInfo)
    applied_promo: Optional[PromoCode] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": CART_SNAPSHOT_VERSION,
            "items": [item.to_dict() for item in self.items],
            "delivery_info": asdict(self.delivery_info),
            "applied_promo": self.applied_promo.to_dict() if self.applied_promo else None,
        }


def _migrate_unversioned(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Blobs written before versioning used camelCase keys:
      {"items": [{"id", "price", "inStock", "taxType", "bottle_price", ...}],
       "deliveryInfo": {"postalCode", "estimatedTime", "fee"},
       "appliedPromo": {...}}
    """
    items = []
    for old in raw.get("items") or []:
        if not isinstance(old, dict):
            continue
        items.append({
            "product_id": old.get("product_id", old.get("id")),
            "name": old.get("name"),
            "unit_price": old.get("unit_price", old.get("price")),
            "quantity": old.get("quantity"),
            "tax_type": old.get("tax_type", old.get("taxType")),
            "scalable": old.get("scalable", False),
            "bottle_deposit": old.get("bottle_deposit", old.get("bottle_price", old.get("bottlePrice"))),
            "stock_available": old.get("stock_available", old.get("inStock")),
            "unit": old.get("unit"),
        })

    old_delivery = raw.get("deliveryInfo") or raw.get("delivery_info") or {}
    delivery = {
        "postal_code": old_delivery.get("postal_code", old_delivery.get("postalCode")),
        "fee": old_delivery.get("fee"),
        "estimated_time": old_delivery.get("estimated_time", old_delivery.get("estimatedTime")),
    }

    return {
        "version": CART_SNAPSHOT_VERSION,
        "items": items,
        "delivery_info": delivery,
        "applied_promo": raw.get("appliedPromo", raw.get("applied_promo")),
    }


def load_snapshot(raw: Optional[Dict[str, Any]]) -> CartSnapshot:
    if not raw or not isinstance(raw, dict):
        return CartSnapshot()

    version = raw.get("version")
    if version is None:
        raw = _migrate_unversioned(raw)
    elif version != CART_SNAPSHOT_VERSION:
        logger.warning("Discarding cart snapshot with unknown version %r", version)
        return CartSnapshot()

    items: List[LineItem] = []
    seen = set()
    for data in raw.get("items") or []:
        if not isinstance(data, dict) or data.get("product_id") is None:
            logger.warning("Skipping cart item without product id: %r", data)
            continue
        try:
            item = LineItem.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping unreadable cart item %r: %s", data, e)
            continue
        if item.product_id in seen or item.quantity <= 0:
            continue
        seen.add(item.product_id)
        items.append(item)

    delivery = DeliveryInfo()
    stored_delivery = raw.get("delivery_info") or {}
    if stored_delivery.get("postal_code") is not None:
        delivery.postal_code = stored_delivery["postal_code"]
    if stored_delivery.get("fee") is not None:
        try:
            delivery.fee = float(stored_delivery["fee"])
        except (TypeError, ValueError):
            logger.warning("Ignoring unreadable delivery fee %r", stored_delivery["fee"])
    if stored_delivery.get("estimated_time") is not None:
        delivery.estimated_time = stored_delivery["estimated_time"]

    promo = None
    stored_promo = raw.get("applied_promo")
    if isinstance(stored_promo, dict) and stored_promo.get("code"):
        promo = PromoCode.from_row({"discount_type": None, "discount_value": 0, **stored_promo})

    return CartSnapshot(items=items, delivery_info=delivery, applied_promo=promo)


@dataclass
class CheckoutState:
    delivery_slot: Optional[DeliverySlot] = None
    tip_amount: float = 0.0
    payment_method: str = "card"
    form: Dict[str, Any] = field(default_factory=lambda: {
        "email": "",
        "first_name": "",
        "last_name": "",
        "phone": "",
        "address": "",
        "apartment": "",
        "city": "Vancouver",
        "province": "BC",
        "postal_code": "",
        "delivery_instructions": "",
    })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": CHECKOUT_STATE_VERSION,
            "state": {
                "delivery_slot": asdict(self.delivery_slot) if self.delivery_slot else None,
                "tip_amount": self.tip_amount,
                "payment_method": self.payment_method,
                "form": dict(self.form),
            },
        }


def load_checkout_state(raw: Optional[Dict[str, Any]]) -> CheckoutState:
    if not raw or raw.get("version") != CHECKOUT_STATE_VERSION:
        return CheckoutState()

    stored = raw.get("state") or {}
    state = CheckoutState()
    slot = stored.get("delivery_slot")
    if isinstance(slot, dict) and slot.get("date") and slot.get("time_slot"):
        state.delivery_slot = DeliverySlot(
            date=slot["date"],
            time_slot=slot["time_slot"],
            display_time=slot.get("display_time") or slot["time_slot"],
        )
    try:
        state.tip_amount = max(0.0, round_money(float(stored.get("tip_amount") or 0)))
    except (TypeError, ValueError):
        state.tip_amount = 0.0
    state.payment_method = stored.get("payment_method") or "card"
    state.form.update(stored.get("form") or {})
    return state


class JsonFileStorage:
    """
    Stores one JSON blob in a file. A corrupt file is removed and read as empty.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            text = self.path.read_text(encoding="utf-8")
            if not text.strip():
                return None
            return json.loads(text)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Error loading %s: %s", self.path, e)
            try:
                os.remove(self.path)
            except OSError as remove_error:
                logger.warning("Could not remove %s: %s", self.path, remove_error)
            return None

    def save(self, data: Dict[str, Any]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data), encoding="utf-8")
        os.replace(tmp, self.path)

    def clear(self) -> None:
        if self.path.exists():
            os.remove(self.path)


class MappingStorage:
    """
    Stores the blob under a key of any dict-like (e.g. st.session_state).
    """

    def __init__(self, mapping: MutableMapping, key: str = "cart"):
        self.mapping = mapping
        self.key = key

    def load(self) -> Optional[Dict[str, Any]]:
        return self.mapping.get(self.key)

    def save(self, data: Dict[str, Any]) -> None:
        self.mapping[self.key] = data

    def clear(self) -> None:
        self.mapping.pop(self.key, None)
