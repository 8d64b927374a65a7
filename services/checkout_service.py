# services/checkout_service.py

import logging
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from domain.models import (
    AuthUser,
    CheckoutResult,
    CustomerInfo,
    DeliverySlot,
    OrderItem,
    OrderTotals,
)
from services.cart_service import CartLedger
from services.tax_service import line_total
from utils.formatting import round_money

logger = logging.getLogger(__name__)


def generate_order_number(now_ms: Optional[int] = None) -> str:
    """
    "GR" + last 8 digits of the epoch millis; fits varchar(20).
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"GR{str(now_ms)[-8:]}"


def resolve_customer(customer: Optional[CustomerInfo], user: Optional[AuthUser]) -> CustomerInfo:
    """
    Explicit checkout input first, the signed-in identity as fallback.
    """
    customer = customer or CustomerInfo()
    meta: Dict[str, Any] = user.metadata if user else {}
    full_name = (meta.get("full_name") or "").split(" ")

    email = customer.email or (user.email if user else None) or meta.get("email") or ""
    first_name = customer.first_name or meta.get("first_name") or (full_name[0] if full_name else "")
    last_name = customer.last_name or meta.get("last_name") or " ".join(full_name[1:])
    phone = customer.phone or meta.get("phone") or ""

    return CustomerInfo(
        email=email.strip(),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        phone=phone.strip(),
    )


def build_order_totals(cart: CartLedger, tip_amount: float) -> OrderTotals:
    summary = cart.summary()
    tip = round_money(tip_amount)
    total = max(0.0, round_money(
        summary["subtotal"] + summary["tax"] + summary["delivery_fee"] + tip - summary["discount"]
    ))
    return OrderTotals(
        subtotal=summary["subtotal"],
        gst=summary["gst"],
        pst=summary["pst"],
        tax=summary["tax"],
        delivery_fee=summary["delivery_fee"],
        discount=summary["discount"],
        tip=tip,
        total=total,
    )


def build_order_items(cart: CartLedger) -> List[OrderItem]:
    return [
        OrderItem(
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            bottle_deposit=item.bottle_deposit,
            total_price=round_money(line_total(item.unit_price, item.quantity, item.bottle_deposit)),
            final_weight=item.quantity if item.scalable else None,
            product_name=item.name,
            scalable=item.scalable,
            tax_type=item.tax_type,
        )
        for item in cart.items
    ]


class CheckoutService:
    """
    Turns the cart into an order.

    The order store call is the commit point: before it, any failure leaves
    the cart as it was; after it, stock and promo bookkeeping failures are
    logged and reported as warnings but never undo the order.
    """

    def __init__(self, order_store, stock_service, promo_engine=None, cart_mirror=None):
        self.order_store = order_store
        self.stock_service = stock_service
        self.promo_engine = promo_engine
        self.cart_mirror = cart_mirror
        # ids of carts with a checkout running
        self._in_flight: Set[int] = set()

    def _validate(
            self,
            cart: CartLedger,
            customer: CustomerInfo,
            delivery_slot: Optional[DeliverySlot],
            tip_amount: float,
    ) -> Tuple[bool, str]:
        if cart.is_empty:
            return False, "Your cart is empty. Please add items before checkout."
        if not customer.email:
            return False, "Email address is required. Please update your profile or provide email in checkout."
        if not customer.first_name:
            return False, "First name is required. Please update your profile or provide name in checkout."
        if delivery_slot is None:
            return False, "Please select a delivery time slot."
        if tip_amount is None or tip_amount < 0:
            return False, "Tip amount cannot be negative."
        return True, ""

    def checkout(
            self,
            cart: CartLedger,
            customer_info: Optional[CustomerInfo],
            delivery_slot: Optional[DeliverySlot],
            tip_amount: float = 0.0,
            user: Optional[AuthUser] = None,
            payment_method: str = "card",
            delivery_address: str = "",
            delivery_instructions: str = "",
    ) -> CheckoutResult:
        cart_key = id(cart)
        if cart_key in self._in_flight:
            return CheckoutResult(False, "Checkout already in progress")

        customer = resolve_customer(customer_info, user)
        ok, message = self._validate(cart, customer, delivery_slot, tip_amount)
        if not ok:
            return CheckoutResult(False, message)

        self._in_flight.add(cart_key)
        try:
            return self._place_order(
                cart, customer, delivery_slot, tip_amount, user,
                payment_method, delivery_address, delivery_instructions,
            )
        finally:
            self._in_flight.discard(cart_key)

    def _place_order(
            self,
            cart: CartLedger,
            customer: CustomerInfo,
            delivery_slot: DeliverySlot,
            tip_amount: float,
            user: Optional[AuthUser],
            payment_method: str,
            delivery_address: str,
            delivery_instructions: str,
    ) -> CheckoutResult:
        totals = build_order_totals(cart, tip_amount)
        items = build_order_items(cart)
        applied_promo = cart.applied_promo
        user_id = user.id if user else None
        slot_start = delivery_slot.time_slot.split("-")[0].strip()

        order_row = {
            "customer_id": user_id,
            "order_number": generate_order_number(),
            "status": "pending",
            "payment_status": "pending",
            **totals.to_row(),
            "promo_code_id": applied_promo.id if applied_promo else None,
            "delivery_address": (delivery_address or cart.delivery_info.postal_code)[:500],
            "delivery_instructions": delivery_instructions[:500] if delivery_instructions else None,
            "preferred_delivery_time": f"{delivery_slot.date}T{slot_start}",
            "delivery_date": delivery_slot.date,
            "delivery_time_slot": (delivery_slot.display_time or delivery_slot.time_slot)[:50],
            "payment_method": (payment_method or "card")[:20],
            "customer_email": customer.email[:100],
            "customer_phone": customer.phone[:20],
            "customer_name": f"{customer.first_name} {customer.last_name}".strip()[:100],
        }

        ok, msg, order = self.order_store.create_order(order_row, items)
        if not ok:
            logger.error("Order creation failed: %s", msg)
            return CheckoutResult(False, "Failed to create order. Please try again.")

        order_id = str(order["id"])
        order_number = order.get("order_number") or order_row["order_number"]
        warnings: List[str] = []
        logger.info("Order %s created (%s), total %.2f", order_number, order_id, totals.total)

        stock = self.stock_service.update_stock_for_order(
            order_id,
            [{"product_id": item.product_id, "quantity": item.quantity} for item in items],
            user_id,
        )
        if not stock.ok:
            logger.error("Order %s placed but stock was not fully updated: %s", order_number, stock.message)
            warnings.append(f"Stock update incomplete: {stock.message}")

        if applied_promo is not None and self.promo_engine is not None:
            ok, msg = self.promo_engine.track_usage(applied_promo, totals.discount, user_id, order_id)
            if not ok:
                logger.error("Order %s placed but promo usage not tracked: %s", order_number, msg)
                warnings.append(msg)

        cart.clear()
        if self.cart_mirror is not None and user_id:
            ok, msg = self.cart_mirror.clear(user_id)
            if not ok:
                logger.warning("Error clearing server cart: %s", msg)

        return CheckoutResult(
            True,
            "Order created successfully",
            order_id=order_id,
            order_number=order_number,
            total=float(order.get("total", totals.total)),
            warnings=warnings,
        )
