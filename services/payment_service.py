# services/payment_service.py
import logging
from typing import Any, Dict, Optional, Tuple

import requests

from settings import (
    CURRENCY,
    PAYMENT_CANCEL_URL,
    PAYMENT_SUCCESS_URL,
    STRIPE_API_BASE,
    STRIPE_SECRET_KEY,
)

logger = logging.getLogger(__name__)


def to_minor_units(amount: float) -> int:
    return int(round(float(amount) * 100))


class StripeGateway:
    """
    Hosted Stripe Checkout. Creates a session for an order and returns the
    redirect URL; payment outcome arrives later as webhook events.
    """

    def __init__(
            self,
            secret_key: Optional[str] = STRIPE_SECRET_KEY,
            api_base: str = STRIPE_API_BASE,
            success_url: str = PAYMENT_SUCCESS_URL,
            cancel_url: str = PAYMENT_CANCEL_URL,
            timeout_seconds: int = 10,
            max_retries: int = 3,
            session: Optional[requests.Session] = None,
    ):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.http = session or requests.Session()

    def create_checkout_session(
            self,
            order_id: str,
            order_number: str,
            amount: float,
            currency: str = CURRENCY,
            customer_email: str = "",
            customer_name: str = "",
    ) -> Tuple[bool, str, Optional[str]]:
        """
        Returns (ok, message, redirect_url).
        """
        if not self.secret_key:
            return False, "STRIPE_SECRET_KEY is not configured", None

        if amount is None or amount <= 0:
            return False, "Payment amount must be greater than zero", None

        form = {
            "payment_method_types[0]": "card",
            "mode": "payment",
            "line_items[0][price_data][currency]": currency,
            "line_items[0][price_data][product_data][name]": f"Grocery Order {order_number}",
            "line_items[0][price_data][product_data][description]": "Fresh grocery delivery",
            "line_items[0][price_data][unit_amount]": str(to_minor_units(amount)),
            "line_items[0][quantity]": "1",
            "customer_email": customer_email,
            "metadata[order_id]": str(order_id),
            "metadata[order_number]": order_number,
            "metadata[customer_name]": customer_name,
            "success_url": f"{self.success_url}&orderId={order_id}&session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self.cancel_url}&orderId={order_id}",
            "billing_address_collection": "auto",
            "shipping_address_collection[allowed_countries][0]": "CA",
        }
        if not customer_email:
            form.pop("customer_email")

        last_error = None
        resp = None
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = self.http.post(
                    f"{self.api_base}/checkout/sessions",
                    data=form,
                    auth=(self.secret_key, ""),
                    timeout=self.timeout_seconds,
                )
                break
            except requests.RequestException as e:
                last_error = e
                logger.warning("Stripe request failed (%d/%d): %s", attempt, self.max_retries, e)

        if resp is None:
            logger.error("Giving up creating checkout session for order %s: %s", order_number, last_error)
            return False, f"Payment provider unreachable: {last_error}", None

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if not resp.ok:
            message = (body.get("error") or {}).get("message") or f"HTTP {resp.status_code}"
            logger.error("Stripe session creation error for order %s: %s", order_number, message)
            return False, f"Failed to create checkout session: {message}", None

        logger.info("Stripe session %s created for order %s", body.get("id"), order_number)
        return True, "Checkout session created", body.get("url")


def handle_payment_event(event: Dict[str, Any], order_store) -> Tuple[bool, str]:
    """
    Apply a Stripe webhook event to the order's payment status.
    Events without an order_id in their metadata, or of other types, are
    acknowledged and ignored.
    """
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}
    order_id = (obj.get("metadata") or {}).get("order_id")

    logger.info("Stripe webhook event: %s", event_type)

    if not order_id:
        return True, "Ignored: no order id"

    if event_type == "payment_intent.authorized":
        return order_store.update_payment_status(
            order_id, "pre_authorized", extra={"stripe_payment_intent_id": obj.get("id")},
        )

    if event_type in ("payment_intent.succeeded", "checkout.session.completed"):
        ok, msg = order_store.update_payment_status(order_id, "paid", status="confirmed")
        if ok:
            logger.info("Order %s marked as paid", order_id)
        else:
            logger.error("Error updating paid order %s: %s", order_id, msg)
        return ok, msg

    if event_type == "payment_intent.payment_failed":
        ok, msg = order_store.update_payment_status(order_id, "failed")
        if not ok:
            logger.error("Error updating failed payment for %s: %s", order_id, msg)
        return ok, msg

    return True, f"Ignored: {event_type}"
