# services/promo_service.py

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from domain.models import (
    DISCOUNT_FIXED,
    DISCOUNT_FREE_DELIVERY,
    DISCOUNT_PERCENTAGE,
    PromoCode,
    PromoUsage,
    PromoValidation,
)
from settings import DELIVERY_FEE
from utils.formatting import format_cad, round_money

logger = logging.getLogger(__name__)

# rejection reasons, in check order
REASON_INVALID = "invalid"
REASON_INACTIVE = "inactive"
REASON_NOT_YET_VALID = "not_yet_valid"
REASON_EXPIRED = "expired"
REASON_BELOW_MINIMUM = "below_minimum"
REASON_USAGE_LIMIT = "usage_limit"
REASON_USER_LIMIT = "user_limit"
REASON_ERROR = "error"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a Supabase timestamp/date string. Naive values are taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _discount_value(promo: PromoCode) -> Optional[float]:
    try:
        value = float(promo.discount_value)
    except (TypeError, ValueError):
        return None
    if value != value or value <= 0:  # NaN or non-positive
        return None
    return value


def compute_discount(promo: Optional[PromoCode], subtotal: float, delivery_fee: float = DELIVERY_FEE) -> float:
    """
    Unrounded discount for an already validated promo.

      percentage     subtotal * value / 100, never above subtotal
      fixed          min(value, subtotal)
      free_delivery  the current delivery fee

    A missing or non-numeric value, or an unknown type, gives 0.
    """
    if promo is None or not promo.discount_type:
        return 0.0

    subtotal = max(0.0, subtotal)

    if promo.discount_type == DISCOUNT_FREE_DELIVERY:
        return max(0.0, delivery_fee)

    value = _discount_value(promo)
    if value is None:
        logger.warning("Invalid discount value %r on promo %s", promo.discount_value, promo.code)
        return 0.0

    if promo.discount_type == DISCOUNT_PERCENTAGE:
        return min(subtotal * value / 100, subtotal)
    if promo.discount_type == DISCOUNT_FIXED:
        return min(value, subtotal)

    logger.warning("Unknown discount type %r on promo %s", promo.discount_type, promo.code)
    return 0.0


class PromoEngine:
    """
    Validates promo codes against the promo store and keeps usage bookkeeping.

    `store` must provide find_promo_by_code, count_user_usage, record_usage,
    increment_usage, list_public_promos and list_usage, each returning an
    (ok, message, data) tuple.
    """

    def __init__(self, store, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def validate(
            self,
            code: str,
            subtotal: float,
            user_id: Optional[str] = None,
            delivery_fee: float = DELIVERY_FEE,
    ) -> PromoValidation:
        code = (code or "").strip()
        if not code:
            return PromoValidation(False, REASON_INVALID, "Please enter a promo code")

        ok, msg, promo = self.store.find_promo_by_code(code)
        if not ok:
            logger.warning("Promo lookup failed for %s: %s", code, msg)
            return PromoValidation(False, REASON_ERROR, "Error validating promo code")
        if promo is None:
            return PromoValidation(False, REASON_INVALID, "Invalid promo code")

        if promo.is_active is False:
            return PromoValidation(False, REASON_INACTIVE, "This promo code is no longer active", promo)

        now = self.clock()
        try:
            start = parse_timestamp(promo.start_date)
            ends = [parse_timestamp(promo.end_date), parse_timestamp(promo.expires_at)]
        except ValueError as e:
            logger.warning("Bad date on promo %s: %s", promo.code, e)
            return PromoValidation(False, REASON_ERROR, "Error validating promo code", promo)

        if start is not None and start > now:
            return PromoValidation(False, REASON_NOT_YET_VALID, "This promo code is not yet valid", promo)

        if any(end is not None and end < now for end in ends):
            return PromoValidation(False, REASON_EXPIRED, "This promo code has expired", promo)

        if promo.min_order_amount and subtotal < float(promo.min_order_amount):
            return PromoValidation(
                False,
                REASON_BELOW_MINIMUM,
                f"Minimum order amount of {format_cad(float(promo.min_order_amount))} "
                f"required for this promo code",
                promo,
            )

        if promo.max_uses and promo.current_uses is not None and promo.current_uses >= promo.max_uses:
            return PromoValidation(False, REASON_USAGE_LIMIT, "This promo code has reached its usage limit", promo)

        if user_id and promo.uses_per_user_limit:
            ok, msg, used = self.store.count_user_usage(promo.id, user_id)
            if not ok:
                logger.warning("Could not count usage of %s for user %s: %s", promo.code, user_id, msg)
            elif used >= promo.uses_per_user_limit:
                return PromoValidation(
                    False,
                    REASON_USER_LIMIT,
                    "You have reached the usage limit for this promo code",
                    promo,
                )

        discount = round_money(compute_discount(promo, subtotal, delivery_fee))
        logger.info("Promo %s valid, discount %.2f", promo.code, discount)
        return PromoValidation(True, "ok", f"{promo.code} applied successfully!", promo, discount)

    def track_usage(
            self,
            promo: PromoCode,
            discount_amount: float,
            user_id: Optional[str] = None,
            order_id: Optional[str] = None,
    ) -> tuple[bool, str]:
        """
        Record one use of `promo` and bump its counter.
        The counter is a read-then-write on the store, so two simultaneous
        checkouts with the same code can both read the same value.
        """
        if not promo.id:
            return False, "Promo code has no id"

        usage = PromoUsage(
            promo_code_id=promo.id,
            discount_amount=round_money(discount_amount),
            user_id=user_id,
            order_id=order_id,
            used_at=self.clock().isoformat(),
        )
        ok, msg, _ = self.store.record_usage(usage)
        if not ok:
            return False, f"Error tracking promo code usage: {msg}"

        ok, msg, _ = self.store.increment_usage(promo.id)
        if not ok:
            return False, f"Error updating promo code usage count: {msg}"

        return True, "Promo code usage tracked"

    def available_promos(self) -> List[PromoCode]:
        """
        Public, active codes inside their date window. Any failure gives [].
        """
        ok, msg, promos = self.store.list_public_promos()
        if not ok:
            logger.warning("Could not load promo suggestions: %s", msg)
            return []

        now = self.clock()
        result = []
        for promo in promos:
            try:
                start = parse_timestamp(promo.start_date)
                end = parse_timestamp(promo.end_date)
            except ValueError:
                continue
            if start is not None and start > now:
                continue
            if end is not None and end < now:
                continue
            result.append(promo)
        return result

    def usage_stats(self, promo_id: str, recent: int = 10) -> Dict[str, Any]:
        ok, msg, rows = self.store.list_usage(promo_id)
        if not ok:
            logger.warning("Could not load usage for promo %s: %s", promo_id, msg)
            return {"total": 0, "users": 0, "recent_usage": []}

        users = {row.get("user_id") for row in rows if row.get("user_id")}
        ordered = sorted(rows, key=lambda r: r.get("used_at") or "", reverse=True)
        return {"total": len(rows), "users": len(users), "recent_usage": ordered[:recent]}
