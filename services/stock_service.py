# services/stock_service.py

import logging
from typing import Dict, List, Optional

from domain.models import StockAdjustment, StockAlert, StockDelta, StockUpdateResult
from settings import LOW_STOCK_THRESHOLD

logger = logging.getLogger(__name__)

ORDER_PLACED = "order_placed"
ORDER_EDITED = "order_edited"
ORDER_CANCELLED = "order_cancelled"
ORDER_REFUNDED = "order_refunded"
MANUAL_ADJUSTMENT = "manual_adjustment"


def _stock_value(value: float) -> float:
    # weighed products carry fractional stock; keep it to 0.01
    value = round(float(value or 0), 2)
    return int(value) if value == int(value) else value


def check_alert(
        product_id: str,
        previous_stock: float,
        new_stock: float,
        threshold: Optional[int],
        only_on_crossing: bool = False,
) -> Optional[StockAlert]:
    """
    out_of_stock when stock reaches 0, low_stock when it falls to the
    threshold from above.
    """
    threshold = threshold or LOW_STOCK_THRESHOLD
    if new_stock <= 0 and (not only_on_crossing or previous_stock > 0):
        return StockAlert(product_id, "out_of_stock", new_stock, threshold)
    if 0 < new_stock <= threshold < previous_stock:
        return StockAlert(product_id, "low_stock", new_stock, threshold)
    return None


class StockService:
    """
    Applies stock changes through the inventory store. Every applied change
    gets exactly one StockAdjustment row; stock never goes below 0.

    `store` provides get_stock, set_stock, record_adjustments, record_alerts.
    """

    def __init__(self, store):
        self.store = store

    def _apply(
            self,
            product_id: str,
            compute_new_stock,
            adjustment_type: str,
            reason: str,
            user_id: Optional[str],
            order_id: Optional[str] = None,
            only_alert_on_crossing: bool = False,
    ) -> tuple[bool, str, Optional[StockAdjustment], Optional[StockAlert]]:
        ok, msg, product = self.store.get_stock(product_id)
        if not ok:
            return False, msg, None, None

        previous = _stock_value(product.get("stock_quantity"))
        new_stock = _stock_value(max(0, compute_new_stock(previous)))

        ok, msg = self.store.set_stock(product_id, new_stock)
        if not ok:
            return False, msg, None, None

        adjustment = StockAdjustment(
            product_id=product_id,
            adjustment_type=adjustment_type,
            quantity_change=_stock_value(new_stock - previous),
            previous_stock=previous,
            new_stock=new_stock,
            reason=reason,
            adjusted_by=user_id,
            order_id=order_id,
        )
        alert = check_alert(
            product_id,
            previous,
            new_stock,
            product.get("low_stock_threshold"),
            only_on_crossing=only_alert_on_crossing,
        )
        return True, "Stock updated", adjustment, alert

    def _finish(
            self,
            adjustments: List[StockAdjustment],
            alerts: List[StockAlert],
            message: str,
    ) -> StockUpdateResult:
        ok, msg = self.store.record_adjustments(adjustments)
        if not ok:
            logger.error("Stock changed but adjustments were not logged: %s", msg)
            return StockUpdateResult(False, msg, adjustments, alerts)

        ok, msg = self.store.record_alerts(alerts)
        if not ok:
            logger.error("Failed to create stock alerts: %s", msg)

        return StockUpdateResult(True, message, adjustments, alerts)

    def update_stock_for_order(
            self,
            order_id: str,
            items: List[Dict],
            user_id: Optional[str] = None,
    ) -> StockUpdateResult:
        """
        Decrement stock for every {"product_id", "quantity"} of a new order.
        Stops at the first product that cannot be updated.
        """
        adjustments: List[StockAdjustment] = []
        alerts: List[StockAlert] = []

        for item in items:
            quantity = float(item.get("quantity") or 0)
            ok, msg, adjustment, alert = self._apply(
                item["product_id"],
                lambda prev, q=quantity: prev - q,
                ORDER_PLACED,
                f"Order placed - {quantity:g} units sold",
                user_id,
                order_id=order_id,
            )
            if not ok:
                logger.error("Stock update for order %s failed at %s: %s", order_id, item["product_id"], msg)
                self._finish(adjustments, alerts, "partial")
                return StockUpdateResult(False, msg, adjustments, alerts)
            adjustments.append(adjustment)
            if alert:
                alerts.append(alert)

        return self._finish(adjustments, alerts, "Stock updated successfully")

    def revert_stock_for_order(
            self,
            order_id: str,
            items: List[Dict],
            user_id: Optional[str] = None,
            reason: str = "cancelled",
    ) -> StockUpdateResult:
        adjustment_type = ORDER_CANCELLED if reason == "cancelled" else ORDER_REFUNDED
        adjustments: List[StockAdjustment] = []

        for item in items:
            quantity = float(item.get("quantity") or 0)
            ok, msg, adjustment, _ = self._apply(
                item["product_id"],
                lambda prev, q=quantity: prev + q,
                adjustment_type,
                f"Order {reason} - {quantity:g} units returned to stock",
                user_id,
                order_id=order_id,
            )
            if not ok:
                # product gone from the catalog, nothing to return it to
                logger.warning("Skipping stock revert for %s: %s", item["product_id"], msg)
                continue
            adjustments.append(adjustment)

        return self._finish(adjustments, [], "Stock reverted successfully")

    def manual_stock_adjustment(
            self,
            adjustments: List[Dict],
            user_id: Optional[str] = None,
            reason: Optional[str] = None,
    ) -> StockUpdateResult:
        """
        Set absolute stock levels: [{"product_id", "new_stock"}, ...].
        """
        records: List[StockAdjustment] = []
        alerts: List[StockAlert] = []

        for adjustment in adjustments:
            target = float(adjustment["new_stock"])
            ok, msg, record, alert = self._apply(
                adjustment["product_id"],
                lambda prev, t=target: t,
                MANUAL_ADJUSTMENT,
                reason or "Manual stock adjustment",
                user_id,
                only_alert_on_crossing=True,
            )
            if not ok:
                self._finish(records, alerts, "partial")
                return StockUpdateResult(False, msg, records, alerts)
            records.append(record)
            if alert:
                alerts.append(alert)

        return self._finish(records, alerts, "Manual stock adjustment completed")

    def apply_stock_deltas(
            self,
            deltas: List[StockDelta],
            user_id: Optional[str] = None,
            order_number: str = "",
            order_id: Optional[str] = None,
    ) -> StockUpdateResult:
        """
        Apply signed deltas from an order edit (positive returns stock).
        A product that fails is logged and skipped; the rest still apply.
        """
        records: List[StockAdjustment] = []
        alerts: List[StockAlert] = []
        failed: List[str] = []

        for delta in deltas:
            ok, msg, record, alert = self._apply(
                delta.product_id,
                lambda prev, change=delta.quantity_change: prev + change,
                ORDER_EDITED,
                f"Order #{order_number} edited: quantity changed from "
                f"{delta.old_quantity:g} to {delta.new_quantity:g}",
                user_id,
                order_id=order_id,
            )
            if not ok:
                logger.error("Error applying stock adjustment for %s: %s", delta.product_id, msg)
                failed.append(delta.product_id)
                continue
            records.append(record)
            if alert:
                alerts.append(alert)

        result = self._finish(records, alerts, "Stock adjusted")
        if failed:
            result.ok = False
            result.message = f"Stock not adjusted for: {', '.join(failed)}"
        return result
