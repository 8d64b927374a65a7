# services/order_edit_service.py
"""
Admin edits of a placed order.

An edit is applied to a copy of the order's lines, the order totals are
recomputed from the resulting lines alone, and the per-product quantity
difference becomes a list of stock deltas. Persisting goes items -> totals
-> stock -> audit history; only the first two decide whether the edit
succeeded, and a failed totals write puts the previous lines back.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from domain.models import Order, OrderEditResult, OrderItem, OrderTotals, Product, StockDelta
from services.tax_service import aggregate_taxes, line_total
from settings import GST_RATE, PST_RATE
from utils.formatting import round_money
from utils.quantity import normalize_weight

logger = logging.getLogger(__name__)

UPDATE_ITEM = "update_item"
ADD_ITEM = "add_item"
REMOVE_ITEM = "remove_item"
BATCH_UPDATE = "batch_update"
ACTIONS = (UPDATE_ITEM, ADD_ITEM, REMOVE_ITEM, BATCH_UPDATE)


class OrderEditError(Exception):
    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def _priced(item: OrderItem) -> OrderItem:
    total = round_money(line_total(item.unit_price, item.quantity, item.bottle_deposit))
    return replace(item, total_price=total)


def _snapshot(items: List[OrderItem]) -> List[Dict[str, Any]]:
    return [
        {
            "product_id": item.product_id,
            "product_name": item.product_name,
            "quantity": item.quantity,
            "total_price": item.total_price,
        }
        for item in items
    ]


# ----------------------------------------------------------------------
# pure helpers
# ----------------------------------------------------------------------

def update_item(items: List[OrderItem], payload: Dict[str, Any]) -> Tuple[List[OrderItem], Dict[str, Any]]:
    item_id = payload.get("item_id")
    if not item_id:
        raise OrderEditError("Item ID is required")

    index = next((i for i, item in enumerate(items) if item.id == str(item_id)), None)
    if index is None:
        raise OrderEditError("Item not found", 404)

    item = items[index]
    quantity = payload.get("quantity")
    quantity = normalize_weight(float(item.quantity if quantity is None else quantity), item.scalable)

    updated = _priced(replace(item, quantity=quantity))
    if item.scalable:
        updated.final_weight = quantity
        updated.final_price = updated.total_price
    else:
        if payload.get("final_weight") is not None:
            updated.final_weight = float(payload["final_weight"])
        if payload.get("final_price") is not None:
            updated.final_price = float(payload["final_price"])

    new_items = list(items)
    new_items[index] = updated

    changes = {
        "item_id": item.id,
        "product_name": item.product_name,
        "old_quantity": item.quantity,
        "new_quantity": updated.quantity,
        "old_total_price": item.total_price,
        "new_total_price": updated.total_price,
    }
    if updated.final_weight is not None:
        changes.update(old_final_weight=item.final_weight, new_final_weight=updated.final_weight)
    if updated.final_price is not None:
        changes.update(old_final_price=item.final_price, new_final_price=updated.final_price)

    return new_items, changes


def add_item(
        items: List[OrderItem],
        product: Product,
        quantity: float,
) -> Tuple[List[OrderItem], Dict[str, Any]]:
    if any(item.product_id == product.id for item in items):
        raise OrderEditError("Product already exists in this order. Use update action instead.")

    quantity = normalize_weight(float(quantity), product.scalable)
    item = _priced(OrderItem(
        product_id=product.id,
        quantity=quantity,
        unit_price=product.price,
        bottle_deposit=product.bottle_deposit,
        product_name=product.name,
        scalable=product.scalable,
        tax_type=product.tax_type,
    ))
    item.final_weight = quantity if product.scalable else None
    item.final_price = item.total_price

    changes = {
        "product_id": product.id,
        "product_name": product.name,
        "quantity": quantity,
        "total_price": item.total_price,
    }
    return list(items) + [item], changes


def remove_item(items: List[OrderItem], payload: Dict[str, Any]) -> Tuple[List[OrderItem], Dict[str, Any]]:
    item_id = payload.get("item_id")
    if not item_id:
        raise OrderEditError("Item ID is required")

    removed = next((item for item in items if item.id == str(item_id)), None)
    if removed is None:
        raise OrderEditError("Item not found", 404)

    if len(items) <= 1:
        raise OrderEditError("Cannot remove the last item from an order")

    changes = {
        "item_id": removed.id,
        "product_name": removed.product_name,
        "quantity": removed.quantity,
        "total_price": removed.total_price,
    }
    return [item for item in items if item is not removed], changes


def batch_items(rows: List[Dict[str, Any]]) -> List[OrderItem]:
    """
    Replacement lines for a batch update. Quantities are normalized and
    line totals recomputed; tax metadata is kept if the row carries it.
    """
    items = []
    for row in rows:
        scalable = bool(row.get("scalable"))
        quantity = normalize_weight(float(row.get("quantity") or 0), scalable)
        item = _priced(OrderItem(
            id=str(row["id"]) if row.get("id") else None,
            product_id=str(row["product_id"]),
            quantity=quantity,
            unit_price=float(row.get("unit_price") or 0),
            bottle_deposit=float(row.get("bottle_deposit", row.get("bottle_price")) or 0),
            product_name=row.get("product_name") or row.get("name") or "",
            scalable=scalable,
            tax_type=row.get("tax_type"),
            final_weight=quantity if scalable else row.get("final_weight"),
        ))
        item.final_price = item.total_price if scalable else row.get("final_price")
        items.append(item)
    return items


def recompute_totals(
        items: List[OrderItem],
        delivery_fee: float,
        tip: float,
        discount: float,
        gst_rate: float = GST_RATE,
        pst_rate: float = PST_RATE,
) -> OrderTotals:
    """
    Totals from the line list alone. Delivery fee, tip and discount are
    carried over from the order as stored.
    """
    subtotal = round_money(sum(item.total_price for item in items))
    taxes = aggregate_taxes(
        ((item.unit_price * item.quantity, item.tax_type) for item in items),
        gst_rate,
        pst_rate,
    )
    total = max(0.0, round_money(subtotal + taxes.total + delivery_fee + tip - discount))
    return OrderTotals(
        subtotal=subtotal,
        gst=taxes.gst,
        pst=taxes.pst,
        tax=taxes.total,
        delivery_fee=delivery_fee,
        discount=discount,
        tip=tip,
        total=total,
    )


def diff_stock(old_items: List[OrderItem], new_items: List[OrderItem]) -> List[StockDelta]:
    """
    Positive quantity_change returns stock, negative consumes it.
    """
    def quantities(items):
        result: Dict[str, float] = {}
        for item in items:
            result[item.product_id] = result.get(item.product_id, 0) + item.quantity
        return result

    before = quantities(old_items)
    after = quantities(new_items)

    deltas = []
    for product_id in list(before) + [p for p in after if p not in before]:
        old_quantity = before.get(product_id, 0)
        new_quantity = after.get(product_id, 0)
        change = round(old_quantity - new_quantity, 2)
        if change:
            deltas.append(StockDelta(product_id, change, old_quantity, new_quantity))
    return deltas


# ----------------------------------------------------------------------
# service
# ----------------------------------------------------------------------

class OrderEditService:
    """
    `order_store`: get_order, replace_order_items, update_order_totals,
    record_edit_history. `catalog`: get_product.
    """

    def __init__(self, order_store, catalog, stock_service, gst_rate: float = GST_RATE, pst_rate: float = PST_RATE):
        self.order_store = order_store
        self.catalog = catalog
        self.stock_service = stock_service
        self.gst_rate = gst_rate
        self.pst_rate = pst_rate

    def _product(self, product_id: str) -> Optional[Product]:
        ok, msg, product = self.catalog.get_product(product_id)
        if not ok:
            logger.warning("Product %s unavailable: %s", product_id, msg)
            return None
        return product

    def _enrich(self, items: List[OrderItem]) -> List[OrderItem]:
        enriched = []
        for item in items:
            if item.tax_type is None:
                product = self._product(item.product_id)
                if product is None:
                    # no tax metadata: the line is charged no tax
                    logger.error("Product not found for ID: %s", item.product_id)
                else:
                    item = replace(
                        item,
                        tax_type=product.tax_type,
                        product_name=item.product_name or product.name,
                    )
            enriched.append(item)
        return enriched

    def _apply_action(
            self,
            items: List[OrderItem],
            action: str,
            payload: Dict[str, Any],
    ) -> Tuple[List[OrderItem], Dict[str, Any]]:
        if action == UPDATE_ITEM:
            return update_item(items, payload)

        if action == ADD_ITEM:
            product_id = payload.get("product_id")
            if not product_id or payload.get("quantity") is None:
                raise OrderEditError("Product ID and quantity are required")
            product = self._product(str(product_id))
            if product is None:
                raise OrderEditError("Product not found", 404)
            return add_item(items, product, payload["quantity"])

        if action == REMOVE_ITEM:
            return remove_item(items, payload)

        rows = payload.get("items")
        if not isinstance(rows, list) or not rows:
            raise OrderEditError("New items array is required")
        new_items = self._enrich(batch_items(rows))
        changes = {
            "items_count": len(new_items),
            "items": _snapshot(new_items),
        }
        return new_items, changes

    def _restore_items(self, order: Order) -> None:
        restored, msg = self.order_store.replace_order_items(order.id, order.items)
        if not restored:
            logger.critical(
                "Could not restore items of order %s, stored lines no longer match totals: %s",
                order.order_number, msg,
            )

    def apply_order_edit(
            self,
            order_id: str,
            action: str,
            payload: Dict[str, Any],
            actor_id: Optional[str] = None,
    ) -> OrderEditResult:
        if action not in ACTIONS:
            raise ValueError(f"Unknown order edit action: {action}")

        if not order_id:
            return OrderEditResult(False, "Order ID is required", 400)

        ok, msg, order = self.order_store.get_order(order_id)
        if not ok:
            status = 404 if msg == "Order not found" else 500
            return OrderEditResult(False, msg, status)

        try:
            new_items, changes = self._apply_action(order.items, action, payload or {})
        except OrderEditError as e:
            return OrderEditResult(False, e.message, e.status)

        edit_type = action.upper()
        totals = recompute_totals(
            new_items,
            order.totals.delivery_fee,
            order.totals.tip,
            order.totals.discount,
            self.gst_rate,
            self.pst_rate,
        )
        deltas = diff_stock(order.items, new_items)

        ok, msg = self.order_store.replace_order_items(order_id, new_items)
        if not ok:
            logger.error("Order %s item update failed: %s", order.order_number, msg)
            self._restore_items(order)
            return OrderEditResult(False, msg, 400, edit_type=edit_type)

        ok, msg = self.order_store.update_order_totals(order_id, totals)
        if not ok:
            logger.error("Order %s totals not updated, restoring items: %s", order.order_number, msg)
            self._restore_items(order)
            return OrderEditResult(False, msg, 400, edit_type=edit_type)

        warnings: List[str] = []

        if deltas:
            stock = self.stock_service.apply_stock_deltas(deltas, actor_id, order.order_number, order_id)
            if not stock.ok:
                logger.error("Order %s edited, stock not fully adjusted: %s", order.order_number, stock.message)
                warnings.append(stock.message)

        ok, msg = self.order_store.record_edit_history({
            "order_id": order_id,
            "edited_by": actor_id,
            "edit_type": edit_type,
            "changes": {**changes, "before": _snapshot(order.items), "after": _snapshot(new_items)},
            "old_total": order.totals.total,
            "new_total": totals.total,
            "old_subtotal": order.totals.subtotal,
            "new_subtotal": totals.subtotal,
        })
        if not ok:
            logger.error("Failed to log edit history for order %s: %s", order.order_number, msg)
            warnings.append(msg)

        logger.info(
            "Order %s %s: total %.2f -> %.2f",
            order.order_number, edit_type, order.totals.total, totals.total,
        )
        return OrderEditResult(
            True,
            "Order updated",
            200,
            totals=totals,
            edit_type=edit_type,
            changes=changes,
            stock_deltas=deltas,
            warnings=warnings,
        )
