import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client, create_client

from domain.models import (
    DeliverySlot,
    Order,
    OrderItem,
    OrderTotals,
    Product,
    PromoCode,
    PromoUsage,
    StockAdjustment,
    StockAlert,
)
from settings import SCHEMA, SUPABASE_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


_client: Optional[Client] = None


def get_client() -> Client:
    """
    Shared Supabase client, created on first use from SUPABASE_URL/SUPABASE_KEY.
    """
    global _client
    if _client is None:
        if not SUPABASE_URL or not SUPABASE_KEY:
            raise RuntimeError("Set SUPABASE_URL and SUPABASE_KEY in .env or environment variables")
        _client = create_client(SUPABASE_URL, SUPABASE_KEY)
    return _client


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _num(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    return float(value)


class _SupabaseStore:
    def __init__(self, client: Optional[Client] = None, schema: str = SCHEMA):
        self.client = client if client is not None else get_client()
        self.schema = schema

    def _table(self, table_name: str):
        return self.client.schema(self.schema).table(table_name)


class SupabaseCatalog(_SupabaseStore):

    def get_product(self, product_id: str) -> Tuple[bool, str, Optional[Product]]:
        try:
            resp = (
                self._table("products")
                .select("id, name, price, bottle_price, scalable, tax_type, stock_quantity, low_stock_threshold, unit")
                .eq("id", product_id)
                .limit(1)
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Product lookup failed: {resp.error}", None

            if not resp.data:
                return False, "Product not found", None

            return True, "Fetched", Product.from_row(resp.data[0])

        except Exception as e:
            return False, str(e), None

    def search_products(
            self,
            query: str = "",
            limit: int = 50,
            in_stock_only: bool = True,
    ) -> Tuple[bool, str, List[Product]]:
        """
        Products whose name contains `query`, by name. Sold-out products
        are left out unless `in_stock_only` is False.
        """
        try:
            req = (
                self._table("products")
                .select("id, name, price, bottle_price, scalable, tax_type, stock_quantity, low_stock_threshold, unit")
            )
            if in_stock_only:
                req = req.gt("stock_quantity", 0)
            if query.strip():
                req = req.ilike("name", f"%{escape_like(query.strip())}%")

            resp = req.order("name").limit(limit).execute()

            if getattr(resp, "error", None):
                return False, f"Product search failed: {resp.error}", []

            return True, "Fetched", [Product.from_row(row) for row in resp.data or []]

        except Exception as e:
            return False, str(e), []

    def list_products(self, product_ids: List[str]) -> Tuple[bool, str, Dict[str, Product]]:
        """
        Returns (ok, message, {product_id: Product}).
        """
        if not product_ids:
            return True, "No products requested", {}

        try:
            resp = (
                self._table("products")
                .select("*")
                .in_("id", list(product_ids))
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Product fetch failed: {resp.error}", {}

            products = {}
            for row in resp.data or []:
                product = Product.from_row(row)
                products[product.id] = product
            return True, "Fetched", products

        except Exception as e:
            return False, str(e), {}


class SupabasePromoStore(_SupabaseStore):

    def find_promo_by_code(self, code: str) -> Tuple[bool, str, Optional[PromoCode]]:
        """
        Case-insensitive exact match on `code`.
        Returns (ok, message, promo_or_none); a missing code is ok=True, None.
        """
        code = code.strip()
        try:
            resp = (
                self._table("promo_codes")
                .select("*")
                .ilike("code", escape_like(code))
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Promo lookup failed: {resp.error}", None

            matches = [row for row in resp.data or [] if str(row.get("code", "")).upper() == code.upper()]
            if not matches:
                return True, "Promo code not found", None

            return True, "Fetched", PromoCode.from_row(matches[0])

        except Exception as e:
            return False, str(e), None

    def count_user_usage(self, promo_id: str, user_id: str) -> Tuple[bool, str, int]:
        try:
            resp = (
                self._table("promo_code_usage")
                .select("id")
                .eq("promo_code_id", promo_id)
                .eq("user_id", user_id)
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Usage count failed: {resp.error}", 0

            return True, "Counted", len(resp.data or [])

        except Exception as e:
            return False, str(e), 0

    def record_usage(self, usage: PromoUsage) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
        try:
            resp = (
                self._table("promo_code_usage")
                .insert({
                    "promo_code_id": usage.promo_code_id,
                    "user_id": usage.user_id,
                    "order_id": usage.order_id,
                    "discount_amount": usage.discount_amount,
                    "used_at": usage.used_at or _now_iso(),
                })
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Insert usage failed: {resp.error}", None

            inserted = resp.data[0] if resp.data else None
            return True, "Inserted", inserted

        except Exception as e:
            return False, str(e), None

    def increment_usage(self, promo_id: str) -> Tuple[bool, str, Optional[int]]:
        """
        current_uses += 1 as a read followed by a write (not atomic).
        """
        try:
            current = (
                self._table("promo_codes")
                .select("current_uses")
                .eq("id", promo_id)
                .limit(1)
                .execute()
            )

            if getattr(current, "error", None):
                return False, f"Usage read failed: {current.error}", None

            if not current.data:
                return False, "Promo code not found", None

            new_value = int(current.data[0].get("current_uses") or 0) + 1

            resp = (
                self._table("promo_codes")
                .update({"current_uses": new_value})
                .eq("id", promo_id)
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Usage update failed: {resp.error}", None

            return True, "Incremented", new_value

        except Exception as e:
            return False, str(e), None

    def list_public_promos(self, limit: int = 10) -> Tuple[bool, str, List[PromoCode]]:
        try:
            resp = (
                self._table("promo_codes")
                .select("id, code, description, discount_type, discount_value, is_public, is_active, start_date, end_date")
                .eq("is_active", True)
                .eq("is_public", True)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Fetch failed: {resp.error}", []

            return True, "Fetched", [PromoCode.from_row(row) for row in resp.data or []]

        except Exception as e:
            return False, str(e), []

    def list_usage(self, promo_id: str) -> Tuple[bool, str, List[Dict[str, Any]]]:
        try:
            resp = (
                self._table("promo_code_usage")
                .select("*")
                .eq("promo_code_id", promo_id)
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Fetch failed: {resp.error}", []

            return True, "Fetched", list(resp.data or [])

        except Exception as e:
            return False, str(e), []


class SupabaseOrderStore(_SupabaseStore):

    def create_order(
            self,
            order_row: Dict[str, Any],
            items: List[OrderItem],
    ) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
        """
        Insert the order, then its items. If the items cannot be inserted the
        order row is deleted again so no half-written order remains.
        Returns (ok, message, inserted_order_row).
        """
        try:
            resp = self._table("orders").insert(order_row).execute()

            if getattr(resp, "error", None):
                return False, f"Failed to create order: {resp.error}", None

            if not resp.data:
                return False, "Failed to create order: no data returned", None

            order = resp.data[0]
        except Exception as e:
            return False, f"Failed to create order: {e}", None

        try:
            items_resp = (
                self._table("order_items")
                .insert([item.to_row(order["id"]) for item in items])
                .execute()
            )
            items_error = getattr(items_resp, "error", None)
        except Exception as e:
            items_error = e

        if items_error:
            logger.error("Order items insert failed for %s: %s", order["id"], items_error)
            try:
                self._table("orders").delete().eq("id", order["id"]).execute()
            except Exception as e:
                logger.error("Could not remove order %s after item failure: %s", order["id"], e)
            return False, f"Failed to create order items: {items_error}", None

        return True, "Order created", order

    def get_order(self, order_id: str) -> Tuple[bool, str, Optional[Order]]:
        """
        Order with its items, each item enriched with the product's
        name / scalable / tax_type.
        """
        try:
            order_resp = (
                self._table("orders")
                .select("*")
                .eq("id", order_id)
                .limit(1)
                .execute()
            )

            if getattr(order_resp, "error", None):
                return False, f"Order lookup failed: {order_resp.error}", None

            if not order_resp.data:
                return False, "Order not found", None

            row = order_resp.data[0]

            items_resp = (
                self._table("order_items")
                .select("*")
                .eq("order_id", order_id)
                .execute()
            )

            if getattr(items_resp, "error", None):
                return False, f"Order items lookup failed: {items_resp.error}", None

            item_rows = items_resp.data or []
            product_ids = list({str(r["product_id"]) for r in item_rows})
            products: Dict[str, Dict[str, Any]] = {}
            if product_ids:
                products_resp = (
                    self._table("products")
                    .select("id, name, scalable, tax_type, price, bottle_price")
                    .in_("id", product_ids)
                    .execute()
                )
                if getattr(products_resp, "error", None):
                    return False, f"Product lookup failed: {products_resp.error}", None
                products = {str(p["id"]): p for p in products_resp.data or []}

            items = []
            for r in item_rows:
                product = products.get(str(r["product_id"]), {})
                items.append(OrderItem(
                    id=str(r["id"]) if r.get("id") is not None else None,
                    product_id=str(r["product_id"]),
                    quantity=_num(r.get("quantity")),
                    unit_price=_num(r.get("unit_price")),
                    bottle_deposit=_num(r.get("bottle_price")),
                    total_price=_num(r.get("total_price")),
                    final_weight=r.get("final_weight"),
                    final_price=r.get("final_price"),
                    product_name=product.get("name") or "",
                    scalable=bool(product.get("scalable")),
                    tax_type=product.get("tax_type"),
                ))

            totals = OrderTotals(
                subtotal=_num(row.get("subtotal")),
                gst=_num(row.get("gst")),
                pst=_num(row.get("pst")),
                tax=_num(row.get("tax")),
                delivery_fee=_num(row.get("delivery_fee")),
                discount=_num(row.get("discount")),
                tip=_num(row.get("tip_amount")),
                total=_num(row.get("total")),
            )

            slot = None
            if row.get("delivery_date") and row.get("delivery_time_slot"):
                slot = DeliverySlot(
                    date=str(row["delivery_date"]),
                    time_slot=row["delivery_time_slot"],
                    display_time=row["delivery_time_slot"],
                )

            return True, "Fetched", Order(
                id=str(row["id"]),
                order_number=row.get("order_number") or "",
                totals=totals,
                items=items,
                customer_id=row.get("customer_id"),
                status=row.get("status") or "pending",
                payment_status=row.get("payment_status") or "pending",
                customer_name=row.get("customer_name") or "",
                customer_phone=row.get("customer_phone") or "",
                customer_email=row.get("customer_email") or "",
                delivery_address=row.get("delivery_address") or "",
                delivery_instructions=row.get("delivery_instructions") or "",
                delivery_slot=slot,
            )

        except Exception as e:
            return False, str(e), None

    def replace_order_items(self, order_id: str, items: List[OrderItem]) -> Tuple[bool, str]:
        """
        Delete all items of the order, then insert `items`.
        """
        try:
            delete_resp = self._table("order_items").delete().eq("order_id", order_id).execute()

            if getattr(delete_resp, "error", None):
                return False, f"Failed to update items: {delete_resp.error}"

            if items:
                insert_resp = (
                    self._table("order_items")
                    .insert([item.to_row(order_id) for item in items])
                    .execute()
                )

                if getattr(insert_resp, "error", None):
                    return False, f"Failed to insert items: {insert_resp.error}"

            return True, "Items replaced"

        except Exception as e:
            return False, str(e)

    def update_order_totals(self, order_id: str, totals: OrderTotals) -> Tuple[bool, str]:
        try:
            resp = (
                self._table("orders")
                .update({
                    "subtotal": totals.subtotal,
                    "gst": totals.gst,
                    "pst": totals.pst,
                    "tax": totals.tax,
                    "total": totals.total,
                    "updated_at": _now_iso(),
                })
                .eq("id", order_id)
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Failed to update order: {resp.error}"

            return True, "Order updated"

        except Exception as e:
            return False, str(e)

    def record_edit_history(self, entry: Dict[str, Any]) -> Tuple[bool, str]:
        try:
            now = _now_iso()
            resp = (
                self._table("order_edit_history")
                .insert({**entry, "created_at": now, "edited_at": now})
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Failed to log edit history: {resp.error}"

            return True, "Logged"

        except Exception as e:
            return False, str(e)

    def update_payment_status(
            self,
            order_id: str,
            payment_status: str,
            status: Optional[str] = None,
            extra: Optional[Dict[str, Any]] = None,
    ) -> Tuple[bool, str]:
        payload: Dict[str, Any] = {"payment_status": payment_status, "updated_at": _now_iso()}
        if status is not None:
            payload["status"] = status
        if extra:
            payload.update(extra)

        try:
            resp = self._table("orders").update(payload).eq("id", order_id).execute()

            if getattr(resp, "error", None):
                return False, f"Failed to update payment status: {resp.error}"

            return True, "Payment status updated"

        except Exception as e:
            return False, str(e)


class SupabaseInventoryStore(_SupabaseStore):

    def get_stock(self, product_id: str) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
        """
        Returns (ok, message, {"stock_quantity", "low_stock_threshold", "name"}).
        """
        try:
            resp = (
                self._table("products")
                .select("stock_quantity, low_stock_threshold, name")
                .eq("id", product_id)
                .limit(1)
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Fetch stock failed: {resp.error}", None

            if not resp.data:
                return False, f"Product not found: {product_id}", None

            return True, "Fetched", resp.data[0]

        except Exception as e:
            return False, str(e), None

    def set_stock(self, product_id: str, new_value: float) -> Tuple[bool, str]:
        try:
            resp = (
                self._table("products")
                .update({"stock_quantity": new_value})
                .eq("id", product_id)
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Failed to update stock for product {product_id}: {resp.error}"

            return True, "Stock updated"

        except Exception as e:
            return False, str(e)

    def record_adjustments(self, records: List[StockAdjustment]) -> Tuple[bool, str]:
        if not records:
            return True, "Nothing to log"

        try:
            resp = (
                self._table("stock_adjustments")
                .insert([record.to_row() for record in records])
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Failed to log stock adjustments: {resp.error}"

            return True, "Logged"

        except Exception as e:
            return False, str(e)

    def record_alerts(self, alerts: List[StockAlert]) -> Tuple[bool, str]:
        if not alerts:
            return True, "No alerts"

        try:
            resp = (
                self._table("stock_alerts")
                .insert([
                    {
                        "product_id": alert.product_id,
                        "alert_type": alert.alert_type,
                        "current_stock": alert.current_stock,
                        "threshold": alert.threshold,
                    }
                    for alert in alerts
                ])
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Failed to create stock alerts: {resp.error}"

            return True, "Alerts created"

        except Exception as e:
            return False, str(e)


class SupabaseCartMirror(_SupabaseStore):
    """
    Server-side copy of a user's cart (`carts`, unique on user_id+product_id).
    """

    def fetch(self, user_id: str) -> Tuple[bool, str, List[Dict[str, Any]]]:
        try:
            resp = (
                self._table("carts")
                .select("product_id, quantity")
                .eq("user_id", user_id)
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Cart fetch failed: {resp.error}", []

            return True, "Fetched", list(resp.data or [])

        except Exception as e:
            return False, str(e), []

    def upsert_item(self, user_id: str, product_id: str, quantity: float) -> Tuple[bool, str]:
        try:
            resp = (
                self._table("carts")
                .upsert(
                    {"user_id": user_id, "product_id": product_id, "quantity": quantity},
                    on_conflict="user_id,product_id",
                )
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Cart update failed: {resp.error}"

            return True, "Upserted"

        except Exception as e:
            return False, str(e)

    def remove_item(self, user_id: str, product_id: str) -> Tuple[bool, str]:
        try:
            resp = (
                self._table("carts")
                .delete()
                .eq("user_id", user_id)
                .eq("product_id", product_id)
                .execute()
            )

            if getattr(resp, "error", None):
                return False, f"Cart remove failed: {resp.error}"

            return True, "Removed"

        except Exception as e:
            return False, str(e)

    def clear(self, user_id: str) -> Tuple[bool, str]:
        try:
            resp = self._table("carts").delete().eq("user_id", user_id).execute()

            if getattr(resp, "error", None):
                return False, f"Cart clear failed: {resp.error}"

            return True, "Cleared"

        except Exception as e:
            return False, str(e)
