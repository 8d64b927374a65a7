# domain/models.py

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from settings import DELIVERY_ESTIMATE, DELIVERY_FEE

TAX_NONE = "none"
TAX_GST = "gst"
TAX_GST_PST = "gst_pst"
TAX_TYPES = (TAX_NONE, TAX_GST, TAX_GST_PST)

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FIXED = "fixed"
DISCOUNT_FREE_DELIVERY = "free_delivery"


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass
class Product:
    """
    Catalog entry as the pricing engine sees it (one row of `products`).
    """
    id: str
    name: str
    price: float
    bottle_deposit: float = 0.0
    scalable: bool = False
    tax_type: str = TAX_NONE
    stock_quantity: float = 0
    low_stock_threshold: Optional[int] = None
    unit: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Product":
        return cls(
            id=str(row["id"]),
            name=row.get("name") or "",
            price=_to_float(row.get("price")),
            bottle_deposit=_to_float(row.get("bottle_price")),
            scalable=bool(row.get("scalable")),
            tax_type=row.get("tax_type") or TAX_NONE,
            stock_quantity=_to_float(row.get("stock_quantity")),
            low_stock_threshold=row.get("low_stock_threshold"),
            unit=row.get("unit") or "",
        )


@dataclass
class LineItem:
    """
    One cart line. `quantity` is a multiple of 0.25 for scalable products
    and a whole number otherwise.
    """
    product_id: str
    name: str
    unit_price: float
    quantity: float
    tax_type: str = TAX_NONE
    scalable: bool = False
    bottle_deposit: float = 0.0
    stock_available: float = 0
    unit: str = ""

    @classmethod
    def from_product(cls, product: Product, quantity: float) -> "LineItem":
        return cls(
            product_id=product.id,
            name=product.name,
            unit_price=product.price,
            quantity=quantity,
            tax_type=product.tax_type,
            scalable=product.scalable,
            bottle_deposit=product.bottle_deposit,
            stock_available=product.stock_quantity,
            unit=product.unit,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineItem":
        return cls(
            product_id=str(data["product_id"]),
            name=data.get("name") or "",
            unit_price=_to_float(data.get("unit_price")),
            quantity=_to_float(data.get("quantity")),
            tax_type=data.get("tax_type") or TAX_NONE,
            scalable=bool(data.get("scalable", False)),
            bottle_deposit=_to_float(data.get("bottle_deposit")),
            stock_available=_to_float(data.get("stock_available")),
            unit=data.get("unit") or "",
        )


@dataclass
class DeliveryInfo:
    postal_code: str = ""
    fee: float = DELIVERY_FEE
    estimated_time: str = DELIVERY_ESTIMATE


@dataclass
class PromoCode:
    code: str
    discount_type: Optional[str]
    discount_value: Any
    id: Optional[str] = None
    description: Optional[str] = None
    min_order_amount: Optional[float] = None
    max_uses: Optional[int] = None
    current_uses: Optional[int] = None
    uses_per_user_limit: Optional[int] = None
    is_active: Optional[bool] = None
    is_public: Optional[bool] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    expires_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PromoCode":
        known = cls.__dataclass_fields__.keys()
        data = {k: v for k, v in row.items() if k in known}
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PromoUsage:
    promo_code_id: str
    discount_amount: float
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    used_at: Optional[str] = None


@dataclass
class PromoValidation:
    ok: bool
    reason: str
    message: str
    promo: Optional[PromoCode] = None
    discount: float = 0.0


@dataclass
class CustomerInfo:
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""


@dataclass
class AuthUser:
    """
    The authenticated identity; `metadata` mirrors Supabase `user_metadata`.
    """
    id: str
    email: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DeliverySlot:
    date: str
    time_slot: str
    display_time: str = ""


@dataclass
class OrderTotals:
    subtotal: float
    gst: float
    pst: float
    tax: float
    delivery_fee: float
    discount: float
    tip: float
    total: float

    def to_row(self) -> Dict[str, float]:
        return {
            "subtotal": self.subtotal,
            "gst": self.gst,
            "pst": self.pst,
            "tax": self.tax,
            "delivery_fee": self.delivery_fee,
            "discount": self.discount,
            "tip_amount": self.tip,
            "total": self.total,
        }


@dataclass
class OrderItem:
    """
    A persisted order line (`order_items`), enriched with the product fields
    needed to re-derive its tax.
    """
    product_id: str
    quantity: float
    unit_price: float
    bottle_deposit: float = 0.0
    total_price: float = 0.0
    final_weight: Optional[float] = None
    final_price: Optional[float] = None
    id: Optional[str] = None
    product_name: str = ""
    scalable: bool = False
    tax_type: Optional[str] = None

    def to_row(self, order_id: str) -> Dict[str, Any]:
        return {
            "order_id": order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "bottle_price": self.bottle_deposit,
            "total_price": self.total_price,
            "final_weight": self.final_weight,
            "final_price": self.final_price,
        }


@dataclass
class Order:
    id: str
    order_number: str
    totals: OrderTotals
    items: List[OrderItem]
    customer_id: Optional[str] = None
    status: str = "pending"
    payment_status: str = "pending"
    customer_name: str = ""
    customer_phone: str = ""
    customer_email: str = ""
    delivery_address: str = ""
    delivery_instructions: str = ""
    delivery_slot: Optional[DeliverySlot] = None


@dataclass
class CheckoutResult:
    ok: bool
    message: str
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    total: Optional[float] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class StockDelta:
    product_id: str
    quantity_change: float
    old_quantity: float
    new_quantity: float


@dataclass
class StockAdjustment:
    """
    Append-only audit row of one stock change.
    """
    product_id: str
    adjustment_type: str
    quantity_change: float
    previous_stock: float
    new_stock: float
    reason: str
    adjusted_by: Optional[str] = None
    order_id: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        if row["order_id"] is None:
            row.pop("order_id")
        return row


@dataclass
class StockAlert:
    product_id: str
    alert_type: str  # "low_stock" | "out_of_stock"
    current_stock: float
    threshold: int


@dataclass
class StockUpdateResult:
    ok: bool
    message: str
    adjustments: List[StockAdjustment] = field(default_factory=list)
    alerts: List[StockAlert] = field(default_factory=list)


@dataclass
class OrderEditResult:
    ok: bool
    message: str
    status: int = 200
    totals: Optional[OrderTotals] = None
    edit_type: Optional[str] = None
    changes: Dict[str, Any] = field(default_factory=dict)
    stock_deltas: List[StockDelta] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
