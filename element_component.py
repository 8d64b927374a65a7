from typing import Any, Callable, Dict, Iterable, Tuple

import pandas as pd
import streamlit as st

from domain.models import LineItem, OrderItem
from utils.formatting import format_cad, format_quantity


@st.dialog("Confirm")
def confirmation_dialog(value: Dict[str, Any], on_confirm: Callable[[], Tuple[bool, str]], state_name: str):
    """
    Show `value` as a Key/Value table and run `on_confirm` on "Yes".
    `on_confirm` returns (ok, message); ok is stored in st.session_state[state_name].
    """
    df = pd.DataFrame(list(value.items()), columns=["Key", "Value"])
    df["Value"] = df["Value"].astype("string")
    st.dataframe(df, hide_index=True)

    col_yes, col_no = st.columns(2)

    with col_yes:
        if st.button("Yes", type="primary", key="confirm_yes"):
            status, msg = on_confirm()
            st.session_state[state_name] = status

            if not status:
                st.error(msg)
            else:
                st.rerun()
    with col_no:
        if st.button("No"):
            st.rerun()


def cart_items_frame(items: Iterable[LineItem]) -> pd.DataFrame:
    rows = [
        {
            "Item": item.name,
            "Qty": format_quantity(item.quantity, item.unit),
            "Price": format_cad(item.unit_price),
            "Deposit": format_cad(item.bottle_deposit) if item.bottle_deposit else "-",
            "Tax": item.tax_type.upper().replace("_", "+"),
        }
        for item in items
    ]
    return pd.DataFrame(rows, columns=["Item", "Qty", "Price", "Deposit", "Tax"])


def order_items_frame(items: Iterable[OrderItem]) -> pd.DataFrame:
    rows = [
        {
            "Item ID": item.id,
            "Product": item.product_name or item.product_id,
            "Qty": item.quantity,
            "Unit Price": item.unit_price,
            "Line Total": item.total_price,
            "Tax": (item.tax_type or "none").upper(),
        }
        for item in items
    ]
    return pd.DataFrame(rows, columns=["Item ID", "Product", "Qty", "Unit Price", "Line Total", "Tax"])


def totals_frame(summary: Dict[str, float]) -> pd.DataFrame:
    labels = [
        ("subtotal", "Subtotal"),
        ("gst", "GST"),
        ("pst", "PST"),
        ("delivery_fee", "Delivery"),
        ("discount", "Discount"),
        ("tip", "Tip"),
        ("total", "Total"),
    ]
    return pd.DataFrame(
        [(label, format_cad(summary[key])) for key, label in labels if key in summary],
        columns=["", "Amount"],
    )
