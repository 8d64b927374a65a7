import pandas as pd
import streamlit as st

from app_context import get_services
from element_component import confirmation_dialog

st.set_page_config(
    page_title="Stock Adjustment",
    page_icon="📦"
)

st.sidebar.header("📦 Stock Adjustment")

services = get_services()

# -------------------------------------------------------------------
# Session state defaults
# -------------------------------------------------------------------

defaults = {
    "stock_update_state": False,
    "stock_update_result": None,
    "stock_product_id": "",
    "stock_admin_id": "",
}

for k, v in defaults.items():
    st.session_state.setdefault(k, v)

# -------------------------------------------------------------------
# Product lookup
# -------------------------------------------------------------------

st.subheader("Stock Adjustment")
st.text_input("Admin user ID", key="stock_admin_id")

query = st.text_input("Search products")
ok, msg, products = services.catalog.search_products(query, in_stock_only=False)
if not ok:
    st.error("Could not load products")
    st.stop()

if products:
    df = pd.DataFrame(
        [(p.id, p.name, p.stock_quantity, p.low_stock_threshold) for p in products],
        columns=["ID", "Product", "Stock", "Low stock at"],
    )
    st.dataframe(df, width='stretch', hide_index=True)

product_by_label = {f"{p.name} ({p.id})": p for p in products}

# -------------------------------------------------------------------
# Form
# -------------------------------------------------------------------

with st.form("stock_adjustment_form"):
    label = st.selectbox("Product", list(product_by_label.keys()), index=None, placeholder="Pick a product")
    new_stock = st.number_input("New stock level", min_value=0.0, step=1.0)
    reason = st.text_input("Reason", placeholder="Manual stock adjustment")

    if st.form_submit_button("Submit"):
        st.session_state["stock_update_state"] = False
        if label is None:
            st.error("Pick a product first")
        else:
            product = product_by_label[label]

            def _apply():
                result = services.stock.manual_stock_adjustment(
                    [{"product_id": product.id, "new_stock": new_stock}],
                    st.session_state["stock_admin_id"] or None,
                    reason or None,
                )
                st.session_state["stock_update_result"] = result
                return result.ok, result.message

            confirmation_dialog(
                {
                    "Product": product.name,
                    "Current stock": product.stock_quantity,
                    "New stock": new_stock,
                    "Reason": reason or "Manual stock adjustment",
                },
                _apply,
                "stock_update_state",
            )

    if st.session_state["stock_update_state"]:
        result = st.session_state["stock_update_result"]
        st.success(result.message)
        for alert in result.alerts:
            st.warning(f"{alert.alert_type.replace('_', ' ')}: {alert.product_id} at {alert.current_stock:g}")
