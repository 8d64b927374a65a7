import streamlit as st

from app_context import get_services
from element_component import confirmation_dialog, order_items_frame, totals_frame
from services.order_edit_service import ADD_ITEM, REMOVE_ITEM, UPDATE_ITEM
from services.packing_slip_service import build_packing_slip

st.set_page_config(
    page_title="Edit Order",
    page_icon="📝"
)

st.sidebar.header("📝 Edit Order")

services = get_services()

# -------------------------------------------------------------------
# Session state defaults
# -------------------------------------------------------------------

defaults = {
    "edit_order_id": "",
    "order_edit_state": False,
    "order_edit_result": None,
    "admin_id": "",
}

for k, v in defaults.items():
    st.session_state.setdefault(k, v)

# -------------------------------------------------------------------
# Load order
# -------------------------------------------------------------------

st.subheader("Edit Order")
st.text_input("Admin user ID", key="admin_id")
st.text_input("Order ID", key="edit_order_id")

order_id = st.session_state["edit_order_id"].strip()
if not order_id:
    st.stop()

ok, msg, order = services.order_store.get_order(order_id)
if not ok:
    st.error(msg)
    st.stop()

st.markdown(f"**Order #{order.order_number}** · {order.status} · payment {order.payment_status}")
st.dataframe(order_items_frame(order.items), hide_index=True)
st.dataframe(totals_frame(vars(order.totals)), hide_index=True)

if st.session_state["order_edit_state"]:
    result = st.session_state["order_edit_result"]
    if result is not None:
        st.success(f"{result.edit_type}: new total {result.totals.total:.2f}")
        for warning in result.warnings:
            st.warning(warning)
    st.session_state["order_edit_state"] = False


def run_edit(action, payload):
    def _run():
        result = services.order_edits.apply_order_edit(
            order_id, action, payload, st.session_state["admin_id"] or None,
        )
        st.session_state["order_edit_result"] = result
        return result.ok, result.message
    return _run


item_labels = {f"{item.product_name or item.product_id} ({item.id})": item for item in order.items}

# -------------------------------------------------------------------
# Update / remove a line
# -------------------------------------------------------------------

with st.form("update_item_form"):
    st.subheader("Update Item")
    label = st.selectbox("Item", list(item_labels.keys()), index=None, placeholder="Pick an item")
    quantity = st.number_input("Quantity / weight", min_value=0.01, step=0.25, value=1.0)

    col_update, col_remove = st.columns(2)
    with col_update:
        update_clicked = st.form_submit_button("Update")
    with col_remove:
        remove_clicked = st.form_submit_button("Remove")

    if update_clicked or remove_clicked:
        if label is None:
            st.error("Pick an item first")
        else:
            item = item_labels[label]
            if update_clicked:
                payload = {"item_id": item.id, "quantity": quantity}
                confirmation_dialog(
                    {"Item": item.product_name, "Old quantity": item.quantity, "New quantity": quantity},
                    run_edit(UPDATE_ITEM, payload),
                    "order_edit_state",
                )
            else:
                confirmation_dialog(
                    {"Remove item": item.product_name, "Quantity": item.quantity},
                    run_edit(REMOVE_ITEM, {"item_id": item.id}),
                    "order_edit_state",
                )

# -------------------------------------------------------------------
# Add a product
# -------------------------------------------------------------------

with st.form("add_item_form"):
    st.subheader("Add Item")
    product_id = st.text_input("Product ID")
    add_quantity = st.number_input("Quantity", min_value=0.01, step=1.0, value=1.0)

    if st.form_submit_button("Add"):
        if not product_id.strip():
            st.error("Product ID is required")
        else:
            confirmation_dialog(
                {"Product": product_id.strip(), "Quantity": add_quantity},
                run_edit(ADD_ITEM, {"product_id": product_id.strip(), "quantity": add_quantity}),
                "order_edit_state",
            )

# -------------------------------------------------------------------
# Packing slip
# -------------------------------------------------------------------

st.subheader("Packing Slip")
slip = build_packing_slip(order)
st.download_button(
    "Download packing slip",
    data=slip,
    file_name=f"packing-slip-{order.order_number}.docx",
    mime="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)
