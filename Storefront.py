import logging
from datetime import date, timedelta

import streamlit as st

from app_context import (
    get_cart,
    get_checkout_state,
    get_current_user,
    get_services,
    save_checkout_state,
    set_current_user,
)
from domain.models import AuthUser, CustomerInfo, DeliverySlot
from element_component import cart_items_frame, totals_frame
from settings import LOG_LEVEL
from utils.formatting import format_cad
from utils.postal_code import DELIVERY_WINDOWS, next_delivery_slot, validate_postal_code

logging.basicConfig(level=LOG_LEVEL)

st.set_page_config(
    page_title="Grocery Storefront",
    page_icon="🛒"
)

st.sidebar.header("🛒 Storefront")

with st.sidebar.form("account_form"):
    signed_in = get_current_user()
    account_id = st.text_input("Customer ID", value=signed_in.id if signed_in else "")
    account_email = st.text_input("Account email", value=(signed_in.email or "") if signed_in else "")
    if st.form_submit_button("Sign in"):
        set_current_user(AuthUser(id=account_id.strip(), email=account_email.strip()) if account_id.strip() else None)

services = get_services()
user = get_current_user()
cart = get_cart(user)
checkout_state = get_checkout_state()

st.session_state.setdefault("last_order", None)

# -------------------------------------------------------------------
# Delivery area
# -------------------------------------------------------------------

st.subheader("Delivery")
postal_input = st.text_input("Postal code", value=cart.delivery_info.postal_code)
if st.button("Check postal code"):
    result = validate_postal_code(postal_input)
    if not result.is_valid:
        st.error(result.message)
    elif not result.is_lower_mainland:
        st.warning(result.message)
    else:
        cart.update_delivery_info(result.normalized)
        st.success(result.message)

slot = next_delivery_slot()
st.caption(f"Next delivery: {slot.date}, {slot.time_slot} · flat fee {format_cad(cart.delivery_fee)}")

st.divider()

# -------------------------------------------------------------------
# Products
# -------------------------------------------------------------------

st.subheader("Products")
query = st.text_input("Search products", placeholder="e.g. apples")
ok, msg, products = services.catalog.search_products(query)
if not ok:
    st.error("Could not load products")
elif not products:
    st.info("No products found.")

for product in products:
    col_name, col_qty, col_add = st.columns([3, 1.5, 1])
    with col_name:
        st.markdown(f"**{product.name}** · {format_cad(product.price)}{' / lb' if product.scalable else ''}")
        st.caption(f"In stock: {product.stock_quantity:g}")
    with col_qty:
        qty = st.number_input(
            "Qty",
            min_value=0.25 if product.scalable else 1.0,
            step=0.25 if product.scalable else 1.0,
            key=f"qty_{product.id}",
            label_visibility="collapsed",
        )
    with col_add:
        if st.button("Add", key=f"add_{product.id}"):
            if cart.add_item(product, qty):
                st.toast(f"Added {product.name}")
            else:
                st.error(f"Only {product.stock_quantity:g} of {product.name} in stock")

st.divider()

# -------------------------------------------------------------------
# Cart
# -------------------------------------------------------------------

st.subheader("Cart")

if cart.is_empty:
    st.info("Your cart is empty.")
else:
    st.dataframe(cart_items_frame(cart.items), hide_index=True)

    for item in cart.items:
        col_name, col_qty, col_remove = st.columns([3, 1.5, 1])
        with col_name:
            st.write(item.name)
        with col_qty:
            new_qty = st.number_input(
                "Qty",
                value=float(item.quantity),
                min_value=0.0,
                step=0.25 if item.scalable else 1.0,
                key=f"cart_qty_{item.product_id}",
                label_visibility="collapsed",
            )
            if new_qty != item.quantity and not cart.update_quantity(item.product_id, new_qty):
                st.error(f"Only {item.stock_available:g} available")
        with col_remove:
            if st.button("Remove", key=f"remove_{item.product_id}"):
                cart.remove_item(item.product_id)
                st.rerun()

    # promo
    if cart.applied_promo:
        st.success(f"Promo {cart.applied_promo.code} applied: -{format_cad(cart.discount)}")
        if st.button("Remove promo"):
            cart.remove_promo_code()
            st.rerun()
    else:
        code = st.text_input("Promo code")
        if st.button("Apply"):
            validation = services.promos.validate(code, cart.subtotal, delivery_fee=cart.delivery_fee)
            if not validation.ok:
                st.error(validation.message)
            else:
                applied, message = cart.apply_promo_code(validation.promo)
                (st.success if applied else st.warning)(message)

        suggestions = services.promos.available_promos()
        if suggestions:
            st.caption("Available codes: " + ", ".join(
                f"{p.code} ({p.description or p.discount_type})" for p in suggestions
            ))

    st.dataframe(totals_frame({**cart.summary(), "tip": checkout_state.tip_amount}), hide_index=True)

st.divider()

# -------------------------------------------------------------------
# Checkout
# -------------------------------------------------------------------

with st.form("checkout_form", enter_to_submit=False):
    st.subheader("Checkout")
    form = checkout_state.form

    email = st.text_input("Email", value=form["email"])
    first_name = st.text_input("First name", value=form["first_name"])
    last_name = st.text_input("Last name", value=form["last_name"])
    phone = st.text_input("Phone", value=form["phone"])
    address = st.text_input("Address", value=form["address"])
    instructions = st.text_area("Delivery instructions", value=form["delivery_instructions"])

    slot_date = st.date_input("Delivery date", value=date.today(), min_value=date.today(),
                              max_value=date.today() + timedelta(days=14))
    window_labels = [label for label, _ in DELIVERY_WINDOWS]
    window = st.selectbox("Delivery window", window_labels, index=None, placeholder="Pick a window")
    tip = st.number_input("Tip", min_value=0.0, step=1.0, value=float(checkout_state.tip_amount))

    if st.form_submit_button("Place order"):
        form.update(email=email, first_name=first_name, last_name=last_name, phone=phone,
                    address=address, delivery_instructions=instructions)
        checkout_state.tip_amount = tip
        checkout_state.delivery_slot = (
            DeliverySlot(date=slot_date.isoformat(), time_slot=window, display_time=window) if window else None
        )
        save_checkout_state(checkout_state)

        result = services.checkout.checkout(
            cart,
            CustomerInfo(email=email, first_name=first_name, last_name=last_name, phone=phone),
            checkout_state.delivery_slot,
            tip_amount=tip,
            delivery_address=address,
            delivery_instructions=instructions,
            user=user,
        )
        if not result.ok:
            st.error(result.message)
        else:
            st.session_state["last_order"] = result
            st.session_state.pop("payment_url", None)
            st.session_state.pop("checkout_state", None)
            for warning in result.warnings:
                st.warning(warning)

last_order = st.session_state["last_order"]
if last_order:
    st.success(f"Order {last_order.order_number} placed. Total {format_cad(last_order.total)}")
    if not st.session_state.get("payment_url"):
        ok, msg, url = services.payments.create_checkout_session(
            last_order.order_id,
            last_order.order_number,
            last_order.total,
        )
        if ok:
            st.session_state["payment_url"] = url
        else:
            st.error(msg)
    if st.session_state.get("payment_url"):
        st.link_button("Pay now", st.session_state["payment_url"])
