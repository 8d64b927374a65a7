# app_context.py
"""
One set of stores and engines per running app, one cart per browser session.
Pages get them from here instead of building their own.
"""

from dataclasses import dataclass
from typing import Optional

import streamlit as st

from data_integrator import (
    SupabaseCartMirror,
    SupabaseCatalog,
    SupabaseInventoryStore,
    SupabaseOrderStore,
    SupabasePromoStore,
    get_client,
)
from domain.models import AuthUser
from services.cart_service import CartLedger
from services.cart_storage import CheckoutState, MappingStorage, load_checkout_state
from services.cart_sync_service import start_mirror
from services.checkout_service import CheckoutService
from services.order_edit_service import OrderEditService
from services.payment_service import StripeGateway
from services.promo_service import PromoEngine
from services.stock_service import StockService


@dataclass
class AppServices:
    catalog: SupabaseCatalog
    promo_store: SupabasePromoStore
    order_store: SupabaseOrderStore
    inventory: SupabaseInventoryStore
    cart_mirror: SupabaseCartMirror
    promos: PromoEngine
    stock: StockService
    checkout: CheckoutService
    order_edits: OrderEditService
    payments: StripeGateway


@st.cache_resource
def get_services() -> AppServices:
    client = get_client()
    catalog = SupabaseCatalog(client)
    promo_store = SupabasePromoStore(client)
    order_store = SupabaseOrderStore(client)
    inventory = SupabaseInventoryStore(client)
    cart_mirror = SupabaseCartMirror(client)

    promos = PromoEngine(promo_store)
    stock = StockService(inventory)

    return AppServices(
        catalog=catalog,
        promo_store=promo_store,
        order_store=order_store,
        inventory=inventory,
        cart_mirror=cart_mirror,
        promos=promos,
        stock=stock,
        checkout=CheckoutService(order_store, stock, promos, cart_mirror),
        order_edits=OrderEditService(order_store, catalog, stock),
        payments=StripeGateway(),
    )


def get_current_user() -> Optional[AuthUser]:
    return st.session_state.get("auth_user")


def set_current_user(user: Optional[AuthUser]) -> None:
    st.session_state["auth_user"] = user


def get_cart(user: Optional[AuthUser] = None) -> CartLedger:
    """
    The session's cart. With a signed-in user the cart is also mirrored to
    the server `carts` table; signing out stops the mirror.
    """
    if "cart_ledger" not in st.session_state:
        st.session_state["cart_ledger"] = CartLedger(storage=MappingStorage(st.session_state, key="cart"))
    cart = st.session_state["cart_ledger"]

    mirror = st.session_state.get("cart_mirror")
    user_id = user.id if user is not None else None
    if mirror is not None and mirror.user_id != user_id:
        mirror.detach()
        mirror = st.session_state["cart_mirror"] = None
    if mirror is None and user_id:
        services = get_services()
        st.session_state["cart_mirror"] = start_mirror(services.cart_mirror, services.catalog, user_id, cart)

    return cart


def get_checkout_state() -> CheckoutState:
    return load_checkout_state(st.session_state.get("checkout_state"))


def save_checkout_state(state: CheckoutState) -> None:
    st.session_state["checkout_state"] = state.to_dict()
