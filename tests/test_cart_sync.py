# tests/test_cart_sync.py
import pytest

from conftest import make_product
from data_integrator import SupabaseCartMirror, SupabaseCatalog
from fake_supabase import FakeClient
from services.cart_service import CartLedger
from services.cart_sync_service import CartMirror, merge_carts, start_mirror


@pytest.fixture
def mirror(client, cart_mirror_store, catalog):
    client.tables["carts"] = []
    return CartMirror(cart_mirror_store, catalog, "user-1")


def cart_rows(client, user_id="user-1"):
    return sorted((r["product_id"], r["quantity"]) for r in client.rows("carts") if r["user_id"] == user_id)


def test_merge_keeps_local_lines_first(products):
    cart = CartLedger()
    cart.add_item(products["p-water"], 2)

    merged = merge_carts(cart.items, [
        {"product_id": "p-water", "quantity": 9},
        {"product_id": "p-bread", "quantity": 1},
    ], {"p-bread": products["p-bread"]})

    assert [(i.product_id, i.quantity) for i in merged] == [("p-water", 2), ("p-bread", 1)]


def test_merge_normalizes_and_caps_server_lines(products):
    merged = merge_carts([], [
        {"product_id": "p-apple", "quantity": 0.3},
        {"product_id": "p-bread", "quantity": 40},
        {"product_id": "p-nope", "quantity": 1},
    ], products)

    assert [(i.product_id, i.quantity) for i in merged] == [("p-apple", 0.25), ("p-bread", 10)]


def test_merge_caps_scalable_at_stock_step(products):
    merged = merge_carts([], [{"product_id": "p-apple", "quantity": 10}], products)
    assert merged[0].quantity == 5.5


def test_merge_drops_sold_out_products():
    sold_out = make_product("p-bread", stock_quantity=0)
    assert merge_carts([], [{"product_id": "p-bread", "quantity": 2}], {"p-bread": sold_out}) == []


def test_attached_mirror_follows_mutations(mirror, client, products):
    cart = CartLedger()
    mirror.attach(cart)

    cart.add_item(products["p-water"], 2)
    cart.add_item(products["p-bread"], 1)
    cart.update_quantity("p-water", 3)
    assert cart_rows(client) == [("p-bread", 1), ("p-water", 3)]

    cart.remove_item("p-bread")
    assert cart_rows(client) == [("p-water", 3)]

    cart.clear()
    assert cart_rows(client) == []


def test_detach_stops_mirroring(mirror, client, products):
    cart = CartLedger()
    mirror.attach(cart)
    mirror.detach()
    cart.add_item(products["p-water"], 1)
    assert cart_rows(client) == []


def test_mirror_failure_keeps_local_change(mirror, client, products):
    cart = CartLedger()
    mirror.attach(cart)
    client.fail_on("carts", "upsert")

    assert cart.add_item(products["p-water"], 1)
    assert len(cart.items) == 1
    assert cart_rows(client) == []


def test_sync_merges_and_pushes(mirror, client, products):
    client.tables["carts"] = [
        {"id": "c-1", "user_id": "user-1", "product_id": "p-water", "quantity": 7},
        {"id": "c-2", "user_id": "user-1", "product_id": "p-juice", "quantity": 2},
        {"id": "c-3", "user_id": "user-2", "product_id": "p-bread", "quantity": 1},
    ]
    cart = CartLedger()
    cart.add_item(products["p-water"], 2)

    assert mirror.sync(cart)

    assert [(i.product_id, i.quantity) for i in cart.items] == [("p-water", 2), ("p-juice", 2)]
    assert cart_rows(client) == [("p-juice", 2), ("p-water", 2)]
    assert cart_rows(client, "user-2") == [("p-bread", 1)]


def test_sync_fetch_failure_leaves_cart(products):
    client = FakeClient({"products": [], "carts": []})
    client.fail_on("carts", "select")
    mirror = CartMirror(SupabaseCartMirror(client), SupabaseCatalog(client), "user-1")
    cart = CartLedger()
    cart.add_item(products["p-water"], 2)

    assert not mirror.sync(cart)
    assert [(i.product_id, i.quantity) for i in cart.items] == [("p-water", 2)]


def test_start_mirror_merges_then_follows(client, cart_mirror_store, catalog, products):
    client.tables["carts"] = [{"id": "c-1", "user_id": "user-1", "product_id": "p-bread", "quantity": 2}]
    cart = CartLedger()
    cart.add_item(products["p-water"], 1)

    mirror = start_mirror(cart_mirror_store, catalog, "user-1", cart)

    assert [(i.product_id, i.quantity) for i in cart.items] == [("p-water", 1), ("p-bread", 2)]
    assert cart_rows(client) == [("p-bread", 2), ("p-water", 1)]

    cart.remove_item("p-bread")
    assert cart_rows(client) == [("p-water", 1)]

    mirror.detach()
    cart.clear()
    assert cart_rows(client) == [("p-water", 1)]
