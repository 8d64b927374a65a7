# tests/test_data_integrator.py
from domain.models import OrderItem


def test_get_product(catalog):
    ok, _, product = catalog.get_product("p-juice")
    assert ok
    assert product.bottle_deposit == 0.10
    assert product.tax_type == "gst"

    ok, msg, product = catalog.get_product("p-nope")
    assert not ok
    assert msg == "Product not found"
    assert product is None


def test_search_products_in_stock_by_name(catalog, client):
    client.tables["products"].append({"id": "p-gone", "name": "Apple Cider", "price": 6, "stock_quantity": 0})

    ok, _, found = catalog.search_products("APPLE")
    assert ok
    assert [p.id for p in found] == ["p-apple"]

    ok, _, everything = catalog.search_products()
    assert [p.name for p in everything] == sorted(p.name for p in everything)
    assert "p-gone" not in {p.id for p in everything}


def test_list_products(catalog):
    ok, _, products = catalog.list_products(["p-water", "p-bread", "p-nope"])
    assert ok
    assert set(products) == {"p-water", "p-bread"}
    assert catalog.list_products([]) == (True, "No products requested", {})


def test_store_errors_are_reported(catalog, client):
    client.fail_on("products", "select")
    ok, msg, _ = catalog.get_product("p-water")
    assert not ok
    assert msg.startswith("Product lookup failed")


def test_find_promo_by_code_is_case_insensitive(promo_store, client):
    client.tables["promo_codes"].append({"id": "promo-1", "code": "SAVE10", "discount_type": "percentage",
                                         "discount_value": 10, "unused_column": "x"})
    ok, _, promo = promo_store.find_promo_by_code("save10")
    assert ok
    assert promo.id == "promo-1"

    ok, _, promo = promo_store.find_promo_by_code("SAVE1")
    assert ok
    assert promo is None


def test_find_promo_by_code_has_no_wildcards(promo_store, client):
    client.tables["promo_codes"].append({"id": "promo-1", "code": "SAVE10"})
    client.tables["promo_codes"].append({"id": "promo-2", "code": "100%_OFF"})

    assert promo_store.find_promo_by_code("%")[2] is None
    assert promo_store.find_promo_by_code("SAV_10")[2] is None
    assert promo_store.find_promo_by_code("100%_off")[2].id == "promo-2"


def test_product_search_treats_percent_literally(catalog):
    ok, _, found = catalog.search_products("%")
    assert ok
    assert found == []


def test_create_order_writes_items(order_store, client):
    items = [OrderItem("p-water", 2, 10.00, total_price=20.00)]

    ok, _, order = order_store.create_order({"order_number": "GR1", "total": 20.00}, items)

    assert ok
    item_rows = client.rows("order_items")
    assert item_rows[0]["order_id"] == order["id"]
    assert item_rows[0]["bottle_price"] == 0.0


def test_create_order_rolls_back_on_item_failure(order_store, client):
    client.fail_on("order_items", "insert")

    ok, msg, order = order_store.create_order({"order_number": "GR1"}, [OrderItem("p-water", 1, 10.00)])

    assert not ok
    assert order is None
    assert msg.startswith("Failed to create order items")
    assert client.rows("orders") == []


def test_get_order_enriches_items(order_store, client):
    client.tables["orders"] = [{
        "id": "o-1", "order_number": "GR1", "subtotal": 20, "tip_amount": 2, "total": 27.4,
        "delivery_date": "2026-06-02", "delivery_time_slot": "3:00 PM - 7:00 PM", "customer_name": "Jane Doe",
    }]
    client.tables["order_items"] = [
        {"id": "i-1", "order_id": "o-1", "product_id": "p-water", "quantity": 2, "unit_price": 10,
         "bottle_price": None, "total_price": 20},
    ]

    ok, _, order = order_store.get_order("o-1")

    assert ok
    assert order.totals.tip == 2
    assert order.totals.gst == 0
    assert order.customer_name == "Jane Doe"
    assert order.delivery_slot.time_slot == "3:00 PM - 7:00 PM"
    item = order.items[0]
    assert item.product_name == "Sparkling Water"
    assert item.tax_type == "gst_pst"
    assert item.bottle_deposit == 0


def test_get_order_not_found(order_store):
    assert order_store.get_order("o-404")[1] == "Order not found"


def test_update_payment_status(order_store, client):
    client.tables["orders"] = [{"id": "o-1", "payment_status": "pending", "status": "pending"}]
    ok, _ = order_store.update_payment_status("o-1", "paid", status="confirmed")
    assert ok
    assert client.rows("orders")[0]["status"] == "confirmed"


def test_cart_mirror_upsert_is_unique_per_product(cart_mirror_store, client):
    client.tables["carts"] = []
    cart_mirror_store.upsert_item("user-1", "p-water", 1)
    cart_mirror_store.upsert_item("user-1", "p-water", 3)
    cart_mirror_store.upsert_item("user-2", "p-water", 1)

    ok, _, rows = cart_mirror_store.fetch("user-1")
    assert ok
    assert rows == [{"product_id": "p-water", "quantity": 3}]


def test_inventory_get_stock_missing(inventory):
    ok, msg, _ = inventory.get_stock("p-nope")
    assert not ok
    assert msg == "Product not found: p-nope"


def test_search_products_can_include_sold_out(catalog, client):
    client.tables["products"].append({"id": "p-gone", "name": "Apple Cider", "price": 6, "stock_quantity": 0})
    ok, _, found = catalog.search_products("apple", in_stock_only=False)
    assert ok
    assert {p.id for p in found} == {"p-apple", "p-gone"}
