# tests/conftest.py
# Ensure project root (parent of tests) is on sys.path so `import services...` works.
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
TESTS = Path(__file__).resolve().parent
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)
if str(TESTS) not in sys.path:
    sys.path.insert(0, str(TESTS))

from data_integrator import (  # noqa: E402
    SupabaseCartMirror,
    SupabaseCatalog,
    SupabaseInventoryStore,
    SupabaseOrderStore,
    SupabasePromoStore,
)
from domain.models import Product  # noqa: E402
from fake_supabase import FakeClient  # noqa: E402

PRODUCT_ROWS = [
    {"id": "p-water", "sku": "WTR-1", "name": "Sparkling Water", "price": 10.00, "bottle_price": 0,
     "scalable": False, "tax_type": "gst_pst", "stock_quantity": 20, "low_stock_threshold": 5, "unit": ""},
    {"id": "p-bread", "sku": "BRD-1", "name": "Sourdough Loaf", "price": 5.00, "bottle_price": 0,
     "scalable": False, "tax_type": "none", "stock_quantity": 10, "low_stock_threshold": 3, "unit": ""},
    {"id": "p-apple", "sku": "APL-1", "name": "Gala Apples", "price": 4.00, "bottle_price": 0,
     "scalable": True, "tax_type": "none", "stock_quantity": 5.5, "low_stock_threshold": 2, "unit": "lb"},
    {"id": "p-juice", "sku": "JCE-1", "name": "Orange Juice", "price": 3.00, "bottle_price": 0.10,
     "scalable": False, "tax_type": "gst", "stock_quantity": 12, "low_stock_threshold": 5, "unit": ""},
    {"id": "p-honey", "sku": "HNY-1", "name": "Raw Honey (jar)", "price": 8.00, "bottle_price": 0.25,
     "scalable": True, "tax_type": "none", "stock_quantity": 4, "low_stock_threshold": 1, "unit": "lb"},
]


def make_product(product_id: str, **overrides) -> Product:
    row = next(r for r in PRODUCT_ROWS if r["id"] == product_id)
    return Product.from_row({**row, **overrides})


@pytest.fixture
def products():
    return {row["id"]: Product.from_row(row) for row in PRODUCT_ROWS}


@pytest.fixture
def client():
    return FakeClient({"products": PRODUCT_ROWS, "promo_codes": [], "promo_code_usage": []})


@pytest.fixture
def catalog(client):
    return SupabaseCatalog(client)


@pytest.fixture
def promo_store(client):
    return SupabasePromoStore(client)


@pytest.fixture
def order_store(client):
    return SupabaseOrderStore(client)


@pytest.fixture
def inventory(client):
    return SupabaseInventoryStore(client)


@pytest.fixture
def cart_mirror_store(client):
    return SupabaseCartMirror(client)
