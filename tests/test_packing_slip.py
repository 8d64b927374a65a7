# tests/test_packing_slip.py
import io

import docx
import pytest

from domain.models import DeliverySlot, Order, OrderItem, OrderTotals
from services.packing_slip_service import ITEM_COLUMNS, build_packing_slip
from utils.docx_helpers import remaining_placeholders, replace_placeholders_in_document


@pytest.fixture
def order():
    return Order(
        id="o-1",
        order_number="GR00000001",
        totals=OrderTotals(subtotal=31.20, gst=1.30, pst=1.40, tax=2.70, delivery_fee=5.00,
                           discount=0, tip=2.00, total=40.90),
        items=[
            OrderItem("p-water", 2, 10.00, total_price=20.00, product_name="Sparkling Water", tax_type="gst_pst"),
            OrderItem("p-juice", 2, 3.00, bottle_deposit=0.10, total_price=6.20, product_name="Orange Juice"),
            OrderItem("p-apple", 1.5, 4.00, total_price=6.00, final_weight=1.23, final_price=4.92,
                      product_name="Gala Apples", scalable=True),
        ],
        customer_name="Jane Doe",
        customer_phone="604-555-0100",
        delivery_address="V6B1A1",
        delivery_slot=DeliverySlot("2026-06-02", "11:00 AM - 3:00 PM"),
    )


def read_back(data: bytes):
    return docx.Document(io.BytesIO(data))


def test_slip_fills_header_and_totals(order, tmp_path):
    doc = read_back(build_packing_slip(order, template_path=tmp_path / "missing.docx"))
    text = "\n".join(p.text for p in doc.paragraphs)

    assert "Packing Slip GR00000001" in text
    assert "Customer: Jane Doe" in text
    assert "Delivery: 2026-06-02 11:00 AM - 3:00 PM" in text
    assert "Notes: -" in text
    assert "Total: $40.90" in text
    assert remaining_placeholders(doc) == []


def test_slip_items_table(order, tmp_path):
    doc = read_back(build_packing_slip(order, template_path=tmp_path / "missing.docx"))

    assert len(doc.tables) == 1
    rows = [[cell.text for cell in row.cells] for row in doc.tables[0].rows]
    assert rows[0] == ITEM_COLUMNS
    assert rows[1] == ["1", "Sparkling Water", "2", "$10.00", "-", "$20.00"]
    assert rows[2][4] == "$0.10"
    # weighed line shows the actual weight and price
    assert rows[3][2] == "1.23 lb"
    assert rows[3][5] == "$4.92"


def test_slip_uses_template_file(order, tmp_path):
    template = docx.Document()
    template.add_paragraph("ORDER {{order_number}} FOR {{customer_name}}")
    template.add_paragraph("{{items_table}}")
    path = tmp_path / "slip.docx"
    template.save(str(path))

    doc = read_back(build_packing_slip(order, template_path=path))

    assert doc.paragraphs[0].text == "ORDER GR00000001 FOR Jane Doe"
    assert len(doc.tables) == 1
    assert remaining_placeholders(doc) == []


def test_replace_placeholders_in_tables_and_headers():
    doc = docx.Document()
    doc.sections[0].header.paragraphs[0].text = "{{store}}"
    cell = doc.add_table(rows=1, cols=1).rows[0].cells[0]
    cell.text = "Total {{total}}"

    replace_placeholders_in_document(doc, {"{{store}}": "Corner Grocer", "{{total}}": "$1.00"})

    assert doc.sections[0].header.paragraphs[0].text == "Corner Grocer"
    assert cell.text == "Total $1.00"
