# services/packing_slip_service.py

import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from docx import Document
from docx.shared import Pt

from domain.models import Order
from utils.docx_helpers import replace_placeholders_in_document
from utils.formatting import format_cad, format_quantity

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
PACKING_SLIP_TEMPLATE_PATH = BASE_DIR / "templates" / "packing_slip_template.docx"

ITEM_COLUMNS = ["#", "Item", "Qty", "Unit Price", "Deposit", "Line Total"]


def _blank_template() -> Document:
    """
    Layout used when no Word template is installed. Same placeholders as the
    template file.
    """
    doc = Document()
    doc.add_heading("Packing Slip {{order_number}}", level=1)
    doc.add_paragraph("Date: {{date}}")
    doc.add_paragraph("Customer: {{customer_name}}")
    doc.add_paragraph("Phone: {{customer_phone}}")
    doc.add_paragraph("Deliver to: {{delivery_address}}")
    doc.add_paragraph("Delivery: {{delivery_slot}}")
    doc.add_paragraph("Notes: {{delivery_instructions}}")
    doc.add_paragraph("{{items_table}}")
    doc.add_paragraph("Subtotal: {{subtotal}}")
    doc.add_paragraph("GST: {{gst}}")
    doc.add_paragraph("PST: {{pst}}")
    doc.add_paragraph("Delivery fee: {{delivery_fee}}")
    doc.add_paragraph("Discount: -{{discount}}")
    doc.add_paragraph("Tip: {{tip}}")
    doc.add_paragraph("Total: {{total}}")
    return doc


def _load_template(template_path: Optional[Path]) -> Document:
    path = template_path or PACKING_SLIP_TEMPLATE_PATH
    if path.exists():
        return Document(str(path))
    logger.info("No packing slip template at %s, using built-in layout", path)
    return _blank_template()


def _fill_items_table(doc: Document, order: Order) -> None:
    anchor = next((p for p in doc.paragraphs if "{{items_table}}" in p.text), None)

    table = doc.add_table(rows=1, cols=len(ITEM_COLUMNS))
    table.style = "Table Grid"
    for cell, title in zip(table.rows[0].cells, ITEM_COLUMNS):
        cell.text = title
        for run in cell.paragraphs[0].runs:
            run.font.bold = True

    for idx, item in enumerate(order.items, start=1):
        quantity = item.final_weight if item.scalable and item.final_weight else item.quantity
        row = table.add_row().cells
        row[0].text = str(idx)
        row[1].text = item.product_name or item.product_id
        row[2].text = format_quantity(quantity, "lb" if item.scalable else "")
        row[3].text = format_cad(item.unit_price)
        row[4].text = format_cad(item.bottle_deposit) if item.bottle_deposit else "-"
        row[5].text = format_cad(item.final_price if item.final_price is not None else item.total_price)

    for row in table.rows:
        for cell in row.cells:
            for run in cell.paragraphs[0].runs:
                run.font.size = Pt(10)

    if anchor is not None:
        # move the table to where the placeholder was, then drop the placeholder
        anchor._p.addnext(table._tbl)
        anchor._p.getparent().remove(anchor._p)


def build_packing_slip(order: Order, template_path: Optional[Path] = None) -> bytes:
    """
    Driver packing slip for one order as .docx bytes.
    """
    doc = _load_template(template_path)
    totals = order.totals

    slot = ""
    if order.delivery_slot is not None:
        slot = f"{order.delivery_slot.date} {order.delivery_slot.display_time or order.delivery_slot.time_slot}"

    mapping = {
        "{{order_number}}": order.order_number,
        "{{date}}": datetime.now().strftime("%d/%m/%Y"),
        "{{customer_name}}": order.customer_name or "-",
        "{{customer_phone}}": order.customer_phone or "-",
        "{{delivery_address}}": order.delivery_address or "-",
        "{{delivery_slot}}": slot or "-",
        "{{delivery_instructions}}": order.delivery_instructions or "-",
        "{{subtotal}}": format_cad(totals.subtotal),
        "{{gst}}": format_cad(totals.gst),
        "{{pst}}": format_cad(totals.pst),
        "{{delivery_fee}}": format_cad(totals.delivery_fee),
        "{{discount}}": format_cad(totals.discount),
        "{{tip}}": format_cad(totals.tip),
        "{{total}}": format_cad(totals.total),
    }

    replace_placeholders_in_document(doc, mapping)
    _fill_items_table(doc, order)

    buffer = io.BytesIO()
    doc.save(buffer)
    logger.info("Packing slip built for order %s (%d lines)", order.order_number, len(order.items))
    return buffer.getvalue()
