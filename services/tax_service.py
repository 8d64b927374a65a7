# services/tax_service.py
"""
GST/PST calculation for cart lines and order lines.

Taxes are computed unrounded per line and rounded to cents once per
aggregate. Bottle deposits are never taxed.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from domain.models import TAX_GST, TAX_GST_PST, TAX_NONE, TAX_TYPES
from settings import GST_RATE, PST_RATE
from utils.formatting import round_money

logger = logging.getLogger(__name__)


@dataclass
class TaxBreakdown:
    gst: float
    pst: float

    @property
    def total(self) -> float:
        return round_money(self.gst + self.pst)


def line_tax(
        amount: float,
        tax_type: Optional[str],
        gst_rate: float = GST_RATE,
        pst_rate: float = PST_RATE,
) -> TaxBreakdown:
    """
    Unrounded GST/PST for one line's pre-tax amount.
    Unknown or missing tax types are charged no tax.
    """
    if tax_type not in TAX_TYPES:
        if tax_type is not None:
            logger.warning("Unknown tax type %r, charging no tax", tax_type)
        tax_type = TAX_NONE

    if tax_type == TAX_GST:
        return TaxBreakdown(gst=amount * gst_rate, pst=0.0)
    if tax_type == TAX_GST_PST:
        return TaxBreakdown(gst=amount * gst_rate, pst=amount * pst_rate)
    return TaxBreakdown(gst=0.0, pst=0.0)


def line_deposit(bottle_deposit: float, quantity: float) -> float:
    # per unit of quantity, weighed lines included
    if not bottle_deposit:
        return 0.0
    return bottle_deposit * quantity


def line_total(unit_price: float, quantity: float, bottle_deposit: float) -> float:
    return unit_price * quantity + line_deposit(bottle_deposit, quantity)


def aggregate_taxes(
        lines: Iterable[Tuple[float, Optional[str]]],
        gst_rate: float = GST_RATE,
        pst_rate: float = PST_RATE,
) -> TaxBreakdown:
    """
    Sum (taxable_amount, tax_type) pairs and round each component once.
    """
    gst = 0.0
    pst = 0.0
    for amount, tax_type in lines:
        tax = line_tax(amount, tax_type, gst_rate, pst_rate)
        gst += tax.gst
        pst += tax.pst
    return TaxBreakdown(gst=round_money(gst), pst=round_money(pst))
