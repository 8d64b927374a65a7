# utils/formatting.py

from decimal import Decimal, ROUND_HALF_UP


def round_money(amount: float) -> float:
    """
    Round half-up to cents. Used once per aggregate, never per line.
    """
    return float(Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_cad(amount: float) -> str:
    """
    Format a dollar amount for display.
    Example: 1234.5 -> "$1,234.50"
    """
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(round_money(amount)):,.2f}"


def format_quantity(quantity: float, unit: str = "") -> str:
    text = f"{quantity:g}"
    return f"{text} {unit}".strip()
