# utils/quantity.py

from decimal import Decimal, ROUND_HALF_UP

SCALABLE_STEP = Decimal("0.25")
SCALABLE_MIN = 0.25
DISCRETE_MIN = 1


def _round_to_step(quantity: float, step: Decimal) -> float:
    steps = (Decimal(str(quantity)) / step).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return float(steps * step)


def normalize_quantity(quantity: float, scalable: bool, new_line: bool = False) -> float:
    """
    Round a requested cart quantity to what the product can be sold in.

    Scalable (by weight) products round half-up to the nearest 0.25; a
    positive request never collapses to 0 and instead becomes 0.25, so an
    active scalable line is always a multiple of 0.25.

    Discrete products round half-up to a whole number. A brand new line is
    floored at 1; on an update a result of 0 means "delete the line".

    Zero or negative requests return 0.
    """
    if quantity is None or quantity <= 0:
        return 0

    if scalable:
        rounded = _round_to_step(quantity, SCALABLE_STEP)
        return max(rounded, SCALABLE_MIN)

    rounded = int(_round_to_step(quantity, Decimal("1")))
    if new_line:
        return max(rounded, DISCRETE_MIN)
    return rounded


def normalize_weight(quantity: float, scalable: bool) -> float:
    """
    Quantity rule for lines on a placed order. Weighed products keep the
    actual weight to 0.01 (min 0.01); discrete products are whole (min 1).
    """
    if scalable:
        value = Decimal(str(quantity or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return max(0.01, float(value))
    return max(DISCRETE_MIN, int(_round_to_step(quantity or 0, Decimal("1"))))
