"""
Price arithmetic shared by the import pipeline.

All money math is Decimal, rounded half-up to 2 places at the end.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round_money(value: Decimal) -> Decimal:
    """Round to 2 decimal places, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def price_after_discount(cost_price: Decimal, discount_percent: Optional[Decimal]) -> Decimal:
    """
    Apply a supplier discount to a cost price.

    10.00 with 5% → 9.50
    """
    if not discount_percent:
        return round_money(cost_price)
    return round_money(cost_price * (HUNDRED - discount_percent) / HUNDRED)


def calc_sell_price(
    cost_price: Decimal,
    margin_percent: Decimal,
    vat_percent: Decimal,
) -> Decimal:
    """
    Sell price = cost + margin, then + VAT.

    Args:
        cost_price: Cost after any supplier discount
        margin_percent: Margin on top of cost (0 for none)
        vat_percent: VAT on top of cost + margin (0 for none)

    Returns:
        Sell price rounded to 2 decimals
    """
    base = cost_price + cost_price * margin_percent / HUNDRED
    sell = base + base * vat_percent / HUNDRED
    return round_money(sell)
