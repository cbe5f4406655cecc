from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
HUNDRED = Decimal(100)

def to_money(value) -> Decimal:
    """Round to the currency's minor unit."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)

def raw_unit_price(price, discount_percent) -> Decimal:
    return Decimal(price) * (1 - Decimal(discount_percent or 0) / HUNDRED)

def discounted_price(price, discount_percent) -> Decimal:
    return to_money(raw_unit_price(price, discount_percent))
