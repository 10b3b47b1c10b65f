from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0.00")
# Two-decimal currency precision used for every journal amount
CENT = Decimal("0.01")
# Quantities and average costs carry more precision than money
QUANTITY_STEP = Decimal("0.0001")
COST_STEP = Decimal("0.000001")


def to_money(value):
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_quantity(value):
    return Decimal(str(value)).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def to_cost(value):
    return Decimal(str(value)).quantize(COST_STEP, rounding=ROUND_HALF_UP)
