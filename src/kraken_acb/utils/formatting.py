from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")
UNITS = Decimal("0.00000001")


def round_currency(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def round_units(value: Decimal) -> Decimal:
    return value.quantize(UNITS, rounding=ROUND_HALF_UP)


def format_decimal(value: Decimal) -> str:
    quantized = value.normalize()
    # Avoid scientific notation for integers.
    if quantized == quantized.to_integral():
        return f"{quantized:.0f}"
    return format(quantized, "f")


def format_currency(value: Decimal) -> str:
    cents = round_currency(value)
    if cents == 0:
        cents = abs(cents)
    return f"{cents:.2f}"


def format_units(value: Decimal) -> str:
    return format_decimal(round_units(value))
