"""
Money helpers shared by the Stripe adapter and webhook reconciliation.

Stripe expresses amounts in the smallest currency unit.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from shared.codes.payment_codes import ZERO_DECIMAL_CURRENCIES


def _exponent(currency: str) -> int:
    return 0 if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES else 2


def to_minor_units(amount: Decimal, currency: str) -> int:
    scaled = Decimal(amount) * (Decimal(10) ** _exponent(currency))
    return int(scaled.to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, currency: str) -> Decimal:
    exponent = _exponent(currency)
    value = Decimal(int(amount)) / (Decimal(10) ** exponent)
    return value.quantize(Decimal(1).scaleb(-exponent))
