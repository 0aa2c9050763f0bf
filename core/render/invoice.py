"""Invoice totals derived from invoice line items."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

from core.utils.number_words import to_words

TOTAL_GOVT = "TOTAL_GOVT"
TOTAL_PROFESSIONAL = "TOTAL_PROFESSIONAL"
GRAND_TOTAL = "GRAND_TOTAL"
GRAND_TOTAL_WORDS = "GRAND_TOTAL_WORDS"
TOTAL_PLACEHOLDERS = (TOTAL_GOVT, TOTAL_PROFESSIONAL, GRAND_TOTAL, GRAND_TOTAL_WORDS)

_CENTS = Decimal("0.01")
_UNIT = Decimal("1")
# Larger magnitudes are treated like any other unreadable fee.
_MAX_ADJUSTED_EXPONENT = 60
_SUM_PRECISION = _MAX_ADJUSTED_EXPONENT + 12


@dataclass(frozen=True)
class InvoiceTotals:
    total_government: Decimal
    total_professional: Decimal
    grand_total: Decimal
    grand_total_words: str

    def as_placeholders(self) -> dict[str, str]:
        return {
            TOTAL_GOVT: format_money(self.total_government),
            TOTAL_PROFESSIONAL: format_money(self.total_professional),
            GRAND_TOTAL: format_money(self.grand_total),
            GRAND_TOTAL_WORDS: self.grand_total_words,
        }


def compute_invoice_totals(
    items: Iterable[Mapping[str, Any]],
    *,
    government_fee_key: str = "govtFee",
    professional_fee_key: str = "professionalFee",
) -> InvoiceTotals:
    """Sum fee columns; missing or non-numeric fees count as zero."""

    total_government = Decimal(0)
    total_professional = Decimal(0)
    with localcontext() as context:
        context.prec = max(context.prec, _SUM_PRECISION)
        for item in items:
            total_government += to_decimal(item.get(government_fee_key))
            total_professional += to_decimal(item.get(professional_fee_key))
        grand_total = total_government + total_professional

    whole_units = int(_quantize(grand_total, _UNIT))
    return InvoiceTotals(
        total_government=total_government,
        total_professional=total_professional,
        grand_total=grand_total,
        grand_total_words=to_words(whole_units),
    )


def to_decimal(value: object) -> Decimal:
    """Parse a fee; missing, non-numeric, non-finite or absurdly large values are 0."""

    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int | float):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        try:
            parsed = Decimal(value.strip() or "0")
        except InvalidOperation:
            return Decimal(0)
    else:
        return Decimal(0)
    if not parsed.is_finite() or parsed.adjusted() > _MAX_ADJUSTED_EXPONENT:
        return Decimal(0)
    return parsed


def format_money(value: object) -> str:
    """Two-decimal currency text, rounding half up."""

    return format(_quantize(to_decimal(value), _CENTS), "f")


def _quantize(value: Decimal, exponent: Decimal) -> Decimal:
    # quantize needs every integer digit plus the fraction within the context precision.
    with localcontext() as context:
        context.prec = max(context.prec, value.adjusted() - exponent.as_tuple().exponent + 2)
        return value.quantize(exponent, rounding=ROUND_HALF_UP)
