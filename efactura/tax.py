"""
Line amounts and VAT grouping.

Rounding follows the order ANAF recomputes totals in, so the document
totals always match what the validator derives from the lines:

1. unit price rounded to 2 decimals, multiplied by the (unrounded)
   quantity, rounded again;
2. line tax = round(line extension * percent / 100);
3. group sums re-rounded after every addition.

All rounding is ROUND_HALF_UP.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from .settings import VAT_EXEMPTION_NOT_SUBJECT, VATCategory
from .types import InvoiceLine, Number, TaxGroup

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Number) -> Decimal:
    """Convert a numeric input to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_amount(value: Number) -> Decimal:
    """Round a monetary amount to 2 decimals, half up."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_line_extension(line: InvoiceLine) -> Decimal:
    """Net amount of a line: round(round(unit price) * quantity)."""
    unit_price = round_amount(line.unit_price)
    return round_amount(unit_price * to_decimal(line.quantity))


def calculate_line_tax(line_extension: Decimal, tax_percent: Number) -> Decimal:
    return round_amount(line_extension * to_decimal(tax_percent) / HUNDRED)


def resolve_tax_category(tax_percent: Number, is_supplier_vat_payer: bool) -> VATCategory:
    """
    Pick the VAT category for a line.

    Suppliers outside the VAT system always report ``O``; otherwise a
    positive rate is ``S`` and a zero rate is ``Z``.
    """
    if not is_supplier_vat_payer:
        return VATCategory.NOT_SUBJECT
    if to_decimal(tax_percent) > 0:
        return VATCategory.STANDARD
    return VATCategory.ZERO


def group_lines_by_tax(lines: Iterable[InvoiceLine], is_supplier_vat_payer: bool) -> list[TaxGroup]:
    """
    Accumulate line amounts into one TaxGroup per (category, percent).

    Groups come back in the order their first line appeared. The percent
    is kept as given on the line, so a non-VAT-payer supplier still
    carries the line rate inside its ``O`` groups.
    """
    groups: dict[tuple[str, Decimal], TaxGroup] = {}

    for line in lines:
        percent = to_decimal(line.tax_percent or 0)
        line_extension = calculate_line_extension(line)
        line_tax = calculate_line_tax(line_extension, percent)
        category = resolve_tax_category(percent, is_supplier_vat_payer)

        candidate = TaxGroup(
            category_id=category,
            percent=percent,
            exemption_reason_code=(VAT_EXEMPTION_NOT_SUBJECT if category == VATCategory.NOT_SUBJECT else None),
        )
        group = groups.setdefault(candidate.key, candidate)

        group.taxable_amount = round_amount(group.taxable_amount + line_extension)
        group.tax_amount = round_amount(group.tax_amount + line_tax)

    return list(groups.values())


def calculate_totals(groups: Iterable[TaxGroup]) -> tuple[Decimal, Decimal, Decimal]:
    """Return (taxable, tax, grand total) summed over the groups."""
    total_taxable = Decimal("0.00")
    total_tax = Decimal("0.00")
    for group in groups:
        total_taxable = round_amount(total_taxable + group.taxable_amount)
        total_tax = round_amount(total_tax + group.tax_amount)
    return total_taxable, total_tax, round_amount(total_taxable + total_tax)
