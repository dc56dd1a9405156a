"""
Input data model for invoice generation.

Values are plain immutable dataclasses. Monetary fields accept anything
Decimal can represent exactly from its string form (Decimal, int, str,
float); the builder converts them with ``Decimal(str(value))``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Union

from .settings import DEFAULT_COUNTRY_CODE, DEFAULT_CURRENCY, DEFAULT_UNIT_CODE, VATCategory

Number = Union[Decimal, int, float, str]
DateLike = Union[date, datetime, str]


class InvoiceTypeCode(StrEnum):
    """Invoice type codes (UNCL1001) accepted by e-Factura."""

    COMMERCIAL_INVOICE = "380"
    ACCOUNTING_INFORMATION = "751"


@dataclass(frozen=True)
class Address:
    """Postal address of an invoice party."""

    street: str
    city: str
    postal_zone: str
    county: str | None = None  # Free text, normalized to ISO 3166-2:RO on output
    country_code: str = DEFAULT_COUNTRY_CODE


@dataclass(frozen=True)
class Party:
    """Supplier or customer."""

    registration_name: str
    company_id: str  # CUI/CIF, with or without RO prefix
    address: Address
    is_vat_payer: bool = False


@dataclass(frozen=True)
class InvoiceLine:
    """Single invoice line."""

    name: str
    quantity: Number
    unit_price: Number
    id: str | int | None = None
    description: str | None = None
    unit_code: str = DEFAULT_UNIT_CODE
    tax_percent: Number = 0


@dataclass(frozen=True)
class InvoiceInput:
    """Everything needed to render one invoice document."""

    invoice_number: str
    issue_date: DateLike
    supplier: Party
    customer: Party
    lines: Sequence[InvoiceLine]  # Required, may be empty
    due_date: DateLike | None = None
    currency: str = DEFAULT_CURRENCY
    invoice_type_code: InvoiceTypeCode = InvoiceTypeCode.COMMERCIAL_INVOICE
    payment_iban: str | None = None


@dataclass
class TaxGroup:
    """Accumulated totals for one (category, percent) pair."""

    category_id: VATCategory
    percent: Decimal
    taxable_amount: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    exemption_reason_code: str | None = None

    @property
    def key(self) -> tuple[str, Decimal]:
        return (self.category_id.value, self.percent)
