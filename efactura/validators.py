"""
Input validation and Romanian identifier helpers.

validate_invoice_input() guards the XML builder: it raises
ValidationError on the first problem found, walking the invoice in
document order (header, supplier, customer, lines).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

from django.utils import timezone

from .exceptions import ValidationError
from .settings import DEFAULT_COUNTRY_CODE, ROMANIA_TIMEZONE
from .types import Address, InvoiceInput, InvoiceLine, Party

logger = logging.getLogger(__name__)

CNP_LENGTH = 13
CNP_CHECKSUM_SPECIAL = 10
CNP_ALL_ZEROS = "0" * CNP_LENGTH

VAT_CODE_MIN_DIGITS = 2
VAT_CODE_MAX_DIGITS = 10

MAX_TAX_PERCENT = Decimal("100")

_VAT_PREFIX_RE = re.compile(r"^RO", re.IGNORECASE)
_COUNTRY_PREFIX_RE = re.compile(r"^[A-Z]{2}")


# ===============================================================================
# INVOICE INPUT
# ===============================================================================


def validate_invoice_input(invoice: InvoiceInput | None) -> None:
    """
    Check an invoice before any XML is produced.

    Raises:
        ValidationError: describing the first violation found
    """
    if invoice is None:
        raise ValidationError("Invoice input data is required")

    if not invoice.invoice_number or not str(invoice.invoice_number).strip():
        raise ValidationError("Invoice number is required")

    if invoice.issue_date is None or invoice.issue_date == "":
        raise ValidationError("Issue date is required")

    if invoice.supplier is None:
        raise ValidationError("Supplier information is required")
    validate_party(invoice.supplier, "Supplier")

    if invoice.customer is None:
        raise ValidationError("Customer information is required")
    validate_party(invoice.customer, "Customer")

    if invoice.lines is None or isinstance(invoice.lines, str) or not isinstance(invoice.lines, Sequence):
        raise ValidationError("Invoice lines array is required")

    for index, line in enumerate(invoice.lines, start=1):
        validate_line(line, index)


def validate_party(party: Party, role: str) -> None:
    if not _has_text(party.registration_name):
        raise ValidationError(f"{role} registration name is required")
    if not _has_text(party.company_id):
        raise ValidationError(f"{role} company ID is required")
    if party.address is None:
        raise ValidationError(f"{role} address is required")
    validate_address(party.address, role)


def validate_address(address: Address, role: str) -> None:
    if not _has_text(address.street):
        raise ValidationError(f"{role} street address is required")
    if not _has_text(address.city):
        raise ValidationError(f"{role} city is required")
    if not _has_text(address.postal_zone):
        raise ValidationError(f"{role} postal zone is required")


def validate_line(line: InvoiceLine, index: int) -> None:
    """Validate one line; ``index`` is 1-based and appears in messages."""
    if not _has_text(line.name):
        raise ValidationError(f"Line {index}: Name is required")

    quantity = _as_decimal(line.quantity)
    if quantity is None or quantity <= 0:
        raise ValidationError(f"Line {index}: Quantity must be a positive number")

    unit_price = _as_decimal(line.unit_price)
    if unit_price is None or unit_price < 0:
        raise ValidationError(f"Line {index}: Unit price must be a non-negative number")

    if line.tax_percent is not None:
        percent = _as_decimal(line.tax_percent)
        if percent is None or not 0 <= percent <= MAX_TAX_PERCENT:
            raise ValidationError(f"Line {index}: Tax percent must be between 0 and 100")


def _has_text(value: Any) -> bool:
    return value is not None and bool(str(value).strip())


def _as_decimal(value: Any) -> Decimal | None:
    """Finite Decimal for a numeric input, or None when it is not a number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


# ===============================================================================
# DATES
# ===============================================================================


def coerce_date(value: date | datetime | str, field_name: str = "Date") -> date:
    """
    Turn a date-like value into a calendar date.

    Aware datetimes are converted to Romanian time first, since that is the
    day ANAF considers the document issued on.
    """
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            value = value.astimezone(ROMANIA_TIMEZONE)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == len("YYYY-MM-DD"):
                return date.fromisoformat(text)
            return coerce_date(datetime.fromisoformat(text), field_name)
        except ValueError as e:
            raise ValidationError(f"{field_name} is not a valid ISO date: {value!r}") from e
    raise ValidationError(f"{field_name} must be a date, datetime or ISO string")


# ===============================================================================
# CNP (personal numeric code)
# ===============================================================================


@dataclass
class CNPValidationResult:
    """Result of CNP validation."""

    is_valid: bool
    error_message: str = ""
    gender: str | None = None
    birth_date: date | None = None
    county_code: str | None = None


class CNPValidator:
    """
    Romanian CNP (Cod Numeric Personal) validator.

    CNP structure (13 digits):
    - Position 1: Gender and century (S)
    - Positions 2-7: Birth date (YYMMDD)
    - Positions 8-9: County code (JJ)
    - Positions 10-12: Sequential number (NNN)
    - Position 13: Check digit (C)

    ANAF accepts thirteen zeros as the CNP of an anonymous B2C buyer.
    Birth date and county are extracted when they parse but never make a
    CNP invalid; only format, check digit and the first digit do.
    """

    # Gender/century codes
    GENDER_CODES: ClassVar[dict[str, tuple[str, int | None]]] = {
        "1": ("M", 1900),  # Male, 1900-1999
        "2": ("F", 1900),  # Female, 1900-1999
        "3": ("M", 1800),  # Male, 1800-1899
        "4": ("F", 1800),  # Female, 1800-1899
        "5": ("M", 2000),  # Male, 2000-2099
        "6": ("F", 2000),  # Female, 2000-2099
        "7": ("M", None),  # Male, foreign resident
        "8": ("F", None),  # Female, foreign resident
        "9": ("?", None),  # Foreigner
    }

    # Check digit weights (control key 279146358279)
    CHECK_WEIGHTS: ClassVar[list[int]] = [2, 7, 9, 1, 4, 6, 3, 5, 8, 2, 7, 9]

    @classmethod
    def validate(cls, cnp: str) -> CNPValidationResult:
        """
        Validate a Romanian CNP.

        Args:
            cnp: CNP string to validate

        Returns:
            CNPValidationResult with validation status and extracted info
        """
        if not isinstance(cnp, str) or not re.fullmatch(r"\d{13}", cnp):
            return CNPValidationResult(
                is_valid=False,
                error_message="CNP must be exactly 13 digits",
            )

        if cnp == CNP_ALL_ZEROS:
            return CNPValidationResult(is_valid=True)

        calculated_check = cls._calculate_check_digit(cnp[:12])
        if calculated_check != int(cnp[12]):
            return CNPValidationResult(
                is_valid=False,
                error_message="Invalid check digit",
            )

        gender_code = cnp[0]
        if gender_code not in cls.GENDER_CODES:
            return CNPValidationResult(
                is_valid=False,
                error_message=f"Invalid gender/century code: {gender_code}",
            )

        gender, century = cls.GENDER_CODES[gender_code]
        birth_date = None
        if century:
            try:
                birth_date = date(century + int(cnp[1:3]), int(cnp[3:5]), int(cnp[5:7]))
            except ValueError:
                logger.debug(f"CNP carries an impossible birth date: {cnp[1:7]}")

        return CNPValidationResult(
            is_valid=True,
            gender=gender,
            birth_date=birth_date,
            county_code=cnp[7:9],
        )

    @classmethod
    def _calculate_check_digit(cls, cnp_12: str) -> int:
        """Calculate check digit for first 12 digits of CNP."""
        total = sum(int(digit) * weight for digit, weight in zip(cnp_12, cls.CHECK_WEIGHTS, strict=True))
        remainder = total % 11
        return 1 if remainder == CNP_CHECKSUM_SPECIAL else remainder


def is_valid_cnp(cnp: str) -> bool:
    return CNPValidator.validate(cnp).is_valid


# ===============================================================================
# VAT CODE / CUI
# ===============================================================================


def extract_cui_number(vat_code: str | None) -> int | None:
    """
    Numeric CUI from a VAT code, with or without the RO prefix.

    Returns None when nothing positive and numeric remains.
    """
    if not vat_code or not isinstance(vat_code, str):
        return None
    cui = _VAT_PREFIX_RE.sub("", vat_code.strip().upper()).strip()
    if not cui.isdigit():
        return None
    number = int(cui)
    return number if number > 0 else None


def is_valid_vat_code(vat_code: str | None) -> bool:
    """Check the shape of a Romanian VAT code (``RO`` + 2 to 10 digits)."""
    if not vat_code or not isinstance(vat_code, str):
        return False
    cui = _VAT_PREFIX_RE.sub("", vat_code.strip().upper()).strip()
    if not VAT_CODE_MIN_DIGITS <= len(cui) <= VAT_CODE_MAX_DIGITS:
        return False
    return extract_cui_number(cui) is not None


def normalize_vat_number(company_id: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """
    VAT identifier with its country prefix.

    ``"12345678"`` becomes ``"RO12345678"``; an id that already starts
    with a country prefix is only cleaned of whitespace.
    """
    compact = re.sub(r"\s+", "", company_id).upper()
    if _COUNTRY_PREFIX_RE.match(compact):
        return compact
    return f"{country_code.upper()}{compact}"


def strip_vat_prefix(vat_number: str) -> str:
    """CIF as ANAF expects it in query parameters: digits only."""
    return _VAT_PREFIX_RE.sub("", vat_number.strip())
