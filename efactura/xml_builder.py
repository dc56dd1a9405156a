"""
UBL 2.1 XML builder for Romanian e-Factura with CIUS-RO compliance.

Generates UBL 2.1 Invoice documents following the Romanian CIUS-RO
national specification from an InvoiceInput value.

Reference:
- UBL 2.1: https://docs.oasis-open.org/ubl/os-UBL-2.1/UBL-2.1.html
- CIUS-RO: https://mfinante.gov.ro/web/efactura/informatii-tehnice
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from lxml import etree

from .address import is_bucharest, sanitize_bucharest_sector, sanitize_county
from .exceptions import ValidationError
from .settings import (
    CIUS_RO_CUSTOMIZATION_ID,
    DEFAULT_COUNTRY_CODE,
    DEFAULT_CURRENCY,
    DEFAULT_UNIT_CODE,
    PAYMENT_MEANS_CREDIT_TRANSFER,
    UBL_NAMESPACES,
    VATCategory,
)
from .tax import calculate_line_extension, calculate_totals, group_lines_by_tax, resolve_tax_category, round_amount
from .types import InvoiceInput, InvoiceLine, InvoiceTypeCode, Party, TaxGroup
from .validators import coerce_date, normalize_vat_number, validate_invoice_input

logger = logging.getLogger(__name__)

NAMESPACES = UBL_NAMESPACES

TAX_SCHEME_VAT = "VAT"


class BaseUBLBuilder:
    """Element helpers shared by UBL document builders."""

    def __init__(self, invoice: InvoiceInput):
        self.invoice = invoice
        self.root: etree._Element | None = None

    def _cbc(self, tag: str) -> str:
        """Create CommonBasicComponents tag."""
        return f"{{{NAMESPACES['cbc']}}}{tag}"

    def _cac(self, tag: str) -> str:
        """Create CommonAggregateComponents tag."""
        return f"{{{NAMESPACES['cac']}}}{tag}"

    def _add_element(self, parent: etree._Element, tag: str, text: str | None = None, **attribs: str) -> etree._Element:
        """Add element with optional text and attributes."""
        elem = etree.SubElement(parent, tag)
        try:
            if text is not None:
                elem.text = str(text)
            for key, value in attribs.items():
                elem.set(key, value)
        except ValueError as e:
            raise ValidationError(f"{etree.QName(tag).localname} contains characters not allowed in XML") from e
        return elem

    def _add_cbc(self, parent: etree._Element, tag: str, text: str | None = None, **attribs: str) -> etree._Element:
        """Add CommonBasicComponents element."""
        return self._add_element(parent, self._cbc(tag), text, **attribs)

    def _add_cac(self, parent: etree._Element, tag: str) -> etree._Element:
        """Add CommonAggregateComponents element."""
        return self._add_element(parent, self._cac(tag))

    def _add_amount(self, parent: etree._Element, tag: str, amount: Decimal) -> etree._Element:
        """Add monetary cbc element carrying the document currency."""
        return self._add_cbc(parent, tag, self._format_amount(amount), currencyID=self.currency)

    @property
    def currency(self) -> str:
        return self.invoice.currency or DEFAULT_CURRENCY

    def _format_date(self, dt: date) -> str:
        """Format date as YYYY-MM-DD."""
        return dt.strftime("%Y-%m-%d")

    def _format_amount(self, amount: Decimal | float | int) -> str:
        """Format monetary amount with 2 decimal places."""
        return f"{round_amount(amount):.2f}"

    def _format_quantity(self, quantity: Decimal | float | int | str) -> str:
        """Format quantity as a plain decimal without trailing zeros."""
        return format(Decimal(str(quantity)).normalize(), "f")

    def _format_percent(self, percent: Decimal | float | int | str) -> str:
        """Format percentage with 2 decimal places."""
        return f"{round_amount(percent):.2f}"

    def _add_postal_address(self, parent: etree._Element, party: Party) -> etree._Element:
        """
        Add PostalAddress element.

        CountrySubentity is the ISO 3166-2:RO county code; for Bucharest,
        CityName carries the sector code instead of the city name.
        """
        address = party.address
        postal_address = self._add_cac(parent, "PostalAddress")

        county = sanitize_county(address.county)
        if county is None and address.county:
            logger.warning(f"Could not resolve county {address.county!r} for {party.registration_name}")

        city: str | None = address.city
        if is_bucharest(county):
            city = sanitize_bucharest_sector(address.city)
            if city is None:
                logger.warning(f"Could not resolve Bucharest sector from {address.city!r} for {party.registration_name}")

        self._add_cbc(postal_address, "StreetName", address.street)
        if city:
            self._add_cbc(postal_address, "CityName", city)
        self._add_cbc(postal_address, "PostalZone", address.postal_zone)
        if county:
            self._add_cbc(postal_address, "CountrySubentity", county)

        # Country is mandatory
        country = self._add_cac(postal_address, "Country")
        self._add_cbc(country, "IdentificationCode", address.country_code or DEFAULT_COUNTRY_CODE)

        return postal_address

    def _add_party_tax_scheme(self, parent: etree._Element, vat_number: str) -> etree._Element:
        """Add PartyTaxScheme element."""
        tax_scheme = self._add_cac(parent, "PartyTaxScheme")
        self._add_cbc(tax_scheme, "CompanyID", vat_number)

        scheme = self._add_cac(tax_scheme, "TaxScheme")
        self._add_cbc(scheme, "ID", TAX_SCHEME_VAT)

        return tax_scheme

    def _add_party_legal_entity(self, parent: etree._Element, name: str, company_id: str) -> etree._Element:
        """Add PartyLegalEntity element."""
        legal = self._add_cac(parent, "PartyLegalEntity")
        self._add_cbc(legal, "RegistrationName", name)
        self._add_cbc(legal, "CompanyID", company_id)
        return legal

    def _add_party(self, wrapper_tag: str, party: Party) -> etree._Element:
        """Add AccountingSupplierParty / AccountingCustomerParty."""
        wrapper = self._add_cac(self.root, wrapper_tag)
        party_elem = self._add_cac(wrapper, "Party")

        self._add_postal_address(party_elem, party)

        # PartyTaxScheme only for VAT registered parties
        if party.is_vat_payer:
            country_code = party.address.country_code or DEFAULT_COUNTRY_CODE
            self._add_party_tax_scheme(party_elem, normalize_vat_number(party.company_id, country_code))

        self._add_party_legal_entity(party_elem, party.registration_name, party.company_id)
        return party_elem

    def _add_tax_category(
        self,
        parent: etree._Element,
        tag: str,
        category_id: str,
        percent: Decimal,
        exemption_reason_code: str | None = None,
    ) -> etree._Element:
        """Add TaxCategory / ClassifiedTaxCategory."""
        category = self._add_cac(parent, tag)
        self._add_cbc(category, "ID", category_id)
        self._add_cbc(category, "Percent", self._format_percent(percent))

        if exemption_reason_code:
            self._add_cbc(category, "TaxExemptionReasonCode", exemption_reason_code)

        tax_scheme = self._add_cac(category, "TaxScheme")
        self._add_cbc(tax_scheme, "ID", TAX_SCHEME_VAT)
        return category


class UBLInvoiceBuilder(BaseUBLBuilder):
    """
    Build UBL 2.1 Invoice XML compliant with Romanian CIUS-RO.

    Usage:
        builder = UBLInvoiceBuilder(invoice)
        xml_string = builder.build()
    """

    def __init__(self, invoice: InvoiceInput):
        super().__init__(invoice)
        self.tax_groups: list[TaxGroup] = []
        self.total_taxable = Decimal("0.00")
        self.total_tax = Decimal("0.00")
        self.grand_total = Decimal("0.00")

    @property
    def is_supplier_vat_payer(self) -> bool:
        return bool(self.invoice.supplier.is_vat_payer)

    def build(self) -> str:
        """
        Generate complete UBL 2.1 Invoice XML.

        Returns:
            XML string encoded as UTF-8

        Raises:
            ValidationError: If required data is missing or invalid
        """
        validate_invoice_input(self.invoice)
        issue_date = coerce_date(self.invoice.issue_date, "Issue date")
        due_date = coerce_date(self.invoice.due_date, "Due date") if self.invoice.due_date else issue_date

        self._calculate_totals()
        self._create_root()
        self._add_document_metadata(issue_date, due_date)
        self._add_party("AccountingSupplierParty", self.invoice.supplier)
        self._add_party("AccountingCustomerParty", self.invoice.customer)
        self._add_payment_means()
        self._add_tax_total()
        self._add_legal_monetary_total()
        self._add_invoice_lines()

        xml_body = etree.tostring(
            self.root,
            pretty_print=True,
            xml_declaration=False,
            encoding="UTF-8",
        ).decode("utf-8")

        logger.debug(
            f"Built invoice {self.invoice.invoice_number}: {len(self.invoice.lines)} lines, "
            f"{len(self.tax_groups)} tax groups, total {self.grand_total} {self.currency}"
        )
        return f'<?xml version="1.0" encoding="UTF-8"?>\n{xml_body.lstrip()}'

    def _calculate_totals(self) -> None:
        self.tax_groups = group_lines_by_tax(self.invoice.lines, self.is_supplier_vat_payer)
        self.total_taxable, self.total_tax, self.grand_total = calculate_totals(self.tax_groups)

    def _create_root(self) -> None:
        """Create Invoice root element with namespaces."""
        nsmap = {
            None: NAMESPACES["ubl"],
            "cbc": NAMESPACES["cbc"],
            "cac": NAMESPACES["cac"],
        }
        self.root = etree.Element(f"{{{NAMESPACES['ubl']}}}Invoice", nsmap=nsmap)

    def _add_document_metadata(self, issue_date: date, due_date: date) -> None:
        """Add invoice document metadata."""
        # Mandatory CIUS-RO customization identifier.
        self._add_cbc(self.root, "CustomizationID", CIUS_RO_CUSTOMIZATION_ID)
        self._add_cbc(self.root, "ID", str(self.invoice.invoice_number))
        self._add_cbc(self.root, "IssueDate", self._format_date(issue_date))
        self._add_cbc(self.root, "DueDate", self._format_date(due_date))

        type_code = self.invoice.invoice_type_code or InvoiceTypeCode.COMMERCIAL_INVOICE
        self._add_cbc(self.root, "InvoiceTypeCode", str(type_code))
        self._add_cbc(self.root, "DocumentCurrencyCode", self.currency)

    def _add_payment_means(self) -> None:
        """Add PaymentMeans element when a payee IBAN is known."""
        if not self.invoice.payment_iban:
            return

        payment_means = self._add_cac(self.root, "PaymentMeans")
        self._add_cbc(payment_means, "PaymentMeansCode", PAYMENT_MEANS_CREDIT_TRANSFER)

        account = self._add_cac(payment_means, "PayeeFinancialAccount")
        self._add_cbc(account, "ID", self.invoice.payment_iban)

    def _add_tax_total(self) -> None:
        """Add TaxTotal element with one TaxSubtotal per tax group."""
        tax_total = self._add_cac(self.root, "TaxTotal")
        self._add_amount(tax_total, "TaxAmount", self.total_tax)

        if not self.tax_groups:
            # A document without lines still needs one subtotal
            subtotal = self._add_cac(tax_total, "TaxSubtotal")
            self._add_amount(subtotal, "TaxableAmount", Decimal("0"))
            self._add_amount(subtotal, "TaxAmount", Decimal("0"))
            self._add_tax_category(subtotal, "TaxCategory", VATCategory.STANDARD.value, Decimal("0"))
            return

        for group in self.tax_groups:
            subtotal = self._add_cac(tax_total, "TaxSubtotal")
            self._add_amount(subtotal, "TaxableAmount", group.taxable_amount)
            self._add_amount(subtotal, "TaxAmount", group.tax_amount)
            self._add_tax_category(
                subtotal,
                "TaxCategory",
                group.category_id.value,
                group.percent,
                group.exemption_reason_code,
            )

    def _add_legal_monetary_total(self) -> None:
        """Add LegalMonetaryTotal element."""
        monetary_total = self._add_cac(self.root, "LegalMonetaryTotal")
        self._add_amount(monetary_total, "LineExtensionAmount", self.total_taxable)
        self._add_amount(monetary_total, "TaxExclusiveAmount", self.total_taxable)
        self._add_amount(monetary_total, "TaxInclusiveAmount", self.grand_total)
        self._add_amount(monetary_total, "PayableAmount", self.grand_total)

    def _add_invoice_lines(self) -> None:
        """Add InvoiceLine elements for each line item."""
        for idx, line in enumerate(self.invoice.lines, start=1):
            line_id = str(line.id) if line.id not in (None, "") else str(idx)
            self._add_invoice_line(line_id, line)

    def _add_invoice_line(self, line_id: str, line: InvoiceLine) -> None:
        """Add a single InvoiceLine element."""
        invoice_line = self._add_cac(self.root, "InvoiceLine")
        self._add_cbc(invoice_line, "ID", line_id)
        self._add_cbc(
            invoice_line,
            "InvoicedQuantity",
            self._format_quantity(line.quantity),
            unitCode=line.unit_code or DEFAULT_UNIT_CODE,
        )
        self._add_amount(invoice_line, "LineExtensionAmount", calculate_line_extension(line))

        self._add_line_item(invoice_line, line)

        price = self._add_cac(invoice_line, "Price")
        self._add_amount(price, "PriceAmount", round_amount(line.unit_price))

    def _add_line_item(self, parent: etree._Element, line: InvoiceLine) -> None:
        """Add Item element to invoice line."""
        item = self._add_cac(parent, "Item")

        # Description precedes Name in the UBL Item sequence
        if line.description:
            self._add_cbc(item, "Description", line.description)
        self._add_cbc(item, "Name", line.name)

        percent = line.tax_percent or 0
        category = resolve_tax_category(percent, self.is_supplier_vat_payer)
        self._add_tax_category(item, "ClassifiedTaxCategory", category.value, Decimal(str(percent)))


def build_invoice_xml(invoice: InvoiceInput) -> str:
    """
    Render an invoice as CIUS-RO compliant UBL 2.1 XML.

    Raises:
        ValidationError: on the first invalid input field
    """
    return UBLInvoiceBuilder(invoice).build()
