"""
Company lookup in the public ANAF VAT registry.

The registry needs no authentication. Lookups never raise on remote
failures; they return a CompanyLookupResult describing what went wrong,
so callers can fall back to manual data entry.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from django.utils import timezone

from .exceptions import EFacturaError, NetworkError, NotFoundError
from .http import HttpClient
from .responses import parse_json_response
from .settings import ANAF_COMPANY_LOOKUP_URL, DEFAULT_COUNTRY_CODE, ROMANIA_TIMEZONE, efactura_settings
from .types import Address, Party
from .validators import extract_cui_number, is_valid_vat_code

logger = logging.getLogger(__name__)

MIN_VAT_CODE_LENGTH = 2


@dataclass
class CompanyData:
    """Company record returned by the registry."""

    vat_code: str
    name: str
    registration_number: str = ""
    street: str = ""
    street_number: str = ""
    city: str = ""
    county: str = ""
    postal_zone: str = ""
    country_code: str = DEFAULT_COUNTRY_CODE
    postal_code: str = ""
    contact_phone: str = ""
    is_vat_payer: bool = False

    @classmethod
    def from_registry(cls, record: dict[str, Any]) -> CompanyData:
        general = record.get("date_generale") or {}
        address = record.get("adresa_sediu_social") or {}
        vat = record.get("inregistrare_scop_Tva") or {}
        return cls(
            vat_code=str(general.get("cui", "")),
            name=general.get("denumire", "") or "",
            registration_number=general.get("nrRegCom", "") or "",
            street=address.get("sdenumire_Strada", "") or "",
            street_number=str(address.get("snumar_Strada", "") or ""),
            city=address.get("sdenumire_Localitate", "") or "",
            county=address.get("sdenumire_Judet", "") or "",
            postal_zone=str(address.get("scod_Postal", "") or ""),
            postal_code=str(general.get("codPostal", "") or ""),
            contact_phone=general.get("telefon", "") or "",
            is_vat_payer=bool(vat.get("scpTVA", False)),
        )

    def to_party(self) -> Party:
        """Invoice party built from the registry record."""
        street = f"{self.street} {self.street_number}".strip() if self.street_number else self.street
        return Party(
            registration_name=self.name,
            company_id=f"RO{self.vat_code}" if self.is_vat_payer else self.vat_code,
            address=Address(
                street=street,
                city=self.city,
                postal_zone=self.postal_zone or self.postal_code,
                county=self.county or None,
                country_code=self.country_code,
            ),
            is_vat_payer=self.is_vat_payer,
        )


@dataclass
class CompanyLookupResult:
    """Outcome of a registry lookup."""

    success: bool
    data: list[CompanyData] = field(default_factory=list)
    error: str = ""

    @classmethod
    def failure(cls, error: str) -> CompanyLookupResult:
        return cls(success=False, error=error)


class AnafDetailsClient:
    """
    Client for the public ANAF company registry.

    Usage:
        details = AnafDetailsClient()
        result = details.get_company_data("RO12345678")
        if result.success:
            party = result.data[0].to_party()
    """

    def __init__(self, url: str = ANAF_COMPANY_LOOKUP_URL, timeout: int | None = None, http: HttpClient | None = None):
        self.url = url
        self.http = http or HttpClient(timeout=timeout or efactura_settings.api_timeout, max_retries=1)

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> AnafDetailsClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def get_company_data(self, vat_code: str) -> CompanyLookupResult:
        """Get company data for a single VAT code (with or without RO prefix)."""
        return self.batch_get_company_data([vat_code])

    def batch_get_company_data(self, vat_codes: Iterable[str]) -> CompanyLookupResult:
        """Fetch company data for several VAT codes in one request."""
        vat_codes = list(vat_codes or [])
        if not vat_codes:
            return CompanyLookupResult.failure("No VAT codes provided.")

        request_date = timezone.now().astimezone(ROMANIA_TIMEZONE).date().isoformat()
        payload: list[dict[str, Any]] = []
        invalid_codes: list[str] = []

        for vat_code in vat_codes:
            cui = extract_cui_number(vat_code) if vat_code and len(vat_code.strip()) >= MIN_VAT_CODE_LENGTH else None
            if cui is None:
                invalid_codes.append(str(vat_code))
                continue
            payload.append({"cui": cui, "data": request_date})

        if not payload:
            return CompanyLookupResult.failure(f"All provided VAT codes are invalid: {', '.join(invalid_codes)}")

        if invalid_codes:
            logger.warning(f"Skipping invalid VAT codes in registry lookup: {invalid_codes}")

        logger.info(f"ANAF registry lookup for {len(payload)} CUIs, date {request_date}")

        try:
            response = self.http.post(self.url, json=payload, headers={"Content-Type": "application/json"})
            data = parse_json_response(response.text) if response.text else None
        except NotFoundError:
            logger.warning("ANAF registry returned 404 for lookup")
            return CompanyLookupResult.failure("Companies not found for the provided VAT codes.")
        except NetworkError as e:
            logger.warning(f"ANAF registry unreachable: {e}")
            return CompanyLookupResult.failure("Network error: Could not connect to ANAF service.")
        except EFacturaError as e:
            logger.warning(f"ANAF registry lookup failed: {e}")
            return CompanyLookupResult.failure("An unexpected error occurred while contacting the ANAF service.")

        if not data:
            return CompanyLookupResult.failure("No response received from ANAF API.")

        return self._transform_response(data)

    def _transform_response(self, response: Any) -> CompanyLookupResult:
        if isinstance(response, dict) and response.get("found"):
            companies = [CompanyData.from_registry(record) for record in response["found"]]
            return CompanyLookupResult(success=True, data=companies)

        if isinstance(response, dict) and response.get("notFound"):
            return CompanyLookupResult.failure("Company not found for the provided VAT code.")

        return CompanyLookupResult.failure(f"Unexpected response structure from ANAF API: {response}")

    def is_valid_vat_code(self, vat_code: str) -> bool:
        """Check if a VAT code has the shape the registry accepts."""
        return is_valid_vat_code(vat_code)
