"""
Parsing of ANAF e-Factura API responses.

Upload and status endpoints answer with a small namespaced XML document
whose root is ``header``:

    <header xmlns="mfp:anaf:dgti:spv:respUploadFisier:v1"
            dateResponse="202108051140" ExecutionStatus="0" index_incarcare="3828"/>

    <header xmlns="mfp:anaf:dgti:efactura:stareMesajFactura:v1"
            stare="ok" id_descarcare="1234"/>

Errors come back as ``<Errors errorMessage="..."/>`` children. Message
listing and validation endpoints answer with JSON.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum
from typing import Any

from lxml import etree

from .exceptions import XMLParsingError

logger = logging.getLogger(__name__)


class ExecutionStatus(IntEnum):
    """ExecutionStatus attribute of upload responses."""

    SUCCESS = 0
    ERROR = 1


class UploadState(StrEnum):
    """``stare`` values reported for an upload."""

    OK = "ok"
    FAILED = "nok"
    IN_PROGRESS = "in prelucrare"
    XML_ERRORS = "XML cu erori nepreluat de sistem"


class MessageFilter(StrEnum):
    """Message categories accepted by the listing endpoints (``filtru``)."""

    INVOICE_SENT = "T"  # FACTURA TRIMISA
    INVOICE_RECEIVED = "P"  # FACTURA PRIMITA
    INVOICE_ERRORS = "E"  # ERORI FACTURA
    BUYER_MESSAGE = "R"  # MESAJ CUMPARATOR


# ===============================================================================
# RESPONSE TYPES
# ===============================================================================


@dataclass
class UploadResponse:
    """Response from upload endpoint."""

    execution_status: ExecutionStatus
    upload_index: str | None = None  # index_incarcare
    date_response: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.execution_status == ExecutionStatus.SUCCESS


@dataclass
class StatusResponse:
    """Response from status check endpoint."""

    state: str | None = None  # stare
    download_id: str | None = None  # id_descarcare
    errors: list[str] = field(default_factory=list)

    @property
    def is_processing(self) -> bool:
        return self.state == UploadState.IN_PROGRESS

    @property
    def is_accepted(self) -> bool:
        return self.state == UploadState.OK

    @property
    def is_rejected(self) -> bool:
        return self.state == UploadState.FAILED or bool(self.errors)


@dataclass
class MessageInfo:
    """Information about a message from ANAF."""

    id: str  # download id
    message_type: str  # tip
    creation_date: str  # data_creare, YYYYMMDDHHMM
    upload_index: str = ""  # id_solicitare
    cif: str = ""
    details: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MessageInfo:
        return cls(
            id=str(data.get("id", "")),
            message_type=data.get("tip", ""),
            creation_date=str(data.get("data_creare", "")),
            upload_index=str(data.get("id_solicitare", "") or ""),
            cif=str(data.get("cif", "") or ""),
            details=data.get("detalii", "") or "",
        )


@dataclass
class ListMessagesResponse:
    """Response of listaMesajeFactura."""

    messages: list[MessageInfo] = field(default_factory=list)
    serial: str = ""
    cui: str = ""
    title: str = ""
    info: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ListMessagesResponse:
        return cls(
            messages=[MessageInfo.from_dict(m) for m in data.get("mesaje") or []],
            serial=data.get("serial", "") or "",
            cui=str(data.get("cui", "") or ""),
            title=data.get("titlu", "") or "",
            info=data.get("info", "") or "",
        )


@dataclass
class PaginatedMessagesResponse(ListMessagesResponse):
    """Response of listaMesajePaginatieFactura."""

    records_in_page: int = 0
    records_per_page: int = 0
    total_records: int = 0
    total_pages: int = 0
    current_page: int = 0

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.total_pages

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PaginatedMessagesResponse:
        base = ListMessagesResponse.from_dict(data)
        return cls(
            messages=base.messages,
            serial=base.serial,
            cui=base.cui,
            title=base.title,
            info=base.info,
            records_in_page=int(data.get("numar_inregistrari_in_pagina") or 0),
            records_per_page=int(data.get("numar_total_inregistrari_per_pagina") or 0),
            total_records=int(data.get("numar_total_inregistrari") or 0),
            total_pages=int(data.get("numar_total_pagini") or 0),
            current_page=int(data.get("index_pagina_curenta") or 0),
        )


@dataclass
class XmlValidationResult:
    """Outcome of remote XML or signature validation."""

    valid: bool
    details: str = ""
    info: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "details": self.details, "info": self.info}


# ===============================================================================
# XML PARSING
# ===============================================================================


def _parse_header(xml: str | bytes) -> etree._Element:
    """Parse an ANAF XML answer and return its ``header`` element."""
    if not xml:
        raise XMLParsingError("Failed to parse XML response: empty body", xml)

    content = xml.encode("utf-8") if isinstance(xml, str) else xml
    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)
    try:
        root = etree.fromstring(content, parser=parser)
    except etree.XMLSyntaxError as e:
        raise XMLParsingError(f"Failed to parse XML response: {e}", xml) from e

    if etree.QName(root).localname.lower() == "header":
        return root

    for elem in root.iter():
        if isinstance(elem.tag, str) and etree.QName(elem).localname.lower() == "header":
            return elem

    raise XMLParsingError("Unknown or unexpected XML response structure", xml)


def _error_messages(header: etree._Element, default: str = "") -> list[str]:
    """Collect errorMessage attributes of Errors/Error children."""
    messages = []
    for child in header.iter():
        if not isinstance(child.tag, str):
            continue
        if etree.QName(child).localname.lower() in ("errors", "error"):
            message = child.get("errorMessage") or (child.text or "").strip() or default
            messages.append(message)
    return messages


def parse_upload_response(xml: str | bytes) -> UploadResponse:
    """
    Parse the XML answer of an upload.

    Raises:
        XMLParsingError: If XML cannot be parsed or has unexpected structure
    """
    header = _parse_header(xml)
    raw_status = header.get("ExecutionStatus")
    if raw_status is None:
        raise XMLParsingError("Unknown or unexpected XML response structure", xml)

    try:
        status = ExecutionStatus(int(raw_status))
    except ValueError as e:
        raise XMLParsingError(f"Unknown ExecutionStatus: {raw_status}", xml) from e

    result = UploadResponse(
        execution_status=status,
        upload_index=header.get("index_incarcare"),
        date_response=header.get("dateResponse"),
    )
    if status == ExecutionStatus.ERROR:
        result.errors = _error_messages(header)
    return result


def parse_status_response(xml: str | bytes) -> StatusResponse:
    """
    Parse the XML answer of a status check.

    Raises:
        XMLParsingError: If XML cannot be parsed or has unexpected structure
    """
    header = _parse_header(xml)
    state = header.get("stare")
    download_id = header.get("id_descarcare")

    if state or download_id:
        return StatusResponse(state=state, download_id=download_id)

    errors = _error_messages(header, default="Operation failed")
    if errors:
        return StatusResponse(errors=errors)

    raise XMLParsingError("Unknown or unexpected XML response structure", xml)


# ===============================================================================
# JSON HELPERS
# ===============================================================================


def parse_json_response(data: Any) -> Any:
    """
    Decode a JSON body; already decoded values pass through.

    Raises:
        XMLParsingError: If a string body is not valid JSON
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    if isinstance(data, str):
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            raise XMLParsingError("Failed to parse JSON response", data) from e
    return data


def is_error_response(response: Any) -> bool:
    """Check a decoded response against the error shapes ANAF uses."""
    if isinstance(response, UploadResponse):
        return not response.success
    if isinstance(response, StatusResponse):
        return response.is_rejected
    if not isinstance(response, dict):
        return False
    if response.get("errors") or response.get("Error") or response.get("error") or response.get("eroare"):
        return True
    return str(response.get("stare", "")).lower() == UploadState.FAILED


def extract_error_message(response: Any) -> str | None:
    """Human readable error text from a response, or None."""
    if isinstance(response, (UploadResponse, StatusResponse)):
        return "; ".join(response.errors) or None
    if not isinstance(response, dict):
        return None

    errors = response.get("errors")
    if isinstance(errors, list) and errors:
        return "; ".join(str(e) for e in errors)
    error = response.get("Error")
    if isinstance(error, dict) and error.get("mesaj"):
        return str(error["mesaj"])
    if response.get("error"):
        return str(response["error"])
    if response.get("eroare"):
        return str(response["eroare"])
    if response.get("mesaj") and response.get("stare") == UploadState.FAILED:
        return str(response["mesaj"])
    return None


def join_validation_messages(data: dict[str, Any]) -> str:
    """Join the ``Messages[].message`` entries of a validation answer."""
    return "\n".join(str(m.get("message", "")) for m in data.get("Messages") or [] if isinstance(m, dict))
