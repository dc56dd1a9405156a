"""
Romanian address normalization for e-Factura.

CIUS-RO requires CountrySubentity as an ISO 3166-2:RO code (``RO-CJ``) and,
for Bucharest, the sector code (``SECTOR1``..``SECTOR6``) in CityName.
Input usually arrives as free text typed by people, so matching is
tolerant of case, diacritics (both cedilla and comma-below forms),
separators, administrative prefixes and a few common misspellings.

None of these functions raise: anything that cannot be resolved yields
None and the caller decides what to omit.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from types import MappingProxyType

logger = logging.getLogger(__name__)

BUCHAREST_CODE = "RO-B"

MIN_SECTOR = 1
MAX_SECTOR = 6

# Canonical ISO 3166-2:RO code -> accepted spellings (already normalized).
# Sector forms ("sector 1") are not county names and stay unresolved.
_COUNTY_NAMES: dict[str, tuple[str, ...]] = {
    "RO-AB": ("alba",),
    "RO-AR": ("arad",),
    "RO-AG": ("arges",),
    "RO-BC": ("bacau",),
    "RO-BH": ("bihor",),
    "RO-BN": ("bistrita nasaud", "bistrita nasud", "bistrita"),
    "RO-BT": ("botosani",),
    "RO-BV": ("brasov",),
    "RO-BR": ("braila",),
    "RO-BZ": ("buzau",),
    "RO-CS": ("caras severin", "caras"),
    "RO-CL": ("calarasi",),
    "RO-CJ": ("cluj",),
    "RO-CT": ("constanta", "constnta", "contanta"),
    "RO-CV": ("covasna",),
    "RO-DB": ("dambovita", "dimbovita"),
    "RO-DJ": ("dolj",),
    "RO-GL": ("galati",),
    "RO-GR": ("giurgiu",),
    "RO-GJ": ("gorj",),
    "RO-HR": ("harghita",),
    "RO-HD": ("hunedoara",),
    "RO-IL": ("ialomita",),
    "RO-IS": ("iasi",),
    "RO-IF": ("ilfov",),
    "RO-MM": ("maramures",),
    "RO-MH": ("mehedinti",),
    "RO-MS": ("mures",),
    "RO-NT": ("neamt",),
    "RO-OT": ("olt",),
    "RO-PH": ("prahova",),
    "RO-SM": ("satu mare", "satumare"),
    "RO-SJ": ("salaj",),
    "RO-SB": ("sibiu",),
    "RO-SV": ("suceava",),
    "RO-TR": ("teleorman",),
    "RO-TM": ("timis",),
    "RO-TL": ("tulcea",),
    "RO-VS": ("vaslui",),
    "RO-VL": ("valcea", "vilcea"),
    "RO-VN": ("vrancea",),
    BUCHAREST_CODE: ("bucuresti", "bucurest", "bucurestii", "bucuresi", "bucharest", "buc"),
}


def _build_alias_table() -> MappingProxyType[str, str]:
    table: dict[str, str] = {}
    for code, names in _COUNTY_NAMES.items():
        for name in names:
            table[name] = code
        # "ro-cj" normalizes to "ro cj"
        table[code.lower().replace("-", " ")] = code
    return MappingProxyType(table)


COUNTY_ALIASES = _build_alias_table()

_SEPARATORS_RE = re.compile(r"[-_.,]+")
_WHITESPACE_RE = re.compile(r"\s+")

_ADMINISTRATIVE_WORDS = (
    "judetul",
    "judet",
    "jud",
    "municipiul",
    "municipiu",
    "mun",
    "orasul",
    "oras",
    "comuna",
    "com",
)
_ADMIN_WORDS_PATTERN = "|".join(_ADMINISTRATIVE_WORDS)
_LEADING_ADMIN_RE = re.compile(rf"^(?:(?:{_ADMIN_WORDS_PATTERN})\s+)+")
_TRAILING_ADMIN_RE = re.compile(rf"(?:\s+(?:{_ADMIN_WORDS_PATTERN}))+$")

_SECTOR_RE = re.compile(r"\b(?:sectorul|sector|sect|s)\s?(\d{1,2})\b")


def normalize_text(value: str) -> str:
    """
    Fold free text to the form used for lookups.

    Lower-cases, removes diacritics, turns ``- _ . ,`` into spaces and
    collapses whitespace.
    """
    decomposed = unicodedata.normalize("NFKD", value.strip().lower())
    ascii_text = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    ascii_text = _SEPARATORS_RE.sub(" ", ascii_text)
    return _WHITESPACE_RE.sub(" ", ascii_text).strip()


def strip_administrative_words(value: str) -> str:
    """Remove leading and trailing qualifiers such as ``judetul`` or ``mun``."""
    stripped = _LEADING_ADMIN_RE.sub("", value)
    return _TRAILING_ADMIN_RE.sub("", stripped).strip()


def sanitize_county(value: str | None) -> str | None:
    """
    Resolve a free-text county name to its ISO 3166-2:RO code.

    Examples:
        >>> sanitize_county("Județul Cluj")
        'RO-CJ'
        >>> sanitize_county("mun. București")
        'RO-B'
        >>> sanitize_county("Transilvania") is None
        True
    """
    if value is None:
        return None

    normalized = normalize_text(value)
    if not normalized:
        return None

    code = COUNTY_ALIASES.get(normalized)
    if code is not None:
        return code

    stripped = strip_administrative_words(normalized)
    if stripped and stripped != normalized:
        return COUNTY_ALIASES.get(stripped)
    return None


def sanitize_bucharest_sector(value: str | None) -> str | None:
    """
    Extract the Bucharest sector code from free text.

    The first sector token numbered 1..6 wins; None when there is none.

    Examples:
        >>> sanitize_bucharest_sector("Sectorul 2, București")
        'SECTOR2'
        >>> sanitize_bucharest_sector("sector 7") is None
        True
    """
    if value is None:
        return None

    normalized = normalize_text(value)
    if not normalized:
        return None

    for match in _SECTOR_RE.finditer(normalized):
        sector = int(match.group(1))
        if MIN_SECTOR <= sector <= MAX_SECTOR:
            return f"SECTOR{sector}"
    return None


def is_bucharest(code: str | None) -> bool:
    """Check whether a county code designates Bucharest."""
    if code is None:
        return False
    return code.strip().upper() == BUCHAREST_CODE
