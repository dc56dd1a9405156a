"""
Tests for Romanian county and Bucharest sector normalization.
"""

from django.test import SimpleTestCase

from efactura.address import (
    COUNTY_ALIASES,
    is_bucharest,
    normalize_text,
    sanitize_bucharest_sector,
    sanitize_county,
)


class NormalizeTextTestCase(SimpleTestCase):
    """Test the lookup folding of free text."""

    def test_strips_comma_below_and_cedilla_diacritics(self):
        """Test both Romanian diacritic variants fold to ASCII."""
        self.assertEqual(normalize_text("Ș ș Ț ț"), "s s t t")
        self.assertEqual(normalize_text("Ş ş Ţ ţ"), "s s t t")
        self.assertEqual(normalize_text("Ăâî"), "aai")

    def test_collapses_separators(self):
        """Test separators and repeated whitespace become one space."""
        self.assertEqual(normalize_text("  Bistrita--Nasaud__x.y,  z "), "bistrita nasaud x y z")


class SanitizeCountyTestCase(SimpleTestCase):
    """Test sanitize_county."""

    def test_plain_county_names(self):
        """Test case-insensitive matching of plain names."""
        cases = {
            "cluj": "RO-CJ",
            "Alba": "RO-AB",
            "IASI": "RO-IS",
            "ilfov": "RO-IF",
            "botosani": "RO-BT",
            "buzau": "RO-BZ",
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(sanitize_county(value), expected)

    def test_diacritics(self):
        """Test names written with diacritics."""
        cases = {
            "Iași": "RO-IS",
            "Dâmbovița": "RO-DB",
            "Dîmboviţa": "RO-DB",
            "Timiș": "RO-TM",
            "Timiş": "RO-TM",
            "Vâlcea": "RO-VL",
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(sanitize_county(value), expected)

    def test_separator_variants(self):
        """Test compound names with different separators."""
        cases = {
            "bistrita-nasaud": "RO-BN",
            "BISTRITA_NASAUD": "RO-BN",
            "bistrita.nasaud": "RO-BN",
            "bistrita, nasaud": "RO-BN",
            "satu-mare": "RO-SM",
            "satu_mare": "RO-SM",
            "caras-severin": "RO-CS",
            "caras_severin": "RO-CS",
            "caras,severin": "RO-CS",
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(sanitize_county(value), expected)

    def test_administrative_prefixes_are_stripped(self):
        """Test judet/municipiu/oras/comuna qualifiers are ignored."""
        cases = {
            "judetul cluj": "RO-CJ",
            "Județul Cluj": "RO-CJ",
            "comuna cluj": "RO-CJ",
            "municipiul iasi": "RO-IS",
            "Mun. Iasi": "RO-IS",
            "orasul constanta": "RO-CT",
            "municipiul bucuresti": "RO-B",
            "mun bucuresti": "RO-B",
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(sanitize_county(value), expected)

    def test_trailing_qualifier_is_stripped(self):
        """Test a qualifier after the name is ignored too."""
        self.assertEqual(sanitize_county("Cluj judet"), "RO-CJ")

    def test_bucharest_variants(self):
        """Test Bucharest spellings resolve to RO-B."""
        for value in ("bucuresti", "București", "buc", "BUC", "Bucharest", "Mun. Bucuresti"):
            with self.subTest(value=value):
                self.assertEqual(sanitize_county(value), "RO-B")

    def test_common_typos(self):
        """Test old spellings and frequent misspellings."""
        cases = {
            "vilcea": "RO-VL",
            "Vilcea": "RO-VL",
            "Bucurest": "RO-B",
            "bucurestii": "RO-B",
            "Mun. Bucuresi": "RO-B",
            "Constnta": "RO-CT",
            "jud. Contanta": "RO-CT",
            "Satumare": "RO-SM",
            "Bistrita-Nasud": "RO-BN",
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(sanitize_county(value), expected)

    def test_iso_code_input(self):
        """Test values already in ISO form are accepted."""
        self.assertEqual(sanitize_county("RO-CJ"), "RO-CJ")
        self.assertEqual(sanitize_county("ro-b"), "RO-B")

    def test_unknown_values_return_none(self):
        """Test unresolvable input yields None."""
        for value in ("transilvania", "unknown county", "sector 1", "judetul"):
            with self.subTest(value=value):
                self.assertIsNone(sanitize_county(value))

    def test_empty_input_returns_none(self):
        """Test None, empty and whitespace input."""
        self.assertIsNone(sanitize_county(None))
        self.assertIsNone(sanitize_county(""))
        self.assertIsNone(sanitize_county("   "))

    def test_alias_table_covers_all_counties(self):
        """Test 41 counties plus Bucharest are present."""
        self.assertEqual(len(set(COUNTY_ALIASES.values())), 42)

    def test_alias_table_is_read_only(self):
        """Test the lookup table cannot be mutated."""
        with self.assertRaises(TypeError):
            COUNTY_ALIASES["atlantida"] = "RO-XX"  # type: ignore[index]


class SanitizeBucharestSectorTestCase(SimpleTestCase):
    """Test sanitize_bucharest_sector."""

    def test_sector_formats(self):
        """Test the sector spellings seen in real addresses."""
        cases = {
            "sector 1": "SECTOR1",
            "Sectorul 2": "SECTOR2",
            "SECTOR3": "SECTOR3",
            "sector 06": "SECTOR6",
            "sector06": "SECTOR6",
            "sectorul06": "SECTOR6",
            "s1": "SECTOR1",
            "S2": "SECTOR2",
            "s06": "SECTOR6",
            "Sector 4 Bucuresti": "SECTOR4",
            "Bucuresti sector 5": "SECTOR5",
            "Sectorul_6": "SECTOR6",
            "Sect. 3": "SECTOR3",
            "Sector 3 Mun. Bucureşti": "SECTOR3",
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(sanitize_bucharest_sector(value), expected)

    def test_first_valid_sector_wins(self):
        """Test out-of-range tokens are skipped in favour of a later valid one."""
        cases = {
            "sector 9 sector 2": "SECTOR2",
            "Sectorul 0, sectorul 4": "SECTOR4",
            "sector 3 sector 5": "SECTOR3",
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(sanitize_bucharest_sector(value), expected)

    def test_out_of_range_sectors(self):
        """Test sector numbers outside 1..6 yield None."""
        for value in ("sector 0", "sector 7", "sectorul 9", "s0", "s7"):
            with self.subTest(value=value):
                self.assertIsNone(sanitize_bucharest_sector(value))

    def test_no_sector_token(self):
        """Test text without a sector yields None."""
        for value in ("bucuresti", "ilfov", None, "", "  "):
            with self.subTest(value=value):
                self.assertIsNone(sanitize_bucharest_sector(value))


class IsBucharestTestCase(SimpleTestCase):
    """Test is_bucharest."""

    def test_bucharest_code(self):
        """Test RO-B in any case and with padding."""
        for value in ("RO-B", "ro-b", " Ro-B "):
            with self.subTest(value=value):
                self.assertTrue(is_bucharest(value))

    def test_other_values(self):
        """Test anything else is not Bucharest."""
        for value in ("RO-IF", "B", None, ""):
            with self.subTest(value=value):
                self.assertFalse(is_bucharest(value))
