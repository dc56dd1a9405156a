"""
Tests for the e-Factura API client.
"""

from datetime import timedelta
from unittest.mock import Mock

from django.core.cache import cache
from django.test import SimpleTestCase, override_settings
from django.utils import timezone

from efactura.auth import AnafAuthenticator, TokenResponse
from efactura.client import EFacturaClient, EFacturaConfig
from efactura.exceptions import APIError, AuthenticationError, ValidationError
from efactura.http import HttpClient
from efactura.responses import MessageFilter
from efactura.settings import ANAF_SIGNATURE_VALIDATION_URL, EFacturaEnvironment

UPLOAD_OK = b'<header xmlns="mfp:anaf:dgti:spv:respUploadFisier:v1" ExecutionStatus="0" index_incarcare="3828"/>'
UPLOAD_ERROR = (
    b'<header xmlns="mfp:anaf:dgti:spv:respUploadFisier:v1" ExecutionStatus="1">'
    b'<Errors errorMessage="Invalid XML"/></header>'
)
STATUS_OK = b'<header xmlns="mfp:anaf:dgti:efactura:stareMesajFactura:v1" stare="ok" id_descarcare="1234"/>'

SAMPLE_XML = '<?xml version="1.0" encoding="UTF-8"?><Invoice/>'


def make_response(content=b"", text=None, status_code=200, content_type="application/json"):
    response = Mock()
    response.content = content
    response.text = text if text is not None else content.decode("utf-8", errors="replace")
    response.status_code = status_code
    response.headers = {"Content-Type": content_type}
    return response


class EFacturaEnvironmentTestCase(SimpleTestCase):
    """Test EFacturaEnvironment enum."""

    def test_test_environment_base_url(self):
        """Test test environment URL."""
        self.assertEqual(EFacturaEnvironment.TEST.base_url, "https://api.anaf.ro/test/FCTEL/rest")

    def test_production_environment_base_url(self):
        """Test production environment URL."""
        self.assertEqual(EFacturaEnvironment.PRODUCTION.base_url, "https://api.anaf.ro/prod/FCTEL/rest")

    def test_oauth_base_url(self):
        """Test OAuth URL is shared by both environments."""
        self.assertEqual(EFacturaEnvironment.TEST.oauth_base_url, EFacturaEnvironment.PRODUCTION.oauth_base_url)


class EFacturaConfigTestCase(SimpleTestCase):
    """Test EFacturaConfig dataclass."""

    def test_config_from_settings(self):
        """Test creating config from Django settings."""
        config = EFacturaConfig.from_settings()
        self.assertEqual(config.vat_number, "RO12345678")
        self.assertEqual(config.refresh_token, "test-refresh-token")
        self.assertEqual(config.environment, EFacturaEnvironment.TEST)
        self.assertEqual(config.retry_delay, 0)

    @override_settings(EFACTURA_ENVIRONMENT="prod")
    def test_config_production_environment(self):
        """Test production environment config."""
        config = EFacturaConfig.from_settings()
        self.assertEqual(config.environment, EFacturaEnvironment.PRODUCTION)
        self.assertEqual(config.base_url, "https://api.anaf.ro/prod/FCTEL/rest")

    def test_cif_strips_prefix(self):
        """Test cif query value."""
        self.assertEqual(EFacturaConfig(vat_number="RO12345678", refresh_token="r").cif, "12345678")

    def test_validate(self):
        """Test required fields."""
        with self.assertRaisesMessage(ValidationError, "VAT number is required"):
            EFacturaConfig(vat_number="", refresh_token="r").validate()
        with self.assertRaisesMessage(ValidationError, "Refresh token is required for automatic authentication"):
            EFacturaConfig(vat_number="RO1", refresh_token="").validate()


class ClientTestMixin:
    """Client wired to mocked transport and authenticator."""

    def setUp(self):
        cache.clear()
        self.http = Mock(spec=HttpClient)
        self.authenticator = Mock(spec=AnafAuthenticator)
        self.authenticator.refresh_access_token.return_value = TokenResponse(
            access_token="access-1",
            refresh_token="refresh-2",
            expires_in=3600,
        )
        self.config = EFacturaConfig(vat_number="RO12345678", refresh_token="refresh-1")
        self.client = EFacturaClient(self.config, authenticator=self.authenticator, http=self.http)

    def tearDown(self):
        cache.clear()


class EFacturaClientTokenTestCase(ClientTestMixin, SimpleTestCase):
    """Test access token management."""

    def test_refreshes_on_first_use(self):
        """Test the refresh token is exchanged on first request."""
        self.assertEqual(self.client._get_access_token(), "access-1")
        self.authenticator.refresh_access_token.assert_called_once_with("refresh-1")

    def test_token_is_reused(self):
        """Test a valid token is not refreshed again."""
        self.client._get_access_token()
        self.client._get_access_token()
        self.assertEqual(self.authenticator.refresh_access_token.call_count, 1)

    def test_token_is_cached(self):
        """Test token is shared through the Django cache."""
        self.client._get_access_token()

        other = EFacturaClient(self.config, authenticator=self.authenticator, http=self.http)
        self.assertEqual(other._get_access_token(), "access-1")
        self.assertEqual(self.authenticator.refresh_access_token.call_count, 1)
        self.assertIsNotNone(cache.get("efactura_token_test_12345678"))

    def test_cache_disabled(self):
        """Test nothing is written to the cache when disabled."""
        config = EFacturaConfig(vat_number="RO12345678", refresh_token="refresh-1", use_token_cache=False)
        client = EFacturaClient(config, authenticator=self.authenticator, http=self.http)

        client._get_access_token()
        self.assertIsNone(cache.get(client.token_cache_key))

    def test_rotated_refresh_token_is_used(self):
        """Test ANAF's new refresh token replaces the old one."""
        self.client._get_access_token()
        self.client._token = TokenResponse(access_token="old", expires_at=timezone.now() - timedelta(minutes=1))
        cache.clear()

        self.client._get_access_token()
        self.assertEqual(self.authenticator.refresh_access_token.call_args.args[0], "refresh-2")

    def test_preissued_token(self):
        """Test an access token with expiry skips the refresh."""
        config = EFacturaConfig(
            vat_number="RO12345678",
            refresh_token="refresh-1",
            access_token="preissued",
            expires_at=timezone.now() + timedelta(hours=1),
        )
        client = EFacturaClient(config, authenticator=self.authenticator, http=self.http)

        self.assertEqual(client._get_access_token(), "preissued")
        self.authenticator.refresh_access_token.assert_not_called()

    def test_refresh_failure(self):
        """Test refresh errors surface as AuthenticationError."""
        self.authenticator.refresh_access_token.side_effect = AuthenticationError("Failed to refresh access token")

        with self.assertRaisesMessage(AuthenticationError, "Failed to refresh access token"):
            self.client._get_access_token()

    def test_invalid_config(self):
        """Test constructor validates config."""
        with self.assertRaises(ValidationError):
            EFacturaClient(
                EFacturaConfig(vat_number="", refresh_token="r"),
                authenticator=self.authenticator,
                http=self.http,
            )


class EFacturaClientUploadTestCase(ClientTestMixin, SimpleTestCase):
    """Test document upload, status and download."""

    def test_upload_success(self):
        """Test successful upload."""
        self.http.post.return_value = make_response(UPLOAD_OK)

        result = self.client.upload_document(SAMPLE_XML)

        self.assertTrue(result.success)
        self.assertEqual(result.upload_index, "3828")
        args, kwargs = self.http.post.call_args
        self.assertEqual(args[0], "/upload")
        self.assertEqual(kwargs["params"], {"standard": "UBL", "cif": "12345678"})
        self.assertEqual(kwargs["data"], SAMPLE_XML.encode("utf-8"))
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer access-1")
        self.assertEqual(kwargs["headers"]["Content-Type"], "application/xml; charset=utf-8")

    def test_upload_flags(self):
        """Test extern/autofactura/executare become DA."""
        self.http.post.return_value = make_response(UPLOAD_OK)

        self.client.upload_document(SAMPLE_XML, standard="CN", extern=True, autofactura=True, executare=True)

        self.assertEqual(self.http.post.call_args.kwargs["params"], {
            "standard": "CN",
            "cif": "12345678",
            "extern": "DA",
            "autofactura": "DA",
            "executare": "DA",
        })

    def test_upload_b2c(self):
        """Test B2C upload path."""
        self.http.post.return_value = make_response(UPLOAD_OK)
        self.client.upload_b2c_document(SAMPLE_XML)
        self.assertEqual(self.http.post.call_args.args[0], "/uploadb2c")

    def test_upload_failure(self):
        """Test ExecutionStatus 1 is returned, not raised."""
        self.http.post.return_value = make_response(UPLOAD_ERROR)

        result = self.client.upload_document(SAMPLE_XML)

        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["Invalid XML"])

    def test_upload_validation(self):
        """Test empty XML and bad standard."""
        with self.assertRaisesMessage(ValidationError, "XML content is required"):
            self.client.upload_document("   ")
        with self.assertRaisesMessage(ValidationError, "Standard must be one of: UBL, CN, CII, RASP"):
            self.client.upload_document(SAMPLE_XML, standard="PDF")
        self.http.post.assert_not_called()

    def test_get_upload_status(self):
        """Test status check."""
        self.http.get.return_value = make_response(STATUS_OK)

        result = self.client.get_upload_status("3828")

        self.assertTrue(result.is_accepted)
        self.assertEqual(result.download_id, "1234")
        self.assertEqual(self.http.get.call_args.args[0], "/stareMesaj")
        self.assertEqual(self.http.get.call_args.kwargs["params"], {"id_incarcare": "3828"})

    def test_get_upload_status_requires_id(self):
        """Test empty upload id."""
        with self.assertRaisesMessage(ValidationError, "Upload ID is required"):
            self.client.get_upload_status("")

    def test_download_document(self):
        """Test download returns raw bytes."""
        self.http.get.return_value = make_response(b"PK\x03\x04", text="", content_type="application/zip")

        self.assertEqual(self.client.download_document("1234"), b"PK\x03\x04")
        self.assertEqual(self.http.get.call_args.args[0], "/descarcare")
        self.assertEqual(self.http.get.call_args.kwargs["params"], {"id": "1234"})

    def test_download_requires_id(self):
        """Test empty download id."""
        with self.assertRaisesMessage(ValidationError, "Download ID is required"):
            self.client.download_document(" ")


class EFacturaClientMessagesTestCase(ClientTestMixin, SimpleTestCase):
    """Test message listing."""

    def test_get_messages(self):
        """Test simple listing with filter."""
        self.http.get.return_value = make_response(
            text='{"mesaje": [{"id": "1", "tip": "FACTURA TRIMISA", "data_creare": "202401011200"}], "serial": "s"}'
        )

        result = self.client.get_messages(7, MessageFilter.INVOICE_SENT)

        self.assertEqual(len(result.messages), 1)
        self.assertEqual(result.messages[0].message_type, "FACTURA TRIMISA")
        self.assertEqual(self.http.get.call_args.args[0], "/listaMesajeFactura")
        self.assertEqual(self.http.get.call_args.kwargs["params"], {"zile": 7, "cif": "12345678", "filtru": "T"})

    def test_get_messages_day_bounds(self):
        """Test days outside 1..60."""
        for days in (0, 61, "7"):
            with self.subTest(days=days), self.assertRaisesMessage(
                ValidationError, "Days parameter must be between 1 and 60"
            ):
                self.client.get_messages(days)

    def test_get_messages_error_payload(self):
        """Test ANAF error JSON raises APIError."""
        self.http.get.return_value = make_response(text='{"eroare": "Nu exista mesaje in ultimele 7 zile"}')

        with self.assertRaisesMessage(APIError, "Nu exista mesaje"):
            self.client.get_messages(7)

    def test_get_messages_paginated(self):
        """Test paginated listing."""
        self.http.get.return_value = make_response(
            text='{"mesaje": [], "numar_total_pagini": 2, "index_pagina_curenta": 1}'
        )

        result = self.client.get_messages_paginated(1700000000000, 1700086400000, 1)

        self.assertTrue(result.has_next_page)
        self.assertEqual(self.http.get.call_args.args[0], "/listaMesajePaginatieFactura")
        self.assertEqual(self.http.get.call_args.kwargs["params"], {
            "startTime": 1700000000000,
            "endTime": 1700086400000,
            "cif": "12345678",
            "pagina": 1,
        })

    def test_get_messages_paginated_validation(self):
        """Test argument checks in order."""
        cases = [
            ((0, 2, 1), "Valid start time is required"),
            ((1, 0, 1), "Valid end time is required"),
            ((5, 5, 1), "End time must be after start time"),
            ((1, 2, 0), "Page number must be 1 or greater"),
        ]
        for args, message in cases:
            with self.subTest(args=args), self.assertRaisesMessage(ValidationError, message):
                self.client.get_messages_paginated(*args)

    def test_non_object_payload(self):
        """Test a JSON list is rejected."""
        self.http.get.return_value = make_response(text="[]")
        with self.assertRaises(APIError):
            self.client.get_messages(1)


class EFacturaClientValidationTestCase(ClientTestMixin, SimpleTestCase):
    """Test remote validation and PDF conversion."""

    def test_validate_xml_valid(self):
        """Test validator uses production URL."""
        self.http.post.return_value = make_response(text='{"stare": "ok", "trace_id": "abc"}')

        result = self.client.validate_xml(SAMPLE_XML)

        self.assertTrue(result.valid)
        self.assertEqual(result.details, "Validation passed")
        self.assertIn("FACT1", result.info)
        self.assertIn("abc", result.info)
        self.assertEqual(self.http.post.call_args.args[0], "https://api.anaf.ro/prod/FCTEL/rest/validare/FACT1")
        self.assertEqual(self.http.post.call_args.kwargs["headers"]["Content-Type"], "text/plain")

    def test_validate_xml_invalid(self):
        """Test validator messages are joined."""
        self.http.post.return_value = make_response(
            text='{"stare": "nok", "Messages": [{"message": "BR-01"}, {"message": "BR-02"}]}'
        )

        result = self.client.validate_xml(SAMPLE_XML, "FCN")

        self.assertFalse(result.valid)
        self.assertEqual(result.details, "BR-01\nBR-02")
        self.assertTrue(self.http.post.call_args.args[0].endswith("/validare/FCN"))

    def test_validate_xml_bad_standard(self):
        """Test unsupported standard."""
        with self.assertRaisesMessage(ValidationError, "Document standard must be FACT1 or FCN"):
            self.client.validate_xml(SAMPLE_XML, "UBL")

    def test_validate_signature(self):
        """Test signature validation outcomes."""
        cases = {
            "Fisierele incarcate au fost validate cu succes": True,
            "Fisierele incarcate NU au fost validate cu succes": False,
            "Eroare": False,
        }
        for message, expected in cases.items():
            with self.subTest(message=message):
                self.http.post.return_value = make_response(text=f'{{"msg": "{message}"}}')
                result = self.client.validate_signature(b"<xml/>", b"<sig/>")
                self.assertEqual(result.valid, expected)
                self.assertEqual(result.details, message)

        self.assertEqual(self.http.post.call_args.args[0], ANAF_SIGNATURE_VALIDATION_URL)
        self.assertEqual(set(self.http.post.call_args.kwargs["files"]), {"file", "signature"})

    def test_validate_signature_requires_files(self):
        """Test missing files."""
        with self.assertRaisesMessage(ValidationError, "XML file is required"):
            self.client.validate_signature(b"", b"<sig/>")
        with self.assertRaisesMessage(ValidationError, "Signature file is required"):
            self.client.validate_signature(b"<xml/>", b"")

    def test_convert_to_pdf(self):
        """Test PDF bytes are returned."""
        self.http.post.return_value = make_response(b"%PDF-1.4", content_type="application/pdf")

        self.assertEqual(self.client.convert_xml_to_pdf(SAMPLE_XML), b"%PDF-1.4")
        self.assertEqual(
            self.http.post.call_args.args[0],
            "https://api.anaf.ro/prod/FCTEL/rest/transformare/FACT1",
        )

    def test_convert_to_pdf_without_validation(self):
        """Test the /DA suffix."""
        self.http.post.return_value = make_response(b"%PDF-1.4", content_type="application/pdf")

        self.client.convert_xml_to_pdf_no_validation(SAMPLE_XML, "FCN")
        self.assertEqual(
            self.http.post.call_args.args[0],
            "https://api.anaf.ro/prod/FCTEL/rest/transformare/FCN/DA",
        )

    def test_convert_to_pdf_error(self):
        """Test a JSON answer raises APIError."""
        response = make_response(text='{"stare": "nok", "Messages": [{"message": "bad"}]}')
        response.json.return_value = {"stare": "nok", "Messages": [{"message": "bad"}]}
        self.http.post.return_value = response

        with self.assertRaisesMessage(APIError, "bad"):
            self.client.convert_xml_to_pdf(SAMPLE_XML)

    def test_context_manager(self):
        """Test the client closes its transport."""
        with self.client:
            pass
        self.http.close.assert_called_once()
