"""
Unit tests for the Vault adapter: PKI reads, listing, and token lookup.

Uses respx to mock httpx HTTP calls (never makes real HTTP requests).

Test categories per operation:
  - Success: correct response → Result.success
  - No data: 404 / missing `data` / empty value → Result.failure(BACKEND_UNAVAILABLE)
  - Server error: 5xx/403 → Result.failure (never raises)
  - Timeout/network: → Result.failure, retried only when enabled
"""

from __future__ import annotations

import ssl
from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest
import respx

from tests.pki_factory import IssuingAuthority
from vault_pki_audit.adapters.vault_client import HttpVaultBackend, tls_verification
from vault_pki_audit.railway import ErrorCode, ResultAssertions

# ─────────────────────── Fixtures ───────────────────────

ADDR = "https://vault.example.com:8200"
TOKEN = "hvs.test-token"
CRL_URL = f"{ADDR}/v1/pki/cert/crl"
LIST_URL = f"{ADDR}/v1/pki/certs"
CERT_URL = f"{ADDR}/v1/pki/cert/17:a3:0f"
LOOKUP_URL = f"{ADDR}/v1/auth/token/lookup-self"

PEM_CRL = "-----BEGIN X509 CRL-----\nMIIB\n-----END X509 CRL-----\n"
PEM_CERT = "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----\n"


@pytest.fixture()
def backend() -> Iterator[HttpVaultBackend]:
    """Create an HttpVaultBackend with a test token."""
    with HttpVaultBackend(address=ADDR, token=TOKEN, timeout=5) as b:
        yield b


def _certificate_body(value: str) -> dict:
    return {"request_id": "r-1", "data": {"certificate": value}}


# ═══════════════════════════════════════════════════════════════════════
# read_crl
# ═══════════════════════════════════════════════════════════════════════


class TestReadCrl:
    """
    GIVEN Vault serves pki/cert/crl
    WHEN read_crl is called
    THEN the PEM text from data.certificate is returned.
    """

    @respx.mock
    def test_returns_pem_text(self, backend: HttpVaultBackend) -> None:
        respx.get(CRL_URL).mock(return_value=httpx.Response(200, json=_certificate_body(PEM_CRL)))
        assert ResultAssertions.assert_success(backend.read_crl("pki")) == PEM_CRL

    @respx.mock
    def test_sends_vault_token_header(self, backend: HttpVaultBackend) -> None:
        route = respx.get(CRL_URL).mock(
            return_value=httpx.Response(200, json=_certificate_body(PEM_CRL))
        )
        backend.read_crl("pki")
        assert route.calls.last.request.headers["X-Vault-Token"] == TOKEN

    @respx.mock
    def test_sends_namespace_header_when_configured(self) -> None:
        route = respx.get(CRL_URL).mock(
            return_value=httpx.Response(200, json=_certificate_body(PEM_CRL))
        )
        with HttpVaultBackend(address=ADDR, token=TOKEN, namespace="team-a") as b:
            b.read_crl("pki")
        assert route.calls.last.request.headers["X-Vault-Namespace"] == "team-a"

    @respx.mock
    def test_nested_mount_path(self) -> None:
        route = respx.get(f"{ADDR}/v1/pki_int/eu/cert/crl").mock(
            return_value=httpx.Response(200, json=_certificate_body(PEM_CRL))
        )
        with HttpVaultBackend(address=f"{ADDR}/", token=TOKEN) as b:
            ResultAssertions.assert_success(b.read_crl("pki_int/eu"))
        assert route.called


class TestReadCrlNoData:
    """
    GIVEN Vault has nothing usable at pki/cert/crl
    WHEN read_crl is called
    THEN it returns Result.failure(BACKEND_UNAVAILABLE) naming the path.
    """

    @respx.mock
    def test_404_is_backend_unavailable(self, backend: HttpVaultBackend) -> None:
        respx.get(CRL_URL).mock(return_value=httpx.Response(404, json={"errors": []}))
        result = backend.read_crl("pki")
        error = ResultAssertions.assert_failure(result, ErrorCode.BACKEND_UNAVAILABLE)
        assert "pki/cert/crl" in error.message
        assert "no value found at pki/cert/crl" in str(error.exception)

    @respx.mock
    def test_missing_data_is_backend_unavailable(self, backend: HttpVaultBackend) -> None:
        respx.get(CRL_URL).mock(return_value=httpx.Response(200, json={"warnings": ["x"]}))
        ResultAssertions.assert_failure(backend.read_crl("pki"), ErrorCode.BACKEND_UNAVAILABLE)

    @respx.mock
    def test_empty_certificate_is_backend_unavailable(self, backend: HttpVaultBackend) -> None:
        respx.get(CRL_URL).mock(return_value=httpx.Response(200, json=_certificate_body("")))
        ResultAssertions.assert_failure(backend.read_crl("pki"), ErrorCode.BACKEND_UNAVAILABLE)

    @respx.mock
    def test_non_json_body_is_backend_unavailable(self, backend: HttpVaultBackend) -> None:
        respx.get(CRL_URL).mock(return_value=httpx.Response(200, text="<html>proxy</html>"))
        ResultAssertions.assert_failure(backend.read_crl("pki"), ErrorCode.BACKEND_UNAVAILABLE)


class TestReadCrlErrors:
    """Server, permission and transport errors are failures, never exceptions."""

    @respx.mock
    def test_500_is_backend_unavailable(self, backend: HttpVaultBackend) -> None:
        respx.get(CRL_URL).mock(return_value=httpx.Response(500))
        ResultAssertions.assert_failure(backend.read_crl("pki"), ErrorCode.BACKEND_UNAVAILABLE)

    @respx.mock
    def test_403_is_backend_unavailable(self, backend: HttpVaultBackend) -> None:
        respx.get(CRL_URL).mock(
            return_value=httpx.Response(403, json={"errors": ["permission denied"]})
        )
        ResultAssertions.assert_failure(backend.read_crl("pki"), ErrorCode.BACKEND_UNAVAILABLE)

    @respx.mock
    def test_timeout_is_failure(self, backend: HttpVaultBackend) -> None:
        respx.get(CRL_URL).mock(side_effect=httpx.ConnectTimeout("timed out"))
        ResultAssertions.assert_failure(backend.read_crl("pki"), ErrorCode.BACKEND_UNAVAILABLE)


class TestRetry:
    """
    GIVEN transient network errors
    WHEN the adapter is called
    THEN it does not retry by default, and retries when retry_attempts > 1.
    """

    @respx.mock
    def test_no_retry_by_default(self, backend: HttpVaultBackend) -> None:
        route = respx.get(CRL_URL).mock(side_effect=httpx.ConnectError("refused"))
        backend.read_crl("pki")
        assert route.call_count == 1

    @respx.mock
    def test_retries_transient_errors_when_enabled(self) -> None:
        route = respx.get(CRL_URL).mock(
            side_effect=[
                httpx.ConnectError("refused"),
                httpx.Response(200, json=_certificate_body(PEM_CRL)),
            ]
        )
        with HttpVaultBackend(address=ADDR, token=TOKEN, retry_attempts=3) as b:
            result = b.read_crl("pki")
        assert ResultAssertions.assert_success(result) == PEM_CRL
        assert route.call_count == 2

    @respx.mock
    def test_does_not_retry_http_errors(self) -> None:
        route = respx.get(CRL_URL).mock(return_value=httpx.Response(503))
        with HttpVaultBackend(address=ADDR, token=TOKEN, retry_attempts=3) as b:
            b.read_crl("pki")
        assert route.call_count == 1


# ═══════════════════════════════════════════════════════════════════════
# list_certificate_serials
# ═══════════════════════════════════════════════════════════════════════


class TestListCertificateSerials:
    """
    GIVEN Vault lists pki/certs
    WHEN list_certificate_serials is called
    THEN data.keys is returned in backend order.
    """

    @respx.mock
    def test_returns_keys_in_order(self, backend: HttpVaultBackend) -> None:
        keys = ["17:a3:0f", "04", "2b:00:01"]
        respx.get(LIST_URL, params={"list": "true"}).mock(
            return_value=httpx.Response(200, json={"data": {"keys": keys}})
        )
        assert ResultAssertions.assert_success(backend.list_certificate_serials("pki")) == keys

    @respx.mock
    def test_404_is_backend_unavailable(self, backend: HttpVaultBackend) -> None:
        """
        GIVEN Vault answers 404 (how it reports an empty LIST)
        WHEN list_certificate_serials is called
        THEN it returns Failure(BACKEND_UNAVAILABLE).
        """
        respx.get(LIST_URL, params={"list": "true"}).mock(return_value=httpx.Response(404))
        result = backend.list_certificate_serials("pki")
        ResultAssertions.assert_failure(result, ErrorCode.BACKEND_UNAVAILABLE)
        ResultAssertions.assert_failure_message_contains(result, "pki/certs")

    @respx.mock
    def test_empty_keys_is_backend_unavailable(self, backend: HttpVaultBackend) -> None:
        respx.get(LIST_URL, params={"list": "true"}).mock(
            return_value=httpx.Response(200, json={"data": {"keys": []}})
        )
        ResultAssertions.assert_failure(
            backend.list_certificate_serials("pki"), ErrorCode.BACKEND_UNAVAILABLE
        )

    @respx.mock
    def test_malformed_keys_is_backend_unavailable(self, backend: HttpVaultBackend) -> None:
        respx.get(LIST_URL, params={"list": "true"}).mock(
            return_value=httpx.Response(200, json={"data": {"keys": "04"}})
        )
        ResultAssertions.assert_failure(
            backend.list_certificate_serials("pki"), ErrorCode.BACKEND_UNAVAILABLE
        )


# ═══════════════════════════════════════════════════════════════════════
# read_certificate
# ═══════════════════════════════════════════════════════════════════════


class TestReadCertificate:
    """
    GIVEN Vault serves pki/cert/{serial}
    WHEN read_certificate is called
    THEN the PEM text is returned, or a failure naming the serial.
    """

    @respx.mock
    def test_returns_pem_text(self, backend: HttpVaultBackend) -> None:
        respx.get(CERT_URL).mock(return_value=httpx.Response(200, json=_certificate_body(PEM_CERT)))
        result = backend.read_certificate("pki", "17:a3:0f")
        assert ResultAssertions.assert_success(result) == PEM_CERT

    @respx.mock
    def test_404_names_authority_and_serial(self, backend: HttpVaultBackend) -> None:
        respx.get(CERT_URL).mock(return_value=httpx.Response(404))
        result = backend.read_certificate("pki", "17:a3:0f")
        ResultAssertions.assert_failure(result, ErrorCode.BACKEND_UNAVAILABLE)
        ResultAssertions.assert_failure_message_contains(result, "pki/cert/17:a3:0f")

    @respx.mock
    def test_network_error_is_failure(self, backend: HttpVaultBackend) -> None:
        respx.get(CERT_URL).mock(side_effect=httpx.ReadError("connection reset"))
        ResultAssertions.assert_failure(
            backend.read_certificate("pki", "17:a3:0f"), ErrorCode.BACKEND_UNAVAILABLE
        )


# ═══════════════════════════════════════════════════════════════════════
# verify_token
# ═══════════════════════════════════════════════════════════════════════


class TestVerifyToken:
    """
    GIVEN the auth/token/lookup-self endpoint
    WHEN verify_token is called
    THEN an accepted token yields its display name; anything else is AUTHENTICATION_ERROR.
    """

    @respx.mock
    def test_accepted_token_returns_display_name(self, backend: HttpVaultBackend) -> None:
        respx.get(LOOKUP_URL).mock(
            return_value=httpx.Response(
                200, json={"data": {"display_name": "token-auditor", "policies": ["pki-read"]}}
            )
        )
        assert ResultAssertions.assert_success(backend.verify_token()) == "token-auditor"

    @respx.mock
    def test_forbidden_is_authentication_error(self, backend: HttpVaultBackend) -> None:
        respx.get(LOOKUP_URL).mock(
            return_value=httpx.Response(403, json={"errors": ["permission denied"]})
        )
        ResultAssertions.assert_failure(backend.verify_token(), ErrorCode.AUTHENTICATION_ERROR)

    @respx.mock
    def test_missing_token_sends_no_header(self) -> None:
        route = respx.get(LOOKUP_URL).mock(return_value=httpx.Response(403))
        with HttpVaultBackend(address=ADDR) as b:
            ResultAssertions.assert_failure(b.verify_token(), ErrorCode.AUTHENTICATION_ERROR)
        assert "X-Vault-Token" not in route.calls.last.request.headers

    @respx.mock
    def test_unreachable_vault_is_authentication_error(self, backend: HttpVaultBackend) -> None:
        respx.get(LOOKUP_URL).mock(side_effect=httpx.ConnectError("refused"))
        ResultAssertions.assert_failure(backend.verify_token(), ErrorCode.AUTHENTICATION_ERROR)


# ═══════════════════════════════════════════════════════════════════════
# TLS
# ═══════════════════════════════════════════════════════════════════════


@pytest.fixture()
def ca_file(ca: IssuingAuthority, tmp_path: Path) -> Path:
    path = tmp_path / "vault-ca.pem"
    path.write_text(ca.root_certificate())
    return path


def _trusted_subjects(context: ssl.SSLContext) -> list[str]:
    return [
        value
        for cert in context.get_ca_certs()
        for rdn in cert["subject"]
        for key, value in rdn
        if key == "commonName"
    ]


class TestTlsVerification:
    """
    GIVEN Vault TLS settings (VAULT_CACERT, VAULT_CLIENT_CERT, VAULT_SKIP_VERIFY)
    WHEN tls_verification builds the httpx verify value
    THEN a private CA is trusted and a client certificate is presented.
    """

    def test_defaults_use_system_trust_store(self) -> None:
        assert tls_verification() is True

    def test_skip_verify_without_files_disables_verification(self) -> None:
        assert tls_verification(skip_verify=True) is False

    def test_ca_file_is_trusted(self, ca_file: Path) -> None:
        context = tls_verification(ca_cert=ca_file)

        assert isinstance(context, ssl.SSLContext)
        assert _trusted_subjects(context) == ["Example Test Root CA"]
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname is True

    def test_client_certificate_is_loaded(
        self, ca: IssuingAuthority, ca_file: Path, tmp_path: Path
    ) -> None:
        cert_file = tmp_path / "client.pem"
        key_file = tmp_path / "client-key.pem"
        cert_file.write_text(ca.issue("audit-client", 77))
        key_file.write_text(ca.leaf_key_pem())

        context = tls_verification(ca_cert=ca_file, client_cert=cert_file, client_key=key_file)

        assert isinstance(context, ssl.SSLContext)

    def test_skip_verify_with_ca_file_turns_checks_off(self, ca_file: Path) -> None:
        context = tls_verification(skip_verify=True, ca_cert=ca_file)

        assert isinstance(context, ssl.SSLContext)
        assert context.verify_mode == ssl.CERT_NONE
        assert context.check_hostname is False

    def test_invalid_ca_file_raises(self, tmp_path: Path) -> None:
        bogus = tmp_path / "bogus.pem"
        bogus.write_text("not a certificate")
        with pytest.raises(ssl.SSLError):
            tls_verification(ca_cert=bogus)


class TestTlsServerName:
    @respx.mock
    def test_server_name_is_sent_as_sni_extension(self, ca_file: Path) -> None:
        """
        GIVEN VAULT_TLS_SERVER_NAME is configured
        WHEN a request is made
        THEN the request carries that name for SNI and hostname checks.
        """
        route = respx.get(CRL_URL).mock(
            return_value=httpx.Response(200, json=_certificate_body(PEM_CRL))
        )
        with HttpVaultBackend(
            address=ADDR,
            token=TOKEN,
            verify=tls_verification(ca_cert=ca_file),
            tls_server_name="vault.internal",
        ) as b:
            ResultAssertions.assert_success(b.read_crl("pki"))
        assert route.calls.last.request.extensions["sni_hostname"] == "vault.internal"

    @respx.mock
    def test_no_server_name_by_default(self, backend: HttpVaultBackend) -> None:
        route = respx.get(CRL_URL).mock(
            return_value=httpx.Response(200, json=_certificate_body(PEM_CRL))
        )
        backend.read_crl("pki")
        assert "sni_hostname" not in route.calls.last.request.extensions
