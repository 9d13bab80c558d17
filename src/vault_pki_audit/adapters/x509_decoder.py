"""
X.509 decoder adapter: PEM unarmoring + certificate/CRL field extraction.

Adapter layer: implements the X509Decoder port using
  - asn1crypto: PEM armor detection and unarmoring (first block wins)
  - cryptography (PyCA): DER parsing of certificates and CRLs

Pipeline:
  PEM text
    → asn1crypto: pem.unarmor() → DER bytes
    → cryptography: x509.load_der_x509_certificate() / load_der_x509_crl()
    → Certificate / RevocationList (domain models)

Only structural fields are read; signatures are never checked.
All exceptions are caught at this adapter boundary via Result.from_computation().
"""

from __future__ import annotations

import structlog
from asn1crypto import pem
from cryptography import x509
from cryptography.x509.oid import NameOID

from vault_pki_audit.domain.models import Certificate, RevocationList, canonical_serial
from vault_pki_audit.railway import ErrorCode, Result

log = structlog.get_logger()


class PemDecodeError(ValueError):
    """The text holds no PEM block."""


def _unarmor(text: str) -> bytes:
    """
    Return the DER payload of the first PEM block in text.

    Leading and trailing non-PEM lines are ignored, matching how PEM bundles
    with human-readable preambles are usually consumed.
    """
    data = text.encode("utf-8")
    if not pem.detect(data):
        raise PemDecodeError("no PEM block found")
    try:
        _, _, der_bytes = pem.unarmor(data)
    except ValueError as e:
        raise PemDecodeError(str(e)) from e
    return der_bytes


def _common_name(name: x509.Name) -> str:
    """Last CN attribute of an X.509 Name, or "" when absent."""
    attributes = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attributes:
        return ""
    return str(attributes[-1].value)


def _parse_certificate(text: str) -> Certificate:
    cert = x509.load_der_x509_certificate(_unarmor(text))
    return Certificate(
        common_name=_common_name(cert.subject),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        serial_number=cert.serial_number,
    )


def _parse_crl(text: str) -> RevocationList:
    crl = x509.load_der_x509_crl(_unarmor(text))
    revoked = frozenset(canonical_serial(entry.serial_number) for entry in crl)
    return RevocationList(
        revoked_serials=revoked,
        issuer=crl.issuer.rfc4514_string(),
        last_update=crl.last_update_utc,
        next_update=crl.next_update_utc,
    )


def decode_certificate(text: str) -> Result[Certificate]:
    """
    Decode PEM certificate text into a Certificate.

    Returns Result.failure(DECODE_ERROR) when the text has no PEM block or
    its DER payload is not an X.509 certificate.
    """
    return Result.from_computation(
        lambda: _parse_certificate(text),
        ErrorCode.DECODE_ERROR,
        "failed to parse certificate",
    )


def decode_crl(text: str) -> Result[RevocationList]:
    """
    Decode PEM CRL text into a RevocationList.

    Returns Result.failure(DECODE_ERROR) when the text has no PEM block or
    its DER payload is not an X.509 CRL.
    """
    return Result.from_computation(
        lambda: _parse_crl(text),
        ErrorCode.DECODE_ERROR,
        "failed to decode crl",
    )


class PemX509Decoder:
    """
    Decode PEM certificates and CRLs into domain values.

    Implements the X509Decoder port. Stateless; one instance can be shared
    for the whole run.
    """

    def decode_certificate(self, pem_text: str) -> Result[Certificate]:
        return decode_certificate(pem_text)

    def decode_crl(self, pem_text: str) -> Result[RevocationList]:
        return decode_crl(pem_text).peek(
            lambda crl: log.debug(
                "crl.decoded", issuer=crl.issuer, revoked=len(crl.revoked_serials)
            )
        )
