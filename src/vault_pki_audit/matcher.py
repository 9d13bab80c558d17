"""
Revocation matcher & filter: turn a decoded certificate into a MatchRecord.

Pure domain logic, no I/O. The observation time is passed in by the caller
so expiry is evaluated when the certificate is matched, not when it was
decoded.
"""

from __future__ import annotations

from datetime import datetime

import structlog

from vault_pki_audit.domain.models import (
    Certificate,
    MatchRecord,
    RevocationList,
    parse_serial_identifier,
)

log = structlog.get_logger()


def matches_search(certificate: Certificate, search_term: str) -> bool:
    """Case-sensitive substring test on the common name; "" matches everything."""
    return search_term in certificate.common_name


def is_expired(certificate: Certificate, now: datetime) -> bool:
    """True iff now is strictly after the certificate's not-after."""
    return now > certificate.not_after


def _warn_on_serial_mismatch(certificate: Certificate, listed_serial: str) -> None:
    try:
        listed = parse_serial_identifier(listed_serial)
    except ValueError:
        log.warning("certificate.unparseable_serial_identifier", serial=listed_serial)
        return
    if listed != certificate.serial_number:
        log.warning(
            "certificate.serial_mismatch",
            listed_serial=listed_serial,
            decoded_serial=certificate.serial,
        )


def match_certificate(
    certificate: Certificate,
    revocations: RevocationList,
    search_term: str,
    now: datetime,
    serial: str,
) -> MatchRecord | None:
    """
    Build the MatchRecord for certificate, or None when it fails the filter.

    `serial` is the identifier the certificate was listed under and is what
    the record reports; revocation is decided from the decoded serial number.
    """
    if not matches_search(certificate, search_term):
        return None

    _warn_on_serial_mismatch(certificate, serial)

    return MatchRecord(
        common_name=certificate.common_name,
        valid_from=certificate.not_before,
        valid_until=certificate.not_after,
        serial=serial,
        revoked=revocations.is_revoked(certificate.serial_number),
        expired=is_expired(certificate, now),
    )
