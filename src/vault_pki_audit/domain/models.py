"""
Domain models: immutable values flowing through the audit pipeline.

  CertificatePayload  backend identifier + PEM text, as walked from the inventory
  Certificate         structural fields decoded from one certificate
  RevocationList      canonical serials revoked by the authority's CRL
  MatchRecord         one audited certificate that passed the name filter
  AuditReport         everything a run produced

All models are frozen dataclasses (immutable) following functional principles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from vault_pki_audit.railway import ErrorCode


def canonical_serial(serial_number: int) -> str:
    """
    Canonical string form of an arbitrary-precision serial number.

    Revocation lookup compares these strings, never raw encodings, so
    leading-zero padding in DER or in a backend identifier cannot cause
    a false mismatch.
    """
    return str(serial_number)


def parse_serial_identifier(identifier: str) -> int:
    """
    Parse a backend serial identifier ("17:a3:0f" or "17-a3-0f") into an int.

    Raises ValueError when the identifier is not colon/hyphen-separated hex.
    """
    digits = identifier.strip().replace(":", "").replace("-", "")
    if not digits:
        raise ValueError(f"empty serial identifier: {identifier!r}")
    return int(digits, 16)


@dataclass(frozen=True, slots=True)
class CertificatePayload:
    """One inventory element: the backend's serial identifier and the PEM it returned."""

    serial: str
    pem: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class Certificate:
    """
    Structural fields extracted from a decoded X.509 certificate.

    `common_name` is the first subject CN, or "" when the subject has none.
    Timestamps are timezone-aware UTC.
    """

    common_name: str
    not_before: datetime
    not_after: datetime
    serial_number: int

    @property
    def serial(self) -> str:
        return canonical_serial(self.serial_number)


@dataclass(frozen=True, slots=True)
class RevocationList:
    """
    Serial numbers the authority's CRL marks as revoked.

    `revoked_serials` holds canonical strings (see canonical_serial); the
    remaining fields describe the CRL itself and are informational.
    """

    revoked_serials: frozenset[str] = field(default_factory=frozenset)
    issuer: str = ""
    last_update: datetime | None = None
    next_update: datetime | None = None

    def is_revoked(self, serial_number: int) -> bool:
        return canonical_serial(serial_number) in self.revoked_serials


@dataclass(frozen=True, slots=True)
class MatchRecord:
    """
    An audited certificate whose common name matched the search term.

    `serial` is the identifier the backend listed the certificate under.
    """

    common_name: str
    valid_from: datetime
    valid_until: datetime
    serial: str
    revoked: bool
    expired: bool


@dataclass(frozen=True, slots=True)
class SkippedCertificate:
    """A certificate that could not be fetched or decoded in lenient mode."""

    serial: str
    code: ErrorCode
    message: str


@dataclass(frozen=True, slots=True)
class AuditReport:
    """
    Outcome of one audit run.

    `matches` is in inventory order. `scanned` counts every certificate
    that was fetched and decoded, matched or not.
    """

    matches: list[MatchRecord] = field(default_factory=list)
    skipped: list[SkippedCertificate] = field(default_factory=list)
    scanned: int = 0

    @property
    def revoked_count(self) -> int:
        return sum(1 for m in self.matches if m.revoked)

    @property
    def expired_count(self) -> int:
        return sum(1 for m in self.matches if m.expired)

    @property
    def complete(self) -> bool:
        return not self.skipped
