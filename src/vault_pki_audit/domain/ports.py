"""
Ports: Protocol-based interfaces for infrastructure adapters.

These define WHAT the audit needs (contracts) without specifying HOW
it's done (implementation). Following hexagonal architecture:

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing), so adapters and test fakes
satisfy the contract by implementing the methods. No inheritance needed.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from vault_pki_audit.domain.models import Certificate, RevocationList
from vault_pki_audit.railway import Result


@runtime_checkable
class PkiBackend(Protocol):
    """
    Port: read an authority's CRL and certificate inventory.

    `authority` is an opaque identifier for the issuing CA (for Vault, the
    PKI mount path). An error and "no data returned" are both failures
    (BACKEND_UNAVAILABLE).
    """

    def read_crl(self, authority: str) -> Result[str]:
        """Return the authority's current CRL as PEM text."""
        ...

    def list_certificate_serials(self, authority: str) -> Result[list[str]]:
        """Return every serial identifier the authority knows, in backend order."""
        ...

    def read_certificate(self, authority: str, serial: str) -> Result[str]:
        """Return the PEM text of the certificate listed under `serial`."""
        ...


@runtime_checkable
class TokenVerifier(Protocol):
    """
    Port: confirm the configured credential is accepted by the backend.

    Returns Result[str] with a display name for the token's owner.
    """

    def verify_token(self) -> Result[str]: ...


@runtime_checkable
class X509Decoder(Protocol):
    """
    Port: decode PEM text into domain values.

    Structural decoding only: no signature, chain, or policy validation.
    Failures are DECODE_ERROR.
    """

    def decode_certificate(self, pem: str) -> Result[Certificate]: ...

    def decode_crl(self, pem: str) -> Result[RevocationList]: ...
