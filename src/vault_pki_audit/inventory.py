"""
Inventory walker: enumerate an authority's certificates one round trip at a time.

The serial listing is fetched eagerly (a failure there aborts before any
certificate is read); the certificates themselves are fetched lazily, in
listing order, as the returned iterator is consumed. The iterator is
single-use: walking again means calling walk_inventory again.
"""

from __future__ import annotations

from collections.abc import Iterator

import structlog

from vault_pki_audit.domain.models import CertificatePayload
from vault_pki_audit.domain.ports import PkiBackend
from vault_pki_audit.railway import ErrorCode, Result

log = structlog.get_logger()

# The serial is carried alongside the fetch so it is known even when the fetch fails.
type InventoryEntry = tuple[str, Result[CertificatePayload]]
type InventoryWalk = Iterator[InventoryEntry]


def _fetch_each(
    backend: PkiBackend,
    authority: str,
    serials: list[str],
) -> InventoryWalk:
    for serial in serials:
        payload = backend.read_certificate(authority, serial).map(
            lambda pem: CertificatePayload(serial=serial, pem=pem)
        )
        yield serial, payload


def walk_inventory(backend: PkiBackend, authority: str) -> Result[InventoryWalk]:
    """
    List the authority's serials and return a lazy walk over their certificates.

    Returns Result.failure(BACKEND_UNAVAILABLE) when the listing errors or is
    empty. Each walk entry pairs the serial with a Result: a failed
    certificate read surfaces as a Failure naming the authority and serial.
    """
    return (
        backend.list_certificate_serials(authority)
        .ensure(
            lambda serials: len(serials) > 0,
            ErrorCode.BACKEND_UNAVAILABLE,
            f"no value found at {authority}/certs",
        )
        .peek(lambda serials: log.info("inventory.listed", authority=authority, count=len(serials)))
        .map(lambda serials: _fetch_each(backend, authority, serials))
    )
