"""
Pipeline: the ROP pipeline orchestrating one audit run.

Domain layer: this is PURE BUSINESS LOGIC. All I/O is injected via ports
(Protocol interfaces) and the clock is injected as a callable.

The pipeline connects stages via flat_map, forming a railway:

  read_crl(authority)
    → decode_crl(pem)                                  → RevocationList
      → list_certificate_serials(authority)
        → for each serial, in order:
            read_certificate → decode_certificate → match_certificate
          → AuditReport

Each stage returns Result[T]. Failures short-circuit automatically
through the ROP railway. In fail-fast mode (the default) a single bad
certificate aborts the run; in lenient mode per-certificate fetch and
decode failures are recorded in AuditReport.skipped instead.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime

import structlog

from vault_pki_audit.domain.models import (
    AuditReport,
    Certificate,
    CertificatePayload,
    MatchRecord,
    RevocationList,
    SkippedCertificate,
)
from vault_pki_audit.domain.ports import PkiBackend, X509Decoder
from vault_pki_audit.inventory import InventoryWalk, walk_inventory
from vault_pki_audit.matcher import match_certificate
from vault_pki_audit.railway import FailureDescription, Result

log = structlog.get_logger()

type Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def _warn_if_stale(crl: RevocationList, now: datetime) -> None:
    if crl.next_update is not None and now > crl.next_update:
        log.warning(
            "crl.stale",
            issuer=crl.issuer,
            next_update=crl.next_update.isoformat(),
        )


def fetch_revocation_list(
    backend: PkiBackend,
    decoder: X509Decoder,
    authority: str,
    clock: Clock = utc_now,
) -> Result[RevocationList]:
    """
    Read and decode the authority's CRL.

    Returns BACKEND_UNAVAILABLE when the backend has no CRL for the
    authority and DECODE_ERROR when the payload is not a PEM X.509 CRL.
    """
    return (
        backend.read_crl(authority)
        .flat_map(decoder.decode_crl)
        .map_failure(lambda err: _with_context(err, f"{authority}/cert/crl"))
        .peek(lambda crl: _warn_if_stale(crl, clock()))
        .peek(
            lambda crl: log.info(
                "crl.loaded",
                authority=authority,
                issuer=crl.issuer,
                revoked=len(crl.revoked_serials),
            )
        )
    )


def _with_context(err: FailureDescription, path: str) -> FailureDescription:
    """Append the backend path to a failure message unless it already names it."""
    if path in err.message:
        return err
    return replace(err, message=f"{err.message} ({path})")


def _decode_entry(
    decoder: X509Decoder,
    authority: str,
    payload: CertificatePayload,
) -> Result[Certificate]:
    return decoder.decode_certificate(payload.pem).map_failure(
        lambda err: _with_context(err, f"{authority}/cert/{payload.serial}")
    )


def audit_inventory(
    walk: InventoryWalk,
    decoder: X509Decoder,
    revocations: RevocationList,
    authority: str,
    search_term: str = "",
    fail_fast: bool = True,
    clock: Clock = utc_now,
) -> Result[AuditReport]:
    """
    Decode and match every certificate of a walk, in walk order.

    In fail-fast mode the first fetch or decode failure is returned and no
    report is produced. Otherwise failures are collected as
    SkippedCertificate entries and the walk continues.
    """
    matches: list[MatchRecord] = []
    skipped: list[SkippedCertificate] = []
    scanned = 0

    for serial, payload in walk:
        decoded = payload.flat_map(lambda p: _decode_entry(decoder, authority, p))
        if decoded.is_failure():
            err = decoded.error()
            if fail_fast:
                log.error("audit.aborted", serial=serial, failure=str(err))
                return Result.failure_from(err)
            log.warning("audit.certificate_skipped", serial=serial, failure=str(err))
            skipped.append(SkippedCertificate(serial=serial, code=err.code, message=err.message))
            continue

        scanned += 1
        record = match_certificate(
            decoded.value(),
            revocations,
            search_term,
            clock(),
            serial,
        )
        if record is not None:
            matches.append(record)

    return Result.success(AuditReport(matches=matches, skipped=skipped, scanned=scanned))


def run_audit(
    backend: PkiBackend,
    decoder: X509Decoder,
    authority: str,
    search_term: str = "",
    fail_fast: bool = True,
    clock: Clock = utc_now,
) -> Result[AuditReport]:
    """
    Execute one full audit of an authority.

    Flow:
      1. Read + decode the CRL (always fatal on failure)
      2. List the inventory (always fatal on failure)
      3. Fetch, decode and match each certificate in listing order

    Returns Result[AuditReport] on success, or the failure from the first
    failing stage.
    """
    return (
        fetch_revocation_list(backend, decoder, authority, clock)
        .flat_map(
            lambda crl: walk_inventory(backend, authority).flat_map(
                lambda walk: audit_inventory(
                    walk,
                    decoder,
                    crl,
                    authority,
                    search_term=search_term,
                    fail_fast=fail_fast,
                    clock=clock,
                )
            )
        )
        .peek(
            lambda report: log.info(
                "audit.completed",
                authority=authority,
                search=search_term,
                scanned=report.scanned,
                matched=len(report.matches),
                revoked=report.revoked_count,
                expired=report.expired_count,
                skipped=len(report.skipped),
            )
        )
    )
