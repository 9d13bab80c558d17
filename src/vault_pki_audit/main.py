"""
Application entry point: parses flags, wires dependencies, runs one audit.

Composition root: creates concrete adapters, injects them into the
pipeline, and hands the report to the emitter.

This is the ONLY place where concrete classes are instantiated.
Everything else depends on Protocol interfaces.

Responsibilities:
  1. Parse command-line flags into explicit settings overrides
  2. Load and validate configuration from environment
  3. Configure structlog (stderr, so stdout carries only the JSON result)
  4. Create the Vault backend and the X.509 decoder
  5. Verify the token, run the audit within a LoggingExecutionContext
  6. Emit the match records and map the outcome to an exit status

Exit status: 0 on success, 1 on any failure (nothing written to stdout),
2 when lenient mode skipped certificates.
"""

from __future__ import annotations

import argparse
import logging
import ssl
import sys
from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import ValidationError

from vault_pki_audit import __version__
from vault_pki_audit.adapters.vault_client import HttpVaultBackend, tls_verification
from vault_pki_audit.adapters.x509_decoder import PemX509Decoder
from vault_pki_audit.config import AppSettings
from vault_pki_audit.domain.models import AuditReport
from vault_pki_audit.domain.ports import PkiBackend, TokenVerifier
from vault_pki_audit.emitter import emit_matches
from vault_pki_audit.pipeline import run_audit
from vault_pki_audit.railway import ErrorCode, LoggingExecutionContext, Result

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INCOMPLETE = 2


def configure_structlog(log_level: str = "INFO") -> None:
    """
    Configure structlog for structured, human-readable logging on stderr.

    stdout is reserved for the JSON result so it can be piped to jq.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-pki-audit",
        description=(
            "List certificates issued by a Vault PKI mount whose common name "
            "matches a search term, with their revocation and expiry status."
        ),
    )
    parser.add_argument("--ca", dest="mount", help="vault pki mount to search through (default: pki)")
    parser.add_argument("--search", help="common name search term (default: match all)")
    parser.add_argument("--address", help="override VAULT_ADDR environment variable")
    parser.add_argument("--token", help="override VAULT_TOKEN environment variable")
    parser.add_argument("--namespace", help="override VAULT_NAMESPACE environment variable")
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="skip certificates that cannot be fetched or decoded instead of aborting",
    )
    parser.add_argument("--log-level", help="log level for stderr output (default: INFO)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def settings_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Translate parsed flags into AppSettings init kwargs; unset flags are omitted."""
    overrides: dict[str, Any] = {}
    audit: dict[str, Any] = {}
    if args.mount is not None:
        audit["mount"] = args.mount
    if args.search is not None:
        audit["search"] = args.search
    if args.keep_going:
        audit["fail_fast"] = False
    if audit:
        overrides["audit"] = audit
    if args.address:
        overrides["vault_addr"] = args.address
    if args.token:
        overrides["vault_token"] = args.token
    if args.namespace:
        overrides["vault_namespace"] = args.namespace
    if args.log_level:
        overrides["log_level"] = args.log_level
    return overrides


def tls_settings(settings: AppSettings) -> Result[ssl.SSLContext | bool]:
    """Build the httpx `verify` value from the VAULT_CACERT family of settings."""
    return Result.from_computation(
        lambda: tls_verification(
            skip_verify=settings.vault_skip_verify,
            ca_cert=settings.vault_cacert,
            ca_path=settings.vault_capath,
            client_cert=settings.vault_client_cert,
            client_key=settings.vault_client_key,
        ),
        ErrorCode.CONFIGURATION_ERROR,
        "invalid Vault TLS configuration",
    )


def _create_backend(settings: AppSettings, verify: ssl.SSLContext | bool) -> HttpVaultBackend:
    """Instantiate the Vault adapter from application settings."""
    return HttpVaultBackend(
        address=settings.vault_addr,
        token=settings.token_value(),
        namespace=settings.vault_namespace,
        verify=verify,
        tls_server_name=settings.vault_tls_server_name,
        timeout=settings.http_timeout_seconds,
        retry_attempts=settings.retry_attempts,
    )


def execute(
    settings: AppSettings,
    backend: PkiBackend,
    verifier: TokenVerifier | None,
) -> Result[AuditReport]:
    """
    Verify credentials (when a verifier is given), then run the audit.

    Wrapped in a LoggingExecutionContext so duration and outcome are logged
    and unexpected exceptions become TECHNICAL_ERROR failures.
    """
    decoder = PemX509Decoder()
    ctx = LoggingExecutionContext(operation="CertificateAudit")

    def _audit() -> Result[AuditReport]:
        credential = verifier.verify_token() if verifier is not None else Result.success("")
        return credential.flat_map(
            lambda _: run_audit(
                backend,
                decoder,
                settings.audit.mount,
                search_term=settings.audit.search,
                fail_fast=settings.audit.fail_fast,
            )
        )

    return ctx.execute(_audit)


def main(argv: Sequence[str] | None = None) -> int:
    """Parse flags, load settings, run the audit, and return the exit status."""
    args = build_parser().parse_args(argv)

    try:
        settings = AppSettings(**settings_overrides(args))
    except ValidationError as e:
        print(f"FATAL: {ErrorCode.CONFIGURATION_ERROR.value}: {e}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILED

    configure_structlog(settings.log_level)
    log = structlog.get_logger()

    log.info(
        "app.starting",
        version=__version__,
        address=settings.vault_addr,
        mount=settings.audit.mount,
        search=settings.audit.search,
        fail_fast=settings.audit.fail_fast,
    )

    verify = tls_settings(settings)
    if verify.is_failure():
        failure = verify.error()
        log.error("app.tls_invalid", error_code=failure.code.value, message=failure.message)
        print(f"FATAL: {failure}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILED

    with _create_backend(settings, verify.value()) as backend:
        verifier = backend if settings.verify_token else None
        result = execute(settings, backend, verifier)

    if result.is_failure():
        failure = result.error()
        log.error("app.audit_failed", error_code=failure.code.value, message=failure.message)
        print(f"FATAL: {failure}", file=sys.stderr)  # noqa: T201
        return EXIT_FAILED

    report = result.value()
    emit_matches(report.matches, sys.stdout)
    if not report.complete:
        log.warning("app.audit_incomplete", skipped=len(report.skipped))
        return EXIT_INCOMPLETE
    return EXIT_OK


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
