"""
Vault adapter: PKI secrets engine reads and token self-lookup via httpx.

Adapter layer: implements the PkiBackend and TokenVerifier ports against
the Vault HTTP API:

  GET  /v1/{mount}/cert/crl           → data.certificate  (PEM CRL)
  GET  /v1/{mount}/certs?list=true    → data.keys         (serial identifiers)
  GET  /v1/{mount}/cert/{serial}      → data.certificate  (PEM certificate)
  GET  /v1/auth/token/lookup-self     → data.display_name

Response bodies are validated at the boundary with pydantic models, so
"no data" (404, missing `data`, empty value) is detected here and never
leaks into the pipeline as an untyped dict.

TLS follows the Vault CLI: a custom CA file or directory replaces the
system trust store, a client certificate is presented when configured, and
VAULT_TLS_SERVER_NAME overrides the name used for SNI and hostname checks.

Retry/backoff via tenacity on transient errors (network, timeout) only;
disabled unless retry_attempts > 1. All HTTP errors are captured into
Result failures: no exceptions leak to the business logic layer.
"""

from __future__ import annotations

import ssl
from pathlib import Path
from types import TracebackType
from typing import Self

import httpx
import structlog
from pydantic import BaseModel, ValidationError
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vault_pki_audit.railway import ErrorCode, Result

log = structlog.get_logger()


# ─────────────────────── Response Shapes ───────────────────────


class _CertificateData(BaseModel):
    certificate: str


class _CertificateResponse(BaseModel):
    """Body of pki/cert/crl and pki/cert/{serial} reads."""

    data: _CertificateData


class _KeysData(BaseModel):
    keys: list[str]


class _ListResponse(BaseModel):
    """Body of a LIST on pki/certs."""

    data: _KeysData


class _TokenData(BaseModel):
    display_name: str = ""
    policies: list[str] = []


class _TokenLookupResponse(BaseModel):
    data: _TokenData


# ─────────────────────── TLS ───────────────────────


def tls_verification(
    skip_verify: bool = False,
    ca_cert: Path | None = None,
    ca_path: Path | None = None,
    client_cert: Path | None = None,
    client_key: Path | None = None,
) -> ssl.SSLContext | bool:
    """
    Translate Vault's TLS settings into an httpx `verify` value.

    Returns a plain bool when the system trust store (True) or no
    verification at all (False) is enough; otherwise an SSLContext trusting
    ca_cert / ca_path and presenting the client certificate when given.
    Raises OSError (ssl.SSLError included) for unreadable or invalid files.
    """
    custom_trust = ca_cert is not None or ca_path is not None
    if client_cert is None and not custom_trust:
        return not skip_verify

    context = ssl.create_default_context(
        cafile=str(ca_cert) if ca_cert else None,
        capath=str(ca_path) if ca_path else None,
    )
    if skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if client_cert is not None:
        context.load_cert_chain(
            certfile=str(client_cert),
            keyfile=str(client_key) if client_key else None,
        )
    return context


class NoValueFound(LookupError):
    """The backend answered but holds nothing at the requested path."""

    def __init__(self, path: str) -> None:
        super().__init__(f"no value found at {path}")
        self.path = path


# ─────────────────────── Adapter ───────────────────────


class HttpVaultBackend:
    """
    Read an authority's CRL and certificate inventory from Vault.

    Implements the PkiBackend and TokenVerifier ports.
    One httpx.Client is shared by every request; use the instance as a
    context manager (or call close()) to release it.
    """

    def __init__(
        self,
        address: str,
        token: str | None = None,
        namespace: str | None = None,
        verify: ssl.SSLContext | bool = True,
        tls_server_name: str | None = None,
        timeout: int = 60,
        retry_attempts: int = 1,
        client: httpx.Client | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["X-Vault-Token"] = token
        if namespace:
            headers["X-Vault-Namespace"] = namespace
        self._address = address.rstrip("/")
        self._client = client or httpx.Client(
            base_url=self._address,
            headers=headers,
            timeout=timeout,
            verify=verify,
        )
        # httpcore takes the SNI / hostname-check name per request.
        self._extensions = {"sni_hostname": tls_server_name} if tls_server_name else {}
        self._retrying = Retrying(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_exponential(multiplier=1, min=0.1, max=30),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
            reraise=True,
        )

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # ─────────────── PkiBackend ───────────────

    def read_crl(self, authority: str) -> Result[str]:
        """
        Read the authority's PEM CRL from {mount}/cert/crl.

        Returns Result.failure(BACKEND_UNAVAILABLE, ...) on transport errors,
        non-2xx responses, or an empty/missing certificate field.
        """
        path = f"{authority}/cert/crl"
        return Result.from_computation(
            lambda: self._read_certificate_field(path),
            ErrorCode.BACKEND_UNAVAILABLE,
            f"failed to read crl at {path}",
        ).peek(lambda _: log.info("vault.crl_read", path=path))

    def list_certificate_serials(self, authority: str) -> Result[list[str]]:
        """
        List every serial identifier under {mount}/certs.

        An empty listing is reported as a failure: the original tool treats
        "no value found" the same as a transport error.
        """
        path = f"{authority}/certs"
        return Result.from_computation(
            lambda: self._list_keys(path),
            ErrorCode.BACKEND_UNAVAILABLE,
            f"failed to list certificates at {path}",
        ).peek(lambda keys: log.info("vault.certs_listed", path=path, count=len(keys)))

    def read_certificate(self, authority: str, serial: str) -> Result[str]:
        """Read one PEM certificate from {mount}/cert/{serial}."""
        path = f"{authority}/cert/{serial}"
        return Result.from_computation(
            lambda: self._read_certificate_field(path),
            ErrorCode.BACKEND_UNAVAILABLE,
            f"failed to read certificate at {path}",
        ).peek(lambda _: log.debug("vault.cert_read", path=path))

    # ─────────────── TokenVerifier ───────────────

    def verify_token(self) -> Result[str]:
        """
        Confirm the configured token via auth/token/lookup-self.

        Returns Result[str] with the token's display name on success,
        or Result.failure(AUTHENTICATION_ERROR, ...) on failure.
        """
        return Result.from_computation(
            self._lookup_self,
            ErrorCode.AUTHENTICATION_ERROR,
            "token lookup failed",
        )

    # ─────────────── HTTP helpers ───────────────

    def _get(self, path: str, params: dict[str, str] | None = None) -> httpx.Response:
        """GET /v1/{path} with retry; a 404 becomes NoValueFound."""
        response: httpx.Response = self._retrying(
            self._client.get, f"/v1/{path}", params=params, extensions=self._extensions
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            raise NoValueFound(path)
        response.raise_for_status()
        return response

    def _parse[M: BaseModel](self, response: httpx.Response, model: type[M], path: str) -> M:
        """Validate a response body; a missing/malformed `data` counts as no value."""
        try:
            return model.model_validate_json(response.content)
        except ValidationError as e:
            raise NoValueFound(path) from e

    def _read_certificate_field(self, path: str) -> str:
        """HTTP call with retry; exceptions caught by from_computation."""
        body = self._parse(self._get(path), _CertificateResponse, path)
        if not body.data.certificate.strip():
            raise NoValueFound(path)
        return body.data.certificate

    def _list_keys(self, path: str) -> list[str]:
        """HTTP call with retry; exceptions caught by from_computation."""
        body = self._parse(self._get(path, params={"list": "true"}), _ListResponse, path)
        if not body.data.keys:
            raise NoValueFound(path)
        return body.data.keys

    def _lookup_self(self) -> str:
        path = "auth/token/lookup-self"
        body = self._parse(self._get(path), _TokenLookupResponse, path)
        log.info(
            "vault.token_verified",
            display_name=body.data.display_name,
            policies=body.data.policies,
        )
        return body.data.display_name
