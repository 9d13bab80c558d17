"""
Configuration: typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (Vault's own VAULT_ADDR / VAULT_TOKEN /
    VAULT_NAMESPACE and TLS names such as VAULT_CACERT / VAULT_CLIENT_CERT are
    honoured as-is)
  - Fall back to a .env file in the current working directory
  - Accept explicit overrides from the command line as init kwargs
  - Validate types and constraints before any backend call is made

Architecture: only AppSettings is a BaseSettings instance. AuditSettings is
a plain BaseModel populated via env_nested_delimiter="__", so AUDIT__MOUNT
maps to audit.mount and AUDIT__SEARCH to audit.search.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import (
    BaseModel,
    DirectoryPath,
    Field,
    FilePath,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

# A CLI reads .env from the directory it is run in.
_ENV_FILE = Path(".env")


class AuditSettings(BaseModel):
    """What to audit: which authority, which names, and how strictly."""

    mount: str = Field(default="pki", description="Vault PKI mount to search through")
    search: str = Field(default="", description="Common name search term (substring)")
    fail_fast: bool = Field(
        default=True,
        description="Abort on the first certificate that cannot be fetched or decoded",
    )

    @field_validator("mount")
    @classmethod
    def normalize_mount(cls, value: str) -> str:
        """Strip surrounding slashes; reject an empty mount."""
        mount = value.strip().strip("/")
        if not mount:
            raise ValueError("PKI mount must not be empty")
        return mount


class AppSettings(BaseSettings):
    """
    Root application settings.

    Load order (highest priority first):
      1. Init kwargs (command-line overrides)
      2. Environment variables
      3. .env file
      4. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        env_ignore_empty=True,
        extra="ignore",
    )

    vault_addr: str = Field(default="https://127.0.0.1:8200")
    vault_token: SecretStr | None = Field(default=None)
    vault_namespace: str | None = Field(default=None)
    vault_skip_verify: bool = Field(default=False)
    vault_cacert: FilePath | None = Field(default=None)
    vault_capath: DirectoryPath | None = Field(default=None)
    vault_client_cert: FilePath | None = Field(default=None)
    vault_client_key: FilePath | None = Field(default=None)
    vault_tls_server_name: str | None = Field(default=None)

    audit: AuditSettings = Field(default_factory=lambda: AuditSettings())

    http_timeout_seconds: int = Field(default=60, ge=1)
    retry_attempts: int = Field(default=1, ge=1)
    verify_token: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    @field_validator("vault_addr")
    @classmethod
    def validate_address(cls, value: str) -> str:
        """Require an http(s) URL; drop any trailing slash."""
        address = value.strip().rstrip("/")
        if not address.startswith(("http://", "https://")):
            raise ValueError(f"Vault address must be an http(s) URL, got {value!r}")
        return address

    @model_validator(mode="after")
    def client_certificate_pair(self) -> AppSettings:
        """VAULT_CLIENT_CERT and VAULT_CLIENT_KEY only make sense together."""
        if (self.vault_client_cert is None) != (self.vault_client_key is None):
            raise ValueError("VAULT_CLIENT_CERT and VAULT_CLIENT_KEY must be set together")
        return self

    def token_value(self) -> str | None:
        """The Vault token as a plain string, or None when not configured."""
        if self.vault_token is None:
            return None
        return self.vault_token.get_secret_value()
