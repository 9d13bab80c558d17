"""
vault_pki_audit: audit the certificates issued by a Vault PKI mount.

Reads the mount's CRL and full certificate inventory, decodes each
certificate, and reports those whose common name matches a search term
together with their validity window, revoked flag, and expired flag.

Built on the Railway-Oriented Programming (ROP) primitives in
vault_pki_audit.railway for explicit, composable error handling.
"""

__version__ = "0.1.0"
