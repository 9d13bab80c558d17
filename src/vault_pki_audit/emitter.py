"""
Result emitter: serialize match records for stdout.

Uses a pydantic TypeAdapter over the MatchRecord dataclass, so field
names come straight from the model (common_name, valid_from, valid_until,
serial, revoked, expired) and datetimes render as ISO-8601.
"""

from __future__ import annotations

from typing import TextIO

from pydantic import TypeAdapter

from vault_pki_audit.domain.models import MatchRecord

_MATCHES = TypeAdapter(list[MatchRecord])


def render_matches(records: list[MatchRecord]) -> str:
    """Render records as a two-space indented JSON array ("[]" when empty)."""
    return _MATCHES.dump_json(records, indent=2).decode("utf-8")


def emit_matches(records: list[MatchRecord], sink: TextIO) -> None:
    sink.write(render_matches(records))
    sink.write("\n")
    sink.flush()
