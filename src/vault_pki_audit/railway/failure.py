"""
Failure description: structured error information for the failure track.

Every failure carries an ErrorCode so callers can tell the audit's error
kinds apart (backend unreachable vs. undecodable PKI data vs. bad
credentials) without inspecting exception types.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique


@unique
class ErrorCode(Enum):
    """Error kinds that can abort (or, in lenient mode, skip) an audit step."""

    BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"
    """The PKI backend errored or returned no data for a read/list."""

    DECODE_ERROR = "DECODE_ERROR"
    """A PEM block or X.509 certificate/CRL structure failed to parse."""

    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    """The backend rejected the configured token."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Settings are missing or invalid."""

    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Unexpected failure escaping a stage."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor: error code, message, optional cause, timestamp.

    >>> desc = FailureDescription(ErrorCode.DECODE_ERROR, "failed to decode crl")
    >>> desc.code
    <ErrorCode.DECODE_ERROR: 'DECODE_ERROR'>
    """

    code: ErrorCode
    message: str
    exception: BaseException | None = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __str__(self) -> str:
        if self.exception is None:
            return f"{self.code.value}: {self.message}"
        return f"{self.code.value}: {self.message} ({self.exception})"

    def full_stack_trace(self) -> str:
        """Message followed by the formatted exception chain, if any."""
        if self.exception is None:
            return self.message
        tb = "".join(
            traceback.format_exception(
                type(self.exception), self.exception, self.exception.__traceback__
            )
        )
        return f"{self.message}\n{tb}"
