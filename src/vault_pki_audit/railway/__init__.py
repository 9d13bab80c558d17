"""
Railway-Oriented Programming primitives used throughout vault_pki_audit.

    from vault_pki_audit.railway import ErrorCode, Result

    def read_serials(response: dict) -> Result[list[str]]:
        keys = response.get("keys")
        if not keys:
            return Result.failure(ErrorCode.BACKEND_UNAVAILABLE, "no value found at pki/certs")
        return Result.success(keys)
"""

from vault_pki_audit.railway.assertions import ResultAssertions
from vault_pki_audit.railway.execution import (
    ExecutionContext,
    LoggingExecutionContext,
    NoOpExecutionContext,
)
from vault_pki_audit.railway.failure import ErrorCode, FailureDescription
from vault_pki_audit.railway.result import Failure, Result, Success

__all__ = [
    "Result",
    "Success",
    "Failure",
    "ErrorCode",
    "FailureDescription",
    "ExecutionContext",
    "NoOpExecutionContext",
    "LoggingExecutionContext",
    "ResultAssertions",
]
