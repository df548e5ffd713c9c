"""
Error taxonomy for the PDP workflow and failure classification
"""
from enum import Enum
from typing import Any, Dict, Optional, Union

# add-roots reports this while a freshly created or replicated proof set is not
# yet visible to the PDP service.
PROOF_SET_NOT_VISIBLE_MARKER = "not found or does not belong to service"

TRANSIENT_MARKERS = (PROOF_SET_NOT_VISIBLE_MARKER,)


class FailureKind(str, Enum):
    """Retry classification of a failed external call"""
    TRANSIENT = "transient"
    TERMINAL = "terminal"


def decode_output(output: Union[bytes, str, None]) -> str:
    """Decode captured tool output for messages and parsing"""
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def classify_failure(output: Union[bytes, str, None]) -> FailureKind:
    """Classify tool output of a failed call as transient or terminal"""
    text = decode_output(output)
    for marker in TRANSIENT_MARKERS:
        if marker in text:
            return FailureKind.TRANSIENT
    return FailureKind.TERMINAL


class PDPError(Exception):
    """Base class for workflow errors that are reported to API callers"""

    status_code = 500

    def __init__(
        self,
        message: str,
        output: Union[bytes, str, None] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.output = decode_output(output)
        self.details = details or {}

    @property
    def error_text(self) -> str:
        """Text shown to operators: raw tool output when we have it"""
        return self.output.strip() or self.message

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.error_text}
        details = {"reason": self.message, **self.details}
        payload["details"] = details
        return payload


class InputValidationError(PDPError):
    """Missing or malformed request input; no external call was made"""

    status_code = 400

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ToolInvocationError(PDPError):
    """pdptool exited non-zero or could not be spawned"""

    def __init__(
        self,
        subcommand: str,
        output: Union[bytes, str, None] = None,
        returncode: Optional[int] = None,
        message: Optional[str] = None
    ):
        super().__init__(
            message or f"{subcommand} failed",
            output=output,
            details={"subcommand": subcommand, "returncode": returncode},
        )
        self.subcommand = subcommand
        self.returncode = returncode

    @property
    def kind(self) -> FailureKind:
        return classify_failure(self.output)


class ToolTimeoutError(ToolInvocationError):
    """pdptool did not finish in time and was killed"""

    status_code = 504

    def __init__(self, subcommand: str, timeout: float, output: Union[bytes, str, None] = None):
        super().__init__(
            subcommand,
            output=output,
            message=f"{subcommand} timed out after {timeout:g}s",
        )
        self.timeout = timeout


class OutputParseError(PDPError):
    """An expected marker was absent from tool output"""

    def __init__(self, field: str, output: Union[bytes, str, None] = None):
        super().__init__(f"could not determine {field}", output=output, details={"field": field})
        self.field = field


class RetryExhaustedError(PDPError):
    """A transient failure persisted through every allowed attempt"""

    def __init__(self, operation: str, attempts: int, last_error: ToolInvocationError):
        super().__init__(
            f"{operation} failed after {attempts} attempts",
            output=last_error.output,
            details={"operation": operation, "attempts": attempts},
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class ConfirmationTimeoutError(PDPError):
    """The remote service never confirmed within the caller's deadline"""

    status_code = 504

    def __init__(self, what: str, waited: float, output: Union[bytes, str, None] = None, **details):
        super().__init__(
            f"timed out waiting for {what} confirmation after {waited:.0f}s",
            output=output,
            details=details,
        )
        self.waited = waited

    @property
    def error_text(self) -> str:
        return self.message


class StagingError(PDPError):
    """The upload could not be written to its staging file"""


class PersistenceError(Exception):
    """A metadata store write failed; callers treat it as non-fatal"""

    def __init__(self, table: str, cause: Exception):
        super().__init__(f"failed to write {table}: {cause}")
        self.table = table
        self.cause = cause
