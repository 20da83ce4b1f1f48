"""
Error taxonomy for the rules search service.

Every error carries the pipeline stage that raised it, a machine-readable kind,
the HTTP status it maps to and a public message that is safe to return to the
caller. Raw exception text stays in the logs.
"""

from enum import Enum
from typing import Any, Dict, Optional


class InterpretationErrorKind(str, Enum):
    """Why the language model could not produce an Analysis."""
    MALFORMED_MODEL_OUTPUT = "malformed_model_output"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    TIMEOUT = "timeout"


class StoreErrorKind(str, Enum):
    """Why the rules index could not be searched."""
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"


class RulesSearchError(Exception):
    """Base class for all service errors."""

    stage = "service"
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str, kind: Optional[str] = None):
        super().__init__(message)
        self.kind = kind

    def to_payload(self) -> Dict[str, Any]:
        """Caller-visible error body."""
        payload = {"error": self.public_message, "stage": self.stage}
        if self.kind:
            payload["kind"] = self.kind
        return payload


class ConfigurationError(RulesSearchError):
    """A required credential or endpoint is missing."""

    stage = "config"
    public_message = "Service is not configured"


class InvalidQueryError(RulesSearchError):
    stage = "request"
    status_code = 400
    public_message = "Query is required"


class BudgetExceededError(RulesSearchError):
    """The language model invocation budget is exhausted for the current window."""

    stage = "budget"
    status_code = 429
    public_message = "Too many requests, try again later"


class InterpretationError(RulesSearchError):
    stage = "interpret"
    status_code = 502
    public_message = "Could not understand query"

    def __init__(self, kind: InterpretationErrorKind, message: str):
        super().__init__(message, kind.value)
        self.error_kind = kind


_NOT_UNDERSTOOD_STATUS = {
    InterpretationErrorKind.MALFORMED_MODEL_OUTPUT: 422,
    InterpretationErrorKind.UPSTREAM_UNAVAILABLE: 502,
    InterpretationErrorKind.TIMEOUT: 504,
}


class QueryNotUnderstoodError(RulesSearchError):
    """
    Interpretation failed and the rule-based fallback found nothing to search for.

    The status distinguishes a bad model reply (4xx) from an unreachable or slow
    model endpoint (5xx).
    """

    stage = "interpret"
    public_message = "Could not understand query"

    def __init__(self, cause: InterpretationError):
        super().__init__(str(cause), cause.error_kind.value)
        self.status_code = _NOT_UNDERSTOOD_STATUS[cause.error_kind]


class StoreError(RulesSearchError):
    stage = "store"

    def __init__(self, kind: StoreErrorKind, message: str):
        super().__init__(message, kind.value)
        self.error_kind = kind
        if kind is StoreErrorKind.TIMEOUT:
            self.status_code = 504
            self.public_message = "Rule store timed out"
        else:
            self.status_code = 503
            self.public_message = "Rule store unavailable"
