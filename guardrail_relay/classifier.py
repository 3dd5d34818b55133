"""Failure classifier: map gateway failures to a stable error taxonomy.

The status mapping is part of the contract with callers:

    403, 409          -> BLOCKED_BY_POLICY
    422               -> VALIDATION_FAILED
    other non-2xx     -> UPSTREAM_ERROR
    no response       -> INTERNAL_ERROR

BLOCKED_BY_POLICY and VALIDATION_FAILED are normal outcomes (the guardrail
did its job); the rest mean something broke.
"""

import json
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Error taxonomy shared by logs and response bodies."""

    BLOCKED_BY_POLICY = "BLOCKED_BY_POLICY"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    TIMEOUT = "TIMEOUT"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    UNSUPPORTED_PROVIDER = "UNSUPPORTED_PROVIDER"
    BAD_REQUEST = "BAD_REQUEST"

    @property
    def is_policy_outcome(self) -> bool:
        """Return True for outcomes that mean the guardrail worked as intended."""
        return self in (ErrorKind.BLOCKED_BY_POLICY, ErrorKind.VALIDATION_FAILED)


_BLOCK_STATUSES = frozenset({403, 409})
_VALIDATION_STATUS = 422

# HTTP status returned to the caller for each per-request kind.
# UNSUPPORTED_PROVIDER is a startup error and never reaches a caller.
HTTP_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.BLOCKED_BY_POLICY: 403,
    ErrorKind.VALIDATION_FAILED: 422,
    ErrorKind.UPSTREAM_ERROR: 500,
    ErrorKind.INTERNAL_ERROR: 500,
    ErrorKind.MALFORMED_RESPONSE: 502,
    ErrorKind.TIMEOUT: 504,
}

# Log outcome label for each kind.
OUTCOME: Dict[ErrorKind, str] = {
    ErrorKind.BAD_REQUEST: "bad_request",
    ErrorKind.BLOCKED_BY_POLICY: "blocked",
    ErrorKind.VALIDATION_FAILED: "validation_failed",
    ErrorKind.UPSTREAM_ERROR: "upstream_error",
    ErrorKind.INTERNAL_ERROR: "internal_error",
    ErrorKind.MALFORMED_RESPONSE: "malformed_response",
    ErrorKind.TIMEOUT: "timeout",
    ErrorKind.UNSUPPORTED_PROVIDER: "unsupported_provider",
}

_GENERIC_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.BAD_REQUEST: "Message is required",
    ErrorKind.BLOCKED_BY_POLICY: "Request blocked by EthicalZen security policy",
    ErrorKind.VALIDATION_FAILED: "EthicalZen guardrail validation failed",
    ErrorKind.UPSTREAM_ERROR: "An error occurred processing your request",
    ErrorKind.INTERNAL_ERROR: "An error occurred processing your request",
    ErrorKind.MALFORMED_RESPONSE: "An unexpected response format was received from the LLM",
    ErrorKind.TIMEOUT: "The request timed out",
    ErrorKind.UNSUPPORTED_PROVIDER: "Unsupported LLM provider",
}


def classify(status: Optional[int], body: Any = None) -> ErrorKind:
    """Classify a failed mediation call.

    Args:
        status: HTTP status of the gateway response, or None when no response
            was received (connection refused, reset, DNS failure).
        body: Decoded response body, kept for the caller's diagnostics. The
            mapping depends on the status alone.

    Returns:
        The ErrorKind for the failure.
    """
    if status is None:
        return ErrorKind.INTERNAL_ERROR
    if status in _BLOCK_STATUSES:
        return ErrorKind.BLOCKED_BY_POLICY
    if status == _VALIDATION_STATUS:
        return ErrorKind.VALIDATION_FAILED
    return ErrorKind.UPSTREAM_ERROR


def _render_detail(detail: Any) -> str:
    if isinstance(detail, str):
        return detail
    try:
        return json.dumps(detail, sort_keys=True, default=str)
    except (TypeError, ValueError):
        return repr(detail)


def describe(kind: ErrorKind, detail: Any = None, expose_details: bool = False) -> str:
    """Return the caller-facing message for an error kind.

    In production (expose_details False) the message is generic. With
    expose_details on, the diagnostic detail is appended.
    """
    message = _GENERIC_MESSAGES[kind]
    if expose_details and detail not in (None, "", {}):
        return "{}: {}".format(message, _render_detail(detail))
    return message
