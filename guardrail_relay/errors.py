"""Exception types for the guardrail relay.

Startup problems (bad configuration, unknown provider) are raised and are
fatal. Per-request problems are reported as MediationResult values instead;
MalformedResponse is the only one raised, and the mediation client turns it
into a Failed result before it reaches a handler.
"""

from typing import Any


class RelayError(Exception):
    """Base class for relay errors."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class ConfigurationError(RelayError):
    """Raised when the process configuration is invalid at startup."""


class UnsupportedProvider(ConfigurationError):
    """Raised when the LLM provider selector is not a supported provider."""

    def __init__(self, identifier: str, reason: str) -> None:
        self.identifier = identifier
        super().__init__(
            "Unsupported LLM provider '{}': {}".format(identifier, reason)
        )


class MalformedResponse(RelayError):
    """Raised when an upstream body matches none of the known response shapes."""

    def __init__(self, raw_body: Any, detail: str = "Unrecognized response shape") -> None:
        self.raw_body = raw_body
        super().__init__(detail)
