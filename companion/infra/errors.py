"""Custom exception hierarchy for the companion dispatcher.

All application-specific exceptions inherit from CompanionError,
which carries an error code for failure-event mapping.
"""

from __future__ import annotations

from enum import StrEnum


class FailureKind(StrEnum):
    """How a dispatch failure is surfaced to the presentation layer."""

    connection = "connection"
    model_not_found = "model_not_found"
    other = "other"


class CompanionError(Exception):
    """Base exception for all companion errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class DispatchError(CompanionError):
    """Any failure during prompt assembly, tool execution, or model invocation."""

    def __init__(self, message: str, *, code: str = "DISPATCH_ERROR") -> None:
        super().__init__(message, code=code)


class LLMError(DispatchError):
    """Errors from LLM API calls."""

    def __init__(self, message: str, *, code: str = "LLM_ERROR") -> None:
        super().__init__(message, code=code)


class BackendConnectionError(LLMError):
    """Network, DNS, or timeout failure reaching the model backend."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONNECTION_ERROR")


class ModelNotFoundError(LLMError):
    """Backend reports the configured model id is invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="MODEL_NOT_FOUND")


class ToolLoopError(DispatchError):
    """Model kept requesting tools past the configured round cap."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="TOOL_LOOP_EXHAUSTED")


class ToolError(CompanionError):
    """Errors during tool execution."""

    def __init__(self, message: str, *, code: str = "TOOL_ERROR") -> None:
        super().__init__(message, code=code)


class CandidateError(CompanionError):
    """A candidate generator raised or returned malformed data."""

    def __init__(self, candidate_id: str, message: str) -> None:
        super().__init__(f"Candidate '{candidate_id}' failed: {message}", code="CANDIDATE_ERROR")
        self.candidate_id = candidate_id


_CONNECTION_MARKERS = (
    "econnrefused",
    "fetch failed",
    "network",
    "connection",
    "getaddrinfo",
    "etimedout",
    "timed out",
)
_MODEL_MISSING_MARKERS = ("not found", "does not exist", "not available")


def looks_like_missing_model(message: str) -> bool:
    lowered = message.lower()
    return "model" in lowered and any(m in lowered for m in _MODEL_MISSING_MARKERS)


def classify_error(exc: BaseException) -> FailureKind:
    """Map an exception to the failure kind shown to the user.

    Typed errors map directly. Foreign exceptions fall back to message
    inspection so that transport errors raised outside the model client
    still surface as setup problems.
    """
    if isinstance(exc, BackendConnectionError):
        return FailureKind.connection
    if isinstance(exc, ModelNotFoundError):
        return FailureKind.model_not_found
    if isinstance(exc, CompanionError):
        return FailureKind.other

    message = str(exc).lower()
    if isinstance(exc, (ConnectionError, TimeoutError)) or any(
        m in message for m in _CONNECTION_MARKERS
    ):
        return FailureKind.connection
    if looks_like_missing_model(message):
        return FailureKind.model_not_found
    return FailureKind.other
