from __future__ import annotations

import pytest

from companion.infra.errors import (
    BackendConnectionError,
    CandidateError,
    CompanionError,
    DispatchError,
    FailureKind,
    LLMError,
    ModelNotFoundError,
    ToolLoopError,
    classify_error,
    looks_like_missing_model,
)


class TestHierarchy:
    def test_codes(self):
        assert BackendConnectionError("x").code == "CONNECTION_ERROR"
        assert ModelNotFoundError("x").code == "MODEL_NOT_FOUND"
        assert ToolLoopError("x").code == "TOOL_LOOP_EXHAUSTED"
        assert LLMError("x").code == "LLM_ERROR"
        assert DispatchError("x").code == "DISPATCH_ERROR"

    def test_subclassing(self):
        assert issubclass(BackendConnectionError, LLMError)
        assert issubclass(ModelNotFoundError, DispatchError)
        assert issubclass(CandidateError, CompanionError)

    def test_candidate_error_message(self):
        err = CandidateError("weather", "timeout")
        assert err.candidate_id == "weather"
        assert str(err) == "Candidate 'weather' failed: timeout"


class TestClassify:
    @pytest.mark.parametrize(
        ("exc", "kind"),
        [
            (BackendConnectionError("x"), FailureKind.connection),
            (ModelNotFoundError("x"), FailureKind.model_not_found),
            (ToolLoopError("x"), FailureKind.other),
            (LLMError("network unreachable"), FailureKind.other),
            (ConnectionRefusedError(), FailureKind.connection),
            (TimeoutError(), FailureKind.connection),
            (RuntimeError("getaddrinfo ENOTFOUND api.example"), FailureKind.connection),
            (RuntimeError("The model `foo` does not exist"), FailureKind.model_not_found),
            (RuntimeError("unexpected"), FailureKind.other),
        ],
    )
    def test_classification(self, exc, kind):
        assert classify_error(exc) == kind


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("model 'x' not found", True),
        ("The model gpt-9 does not exist", True),
        ("Model not available in region", True),
        ("file not found", False),
        ("model overloaded", False),
    ],
)
def test_looks_like_missing_model(message, expected):
    assert looks_like_missing_model(message) is expected
