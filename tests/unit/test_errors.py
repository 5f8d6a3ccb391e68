"""
Unit tests for structured quiz errors.
"""

from voicequiz.core.errors import (
    COMP_003,
    CRED_001,
    TRANS_005,
    CompletionRequestError,
    CredentialError,
    JudgmentInputError,
    SessionStateError,
    TransportNegotiationError,
    record_quiz_error,
)
from voicequiz.core.metrics import quiz_errors_total


class TestQuizError:
    def test_defaults_from_class(self):
        error = CredentialError(status_code=500, body="boom")
        assert error.code == "CRED_002"
        assert not error.is_recoverable
        assert not error.retryable
        assert error.status_code == 500

    def test_network_errors_are_retryable(self):
        error = CredentialError(CRED_001, original_error=ConnectionError("refused"))
        assert error.is_network_error
        assert error.retryable
        assert "refused" in error.message

    def test_rate_limit_is_retryable(self):
        error = CompletionRequestError(COMP_003, status_code=429)
        assert error.retryable
        assert error.retry_after == 30

    def test_to_dict(self):
        data = TransportNegotiationError(TRANS_005).to_dict()
        assert data["code"] == "TRANS_005"
        assert data["category"] == "transport"
        assert data["recoverable"] is True

    def test_judgment_input_error_category(self):
        assert JudgmentInputError().to_dict()["category"] == "judgment"

    def test_custom_message(self):
        assert str(SessionStateError(message="Cannot connect while connected")) == "Cannot connect while connected"


def test_record_quiz_error_increments_counter():
    labels = {"category": "transport", "code": "TRANS_005", "recoverable": "true"}
    before = quiz_errors_total.labels(**labels)._value.get()
    record_quiz_error(TRANS_005)
    assert quiz_errors_total.labels(**labels)._value.get() == before + 1
