"""
Quiz error taxonomy for structured error tracking.

Provides an error classification system with:
- Error categories (CREDENTIAL, TRANSPORT, PROTOCOL, COMPLETION, STATE)
- Detailed error codes with descriptions
- Recoverability flags so callers know whether a retry makes sense
- Prometheus metrics integration
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from voicequiz.core.logging import get_logger

logger = get_logger(__name__)


class QuizErrorCategory(str, Enum):
    """Quiz error categories for classification."""

    CREDENTIAL = "credential"  # Token issuance via the relay
    TRANSPORT = "transport"  # Realtime offer/answer negotiation
    PROTOCOL = "protocol"  # Inbound realtime event decoding
    COMPLETION = "completion"  # Hint/guess requests to the relay
    JUDGMENT = "judgment"  # Answer judgment (never raised)
    STATE = "state"  # Invalid lifecycle transitions


@dataclass
class QuizErrorCode:
    """Quiz error code with metadata."""

    code: str
    category: QuizErrorCategory
    description: str
    recoverable: bool
    retry_after_seconds: Optional[int] = None


# ============================================================================
# Credential Errors
# ============================================================================

CRED_001 = QuizErrorCode(
    code="CRED_001",
    category=QuizErrorCategory.CREDENTIAL,
    description="Relay unreachable while requesting credential",
    recoverable=True,
    retry_after_seconds=2,
)

CRED_002 = QuizErrorCode(
    code="CRED_002",
    category=QuizErrorCategory.CREDENTIAL,
    description="Relay rejected credential request",
    recoverable=False,
)

CRED_003 = QuizErrorCode(
    code="CRED_003",
    category=QuizErrorCategory.CREDENTIAL,
    description="Malformed credential response",
    recoverable=False,
)

# ============================================================================
# Transport Negotiation Errors
# ============================================================================

TRANS_001 = QuizErrorCode(
    code="TRANS_001",
    category=QuizErrorCategory.TRANSPORT,
    description="Local offer creation failed",
    recoverable=False,
)

TRANS_002 = QuizErrorCode(
    code="TRANS_002",
    category=QuizErrorCategory.TRANSPORT,
    description="Network error during offer exchange",
    recoverable=True,
    retry_after_seconds=1,
)

TRANS_003 = QuizErrorCode(
    code="TRANS_003",
    category=QuizErrorCategory.TRANSPORT,
    description="Peer endpoint rejected offer",
    recoverable=False,
)

TRANS_004 = QuizErrorCode(
    code="TRANS_004",
    category=QuizErrorCategory.TRANSPORT,
    description="Malformed answer from peer endpoint",
    recoverable=False,
)

TRANS_005 = QuizErrorCode(
    code="TRANS_005",
    category=QuizErrorCategory.TRANSPORT,
    description="Connection negotiation timed out",
    recoverable=True,
    retry_after_seconds=1,
)

TRANS_006 = QuizErrorCode(
    code="TRANS_006",
    category=QuizErrorCategory.TRANSPORT,
    description="Transport reported failure",
    recoverable=True,
    retry_after_seconds=1,
)

TRANS_007 = QuizErrorCode(
    code="TRANS_007",
    category=QuizErrorCategory.TRANSPORT,
    description="Transport setup failed",
    recoverable=False,
)

# ============================================================================
# Protocol / Completion / Judgment / State Errors
# ============================================================================

PROTO_001 = QuizErrorCode(
    code="PROTO_001",
    category=QuizErrorCategory.PROTOCOL,
    description="Inbound realtime event could not be decoded",
    recoverable=True,
)

COMP_001 = QuizErrorCode(
    code="COMP_001",
    category=QuizErrorCategory.COMPLETION,
    description="Relay unreachable while requesting completion",
    recoverable=True,
    retry_after_seconds=2,
)

COMP_002 = QuizErrorCode(
    code="COMP_002",
    category=QuizErrorCategory.COMPLETION,
    description="Relay returned an error for completion request",
    recoverable=False,
)

COMP_003 = QuizErrorCode(
    code="COMP_003",
    category=QuizErrorCategory.COMPLETION,
    description="Relay rate limit exceeded",
    recoverable=True,
    retry_after_seconds=30,
)

JUDGE_001 = QuizErrorCode(
    code="JUDGE_001",
    category=QuizErrorCategory.JUDGMENT,
    description="Invalid judgment input",
    recoverable=False,
)

STATE_001 = QuizErrorCode(
    code="STATE_001",
    category=QuizErrorCategory.STATE,
    description="Realtime session is not disconnected",
    recoverable=False,
)

STATE_002 = QuizErrorCode(
    code="STATE_002",
    category=QuizErrorCategory.STATE,
    description="Invalid game phase transition",
    recoverable=False,
)

STATE_003 = QuizErrorCode(
    code="STATE_003",
    category=QuizErrorCategory.STATE,
    description="Transcription capture already active",
    recoverable=False,
)


class QuizError(Exception):
    """
    Quiz exception with structured error info.

    Usage:
        raise CredentialError(CRED_001, original_error=e)
        raise TransportNegotiationError(TRANS_003, status_code=400, body=text)
    """

    default_code: QuizErrorCode = STATE_001

    def __init__(
        self,
        error_code: Optional[QuizErrorCode] = None,
        message: Optional[str] = None,
        original_error: Optional[Exception] = None,
        **extra,
    ):
        self.error_code = error_code or self.default_code
        self.original_error = original_error
        self.extra = extra

        self.message = message or self.error_code.description
        if original_error:
            self.message = f"{self.message}: {str(original_error)}"

        super().__init__(self.message)

        self._log_error()

    def _log_error(self):
        """Log error with structured fields."""
        log_data = {
            "error_code": self.error_code.code,
            "category": self.error_code.category.value,
            "recoverable": self.error_code.recoverable,
            "message": self.message,
        }
        if self.extra:
            log_data.update(self.extra)

        if self.error_code.recoverable:
            logger.warning("quiz_error", **log_data)
        else:
            logger.error("quiz_error", **log_data)

    @property
    def code(self) -> str:
        return self.error_code.code

    @property
    def is_recoverable(self) -> bool:
        """Check if error can be recovered from."""
        return self.error_code.recoverable

    @property
    def retry_after(self) -> Optional[int]:
        """Get recommended retry delay in seconds."""
        return self.error_code.retry_after_seconds

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        result = {
            "code": self.error_code.code,
            "category": self.error_code.category.value,
            "message": self.message,
            "recoverable": self.error_code.recoverable,
        }
        if self.error_code.retry_after_seconds:
            result["retry_after_seconds"] = self.error_code.retry_after_seconds
        return result


class RelayRequestError(QuizError):
    """Failed HTTP call to the relay; `status_code` is None for network errors."""

    def __init__(
        self,
        error_code: Optional[QuizErrorCode] = None,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(error_code, message, original_error=original_error, status_code=status_code)

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None

    @property
    def retryable(self) -> bool:
        return self.is_network_error or self.status_code == 429


class CredentialError(RelayRequestError):
    default_code = CRED_002


class CompletionRequestError(RelayRequestError):
    default_code = COMP_002


class TransportNegotiationError(QuizError):
    default_code = TRANS_003

    def __init__(
        self,
        error_code: Optional[QuizErrorCode] = None,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(error_code, message, original_error=original_error, status_code=status_code)


class ProtocolDecodeError(QuizError):
    """Raised inside the router only; always converted to an unknown event."""

    default_code = PROTO_001


class JudgmentInputError(QuizError):
    """Part of the taxonomy only; judging has no failure path."""

    default_code = JUDGE_001


class SessionStateError(QuizError):
    default_code = STATE_001


class GamePhaseError(QuizError):
    default_code = STATE_002


class CaptureActiveError(QuizError):
    default_code = STATE_003


# ============================================================================
# Error Recording Functions (for metrics)
# ============================================================================


def record_quiz_error(error_code: QuizErrorCode) -> None:
    """
    Record a quiz error for metrics.

    Imports metrics lazily to avoid circular imports.
    """
    from voicequiz.core.metrics import quiz_errors_total

    quiz_errors_total.labels(
        category=error_code.category.value,
        code=error_code.code,
        recoverable=str(error_code.recoverable).lower(),
    ).inc()
