"""
Structured logging configuration using structlog

Includes voice-specific logging with configurable verbosity levels:
- MINIMAL: Errors only
- STANDARD: + Session lifecycle (connect/disconnect/phase changes)
- VERBOSE: + All latency measurements
- DEBUG: + Data channel messages
"""

import logging
import sys
from enum import IntEnum
from typing import Dict, Optional

import structlog

from voicequiz.core.config import settings


class VoiceLogLevel(IntEnum):
    """Voice logging verbosity levels.

    Higher values include all lower level logs.
    """

    MINIMAL = 1  # Errors only
    STANDARD = 2  # + Session lifecycle
    VERBOSE = 3  # + Latency measurements
    DEBUG = 4  # + Data channel messages


_VOICE_LOG_LEVEL_MAP = {
    "MINIMAL": VoiceLogLevel.MINIMAL,
    "STANDARD": VoiceLogLevel.STANDARD,
    "VERBOSE": VoiceLogLevel.VERBOSE,
    "DEBUG": VoiceLogLevel.DEBUG,
}

_voice_log_level: VoiceLogLevel = _VOICE_LOG_LEVEL_MAP.get(settings.VOICE_LOG_LEVEL.upper(), VoiceLogLevel.STANDARD)


def get_voice_log_level() -> VoiceLogLevel:
    """Get the current voice logging level."""
    return _voice_log_level


def set_voice_log_level(level: VoiceLogLevel) -> None:
    """Set the voice logging level (useful for testing)."""
    global _voice_log_level
    _voice_log_level = level


def configure_logging():
    """Configure structured logging for the application"""
    log_level = logging.DEBUG if settings.DEBUG else logging.INFO

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if not settings.DEBUG else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    """
    Get a structured logger instance

    Args:
        name: Logger name (usually __name__ of the module)

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)


# =============================================================================
# Voice-Specific Logging Utilities
# =============================================================================


class VoiceLogger:
    """
    Voice-specific logger with configurable verbosity levels.

    Usage:
        voice_log = get_voice_logger(__name__)

        # Always logged (errors)
        voice_log.error("realtime_connect_failed", error=str(e))

        # Logged at STANDARD+
        voice_log.state_change(session_id="abc", from_state="connecting", to_state="connected")

        # Logged at VERBOSE+
        voice_log.latency("sdp_exchange", duration_ms=150.5)

        # Logged at DEBUG only
        voice_log.channel_message(session_id="abc", direction="receive", message_type="session.created")
    """

    def __init__(self, name: str):
        self._logger = structlog.get_logger(name)
        self._name = name

    def _should_log(self, min_level: VoiceLogLevel) -> bool:
        """Check if the current log level is at least min_level."""
        return _voice_log_level >= min_level

    # -------------------------------------------------------------------------
    # MINIMAL level - Errors (always logged)
    # -------------------------------------------------------------------------

    def error(
        self,
        event: str,
        session_id: Optional[str] = None,
        error_code: Optional[str] = None,
        recoverable: bool = False,
        **kwargs,
    ):
        """Log voice error (always logged at any level)."""
        self._logger.error(
            event,
            session_id=session_id,
            error_code=error_code,
            recoverable=recoverable,
            voice_log_level="MINIMAL",
            **kwargs,
        )

    def warning(self, event: str, session_id: Optional[str] = None, **kwargs):
        """Log voice warning (always logged at any level)."""
        self._logger.warning(
            event,
            session_id=session_id,
            voice_log_level="MINIMAL",
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # STANDARD level - Session lifecycle
    # -------------------------------------------------------------------------

    def session_start(self, session_id: str, mode: Optional[str] = None, **kwargs):
        """Log realtime session start."""
        if not self._should_log(VoiceLogLevel.STANDARD):
            return
        self._logger.info(
            "voice_session_start",
            session_id=session_id,
            mode=mode,
            voice_log_level="STANDARD",
            **kwargs,
        )

    def session_end(self, session_id: str, duration_ms: float, status: str = "completed", **kwargs):
        """Log realtime session end."""
        if not self._should_log(VoiceLogLevel.STANDARD):
            return
        self._logger.info(
            "voice_session_end",
            session_id=session_id,
            duration_ms=round(duration_ms, 2),
            status=status,
            voice_log_level="STANDARD",
            **kwargs,
        )

    def state_change(
        self,
        session_id: str,
        from_state: str,
        to_state: str,
        trigger: Optional[str] = None,
        **kwargs,
    ):
        """Log session or game phase change."""
        if not self._should_log(VoiceLogLevel.STANDARD):
            return
        self._logger.info(
            "voice_state_change",
            session_id=session_id,
            from_state=from_state,
            to_state=to_state,
            trigger=trigger,
            voice_log_level="STANDARD",
            **kwargs,
        )

    def info(self, event: str, session_id: Optional[str] = None, **kwargs):
        """Log generic voice info message at STANDARD level."""
        if not self._should_log(VoiceLogLevel.STANDARD):
            return
        self._logger.info(
            event,
            session_id=session_id,
            voice_log_level="STANDARD",
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # VERBOSE level - Latency measurements
    # -------------------------------------------------------------------------

    def latency(
        self,
        stage: str,
        duration_ms: float,
        session_id: Optional[str] = None,
        **kwargs,
    ):
        """Log stage latency."""
        if not self._should_log(VoiceLogLevel.VERBOSE):
            return
        self._logger.info(
            "voice_latency",
            stage=stage,
            duration_ms=round(duration_ms, 2),
            session_id=session_id,
            voice_log_level="VERBOSE",
            **kwargs,
        )

    def transcript(
        self,
        session_id: Optional[str],
        transcript_length: int,
        is_final: bool = True,
        **kwargs,
    ):
        """Log transcript update."""
        if not self._should_log(VoiceLogLevel.VERBOSE):
            return
        self._logger.info(
            "voice_transcript",
            session_id=session_id,
            transcript_length=transcript_length,
            is_final=is_final,
            voice_log_level="VERBOSE",
            **kwargs,
        )

    # -------------------------------------------------------------------------
    # DEBUG level - Data channel messages
    # -------------------------------------------------------------------------

    def channel_message(
        self,
        session_id: Optional[str],
        direction: str,  # "send" or "receive"
        message_type: Optional[str],
        size_bytes: int = 0,
        **kwargs,
    ):
        """Log data channel message (very verbose)."""
        if not self._should_log(VoiceLogLevel.DEBUG):
            return
        self._logger.debug(
            "voice_channel_message",
            session_id=session_id,
            direction=direction,
            message_type=message_type,
            size_bytes=size_bytes,
            voice_log_level="DEBUG",
            **kwargs,
        )

    def debug(self, event: str, session_id: Optional[str] = None, **kwargs):
        """Log generic voice debug message at DEBUG level."""
        if not self._should_log(VoiceLogLevel.DEBUG):
            return
        self._logger.debug(
            event,
            session_id=session_id,
            voice_log_level="DEBUG",
            **kwargs,
        )


# Cache for voice logger instances
_voice_loggers: Dict[str, VoiceLogger] = {}


def get_voice_logger(name: str = None) -> VoiceLogger:
    """
    Get a voice-specific logger instance with configurable verbosity.

    Args:
        name: Logger name (usually __name__ of the module)

    Returns:
        VoiceLogger instance
    """
    key = name or "__root__"
    if key not in _voice_loggers:
        _voice_loggers[key] = VoiceLogger(name)
    return _voice_loggers[key]
