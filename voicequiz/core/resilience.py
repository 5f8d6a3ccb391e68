"""
Resilience patterns: Circuit Breaker and Retry Logic

Provides resilience utilities for the relay's upstream OpenAI calls:
- Circuit breaker: fail fast while OpenAI is down
- Retry decorator: exponential backoff for transient connection failures

Only the relay retries. Client-side components (credential broker,
completion client, realtime session) surface failures to their callers.

Usage:
    @retry_openai_operation()
    async def call_openai():
        ...
"""

import logging

import httpx
import structlog
from openai import APIConnectionError, APITimeoutError
from pybreaker import STATE_CLOSED, CircuitBreaker, CircuitBreakerError
from tenacity import after_log, before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = structlog.get_logger(__name__)


# OpenAI API Circuit Breaker
# Higher fail threshold and longer reset for external API
openai_breaker = CircuitBreaker(
    fail_max=10,
    reset_timeout=120,
    name="openai_circuit_breaker",
)


def retry_openai_operation(max_attempts: int = 3):
    """
    Retry decorator for OpenAI API operations.

    Retries only connection-level failures. HTTP status errors (4xx/5xx,
    including 429) are returned to the relay caller unchanged so the client
    can decide what to do.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
    """
    return retry(
        retry=retry_if_exception_type(
            (
                APIConnectionError,
                APITimeoutError,
                httpx.ConnectError,
                httpx.ConnectTimeout,
                httpx.ReadTimeout,
            )
        ),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=0.5, max=8),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        reraise=True,
    )


def ensure_breaker_closed(breaker: CircuitBreaker = openai_breaker) -> None:
    """
    Raise CircuitBreakerError when the breaker is open.

    A closed breaker is left untouched so the pre-check does not count as a
    success and reset the failure counter.
    """
    if breaker.current_state == STATE_CLOSED:
        return
    breaker.call(lambda: None)


def record_breaker_success(breaker: CircuitBreaker) -> None:
    """Count a completed upstream call; clears consecutive failures."""
    if breaker.current_state != STATE_CLOSED:
        return
    breaker.call(lambda: None)


def record_breaker_failure(breaker: CircuitBreaker, error: Exception) -> None:
    """Count an upstream failure against the breaker."""

    def _fail():
        raise error

    try:
        breaker.call(_fail)
    except CircuitBreakerError:
        logger.error("circuit_breaker_opened", breaker=breaker.name)
    except Exception:
        # The original error is already being handled by the caller
        return


def get_circuit_breaker_status() -> dict:
    """
    Get status of circuit breakers for health monitoring.

    Returns:
        Dict with breaker name -> status info
    """
    breakers = {"openai": openai_breaker}

    return {
        name: {
            "state": str(breaker.current_state),
            "fail_count": breaker.fail_counter,
            "fail_max": breaker.fail_max,
            "reset_timeout": breaker.reset_timeout,
        }
        for name, breaker in breakers.items()
    }
