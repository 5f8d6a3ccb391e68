"""Prometheus metrics for the relay and the realtime client."""

from prometheus_client import Counter, Histogram

from voicequiz.core.logging import get_logger

logger = get_logger(__name__)


def _safe_counter(*args, **kwargs):
    try:
        return Counter(*args, **kwargs)
    except ValueError:
        # Already registered (module re-import under test); return a no-op
        class DummyMetric:
            def labels(self, *args, **kwargs):
                return self

            def inc(self, *args, **kwargs):
                pass

        return DummyMetric()


def _safe_histogram(*args, **kwargs):
    try:
        return Histogram(*args, **kwargs)
    except ValueError:

        class DummyMetric:
            def labels(self, *args, **kwargs):
                return self

            def observe(self, *args, **kwargs):
                pass

        return DummyMetric()


# Relay -> OpenAI calls
relay_upstream_requests_total = _safe_counter(
    "voicequiz_relay_upstream_requests_total",
    "Upstream OpenAI requests made by the relay",
    ["endpoint", "status"],
)

relay_upstream_latency_seconds = _safe_histogram(
    "voicequiz_relay_upstream_latency_seconds",
    "Latency of upstream OpenAI requests",
    ["endpoint"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0),
)

realtime_credentials_issued_total = _safe_counter(
    "voicequiz_realtime_credentials_issued_total",
    "Ephemeral realtime credentials issued",
    ["game_mode"],
)

relay_rate_limited_total = _safe_counter(
    "voicequiz_relay_rate_limited_total",
    "Requests rejected by the relay rate limiter",
    ["path"],
)

# Client-side errors
quiz_errors_total = _safe_counter(
    "voicequiz_errors_total",
    "Quiz errors by category and code",
    ["category", "code", "recoverable"],
)
