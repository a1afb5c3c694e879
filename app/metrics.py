"""
Prometheus metrics for the messaging API.

This module provides:
- HTTP request counter (method, path, status)
- Request latency histogram (method, path)
- Messaging outcome counters (conversations resolved, messages sent/read/unsent)

Metrics are stored in-memory using prometheus-client.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# =============================================================================
# Metric Definitions
# =============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path", "status"]
)

# Using default buckets: .005, .01, .025, .05, .075, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0
request_latency_seconds = Histogram(
    "request_latency_seconds",
    "Request latency in seconds",
    labelnames=["method", "path"]
)

# result: created, existing
conversations_resolved_total = Counter(
    "conversations_resolved_total",
    "Conversation get-or-create outcomes",
    labelnames=["result"]
)

messages_sent_total = Counter(
    "messages_sent_total",
    "Messages stored",
    labelnames=["message_type"]
)

messages_marked_read_total = Counter(
    "messages_marked_read_total",
    "Messages flipped from unread to read"
)

messages_unsent_total = Counter(
    "messages_unsent_total",
    "Messages tombstoned by their sender"
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_http_request(method: str, path: str, status: int, latency_seconds: float) -> None:
    """
    Record an HTTP request in metrics.

    Args:
        method: HTTP method (GET, POST, etc.)
        path: Route template when matched (e.g. /messages/{conversation_id}), raw path otherwise
        status: HTTP status code
        latency_seconds: Request processing time in seconds
    """
    normalized_path = path.split("?")[0]

    http_requests_total.labels(
        method=method,
        path=normalized_path,
        status=str(status)
    ).inc()

    request_latency_seconds.labels(
        method=method,
        path=normalized_path
    ).observe(latency_seconds)


def record_conversation_resolved(created: bool) -> None:
    conversations_resolved_total.labels(result="created" if created else "existing").inc()


def record_message_sent(message_type: str) -> None:
    messages_sent_total.labels(message_type=message_type).inc()


def record_messages_marked_read(count: int) -> None:
    if count > 0:
        messages_marked_read_total.inc(count)


def record_message_unsent() -> None:
    messages_unsent_total.inc()


def get_metrics() -> bytes:
    """
    Generate Prometheus exposition format metrics.

    Returns:
        Metrics in Prometheus text format as bytes
    """
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
