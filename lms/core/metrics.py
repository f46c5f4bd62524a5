"""Prometheus metric inventory.

All metrics are declared here; the owning module imports the one it needs
and increments it at the point of action.  Scraped from GET /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP (MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],  # user|ip
)

# ---------------------------------------------------------------------------
# Progression engine
# ---------------------------------------------------------------------------

ATTEMPTS_STARTED = Counter(
    "test_attempts_started_total",
    "Test attempts created",
)

ATTEMPTS_SUBMITTED = Counter(
    "test_attempts_submitted_total",
    "Test attempts completed by outcome",
    ["outcome"],  # passed|failed|forced
)

ATTEMPTS_ABANDONED = Counter(
    "test_attempts_abandoned_total",
    "Stale in-progress attempts marked abandoned",
)

ANSWERS_GRADED = Counter(
    "test_answers_graded_total",
    "Answers graded by question type and correctness",
    ["question_type", "correct"],
)

ENROLLMENTS_COMPLETED = Counter(
    "enrollments_completed_total",
    "Enrollments that crossed 100% progress",
    ["scope"],  # course|class
)

CERTIFICATES_ISSUED = Counter(
    "certificates_issued_total",
    "Certification rows inserted",
    ["scope"],  # course|class
)

SIDE_EFFECT_FAILURES = Counter(
    "side_effect_failures_total",
    "Best-effort side effects that failed and were swallowed",
    ["effect"],  # certificate_check|certificate_render|notification|email|progress
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # certificate_render|notifications
)
