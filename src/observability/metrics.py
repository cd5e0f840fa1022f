"""Prometheus metric definitions for server-metrics-reporter self-instrumentation.

All metrics are module-level singletons registered with the default
prometheus_client registry.  Import them wherever instrumentation is needed.
"""

from prometheus_client import Counter, Histogram, Info

# ---------------------------------------------------------------------------
# Histogram bucket definitions
# ---------------------------------------------------------------------------

REQUEST_DURATION_BUCKETS = (0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0)
REPORT_DURATION_BUCKETS = (5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0)

# ---------------------------------------------------------------------------
# Request-level metrics
# ---------------------------------------------------------------------------

REQUEST_DURATION = Histogram(
    "metrics_reporter_request_duration_seconds",
    "End-to-end request duration in seconds",
    labelnames=["endpoint"],
    buckets=REQUEST_DURATION_BUCKETS,
)

REQUESTS_TOTAL = Counter(
    "metrics_reporter_requests_total",
    "Total number of requests",
    labelnames=["endpoint", "status"],
)

# ---------------------------------------------------------------------------
# Database metrics
# ---------------------------------------------------------------------------

DB_QUERIES_TOTAL = Counter(
    "metrics_reporter_db_queries_total",
    "Total number of metrics-store queries",
    labelnames=["operation", "status"],
)

# ---------------------------------------------------------------------------
# LLM metrics
# ---------------------------------------------------------------------------

LLM_CALLS_TOTAL = Counter(
    "metrics_reporter_llm_calls_total",
    "Total number of summarization calls",
    labelnames=["status"],
)

LLM_TOKEN_USAGE = Counter(
    "metrics_reporter_llm_token_usage",
    "Total LLM token usage reported by the endpoint",
    labelnames=["type"],
)

# ---------------------------------------------------------------------------
# Report / delivery metrics
# ---------------------------------------------------------------------------

REPORTS_TOTAL = Counter(
    "metrics_reporter_reports_total",
    "Total number of generated reports",
    labelnames=["trigger", "status"],
)

REPORT_DURATION = Histogram(
    "metrics_reporter_report_duration_seconds",
    "Time taken to generate a report in seconds",
    buckets=REPORT_DURATION_BUCKETS,
)

EMAILS_TOTAL = Counter(
    "metrics_reporter_emails_total",
    "Total number of report emails attempted",
    labelnames=["status"],
)

APP_INFO = Info(
    "metrics_reporter",
    "Server metrics reporter build information",
)
