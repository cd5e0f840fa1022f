"""FastAPI backend for the server metrics reporter.

Exposes on-demand summaries and full reports over HTTP.  The metrics store
is built once at startup, shared across requests and the weekly scheduler,
and closed on shutdown after the scheduler stops.
"""

import asyncio
import logging
import signal
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from src.config import get_settings
from src.metrics.store import MetricsStore
from src.observability.metrics import (
    APP_INFO,
    REPORT_DURATION,
    REPORTS_TOTAL,
    REQUEST_DURATION,
    REQUESTS_TOTAL,
)
from src.report.generator import NoMetricsError, generate_report, summarize_hosts
from src.report.models import HostSummary
from src.report.scheduler import is_scheduler_running, start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)

SUMMARY_ERROR = "Failed to generate summary and recommendations."
REPORT_ERROR = "Failed to generate report."


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class SummaryRequest(BaseModel):
    """Request body for POST /api/summary and POST /api/report."""

    hostname: str | None = None
    lookback_days: int | None = Field(default=None, ge=1, le=365)


class SummaryResponse(BaseModel):
    """Response body for POST /api/summary."""

    status: str
    results: list[HostSummary]


class ReportResponse(BaseModel):
    """Response body for POST /api/report."""

    status: str
    results: list[HostSummary]
    emailed: bool
    html_path: str | None
    pdf_path: str | None
    timestamp: str


class HostnamesResponse(BaseModel):
    hostnames: list[str]


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    database: bool
    scheduler: bool


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------

_crash_shutdown_requested = False


def _handle_loop_exception(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    """Log an exception nothing else handled, then shut down as on SIGTERM.

    uvicorn turns the signal into its normal graceful exit, which runs the
    lifespan teardown below.
    """
    global _crash_shutdown_requested  # noqa: PLW0603

    loop.default_exception_handler(context)
    if "exception" not in context or _crash_shutdown_requested:
        return
    _crash_shutdown_requested = True
    logger.critical("Unhandled exception, starting graceful shutdown")
    signal.raise_signal(signal.SIGTERM)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the shared metrics store and scheduler; tear both down on shutdown."""
    global _crash_shutdown_requested  # noqa: PLW0603

    settings = get_settings()
    APP_INFO.info({"version": "0.1.0"})

    loop = asyncio.get_running_loop()
    previous_handler = loop.get_exception_handler()
    _crash_shutdown_requested = False
    loop.set_exception_handler(_handle_loop_exception)

    store = MetricsStore.from_settings(settings)
    app.state.store = store
    start_scheduler(store)
    try:
        yield
    finally:
        stop_scheduler()
        await store.close()
        loop.set_exception_handler(previous_handler)
        logger.info("Shutting down server metrics reporter")


app = FastAPI(title="Server Metrics Reporter", lifespan=lifespan)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _observe(endpoint: str, status: str, start: float) -> None:
    REQUESTS_TOTAL.labels(endpoint=endpoint, status=status).inc()
    REQUEST_DURATION.labels(endpoint=endpoint).observe(time.monotonic() - start)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    """Liveness string."""
    return "Server Monitor API Running"


@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Check database connectivity and scheduler state."""
    store: MetricsStore = request.app.state.store
    database = await store.ping()
    return HealthResponse(
        status="healthy" if database else "unhealthy",
        database=database,
        scheduler=is_scheduler_running(),
    )


@app.get("/api/hostnames", response_model=HostnamesResponse)
async def hostnames(request: Request) -> HostnamesResponse:
    """List hostnames present in the metrics table."""
    store: MetricsStore = request.app.state.store
    return HostnamesResponse(hostnames=await store.list_hostnames())


@app.post("/api/summary", response_model=SummaryResponse)
async def summary(request: Request, body: SummaryRequest | None = None) -> SummaryResponse | JSONResponse:
    """Summarize each host's recent metrics (or a single host's) without emailing."""
    store: MetricsStore = request.app.state.store
    start = time.monotonic()
    hostname = body.hostname if body else None
    lookback_days = body.lookback_days if body else None

    try:
        results = await summarize_hosts(
            store,
            lookback_days,
            hostnames=[hostname] if hostname else None,
        )
    except NoMetricsError as exc:
        _observe("/api/summary", "not_found", start)
        return _error(404, str(exc))
    except Exception:
        _observe("/api/summary", "error", start)
        logger.exception("Error in summary route")
        return _error(500, SUMMARY_ERROR)

    if not results:
        _observe("/api/summary", "not_found", start)
        return _error(404, "No metrics data found.")

    _observe("/api/summary", "success", start)
    return SummaryResponse(status="success", results=results)


@app.post("/api/report", response_model=ReportResponse)
async def report(request: Request, body: SummaryRequest | None = None) -> ReportResponse | JSONResponse:
    """Generate, store and email the full HTML/PDF report on demand."""
    store: MetricsStore = request.app.state.store
    lookback_days = body.lookback_days if body else None
    start = time.monotonic()

    try:
        result = await generate_report(store, lookback_days)
    except NoMetricsError as exc:
        REPORTS_TOTAL.labels(trigger="manual", status="empty").inc()
        _observe("/api/report", "not_found", start)
        return _error(404, str(exc))
    except Exception:
        REPORTS_TOTAL.labels(trigger="manual", status="error").inc()
        REPORT_DURATION.observe(time.monotonic() - start)
        _observe("/api/report", "error", start)
        logger.exception("Report generation failed")
        return _error(500, REPORT_ERROR)

    REPORTS_TOTAL.labels(trigger="manual", status="success").inc()
    REPORT_DURATION.observe(time.monotonic() - start)
    _observe("/api/report", "success", start)
    return ReportResponse(
        status="success",
        results=result["results"],
        emailed=result["emailed"],
        html_path=result["html_path"],
        pdf_path=result["pdf_path"],
        timestamp=result["generated_at"],
    )
