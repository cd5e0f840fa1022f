"""Server metrics report pipeline.

Lists hostnames, fetches each host's recent metrics, makes one summarization
call per host (sequentially), then renders the combined summary to HTML and
PDF and emails it.  Per-stage failures degrade rather than abort:

- an upstream LLM failure replaces that host's summary with a fallback line
- a PDF failure sends the email without an attachment
- an email failure is reported as ``emailed=False``
"""

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import cast

import httpx
from typing_extensions import TypedDict

from src.config import get_settings
from src.metrics.store import MetricsStore
from src.report.email import DEFAULT_SUBJECT, is_email_configured, send_report_email
from src.report.models import HostSummary, ReportArtifact
from src.report.prompt import Truncation, build_prompt
from src.report.render import RenderFailure, compose_report_markdown, render_html, render_pdf, write_artifacts
from src.report.summarizer import UpstreamFailure, summarize

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "Sorry, something went wrong while generating the summary and recommendations."


class NoMetricsError(Exception):
    """There is nothing to summarize (no hostnames, or no rows in the window)."""


class ReportResult(TypedDict):
    generated_at: str
    lookback_days: int
    results: list[HostSummary]
    markdown: str
    html: str
    html_path: str | None
    pdf_path: str | None
    emailed: bool


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


async def summarize_host(
    store: MetricsStore,
    hostname: str,
    lookback_days: int,
    *,
    client: httpx.AsyncClient | None = None,
) -> HostSummary | None:
    """Summarize one host's recent metrics. Returns None if the host has no rows.

    Raises:
        UpstreamFailure: If the summarization call fails.
    """
    settings = get_settings()
    records = await store.fetch_by_host(hostname, lookback_days)
    if not records:
        logger.info("No metrics for %s in the last %d days", hostname, lookback_days)
        return None

    prompt = build_prompt(
        records,
        max_records=settings.prompt_max_records,
        truncation=cast(Truncation, settings.prompt_truncation),
    )
    summary = await summarize(prompt, client=client)
    return HostSummary(hostname=hostname, summary=summary)


async def summarize_hosts(
    store: MetricsStore,
    lookback_days: int | None = None,
    hostnames: Sequence[str] | None = None,
) -> list[HostSummary]:
    """Summarize every host (or just ``hostnames``) in listing order.

    Hosts without rows in the window are skipped.  A failed summarization
    call is logged and that host gets ``FALLBACK_SUMMARY``.

    Raises:
        NoMetricsError: If the store lists no hostnames.
    """
    settings = get_settings()
    days = lookback_days if lookback_days is not None else settings.report_lookback_days

    if hostnames is None:
        hostnames = await store.list_hostnames()
    if not hostnames:
        raise NoMetricsError("No hostnames found.")

    results: list[HostSummary] = []
    async with httpx.AsyncClient() as client:
        for hostname in hostnames:
            try:
                result = await summarize_host(store, hostname, days, client=client)
            except UpstreamFailure:
                logger.exception("Summarization failed for %s", hostname)
                result = HostSummary(hostname=hostname, summary=FALLBACK_SUMMARY)
            if result is not None:
                results.append(result)
    return results


# ---------------------------------------------------------------------------
# Top-level entry point
# ---------------------------------------------------------------------------


async def generate_report(
    store: MetricsStore,
    lookback_days: int | None = None,
    *,
    send_email: bool = True,
    write_files: bool = True,
) -> ReportResult:
    """Summarize all hosts, render HTML/PDF, write artifacts and email the report.

    Args:
        store: Shared metrics store.
        lookback_days: Number of days to look back. Defaults to settings value.
        send_email: Email the report when SMTP is configured.
        write_files: Write HTML/PDF files to the reports directory.

    Raises:
        NoMetricsError: If no host has any metrics to report on.
    """
    settings = get_settings()
    days = lookback_days if lookback_days is not None else settings.report_lookback_days
    generated_at = datetime.now(UTC)

    results = await summarize_hosts(store, days)
    if not results:
        raise NoMetricsError("No metrics data found.")

    markdown_doc = compose_report_markdown(results, generated_at)
    html_doc = render_html(markdown_doc, generated_at)

    pdf_bytes: bytes | None = None
    try:
        pdf_bytes = await asyncio.to_thread(render_pdf, markdown_doc, generated_at)
    except RenderFailure:
        logger.exception("PDF generation failed; report will be sent without attachment")

    artifact = ReportArtifact(html_path=None, pdf_path=None)
    if write_files:
        try:
            artifact = write_artifacts(html_doc, pdf_bytes, generated_at, settings.reports_dir)
        except RenderFailure:
            logger.exception("Could not write report artifacts")

    emailed = False
    if send_email:
        if is_email_configured():
            subject = f"{DEFAULT_SUBJECT} — {generated_at:%Y-%m-%d}"
            emailed = await asyncio.to_thread(
                send_report_email, subject, markdown_doc, html_doc, artifact["pdf_path"]
            )
        else:
            logger.info("Report generated (email not configured)")

    return ReportResult(
        generated_at=generated_at.isoformat(),
        lookback_days=days,
        results=results,
        markdown=markdown_doc,
        html=html_doc,
        html_path=artifact["html_path"],
        pdf_path=artifact["pdf_path"],
        emailed=emailed,
    )
