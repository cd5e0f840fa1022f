"""APScheduler integration for the weekly metrics report.

Uses AsyncIOScheduler with CronTrigger (default ``0 12 * * 0``, Sundays at
noon).  The job only logs its outcome; there is no caller to respond to.
No-ops gracefully if no cron expression is configured.
"""

import contextlib
import logging
import time

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]

from src.config import get_settings
from src.metrics.store import MetricsStore
from src.observability.metrics import REPORT_DURATION, REPORTS_TOTAL
from src.report.generator import NoMetricsError, generate_report

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None

# crontab counts weekdays from Sunday (0 or 7); APScheduler counts from Monday.
_CRON_DAY_NAMES = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")


def _crontab_day(token: str) -> int:
    name = token.strip().lower()
    if name in _CRON_DAY_NAMES:
        return _CRON_DAY_NAMES.index(name)
    number = int(name)
    if not 0 <= number <= 7:
        raise ValueError(f"Invalid day of week in cron expression: {token}")
    return number


def crontab_weekdays(field: str) -> str:
    """Expand a crontab day-of-week field into a list of APScheduler day names.

    Handles lists, ranges, steps and both spellings of Sunday (0 and 7), e.g.
    ``1-5/2`` becomes ``mon,wed,fri`` and ``*/2`` becomes ``sun,tue,thu,sat``.
    """
    if field == "*":
        return field

    days: set[int] = set()
    for item in field.split(","):
        base, has_step, step_text = item.partition("/")
        step = int(step_text) if has_step else 1
        if step < 1:
            raise ValueError(f"Invalid step in cron day of week: {item}")
        if base == "*":
            first, last = 0, 6
        elif "-" in base:
            start, _, end = base.partition("-")
            first, last = _crontab_day(start), _crontab_day(end)
        else:
            first = _crontab_day(base)
            last = 6 if has_step else first
        if first > last:
            raise ValueError(f"Invalid day of week range in cron expression: {item}")
        days.update(day % 7 for day in range(first, last + 1, step))
    return ",".join(_CRON_DAY_NAMES[day] for day in sorted(days))


def crontab_trigger(expr: str) -> CronTrigger:
    """Build a CronTrigger from a standard five-field crontab expression."""
    fields = expr.split()
    if len(fields) != 5:
        raise ValueError(f"Wrong number of fields in cron expression; got {len(fields)}, expected 5")
    fields[4] = crontab_weekdays(fields[4])
    return CronTrigger.from_crontab(" ".join(fields))


async def _scheduled_report_job(store: MetricsStore) -> None:
    """Async job executed by the scheduler: generate, email, log, record metrics."""
    logger.info("Starting the weekly server metrics summary...")
    start = time.monotonic()
    try:
        result = await generate_report(store)
        for entry in result["results"]:
            logger.info("Summary for %s generated (%d chars)", entry["hostname"], len(entry["summary"]))
        if result["emailed"]:
            logger.info("Scheduled report emailed successfully")
        else:
            logger.warning("Scheduled report generated but not emailed")
        REPORTS_TOTAL.labels(trigger="scheduled", status="success").inc()
    except NoMetricsError as exc:
        REPORTS_TOTAL.labels(trigger="scheduled", status="empty").inc()
        logger.info("No metrics data to summarize: %s", exc)
    except Exception:
        REPORTS_TOTAL.labels(trigger="scheduled", status="error").inc()
        logger.exception("Scheduled report generation failed")
    finally:
        REPORT_DURATION.observe(time.monotonic() - start)


def is_scheduler_running() -> bool:
    return _scheduler is not None and bool(_scheduler.running)


def start_scheduler(store: MetricsStore) -> None:
    """Start the APScheduler if a cron expression is configured."""
    global _scheduler  # noqa: PLW0603

    settings = get_settings()
    if not settings.report_schedule_cron:
        logger.info("Report scheduler disabled (REPORT_SCHEDULE_CRON not set)")
        return

    trigger = crontab_trigger(settings.report_schedule_cron)
    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        _scheduled_report_job,
        trigger=trigger,
        args=[store],
        id="weekly_metrics_report",
        name="Weekly Server Metrics Report",
        replace_existing=True,
    )
    _scheduler.start()
    logger.info("Report scheduler started with cron: %s", settings.report_schedule_cron)


def stop_scheduler() -> None:
    """Gracefully shut down the scheduler if it is running."""
    global _scheduler  # noqa: PLW0603

    if _scheduler is not None:
        with contextlib.suppress(Exception):
            _scheduler.shutdown(wait=False)
        logger.info("Report scheduler stopped")
        _scheduler = None
