"""Prompt construction for per-host metric summaries.

Flattens metric rows into a labelled text block and embeds it into an
instructional template.  The number of embedded rows is capped to bound the
request size; which rows survive the cap is an explicit policy.
"""

import logging
from collections.abc import Sequence
from typing import Literal

from src.metrics.models import MetricRecord

logger = logging.getLogger(__name__)

Truncation = Literal["first", "latest"]

DEFAULT_MAX_RECORDS = 400
METRICS_PLACEHOLDER = "{metrics}"

SYSTEM_PROMPT = (
    "You are an assistant that analyzes raw server health data and provides optimization recommendations."
)

DEFAULT_TEMPLATE = """\
You are a server performance assistant specialized in infrastructure optimization. I am providing you \
with detailed server health metrics collected every 30 minutes over a one-week period for the following \
server. Please analyze this data and provide the following:

1. **Comprehensive Summary**:
  - **Overall Health**: Provide a high-level overview of the server's overall health and performance.
  - **Key Trends**: Summarize the key trends observed in the metrics, including daily/weekly variations \
in resource usage.
  - **Critical Usage Peaks**: Highlight any critical peaks in CPU, memory, disk, or network usage that \
may require attention.
  - **Stability Assessment**: Assess the stability of the server performance over the given period. Are \
there noticeable fluctuations or consistent resource exhaustion?

2. **Anomalies & Issues**:
  - **Spikes & Drops**: Identify any sudden spikes or drops in resource usage (CPU, memory, disk, network) \
and their potential causes.
  - **Correlated Anomalies**: Correlate anomalies across multiple metrics (e.g., a CPU spike with a memory \
usage increase). Are there any patterns or repeated events?
  - **Threshold Approaching**: Identify any metrics that are approaching critical thresholds (e.g., CPU \
usage over 80%, memory over 90%, disk nearing full capacity).
  - **Abnormal Network Activity**: Look for unusual network activity, like spikes in incoming/outgoing \
traffic or too many network connections.

3. **Root Cause Diagnosis**:
  - **Pattern Analysis**: Based on the metrics, what could be the root causes of performance issues? Are \
there any recurring patterns that point to potential problems (e.g., high load at specific times)?
  - **Scheduled Jobs or Traffic Impact**: Could scheduled jobs or heavy network traffic be causing \
temporary performance degradation?
  - **Application vs. Infrastructure**: Do the metrics suggest issues at the application level (e.g., \
inefficient code) or infrastructure level (e.g., insufficient resources)?
  - **Critical Events**: Are there any isolated critical events or recurring issues that need further \
investigation?

4. **Actionable Recommendations**:
  - **Short-Term Recommendations**: Provide immediate fixes or actions to address any current performance \
issues.
  - **Medium-Term Optimizations**: Suggest optimizations for resource utilization, such as memory \
management, disk cleanup, or network traffic handling.
  - **Long-Term Strategies**: Recommend long-term strategies for server scaling, load balancing, and \
infrastructure upgrades.
  - **Monitoring Improvements**: Suggest additional metrics that should be monitored to provide better \
visibility into server health.
  - **Alerting Setup**: Advise on setting up performance alerts for critical thresholds, such as when CPU \
usage exceeds 85%, memory exceeds 80%, or disk usage hits 90%.

{metrics}

Please provide a detailed and structured response with specific numerical thresholds in your \
recommendations, and prioritize suggestions based on severity and potential impact. Ensure clarity in \
your insights and offer actionable next steps for each area of improvement.
"""

# (label, column, unit suffix)
_FIELDS: tuple[tuple[str, str, str], ...] = (
    ("Timestamp", "timestamp", ""),
    ("Server Hostname", "server_hostname", ""),
    ("CPU Usage", "cpu_usage", "%"),
    ("CPU Cores", "cpu_cores", ""),
    ("CPU Model", "cpu_model", ""),
    ("CPU Speed", "cpu_speed", " GHz"),
    ("CPU Load (1m)", "cpu_load_1m", ""),
    ("CPU Load (5m)", "cpu_load_5m", ""),
    ("CPU Load (15m)", "cpu_load_15m", ""),
    ("Memory Total", "memory_total", " bytes"),
    ("Memory Free", "memory_free", " bytes"),
    ("Memory Used", "memory_used", " bytes"),
    ("Memory Percentage", "memory_percentage", "%"),
    ("Disk Filesystem", "disk_filesystem", ""),
    ("Disk Size", "disk_size", " bytes"),
    ("Disk Used", "disk_used", " bytes"),
    ("Disk Available", "disk_available", " bytes"),
    ("Disk Percentage", "disk_percentage", "%"),
    ("Network Interface", "network_interface", ""),
    ("Network RX Bytes", "network_rx_bytes", " bytes"),
    ("Network TX Bytes", "network_tx_bytes", " bytes"),
    ("Network RX Rate", "network_rx_rate", " bytes/sec"),
    ("Network TX Rate", "network_tx_rate", " bytes/sec"),
    ("Network Connections", "network_connections", ""),
    ("Created At", "created_at", ""),
)


def format_record(record: MetricRecord) -> str:
    """Render one metric row as an indented ``Label: value`` block."""
    lines: list[str] = []
    for label, column, unit in _FIELDS:
        value = record.get(column)
        if value is None:
            lines.append(f"  {label}: N/A")
        elif hasattr(value, "isoformat"):
            lines.append(f"  {label}: {value.isoformat()}{unit}")  # pyright: ignore[reportAttributeAccessIssue]
        else:
            lines.append(f"  {label}: {value}{unit}")
    return "\n".join(lines)


def select_records(
    records: Sequence[MetricRecord],
    max_records: int = DEFAULT_MAX_RECORDS,
    truncation: Truncation = "first",
) -> list[MetricRecord]:
    """Apply the row cap.

    ``"first"`` keeps the first ``max_records`` rows in the order given.
    ``"latest"`` keeps the ``max_records`` most recent rows by timestamp and
    returns them oldest first.
    """
    if max_records < 1:
        msg = f"max_records must be >= 1, got {max_records}"
        raise ValueError(msg)
    if truncation == "first":
        return list(records[:max_records])
    if truncation == "latest":
        ordered = sorted(records, key=lambda r: str(r.get("timestamp", "")))
        return ordered[-max_records:]
    msg = f"Unknown truncation policy: {truncation!r}"
    raise ValueError(msg)


def build_prompt(
    records: Sequence[MetricRecord],
    template: str = DEFAULT_TEMPLATE,
    *,
    max_records: int = DEFAULT_MAX_RECORDS,
    truncation: Truncation = "first",
) -> str:
    """Embed a capped block of metric rows into ``template``.

    The block replaces the ``{metrics}`` placeholder; a template without the
    placeholder gets the block appended.  Plain substitution is used rather
    than ``str.format`` so templates may contain literal braces.
    """
    kept = select_records(records, max_records, truncation)
    if len(kept) < len(records):
        logger.debug("Prompt capped at %d of %d metric records (%s)", len(kept), len(records), truncation)

    blocks = ["Raw Server Metrics:"]
    blocks.extend(format_record(record) for record in kept)
    if len(kept) < len(records):
        blocks.append(f"({len(kept)} of {len(records)} records shown)")
    metrics_text = "\n\n".join(blocks)

    if METRICS_PLACEHOLDER in template:
        return template.replace(METRICS_PLACEHOLDER, metrics_text)
    return f"{template.rstrip()}\n\n{metrics_text}\n"
