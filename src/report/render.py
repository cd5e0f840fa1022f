"""Report rendering: Markdown to HTML, summary text to PDF, artifact files.

HTML goes through python-markdown and a styled wrapper.  PDF is drawn
directly on a reportlab canvas: one heading per host section, body text
wrapped at a fixed column width, a new page whenever the cursor passes the
bottom margin.  Given the same summary and timestamp both outputs are
byte-identical across runs.
"""

import html
import io
import logging
import re
import tempfile
import textwrap
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path

import markdown
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from src.report.models import HostSummary, ReportArtifact
from src.report.sections import split_sections, strip_markers

logger = logging.getLogger(__name__)

REPORT_TITLE = "Server Metrics Report"
FILENAME_PREFIX = "server-metrics-report"

MARKDOWN_EXTENSIONS = ["tables", "fenced_code", "sane_lists"]

# PDF layout (points)
PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN_LEFT = 50
MARGIN_TOP = 60
MARGIN_BOTTOM = 60
WRAP_COLUMNS = 90
BODY_FONT = ("Helvetica", 10)
BODY_LEADING = 14
HEADING_FONT = ("Helvetica-Bold", 13)
HEADING_LEADING = 22
TITLE_FONT = ("Helvetica-Bold", 18)


class RenderFailure(Exception):
    """HTML/PDF generation or artifact writing failed."""


def _format_timestamp(generated_at: datetime) -> str:
    return generated_at.astimezone(UTC).strftime("%Y-%m-%d %H:%M UTC")


_UNSAFE_HOST_CHARS_RE = re.compile(r"[\s<>]+")


def marker_hostname(hostname: str) -> str:
    """Hostname as written into a ``<!-- host: NAME -->`` marker and its heading.

    Whitespace and angle brackets are replaced so the marker stays a single
    comment that ``split_by_markers`` can find.
    """
    return _UNSAFE_HOST_CHARS_RE.sub("_", hostname.strip()).strip("_") or "unknown"


def compose_report_markdown(results: Sequence[HostSummary], generated_at: datetime) -> str:
    """Join per-host summaries into one Markdown document with host markers."""
    lines = [f"# {REPORT_TITLE}", "", f"*Generated {_format_timestamp(generated_at)}*", ""]
    for result in results:
        hostname = marker_hostname(result["hostname"])
        lines.append(f"<!-- host: {hostname} -->")
        lines.append("")
        lines.append(f"## {hostname}")
        lines.append("")
        lines.append(result["summary"].strip())
        lines.append("")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# HTML
# ---------------------------------------------------------------------------


def render_html(summary_markdown: str, generated_at: datetime) -> str:
    """Convert a Markdown summary into a standalone, styled HTML document."""
    converter = markdown.Markdown(extensions=MARKDOWN_EXTENSIONS)
    # Summaries are model output: raw HTML is shown as text, never passed through.
    converter.preprocessors.deregister("html_block")
    converter.inlinePatterns.deregister("html")
    body = converter.convert(strip_markers(summary_markdown))
    title = html.escape(REPORT_TITLE)
    stamp = html.escape(_format_timestamp(generated_at))
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{title}</title>
<style>
body {{ font-family: Arial, Helvetica, sans-serif; background: #f4f4f4; color: #222; margin: 0; padding: 20px; }}
.container {{ max-width: 900px; margin: auto; background: #fff; padding: 24px 32px; border-radius: 6px; }}
h1 {{ color: #1f3b57; border-bottom: 2px solid #1f3b57; padding-bottom: 6px; }}
h2 {{ color: #1f3b57; margin-top: 28px; }}
table {{ border-collapse: collapse; width: 100%; }}
th, td {{ border: 1px solid #ddd; padding: 6px 8px; text-align: left; }}
code, pre {{ background: #f0f0f0; font-family: Menlo, Consolas, monospace; }}
.meta {{ color: #777; font-size: 12px; }}
</style>
</head>
<body>
<div class="container">
<p class="meta">Generated {stamp}</p>
{body}
</div>
</body>
</html>
"""


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

_INLINE_MARKUP_RE = re.compile(r"(\*\*|__|`)")
_HEADING_PREFIX_RE = re.compile(r"^\s*#{1,6}\s*")
_BULLET_RE = re.compile(r"^(\s*)[-*+]\s+")
_HTML_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)


def _plain_line(line: str) -> str:
    """Strip Markdown markup that would otherwise be drawn literally."""
    line = _HEADING_PREFIX_RE.sub("", line)
    line = _BULLET_RE.sub(lambda m: f"{m.group(1)}• ", line)
    return _INLINE_MARKUP_RE.sub("", line)


def wrap_body(body: str, width: int = WRAP_COLUMNS) -> list[str]:
    """Wrap section body text to ``width`` columns, keeping blank lines and indentation."""
    wrapped: list[str] = []
    for raw in _HTML_COMMENT_RE.sub("", body).splitlines():
        line = _plain_line(raw.rstrip())
        if not line.strip():
            wrapped.append("")
            continue
        indent = line[: len(line) - len(line.lstrip())]
        wrapped.extend(textwrap.wrap(line, width=width, subsequent_indent=indent + "  ") or [""])
    return wrapped


class _PdfWriter:
    """Top-down text cursor over a reportlab canvas with automatic page breaks."""

    def __init__(self, buffer: io.BytesIO, footer: str) -> None:
        self.canvas = canvas.Canvas(buffer, pagesize=A4, invariant=1)
        self.canvas.setTitle(REPORT_TITLE)
        self.canvas.setAuthor("server-metrics-reporter")
        self.footer = footer
        self.y = PAGE_HEIGHT - MARGIN_TOP

    def _finish_page(self) -> None:
        self.canvas.setFont("Helvetica", 8)
        self.canvas.drawString(MARGIN_LEFT, MARGIN_BOTTOM / 2, f"{self.footer}  |  Page {self.canvas.getPageNumber()}")
        self.canvas.showPage()
        self.y = PAGE_HEIGHT - MARGIN_TOP

    def ensure_space(self, needed: float) -> None:
        if self.y - needed < MARGIN_BOTTOM:
            self._finish_page()

    def line(self, text: str, font: tuple[str, int], leading: float) -> None:
        self.ensure_space(leading)
        self.canvas.setFont(*font)
        self.canvas.drawString(MARGIN_LEFT, self.y, text)
        self.y -= leading

    def save(self) -> None:
        self._finish_page()
        self.canvas.save()


def render_pdf(summary_markdown: str, generated_at: datetime) -> bytes:
    """Draw the summary into an A4 PDF and return its bytes.

    Raises:
        RenderFailure: If reportlab cannot produce the document.
    """
    stamp = _format_timestamp(generated_at)
    try:
        buffer = io.BytesIO()
        writer = _PdfWriter(buffer, footer=f"{REPORT_TITLE} - {stamp}")
        writer.line(REPORT_TITLE, TITLE_FONT, 26)
        writer.line(f"Generated {stamp}", BODY_FONT, BODY_LEADING * 2)

        body_text = summary_markdown
        # The document title block is drawn above; don't repeat it as a section.
        if body_text.lstrip().startswith(f"# {REPORT_TITLE}"):
            body_text = body_text.split("\n", 1)[1] if "\n" in body_text else ""
            body_text = re.sub(r"^\s*\*Generated [^*]*\*\s*$", "", body_text, count=1, flags=re.MULTILINE)

        for section in split_sections(body_text):
            writer.ensure_space(HEADING_LEADING + BODY_LEADING)
            writer.line(section["title"], HEADING_FONT, HEADING_LEADING)
            for text in wrap_body(section["body"]):
                writer.line(text, BODY_FONT, BODY_LEADING)
            writer.y -= BODY_LEADING / 2
        writer.save()
    except Exception as exc:
        raise RenderFailure(f"PDF rendering failed: {exc}") from exc
    return buffer.getvalue()


# ---------------------------------------------------------------------------
# Artifact files
# ---------------------------------------------------------------------------


def report_filename(generated_at: datetime, ext: str) -> str:
    """``server-metrics-report-2026-10-18T12-00-00-000Z.<ext>``."""
    iso = generated_at.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"{FILENAME_PREFIX}-{iso.replace(':', '-').replace('.', '-')}.{ext}"


def _write_into(directory: Path, files: dict[str, str | bytes]) -> dict[str, str]:
    directory.mkdir(parents=True, exist_ok=True)
    written: dict[str, str] = {}
    for name, content in files.items():
        path = directory / name
        if isinstance(content, bytes):
            _ = path.write_bytes(content)
        else:
            _ = path.write_text(content, encoding="utf-8")
        written[name] = str(path)
    return written


def write_artifacts(
    html_doc: str | None,
    pdf_bytes: bytes | None,
    generated_at: datetime,
    reports_dir: str | Path = "reports",
) -> ReportArtifact:
    """Write the HTML and/or PDF report, falling back to the system temp dir.

    Raises:
        RenderFailure: If neither the reports dir nor the temp dir is writable.
    """
    files: dict[str, str | bytes] = {}
    html_name = report_filename(generated_at, "html")
    pdf_name = report_filename(generated_at, "pdf")
    if html_doc is not None:
        files[html_name] = html_doc
    if pdf_bytes is not None:
        files[pdf_name] = pdf_bytes

    try:
        written = _write_into(Path(reports_dir), files)
    except OSError as exc:
        fallback = Path(tempfile.gettempdir()) / "reports"
        logger.warning("Cannot write to %s (%s); falling back to %s", reports_dir, exc, fallback)
        try:
            written = _write_into(fallback, files)
        except OSError as fallback_exc:
            raise RenderFailure(f"Could not write report artifacts: {fallback_exc}") from fallback_exc

    for path in written.values():
        logger.info("Report written to %s", path)
    return ReportArtifact(html_path=written.get(html_name), pdf_path=written.get(pdf_name))
