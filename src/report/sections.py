"""Split summary text into per-host sections for PDF layout.

Each strategy is a pure ``str -> list[ReportSection]`` function.  They are
tried in order and the first non-empty result wins:

1. explicit ``<!-- host: NAME -->`` markers written by ``compose_report_markdown``
2. hostname label lines such as ``Server: web-01`` or ``**Hostname:** db-01``
3. blank-line separated paragraphs
"""

import re
from collections.abc import Callable, Sequence
from typing_extensions import TypedDict


class ReportSection(TypedDict):
    title: str
    body: str


SectionStrategy = Callable[[str], list[ReportSection]]

_MARKER_RE = re.compile(r"^\s*<!--\s*host:\s*(?P<host>[^\s>]+)\s*-->\s*$", re.MULTILINE)
_HOST_LINE_RE = re.compile(
    r"^[ \t]*(?:#{1,6}[ \t]*)?(?:\*\*)?(?:Server[ \t]+Hostname|Hostname|Server|Host)[ \t]*:[ \t]*(?:\*\*)?[ \t]*"
    r"(?:\*\*|`)?(?P<host>[A-Za-z0-9][A-Za-z0-9.\-_]*[A-Za-z0-9])(?:\*\*|`)?[ \t]*$",
    re.MULTILINE | re.IGNORECASE,
)
_HEADING_FOR_HOST_RE = re.compile(r"^\s*#{1,6}\s+\S+\s*$")


def _split_on(text: str, pattern: re.Pattern[str]) -> list[ReportSection]:
    matches = list(pattern.finditer(text))
    sections: list[ReportSection] = []
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        body = text[match.end() : end].strip("\n")
        sections.append(ReportSection(title=match.group("host"), body=body.strip()))
    return sections


def split_by_markers(text: str) -> list[ReportSection]:
    """Sections delimited by ``<!-- host: NAME -->`` comments.

    A Markdown heading immediately after the marker repeats the hostname and
    is dropped from the body.
    """
    sections = _split_on(text, _MARKER_RE)
    for section in sections:
        first, _, rest = section["body"].partition("\n")
        if _HEADING_FOR_HOST_RE.match(first) and section["title"] in first:
            section["body"] = rest.strip()
    return sections


def strip_markers(text: str) -> str:
    """Remove ``<!-- host: NAME -->`` marker lines, leaving the rest untouched."""
    return _MARKER_RE.sub("", text)


def split_by_hostname_lines(text: str) -> list[ReportSection]:
    """Sections starting at lines that name a server, e.g. ``### Host: web-01``."""
    return _split_on(text, _HOST_LINE_RE)


def split_by_paragraphs(text: str) -> list[ReportSection]:
    """Blank-line separated paragraphs, titled ``Section 1..N``."""
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]
    return [ReportSection(title=f"Section {i}", body=p) for i, p in enumerate(paragraphs, 1)]


SECTION_STRATEGIES: tuple[SectionStrategy, ...] = (
    split_by_markers,
    split_by_hostname_lines,
    split_by_paragraphs,
)


def split_sections(text: str, strategies: Sequence[SectionStrategy] = SECTION_STRATEGIES) -> list[ReportSection]:
    """Return the first non-empty split produced by ``strategies``."""
    for strategy in strategies:
        sections = strategy(text)
        if sections:
            return sections
    return [ReportSection(title="Summary", body=text.strip())]
