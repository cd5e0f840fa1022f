"""TypedDict models passed between report pipeline stages."""

from typing_extensions import TypedDict


class HostSummary(TypedDict):
    hostname: str
    summary: str


class ReportArtifact(TypedDict):
    html_path: str | None
    pdf_path: str | None
