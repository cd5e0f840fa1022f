"""Email delivery for server metrics reports.

Uses stdlib smtplib with STARTTLS (implicit TLS on port 465).  The public
send function never raises; it returns a success/failure boolean and logs
errors, so a delivery problem never aborts report generation.
"""

import logging
import mimetypes
import re
import smtplib
from email.message import EmailMessage
from pathlib import Path

from src.config import get_settings
from src.observability.metrics import EMAILS_TOTAL

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Weekly Server Metrics Report"
SMTP_TIMEOUT_SECONDS = 30


class DeliveryFailure(Exception):
    """The SMTP relay could not accept the message."""


def parse_recipients(value: str) -> list[str]:
    """Split a comma/semicolon separated recipient list."""
    return [addr.strip() for addr in re.split(r"[,;]", value) if addr.strip()]


def is_email_configured() -> bool:
    """Check whether all required SMTP settings are present."""
    settings = get_settings()
    return bool(
        settings.mail_host and settings.mail_user and settings.mail_password and parse_recipients(settings.mail_to)
    )


def build_message(
    subject: str,
    text_body: str,
    html_body: str | None = None,
    attachment_path: str | Path | None = None,
) -> EmailMessage:
    """Assemble a text (+ HTML alternative) message with at most one attachment."""
    settings = get_settings()

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.mail_from or settings.mail_user
    msg["To"] = ", ".join(parse_recipients(settings.mail_to))
    msg.set_content(text_body)
    if html_body:
        msg.add_alternative(html_body, subtype="html")

    if attachment_path:
        path = Path(attachment_path)
        ctype, encoding = mimetypes.guess_type(path.name)
        if ctype is None or encoding is not None:
            ctype = "application/octet-stream"
        maintype, subtype = ctype.split("/", 1)
        msg.add_attachment(path.read_bytes(), maintype=maintype, subtype=subtype, filename=path.name)

    return msg


def deliver_message(msg: EmailMessage) -> None:
    """Hand ``msg`` to the configured SMTP relay.

    Raises:
        DeliveryFailure: On any SMTP or socket error.
    """
    settings = get_settings()
    try:
        if settings.mail_port == 465:
            with smtplib.SMTP_SSL(settings.mail_host, settings.mail_port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                server.login(settings.mail_user, settings.mail_password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(settings.mail_host, settings.mail_port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                _ = server.starttls()
                server.login(settings.mail_user, settings.mail_password)
                server.send_message(msg)
    except (smtplib.SMTPException, OSError) as exc:
        raise DeliveryFailure(str(exc)) from exc


def send_report_email(
    subject: str | None,
    text_body: str,
    html_body: str | None = None,
    attachment_path: str | Path | None = None,
) -> bool:
    """Send a report email to the configured recipients.

    Args:
        subject: Email subject. Defaults to ``DEFAULT_SUBJECT``.
        text_body: Plain-text body (the Markdown report).
        html_body: Optional HTML alternative.
        attachment_path: Optional file (normally the PDF) to attach.

    Returns:
        True if the email was sent successfully, False otherwise.
    """
    settings = get_settings()

    if not is_email_configured():
        logger.warning("Email not configured, skipping send")
        return False

    try:
        msg = build_message(subject or DEFAULT_SUBJECT, text_body, html_body, attachment_path)
        deliver_message(msg)
    except Exception:
        EMAILS_TOTAL.labels(status="error").inc()
        logger.exception("Failed to send report email")
        return False

    EMAILS_TOTAL.labels(status="success").inc()
    logger.info("Report email sent to %s", settings.mail_to)
    return True
