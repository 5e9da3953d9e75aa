"""Email notifications for relay run outcomes.

The pipeline only produces a `RunOutcome`; this service decides whether to
deliver it and renders it into an email with the run log attached as a text
file. Delivery failures are logged and never change the outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import smtplib
import ssl
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, List, Optional, Sequence

from fastapi.concurrency import run_in_threadpool

from backend.services.relay.models import RunOutcome
from backend.services.relay.notification_utils import (
    build_log_text,
    build_subject,
    normalize_min_severity,
    parse_recipients,
    should_notify_for_min_severity,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SMTPConfig:
    """SMTP connection settings."""

    host: str
    port: int = 587
    user: Optional[str] = None
    password: Optional[str] = None
    from_addr: Optional[str] = None
    use_ssl: bool = False
    use_tls: bool = True
    allow_insecure_certs: bool = False
    ca_cert_file: str = ""


def _build_smtp_ssl_context(*, allow_insecure: bool, ca_cert_file: str) -> ssl.SSLContext:
    """Build an SSL context for SMTP connections.

    Args:
        allow_insecure: When True, disable certificate verification.
        ca_cert_file: Optional CA bundle path used to validate the remote certificate.

    Returns:
        ssl.SSLContext: SSL context.
    """

    if allow_insecure:
        return ssl._create_unverified_context()

    cafile = str(ca_cert_file or "").strip()
    if cafile:
        try:
            context = ssl.create_default_context(cafile=cafile)
            logger.info("Using custom SMTP CA bundle cafile=%s", cafile)
            return context
        except (OSError, ssl.SSLError):
            logger.exception("Failed to load SMTP CA bundle cafile=%s; falling back to default trust store", cafile)

    return ssl.create_default_context()


def smtp_config_from_settings(settings: Any) -> Optional[SMTPConfig]:
    """Build an SMTPConfig from settings, or None when SMTP is not configured."""

    host = str(getattr(settings, "SMTP_HOST", "") or "").strip()
    if not host:
        return None

    return SMTPConfig(
        host=host,
        port=int(getattr(settings, "SMTP_PORT", 587) or 587),
        user=str(getattr(settings, "SMTP_USER", "") or "") or None,
        password=str(getattr(settings, "SMTP_PASSWORD", "") or "") or None,
        from_addr=str(getattr(settings, "SMTP_FROM", "") or "") or None,
        use_ssl=bool(getattr(settings, "SMTP_USE_SSL", False)),
        use_tls=bool(getattr(settings, "SMTP_USE_TLS", True)),
        allow_insecure_certs=bool(getattr(settings, "SMTP_ALLOW_INSECURE_CERTS", False)),
        ca_cert_file=str(getattr(settings, "SMTP_CA_CERT_FILE", "") or ""),
    )


class NotificationService:
    """Deliver run outcomes by email."""

    def __init__(
        self,
        smtp_config: Optional[SMTPConfig],
        *,
        recipients: Sequence[str] = (),
        min_severity: str = "info",
    ):
        """Initialize the notification service.

        Args:
            smtp_config: SMTP settings; None disables delivery.
            recipients: Email addresses.
            min_severity: Lowest severity (info|warning|error) that is delivered.
        """

        self.smtp_config = smtp_config
        self.recipients = list(recipients)
        self.min_severity = normalize_min_severity(min_severity)

    @classmethod
    def from_settings(cls, settings: Any) -> "NotificationService":
        return cls(
            smtp_config_from_settings(settings),
            recipients=parse_recipients(getattr(settings, "NOTIFY_EMAIL_TO", "")),
            min_severity=getattr(settings, "NOTIFY_MIN_SEVERITY", "info"),
        )

    async def send_run_notification(self, outcome: RunOutcome) -> List[Dict[str, Any]]:
        """Notify all recipients about a run outcome.

        Args:
            outcome: Terminal run outcome.

        Returns:
            List[Dict[str, Any]]: One send result per recipient.
        """

        if not self.recipients:
            logger.debug("No notification recipients configured; skipping run_id=%s", outcome.run_id)
            return []

        if not should_notify_for_min_severity(outcome=outcome, min_severity=self.min_severity):
            logger.debug(
                "Outcome below min severity=%s; skipping run_id=%s",
                self.min_severity,
                outcome.run_id,
            )
            return []

        subject = build_subject(outcome)
        log_text = build_log_text(outcome)
        attachment_name = f"backup_log_{outcome.started_at.strftime('%Y-%m-%d_%H-%M')}.txt"
        body = "The backup relay run finished. See the attached log for details."

        results: List[Dict[str, Any]] = []
        for to_addr in self.recipients:
            result = await run_in_threadpool(
                self._send_email,
                to_addr=to_addr,
                subject=subject,
                body=body,
                attachment_text=log_text,
                attachment_filename=attachment_name,
            )
            results.append({"to": to_addr, **result})
        return results

    def _send_email(
        self,
        *,
        to_addr: str,
        subject: str,
        body: str,
        attachment_text: Optional[str] = None,
        attachment_filename: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send an email notification.

        Args:
            to_addr: Recipient email address.
            subject: Email subject.
            body: Email body text.
            attachment_text: Optional text attached as a file.
            attachment_filename: Attachment filename.

        Returns:
            Dict with send result.
        """
        if not self.smtp_config:
            logger.warning("SMTP not configured; skipping email to=%s", to_addr)
            return {"success": False, "error": "SMTP not configured"}

        cfg = self.smtp_config
        try:
            msg = MIMEMultipart()
            msg["From"] = cfg.from_addr or cfg.user or ""
            msg["To"] = to_addr
            msg["Subject"] = subject
            msg.attach(MIMEText(body, "plain"))

            if attachment_text:
                part = MIMEBase("text", "plain")
                part.set_payload(attachment_text.encode("utf-8"))
                encoders.encode_base64(part)
                part.add_header("Content-Disposition", f"attachment; filename=\"{attachment_filename or 'backup_log.txt'}\"")
                msg.attach(part)

            if cfg.allow_insecure_certs:
                logger.warning(
                    "SMTP_ALLOW_INSECURE_CERTS is enabled; TLS certificate verification is disabled for SMTP"
                )

            server = None
            try:
                if cfg.use_ssl:
                    context = _build_smtp_ssl_context(allow_insecure=cfg.allow_insecure_certs, ca_cert_file=cfg.ca_cert_file)
                    server = smtplib.SMTP_SSL(cfg.host, cfg.port, context=context)
                else:
                    server = smtplib.SMTP(cfg.host, cfg.port)
                    if cfg.use_tls:
                        context = _build_smtp_ssl_context(allow_insecure=cfg.allow_insecure_certs, ca_cert_file=cfg.ca_cert_file)
                        server.starttls(context=context)

                if cfg.user and cfg.password:
                    server.login(cfg.user, cfg.password)

                server.sendmail(msg["From"], to_addr, msg.as_string())
            finally:
                if server is not None:
                    try:
                        server.quit()
                    except smtplib.SMTPException:
                        logger.debug("SMTP quit failed", exc_info=True)

            logger.info("Email sent successfully to=%s", to_addr)
            return {"success": True}

        except (smtplib.SMTPException, OSError) as e:
            logger.exception(
                "SMTP send failed to=%s host=%s port=%s use_ssl=%s",
                to_addr,
                cfg.host,
                cfg.port,
                cfg.use_ssl,
            )
            return {"success": False, "error": str(e)}
