import smtplib
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from backend.services.relay.models import RunOutcome, RunState, RunStatus, RunWarning
from backend.services.relay.notification_service import NotificationService, SMTPConfig, smtp_config_from_settings
from backend.services.relay.notification_utils import (
    build_log_text,
    build_subject,
    outcome_severity,
    parse_recipients,
    should_notify_for_min_severity,
)

from fakes import T0


def _outcome(status=RunStatus.SUCCESS, warnings=(), **kwargs) -> RunOutcome:
    return RunOutcome(
        run_id="run-1",
        status=status,
        state=RunState.DONE if status == RunStatus.SUCCESS else RunState.FAILED,
        started_at=T0,
        finished_at=T0,
        warnings=tuple(warnings),
        **kwargs,
    )


WARNED = _outcome(warnings=[RunWarning(kind="DeleteError", message="HTTP 423", name="old.zpaq")])
FAILED = _outcome(RunStatus.FAILURE, error_kind="TransferError", error_message="timed out")


def test_severity_mapping():
    assert outcome_severity(_outcome()) == "info"
    assert outcome_severity(WARNED) == "warning"
    assert outcome_severity(FAILED) == "error"


def test_min_severity_filter():
    assert should_notify_for_min_severity(outcome=_outcome(), min_severity="info")
    assert not should_notify_for_min_severity(outcome=_outcome(), min_severity="warning")
    assert should_notify_for_min_severity(outcome=WARNED, min_severity="warning")
    assert not should_notify_for_min_severity(outcome=WARNED, min_severity="error")
    assert should_notify_for_min_severity(outcome=FAILED, min_severity="bogus")


def test_parse_recipients_dedupes_and_splits():
    assert parse_recipients("a@x.test; b@x.test,a@x.test , ") == ["a@x.test", "b@x.test"]
    assert parse_recipients(None) == []


def test_subject_and_log_text():
    assert build_subject(FAILED).startswith("❌")
    assert build_subject(WARNED).startswith("⚠️")
    assert "2025-03-01_02-00" in build_subject(_outcome())

    text = build_log_text(
        _outcome(
            artifact_name="b3.zpaq",
            remote_name="b3_x.zpaq",
            size_bytes=2 * 1024 * 1024,
            digest="deadbeef",
            timestamp_source="listing",
            deleted_names=("old1.zpaq",),
        )
    )
    assert "Published as: b3_x.zpaq" in text
    assert "2.00 MB" in text
    assert "SHA-256: deadbeef" in text
    assert "(degraded)" in text
    assert "  - old1.zpaq" in text
    assert "Error: TransferError: timed out" in build_log_text(FAILED)


def test_smtp_config_requires_host():
    assert smtp_config_from_settings(SimpleNamespace(SMTP_HOST="")) is None
    cfg = smtp_config_from_settings(SimpleNamespace(SMTP_HOST="mail.test", SMTP_PORT=465, SMTP_USE_SSL=True))
    assert cfg.port == 465
    assert cfg.use_ssl


@pytest.mark.asyncio
async def test_no_recipients_sends_nothing():
    service = NotificationService(SMTPConfig(host="mail.test"))

    assert await service.send_run_notification(FAILED) == []


@pytest.mark.asyncio
async def test_sends_one_mail_per_recipient_with_log_attachment():
    service = NotificationService(
        SMTPConfig(host="mail.test", port=587, user="bot", password="pw", from_addr="bot@x.test", use_tls=False),
        recipients=["a@x.test", "b@x.test"],
    )
    smtp = MagicMock()

    with patch("backend.services.relay.notification_service.smtplib.SMTP", return_value=smtp) as smtp_cls:
        results = await service.send_run_notification(FAILED)

    assert [r["to"] for r in results] == ["a@x.test", "b@x.test"]
    assert all(r["success"] for r in results)
    smtp_cls.assert_called_with("mail.test", 587)
    smtp.login.assert_called_with("bot", "pw")
    assert smtp.sendmail.call_count == 2
    message = smtp.sendmail.call_args[0][2]
    assert "backup_log_2025-03-01_02-00.txt" in message


@pytest.mark.asyncio
async def test_smtp_failure_is_reported_not_raised():
    service = NotificationService(SMTPConfig(host="mail.test", use_tls=False), recipients=["a@x.test"])

    with patch(
        "backend.services.relay.notification_service.smtplib.SMTP",
        side_effect=smtplib.SMTPConnectError(421, "busy"),
    ):
        results = await service.send_run_notification(FAILED)

    assert results == [{"to": "a@x.test", "success": False, "error": str(smtplib.SMTPConnectError(421, "busy"))}]
