"""Notification utilities for the backup relay.

Small pure helpers used by `NotificationService`: severity mapping, recipient
parsing and rendering of a run outcome into a subject line and a plain-text
log. Kept separate so the service module stays focused on SMTP I/O.
"""

from __future__ import annotations

from typing import Any, List, Optional

from backend.services.relay.models import RunOutcome


_SEVERITY_ORDER = {"info": 0, "warning": 1, "error": 2}


def normalize_min_severity(value: Any) -> str:
    """Normalize a severity label.

    Args:
        value: Severity value.

    Returns:
        str: Normalized severity label (info|warning|error).
    """

    if not value:
        return "error"

    label = str(value).strip().lower()
    if label in _SEVERITY_ORDER:
        return label

    return "error"


def outcome_severity(outcome: RunOutcome) -> str:
    """Map a run outcome to a severity label.

    A published backup with incomplete cleanup is a warning, not an error.
    """

    if not outcome.succeeded:
        return "error"
    if outcome.warnings:
        return "warning"
    return "info"


def should_notify_for_min_severity(*, outcome: RunOutcome, min_severity: str) -> bool:
    status_rank = _SEVERITY_ORDER[outcome_severity(outcome)]
    min_rank = _SEVERITY_ORDER[normalize_min_severity(min_severity)]
    return status_rank >= min_rank


def parse_recipients(value: Any) -> List[str]:
    """Split a comma/semicolon separated recipient list.

    Args:
        value: Raw setting value (string or list).

    Returns:
        List[str]: Unique addresses in the given order.
    """

    if not value:
        return []

    if isinstance(value, (list, tuple)):
        raw = [str(v) for v in value]
    else:
        raw = str(value).replace(";", ",").split(",")

    recipients: List[str] = []
    for item in raw:
        addr = item.strip()
        if addr and addr not in recipients:
            recipients.append(addr)
    return recipients


def format_size_mb(size_bytes: Optional[int]) -> Optional[str]:
    if size_bytes is None:
        return None
    return f"{size_bytes / (1024 * 1024):.2f} MB"


def build_subject(outcome: RunOutcome) -> str:
    stamp = outcome.started_at.strftime("%Y-%m-%d_%H-%M")
    if not outcome.succeeded:
        return f"❌ Backup relay failed – {stamp}"
    if outcome.warnings:
        return f"⚠️ Backup relay succeeded, cleanup incomplete – {stamp}"
    return f"✅ Backup relay succeeded – {stamp}"


def build_log_text(outcome: RunOutcome) -> str:
    """Render the plain-text run log attached to notifications."""

    lines = []
    if outcome.succeeded:
        lines.append("✅ BACKUP RELAY SUCCEEDED")
    else:
        lines.append("❌ BACKUP RELAY FAILED")
    lines.append("")
    lines.append(f"Run: {outcome.run_id}")
    lines.append(f"Started: {outcome.started_at.isoformat()}")
    lines.append(f"Finished: {outcome.finished_at.isoformat()}")
    lines.append(f"State: {outcome.state.value}")

    if outcome.artifact_name:
        lines.append(f"Source artifact: {outcome.artifact_name}")
    if outcome.timestamp_source and outcome.timestamp_source != "stat":
        lines.append(f"Timestamp source: {outcome.timestamp_source} (degraded)")
    if outcome.remote_name:
        lines.append(f"Published as: {outcome.remote_name}")
    size = format_size_mb(outcome.size_bytes)
    if size:
        lines.append(f"Size: {size} ({outcome.size_bytes} bytes)")
    if outcome.digest:
        lines.append(f"SHA-256: {outcome.digest}")

    if outcome.succeeded:
        lines.append(f"Deleted old backups: {len(outcome.deleted_names)}")
        for name in outcome.deleted_names:
            lines.append(f"  - {name}")

    if outcome.warnings:
        lines.append("")
        lines.append("Cleanup warnings:")
        for warning in outcome.warnings:
            lines.append(f"  - {warning.kind}: {warning.message}")

    if outcome.error_kind:
        lines.append("")
        lines.append(f"Error: {outcome.error_kind}: {outcome.error_message}")

    return "\n".join(lines) + "\n"
