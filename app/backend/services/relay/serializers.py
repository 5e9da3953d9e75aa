"""Serialization helpers for relay records.

These helpers convert pipeline records into JSON-friendly dictionaries for API
responses, runner logs and notifications.
"""

from __future__ import annotations

from typing import Any, Dict

from backend.services.relay.models import RunOutcome, RunWarning, SourceArtifact


def warning_to_dict(warning: RunWarning) -> Dict[str, Any]:
    return {"kind": warning.kind, "message": warning.message, "name": warning.name}


def outcome_to_dict(outcome: RunOutcome) -> Dict[str, Any]:
    """Convert a RunOutcome to a JSON-friendly dict.

    Args:
        outcome: Run outcome.

    Returns:
        Dict[str, Any]: Serialized outcome.
    """

    return {
        "run_id": outcome.run_id,
        "status": outcome.status.value,
        "state": outcome.state.value,
        "cleanup_complete": outcome.cleanup_complete,
        "artifact_name": outcome.artifact_name,
        "remote_name": outcome.remote_name,
        "size_bytes": outcome.size_bytes,
        "digest": outcome.digest,
        "timestamp_source": outcome.timestamp_source,
        "deleted_names": list(outcome.deleted_names),
        "warnings": [warning_to_dict(w) for w in outcome.warnings],
        "error_kind": outcome.error_kind,
        "error_message": outcome.error_message,
        "started_at": outcome.started_at.isoformat() if outcome.started_at else None,
        "finished_at": outcome.finished_at.isoformat() if outcome.finished_at else None,
    }


def artifact_to_dict(artifact: SourceArtifact) -> Dict[str, Any]:
    """Convert a SourceArtifact to a JSON-friendly dict.

    Args:
        artifact: Source artifact.

    Returns:
        Dict[str, Any]: Serialized artifact.
    """

    return {
        "filename": artifact.name,
        "size_bytes": artifact.size_bytes,
        "modified": artifact.modified_at.isoformat(),
        "timestamp_source": artifact.timestamp_source,
    }


def outcome_summary_to_dict(outcome: RunOutcome) -> Dict[str, Any]:
    """Reduce a RunOutcome to fields without hosts, paths or error text."""

    return {
        "run_id": outcome.run_id,
        "status": outcome.status.value,
        "state": outcome.state.value,
        "cleanup_complete": outcome.cleanup_complete,
        "warning_count": len(outcome.warnings),
        "finished_at": outcome.finished_at.isoformat() if outcome.finished_at else None,
    }
