"""Schemas for backup relay endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field
from typing import List, Optional


class RunWarningResponse(BaseModel):
    """A non-fatal problem recorded during a run."""

    kind: str = Field(..., description="Error kind, e.g. ListingError or DeleteError")
    message: str = Field(..., description="Human-readable message")
    name: Optional[str] = Field(None, description="Affected destination entry, if any")


class RunOutcomeResponse(BaseModel):
    """Terminal result of one relay run."""

    run_id: str
    status: str = Field(..., description="success|failure")
    state: str = Field(..., description="Final pipeline state: done|failed")
    cleanup_complete: bool = Field(..., description="True when retention ran without warnings")
    artifact_name: Optional[str] = Field(None, description="Selected source artifact")
    remote_name: Optional[str] = Field(None, description="Name the artifact was published under")
    size_bytes: Optional[int] = None
    digest: Optional[str] = Field(None, description="SHA-256 of the relayed artifact")
    timestamp_source: Optional[str] = Field(None, description="stat|listing")
    deleted_names: List[str] = Field(default_factory=list)
    warnings: List[RunWarningResponse] = Field(default_factory=list)
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None


class ArtifactMetaResponse(BaseModel):
    """Metadata of the artifact the next run would relay."""

    filename: str
    size_bytes: int
    modified: str = Field(..., description="ISO 8601 modification time")
    timestamp_source: str = Field(..., description="stat|listing")


class RunSummaryResponse(BaseModel):
    """Outcome fields that are safe to show without the admin key."""

    run_id: str
    status: str = Field(..., description="success|failure")
    state: str
    cleanup_complete: bool
    warning_count: int = 0
    finished_at: Optional[str] = None


class RelayStatusResponse(BaseModel):
    """Whether a run is in flight and how the last one ended."""

    running: bool
    last_outcome: Optional[RunSummaryResponse] = None
    last_outcome_detail: Optional[RunOutcomeResponse] = Field(
        None, description="Full outcome; only returned with a valid X-Admin-Key"
    )
