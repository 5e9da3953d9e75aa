"""Data records exchanged between the relay pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Tuple


TIMESTAMP_FROM_STAT = "stat"
TIMESTAMP_FROM_LISTING = "listing"


@dataclass(frozen=True)
class SourceArtifact:
    """A backup artifact as listed on the source host.

    Attributes:
        name: File name relative to the source directory.
        size_bytes: Size reported by the source host.
        modified_at: Modification time (timezone-aware, UTC).
        timestamp_source: "stat" when confirmed by a per-object stat call,
            "listing" when only the bulk listing timestamp was available.
    """

    name: str
    size_bytes: int
    modified_at: datetime
    timestamp_source: str = TIMESTAMP_FROM_STAT

    @property
    def degraded(self) -> bool:
        """Return True when the timestamp could not be confirmed by stat."""

        return self.timestamp_source != TIMESTAMP_FROM_STAT


@dataclass(frozen=True)
class LocalStagedFile:
    """A downloaded artifact staged on the local filesystem."""

    path: str
    size_bytes: int
    digest: Optional[str] = None


@dataclass(frozen=True)
class RemoteEntry:
    """An object currently stored at the destination."""

    name: str
    href: str
    last_modified: datetime
    is_collection: bool = False
    size_bytes: Optional[int] = None


@dataclass(frozen=True)
class RetentionDecision:
    """Which destination entries to keep and which to delete."""

    keep: FrozenSet[RemoteEntry]
    delete: Tuple[RemoteEntry, ...]


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class RunState(str, Enum):
    """Pipeline states, in the only order they may be visited."""

    IDLE = "idle"
    CONNECTING_SOURCE = "connecting_source"
    LISTING_SOURCE = "listing_source"
    SELECTING = "selecting"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    PUBLISHING = "publishing"
    LISTING_DESTINATION = "listing_destination"
    RETAINING = "retaining"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RunWarning:
    """A non-fatal error recorded during a successful run."""

    kind: str
    message: str
    name: Optional[str] = None


@dataclass(frozen=True)
class RunOutcome:
    """Terminal result of one pipeline run."""

    run_id: str
    status: RunStatus
    state: RunState
    started_at: datetime
    finished_at: datetime
    artifact_name: Optional[str] = None
    remote_name: Optional[str] = None
    size_bytes: Optional[int] = None
    digest: Optional[str] = None
    timestamp_source: Optional[str] = None
    deleted_names: Tuple[str, ...] = ()
    warnings: Tuple[RunWarning, ...] = field(default_factory=tuple)
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCESS

    @property
    def cleanup_complete(self) -> bool:
        """Return True when the backup was published and retention ran cleanly."""

        return self.succeeded and not self.warnings
