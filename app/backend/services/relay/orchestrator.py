"""Pipeline orchestration for one backup relay run.

A run walks a strictly linear state machine:

    IDLE -> CONNECTING_SOURCE -> LISTING_SOURCE -> SELECTING -> DOWNLOADING
         -> VERIFYING -> PUBLISHING -> LISTING_DESTINATION -> RETAINING -> DONE

with FAILED reachable from every non-terminal state. Everything up to and
including PUBLISHING is fatal on error. Once the artifact is published, listing
and retention problems only add warnings to a successful outcome: a failed
cleanup must not mask a successful backup.

Blocking I/O runs in the threadpool, one stage at a time.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Callable, List, Optional
import uuid

from fastapi.concurrency import run_in_threadpool

from backend.services.relay.config import RelayConfig
from backend.services.relay.destination.base import DestinationStore
from backend.services.relay.destination.webdav import build_remote_name
from backend.services.relay.errors import DeleteError, ListingError, RelayError
from backend.services.relay.integrity import verify
from backend.services.relay.models import (
    LocalStagedFile,
    RemoteEntry,
    RunOutcome,
    RunState,
    RunStatus,
    RunWarning,
    SourceArtifact,
)
from backend.services.relay.retention import select_retention
from backend.services.relay.source.base import SourceHost
from backend.services.relay.source.selection import select_latest


logger = logging.getLogger(__name__)

_LINEAR_ORDER = [
    RunState.IDLE,
    RunState.CONNECTING_SOURCE,
    RunState.LISTING_SOURCE,
    RunState.SELECTING,
    RunState.DOWNLOADING,
    RunState.VERIFYING,
    RunState.PUBLISHING,
    RunState.LISTING_DESTINATION,
    RunState.RETAINING,
    RunState.DONE,
]

_TERMINAL = {RunState.DONE, RunState.FAILED}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RelayPipeline:
    """Execute one fetch-verify-publish-retain cycle.

    A pipeline instance is single use: build a new one for every run.
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        source: SourceHost,
        destination: DestinationStore,
        run_id: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the pipeline.

        Args:
            config: Frozen relay configuration.
            source: Source host.
            destination: Destination store.
            run_id: Optional run identifier (generated when omitted).
            clock: Returns the current UTC time.
        """

        self.config = config
        self.run_id = run_id or str(uuid.uuid4())
        self._source = source
        self._destination = destination
        self._clock = clock

        self.state = RunState.IDLE
        self.history: List[RunState] = [RunState.IDLE]

        self._started_at: Optional[datetime] = None
        self._artifact: Optional[SourceArtifact] = None
        self._staged: Optional[LocalStagedFile] = None
        self._staging_path: Optional[Path] = None
        self._remote_name: Optional[str] = None
        self._deleted: List[str] = []
        self._warnings: List[RunWarning] = []

    def _advance(self, state: RunState) -> None:
        """Move to the next state.

        Raises:
            RuntimeError: On a backwards, skipping or post-terminal transition.
        """

        if self.state in _TERMINAL:
            raise RuntimeError(f"Run {self.run_id} already finished in state {self.state.value}")

        if state != RunState.FAILED:
            expected = _LINEAR_ORDER[_LINEAR_ORDER.index(self.state) + 1]
            if state != expected:
                raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")

        logger.info("Relay run_id=%s state %s -> %s", self.run_id, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _warn(self, kind: str, message: str, *, name: Optional[str] = None) -> None:
        logger.warning("Relay run_id=%s non-fatal %s: %s", self.run_id, kind, message)
        self._warnings.append(RunWarning(kind=kind, message=message, name=name))

    async def run(self) -> RunOutcome:
        """Execute the run.

        Returns:
            RunOutcome: Success (possibly with warnings) or failure. This method
            does not raise for pipeline errors.
        """

        if self.state != RunState.IDLE:
            raise RuntimeError(f"Run {self.run_id} was already started")

        self._started_at = self._clock()
        logger.info("Relay run_id=%s started", self.run_id)

        try:
            try:
                await self._fetch()
                await self._verify()
                await self._publish()
            except Exception as exc:
                return self._fail(exc)

            await self._retain()
            self._advance(RunState.DONE)
            return self._outcome(RunStatus.SUCCESS)
        finally:
            self._cleanup_staging()

    async def _fetch(self) -> None:
        self._advance(RunState.CONNECTING_SOURCE)
        session = await run_in_threadpool(self._source.connect)
        try:
            self._advance(RunState.LISTING_SOURCE)
            listing = await run_in_threadpool(session.list_artifacts)

            self._advance(RunState.SELECTING)
            artifact = select_latest(listing, self.config.artifact_suffix)
            self._artifact = artifact
            if artifact.degraded:
                logger.warning(
                    "Relay run_id=%s selected %s with degraded timestamp confidence (source=%s)",
                    self.run_id,
                    artifact.name,
                    artifact.timestamp_source,
                )
            logger.info(
                "Relay run_id=%s selected artifact=%s size=%s modified_at=%s",
                self.run_id,
                artifact.name,
                artifact.size_bytes,
                artifact.modified_at.isoformat(),
            )

            self._advance(RunState.DOWNLOADING)
            self._staging_path = Path(self.config.staging_dir) / f"{self.run_id}_{artifact.name}"
            self._staged = await run_in_threadpool(session.download, artifact, self._staging_path)
        finally:
            try:
                await run_in_threadpool(session.close)
            except Exception:
                logger.warning("Relay run_id=%s failed to close source session", self.run_id, exc_info=True)

    async def _verify(self) -> None:
        self._advance(RunState.VERIFYING)
        digest = await run_in_threadpool(verify, self._staged, self._artifact.size_bytes)
        self._staged = replace(self._staged, digest=digest)
        logger.info("Relay run_id=%s verified sha256=%s", self.run_id, digest)

    async def _publish(self) -> None:
        self._advance(RunState.PUBLISHING)
        self._remote_name = build_remote_name(
            self._artifact,
            self._started_at,
            suffix=self.config.artifact_suffix,
        )
        await run_in_threadpool(self._destination.publish, self._staged, self._remote_name)

    async def _retain(self) -> None:
        self._advance(RunState.LISTING_DESTINATION)
        entries: Optional[List[RemoteEntry]] = None
        try:
            entries = await run_in_threadpool(self._destination.list)
        except ListingError as exc:
            self._warn(type(exc).__name__, str(exc))
        except Exception as exc:
            logger.exception("Relay run_id=%s unexpected error while listing destination", self.run_id)
            self._warn(type(exc).__name__, str(exc))

        self._advance(RunState.RETAINING)
        if entries is None:
            logger.warning("Relay run_id=%s retention skipped: destination listing unavailable", self.run_id)
            return

        entries = self._with_published(entries)

        try:
            decision = select_retention(entries, self.config.retention_keep)
        except Exception as exc:
            logger.exception("Relay run_id=%s retention selection failed", self.run_id)
            self._warn(type(exc).__name__, str(exc))
            return

        logger.info(
            "Relay run_id=%s retention existing=%s keep=%s delete=%s",
            self.run_id,
            len(entries),
            len(decision.keep),
            len(decision.delete),
        )

        for entry in decision.delete:
            if entry.name == self._remote_name:
                logger.warning("Relay run_id=%s refusing to delete just-published %s", self.run_id, entry.name)
                continue
            try:
                await run_in_threadpool(self._destination.remove, entry.name)
            except DeleteError as exc:
                self._warn(type(exc).__name__, str(exc), name=entry.name)
                continue
            except Exception as exc:
                logger.exception("Relay run_id=%s unexpected error deleting %s", self.run_id, entry.name)
                self._warn(type(exc).__name__, str(exc), name=entry.name)
                continue
            self._deleted.append(entry.name)

    def _with_published(self, entries: List[RemoteEntry]) -> List[RemoteEntry]:
        """Make sure the just-published artifact takes part in retention."""

        for entry in entries:
            if entry.name != self._remote_name:
                continue
            if entry.size_bytes is not None and entry.size_bytes != self._staged.size_bytes:
                self._warn(
                    "RemoteSizeMismatch",
                    f"Destination reports {entry.size_bytes} bytes for {entry.name}, "
                    f"uploaded {self._staged.size_bytes}",
                    name=entry.name,
                )
            return entries

        logger.info("Relay run_id=%s published entry not listed yet; adding it for retention", self.run_id)
        published = RemoteEntry(
            name=self._remote_name,
            href=self._remote_name,
            last_modified=self._started_at,
            size_bytes=self._staged.size_bytes,
        )
        return [*entries, published]

    def _fail(self, exc: Exception) -> RunOutcome:
        failed_in = self.state
        self._advance(RunState.FAILED)
        if isinstance(exc, RelayError):
            logger.error("Relay run_id=%s failed in %s: %s", self.run_id, failed_in.value, exc)
        else:
            logger.exception("Relay run_id=%s failed unexpectedly in %s", self.run_id, failed_in.value)
        return self._outcome(RunStatus.FAILURE, error=exc)

    def _outcome(self, status: RunStatus, *, error: Optional[Exception] = None) -> RunOutcome:
        artifact = self._artifact
        staged = self._staged
        return RunOutcome(
            run_id=self.run_id,
            status=status,
            state=self.state,
            started_at=self._started_at,
            finished_at=self._clock(),
            artifact_name=artifact.name if artifact else None,
            remote_name=self._remote_name if status == RunStatus.SUCCESS else None,
            size_bytes=staged.size_bytes if staged else None,
            digest=staged.digest if staged else None,
            timestamp_source=artifact.timestamp_source if artifact else None,
            deleted_names=tuple(self._deleted),
            warnings=tuple(self._warnings),
            error_kind=type(error).__name__ if error else None,
            error_message=str(error) if error else None,
        )

    def _cleanup_staging(self) -> None:
        path = self._staging_path
        if path is None or not path.exists():
            return
        try:
            path.unlink()
        except OSError:
            logger.warning("Relay run_id=%s could not remove staging file %s", self.run_id, path)
