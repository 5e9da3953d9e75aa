"""Relay service: single in-flight guard around pipeline runs.

Only one run may execute at a time. A trigger that arrives while a run is in
flight is rejected with `RunInProgressError` rather than queued; the scheduler
or caller decides whether to retry later.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from fastapi.concurrency import run_in_threadpool

from backend.services.relay.config import RelayConfig
from backend.services.relay.errors import RunInProgressError
from backend.services.relay.factory import build_pipeline, build_source
from backend.services.relay.models import RunOutcome, SourceArtifact
from backend.services.relay.notification_service import NotificationService
from backend.services.relay.orchestrator import RelayPipeline
from backend.services.relay.source.base import SourceHost
from backend.services.relay.source.selection import select_latest


logger = logging.getLogger(__name__)


class RelayService:
    """Run relay pipelines one at a time and hand outcomes to the notifier."""

    def __init__(
        self,
        config: RelayConfig,
        *,
        notifier: Optional[NotificationService] = None,
        pipeline_factory: Callable[[RelayConfig], RelayPipeline] = build_pipeline,
        source_factory: Callable[[RelayConfig], SourceHost] = build_source,
    ):
        """Initialize the service.

        Args:
            config: Frozen relay configuration.
            notifier: Optional notification service.
            pipeline_factory: Builds a fresh pipeline per run.
            source_factory: Builds the source host used by `describe_latest`.
        """

        self.config = config
        self._notifier = notifier
        self._pipeline_factory = pipeline_factory
        self._source_factory = source_factory
        self._lock = asyncio.Lock()
        self.last_outcome: Optional[RunOutcome] = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> RunOutcome:
        """Execute exactly one pipeline run.

        Returns:
            RunOutcome: Outcome of the run.

        Raises:
            RunInProgressError: When another run is still in flight.
        """

        if self._lock.locked():
            raise RunInProgressError("A relay run is already in progress")

        async with self._lock:
            pipeline = self._pipeline_factory(self.config)
            outcome = await pipeline.run()
            self.last_outcome = outcome

        logger.info(
            "Relay run finished run_id=%s status=%s artifact=%s deleted=%s warnings=%s",
            outcome.run_id,
            outcome.status.value,
            outcome.artifact_name,
            len(outcome.deleted_names),
            len(outcome.warnings),
        )

        if self._notifier is not None:
            try:
                await self._notifier.send_run_notification(outcome)
            except Exception:
                logger.exception("Failed to deliver notification run_id=%s", outcome.run_id)

        return outcome

    async def describe_latest(self) -> SourceArtifact:
        """Return the artifact the next run would select.

        Raises:
            TransferError: When the source host is unreachable.
            NoArtifactFound: When no artifact matches.
        """

        source = self._source_factory(self.config)

        def _list():
            with source.connect() as session:
                return session.list_artifacts()

        listing = await run_in_threadpool(_list)
        return select_latest(listing, self.config.artifact_suffix)
