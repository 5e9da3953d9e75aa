"""Builders that turn a RelayConfig into concrete source/destination clients.

Keeping this in one place means the HTTP surface, the runner and the relay
service all wire the pipeline the same way.
"""

from __future__ import annotations

from typing import Optional

from backend.services.relay.config import RelayConfig
from backend.services.relay.destination.webdav import WebDAVDestination
from backend.services.relay.orchestrator import RelayPipeline
from backend.services.relay.source.sftp import SFTPSource


def build_source(config: RelayConfig) -> SFTPSource:
    return SFTPSource(config.source, suffix=config.artifact_suffix)


def build_destination(config: RelayConfig) -> WebDAVDestination:
    return WebDAVDestination(config.destination, suffix=config.artifact_suffix)


def build_pipeline(config: RelayConfig, *, run_id: Optional[str] = None) -> RelayPipeline:
    """Build a fresh pipeline for one run.

    Args:
        config: Relay configuration.
        run_id: Optional run identifier.

    Returns:
        RelayPipeline: Unstarted pipeline.
    """

    return RelayPipeline(
        config,
        source=build_source(config),
        destination=build_destination(config),
        run_id=run_id,
    )
