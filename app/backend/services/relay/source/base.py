"""Base interfaces for source hosts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from backend.services.relay.models import LocalStagedFile, SourceArtifact


class SourceSession(ABC):
    """An open connection to the source host, scoped to one run."""

    def __enter__(self) -> "SourceSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @abstractmethod
    def list_artifacts(self) -> List[SourceArtifact]:
        """List backup artifacts on the source host.

        Returns:
            List[SourceArtifact]: Artifacts matching the suffix filter.
        """

    @abstractmethod
    def download(self, artifact: SourceArtifact, destination_path: Path) -> LocalStagedFile:
        """Download an artifact to a local path.

        Args:
            artifact: Artifact to download.
            destination_path: Local staging path.

        Returns:
            LocalStagedFile: The staged file.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""


class SourceHost(ABC):
    """Abstract base class for source hosts."""

    @abstractmethod
    def connect(self) -> SourceSession:
        """Open a session against the source host."""
