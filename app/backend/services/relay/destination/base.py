"""Base interface for backup destinations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from backend.services.relay.models import LocalStagedFile, RemoteEntry


class DestinationStore(ABC):
    """Abstract base class for destination stores."""

    @abstractmethod
    def publish(self, local: LocalStagedFile, remote_name: str) -> None:
        """Upload a staged file.

        Args:
            local: Verified staged file.
            remote_name: Destination file name.
        """

    @abstractmethod
    def list(self) -> List[RemoteEntry]:
        """List backup artifacts currently stored.

        Returns:
            List[RemoteEntry]: Stored artifacts matching the suffix filter.
        """

    @abstractmethod
    def remove(self, remote_name: str) -> None:
        """Delete one stored artifact.

        Args:
            remote_name: Destination file name.
        """
