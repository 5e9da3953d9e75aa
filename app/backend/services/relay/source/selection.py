"""Selection of the artifact a run relays."""

from __future__ import annotations

from typing import Iterable, List

from backend.services.relay.errors import NoArtifactFound
from backend.services.relay.models import SourceArtifact


def matches_suffix(name: str, suffix: str) -> bool:
    """Return True when a file name carries the backup artifact suffix.

    Args:
        name: File name.
        suffix: Artifact suffix (e.g. ".zpaq"). Compared case-sensitively, so
            files such as `manual.ZPAQ` are never treated as relay artifacts.

    Returns:
        bool: Whether the name identifies a backup artifact.
    """

    return bool(name) and name.endswith(suffix) and len(name) > len(suffix)


def filter_artifacts(listing: Iterable[SourceArtifact], suffix: str) -> List[SourceArtifact]:
    return [artifact for artifact in listing if matches_suffix(artifact.name, suffix)]


def select_latest(listing: Iterable[SourceArtifact], suffix: str) -> SourceArtifact:
    """Pick the most recently modified backup artifact.

    Ties on the modification time are broken by the lexicographically greatest
    name so the choice is deterministic.

    Args:
        listing: Source listing.
        suffix: Artifact suffix filter.

    Returns:
        SourceArtifact: Selected artifact.

    Raises:
        NoArtifactFound: When no listed object matches the suffix filter.
    """

    candidates = filter_artifacts(listing, suffix)
    if not candidates:
        raise NoArtifactFound(f"No '{suffix}' artifacts found on the source host")

    return max(candidates, key=lambda a: (a.modified_at, a.name))
