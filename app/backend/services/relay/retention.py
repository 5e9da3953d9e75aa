"""Retention selection for relayed backups.

The destination keeps a fixed number of the most recent artifacts; everything
older is a deletion candidate.
"""

from __future__ import annotations

from typing import List, Sequence

from backend.services.relay.models import RemoteEntry, RetentionDecision


def newest_first(entries: Sequence[RemoteEntry]) -> List[RemoteEntry]:
    """Sort entries newest first; equal timestamps fall back to name, descending."""

    return sorted(entries, key=lambda e: (e.last_modified, e.name), reverse=True)


def select_retention(entries: Sequence[RemoteEntry], keep: int) -> RetentionDecision:
    """Return which entries to keep and which to delete.

    Args:
        entries: Listed destination entries. Collections are ignored.
        keep: Number of most recent artifacts to keep.

    Returns:
        RetentionDecision: Keep set and delete sequence (newest to oldest).

    Raises:
        ValueError: When keep is negative.
    """

    if keep < 0:
        raise ValueError(f"keep must be >= 0, got {keep}")

    candidates = newest_first([entry for entry in entries if not entry.is_collection])

    if len(candidates) <= keep:
        return RetentionDecision(keep=frozenset(candidates), delete=())

    return RetentionDecision(
        keep=frozenset(candidates[:keep]),
        delete=tuple(candidates[keep:]),
    )
