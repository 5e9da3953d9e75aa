"""Integrity verification for staged backup artifacts.

The digest is a plain SHA-256 over the whole file so values can be compared
across runs and surfaced in run logs for audit.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from backend.services.relay.errors import IncompleteTransferError
from backend.services.relay.models import LocalStagedFile


DEFAULT_CHUNK_SIZE = 1024 * 1024


def file_digest(path: Path, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> tuple[str, int]:
    """Hash a file in a streaming manner.

    Args:
        path: File path.
        chunk_size: Read size in bytes.

    Returns:
        tuple[str, int]: (hex digest, number of bytes read).
    """

    hasher = hashlib.sha256()
    total = 0
    with open(path, "rb") as handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)
            total += len(chunk)
    return hasher.hexdigest(), total


def verify(local: LocalStagedFile, expected_size: int) -> str:
    """Verify a staged file is complete and return its content digest.

    A larger-than-expected file is treated exactly like a truncated one: it
    means a prior partial write corrupted the staging path.

    Args:
        local: Staged file.
        expected_size: Size reported by the source host.

    Returns:
        str: Lowercase hex SHA-256 digest.

    Raises:
        IncompleteTransferError: When the sizes differ or the file is unreadable.
    """

    if local.size_bytes != expected_size:
        raise IncompleteTransferError(
            f"Staged file {local.path} has {local.size_bytes} bytes, expected {expected_size}"
        )

    try:
        digest, read = file_digest(Path(local.path))
    except OSError as exc:
        raise IncompleteTransferError(f"Staged file {local.path} is unreadable: {exc}") from exc

    if read != expected_size:
        raise IncompleteTransferError(
            f"Staged file {local.path} changed during verification: read {read} bytes, expected {expected_size}"
        )

    return digest
