"""SFTP source host access: listing, stat and download of backup artifacts."""

from __future__ import annotations

from datetime import datetime, timezone
import io
import logging
import os
import posixpath
import socket
import stat
from pathlib import Path
from typing import List, Optional

import paramiko

from backend.services.relay.config import SFTPSourceConfig
from backend.services.relay.errors import TransferError
from backend.services.relay.models import (
    TIMESTAMP_FROM_LISTING,
    TIMESTAMP_FROM_STAT,
    LocalStagedFile,
    SourceArtifact,
)
from backend.services.relay.source.base import SourceHost, SourceSession
from backend.services.relay.source.selection import matches_suffix


logger = logging.getLogger(__name__)


def _mtime_to_datetime(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


class SFTPSourceSession(SourceSession):
    """An open SFTP connection scoped to the source stages of one run."""

    def __init__(
        self,
        *,
        client: paramiko.SFTPClient,
        transport: paramiko.Transport,
        config: SFTPSourceConfig,
        suffix: str,
    ):
        """Initialize the session.

        Args:
            client: Connected SFTP client.
            transport: Underlying SSH transport.
            config: Source configuration.
            suffix: Artifact suffix filter.
        """

        self._client = client
        self._transport = transport
        self._config = config
        self._suffix = suffix

    def _remote_path(self, name: str) -> str:
        return posixpath.join(self._config.remote_dir or "/", name)

    def list_artifacts(self) -> List[SourceArtifact]:
        """List backup artifacts in the source directory.

        The bulk listing is only used to find candidates. Every candidate is
        stat'ed individually because bulk listings on some hosts report stale or
        truncated timestamps; when the stat fails the listing values are kept and
        the artifact is marked as degraded.

        Returns:
            List[SourceArtifact]: Matching artifacts.

        Raises:
            TransferError: When the directory cannot be listed.
        """

        remote_dir = self._config.remote_dir or "/"
        try:
            items = self._client.listdir_attr(remote_dir)
        except (OSError, paramiko.SSHException) as exc:
            raise TransferError(f"Failed to list source directory '{remote_dir}': {exc}") from exc

        artifacts: List[SourceArtifact] = []
        for item in items:
            if item.st_mode is not None and stat.S_ISDIR(item.st_mode):
                continue
            if not matches_suffix(item.filename, self._suffix):
                continue

            artifact = self._resolve(item)
            if artifact is not None:
                artifacts.append(artifact)

        logger.info("Source listing dir=%s candidates=%s", remote_dir, len(artifacts))
        return artifacts

    def _resolve(self, item: paramiko.SFTPAttributes) -> Optional[SourceArtifact]:
        """Combine the bulk-listing attributes with a per-object stat."""

        name = item.filename
        try:
            attr = self._client.stat(self._remote_path(name))
        except (OSError, paramiko.SSHException) as exc:
            logger.warning("Stat failed for source artifact name=%s; using listing timestamp: %s", name, exc)
            attr = None

        if attr is not None and attr.st_mtime is not None:
            if item.st_mtime is not None and int(item.st_mtime) != int(attr.st_mtime):
                logger.debug(
                    "Listing and stat timestamps disagree name=%s listing=%s stat=%s",
                    name,
                    item.st_mtime,
                    attr.st_mtime,
                )
            size = attr.st_size if attr.st_size is not None else item.st_size
            return SourceArtifact(
                name=name,
                size_bytes=int(size or 0),
                modified_at=_mtime_to_datetime(attr.st_mtime),
                timestamp_source=TIMESTAMP_FROM_STAT,
            )

        modified = _mtime_to_datetime(item.st_mtime)
        if modified is None:
            logger.warning("Skipping source artifact without any timestamp name=%s", name)
            return None

        return SourceArtifact(
            name=name,
            size_bytes=int(item.st_size or 0),
            modified_at=modified,
            timestamp_source=TIMESTAMP_FROM_LISTING,
        )

    def download(self, artifact: SourceArtifact, destination_path: Path) -> LocalStagedFile:
        """Download an artifact to the local staging path.

        Args:
            artifact: Artifact to download.
            destination_path: Local file path (overwritten if present).

        Returns:
            LocalStagedFile: Staged file with its on-disk size.

        Raises:
            TransferError: On connection loss or local/remote I/O failure.
        """

        destination_path = Path(destination_path)
        destination_path.parent.mkdir(parents=True, exist_ok=True)
        remote_path = self._remote_path(artifact.name)

        try:
            self._client.get(remote_path, str(destination_path))
        except (OSError, EOFError, paramiko.SSHException) as exc:
            if destination_path.exists():
                destination_path.unlink()
            raise TransferError(f"Download of '{remote_path}' failed: {exc}") from exc

        size = os.path.getsize(destination_path)
        logger.info("Downloaded source artifact name=%s bytes=%s", artifact.name, size)
        return LocalStagedFile(path=str(destination_path), size_bytes=size)

    def close(self) -> None:
        try:
            self._client.close()
        finally:
            self._transport.close()


class SFTPSource(SourceHost):
    """Factory for per-run SFTP sessions against the source host."""

    def __init__(self, config: SFTPSourceConfig, *, suffix: str):
        """Initialize the source.

        Args:
            config: SFTP configuration.
            suffix: Artifact suffix filter.
        """

        self._config = config
        self._suffix = suffix

    def connect(self) -> SFTPSourceSession:
        """Open a new SFTP session.

        Returns:
            SFTPSourceSession: Connected session; the caller must close it.

        Raises:
            TransferError: When connecting or authenticating fails or times out.
        """

        cfg = self._config
        transport: Optional[paramiko.Transport] = None
        try:
            sock = socket.create_connection((cfg.host, cfg.port), timeout=cfg.timeout_seconds)
            transport = paramiko.Transport(sock)
            transport.banner_timeout = cfg.timeout_seconds
            transport.auth_timeout = cfg.timeout_seconds

            if cfg.private_key:
                key = paramiko.RSAKey.from_private_key(
                    io.StringIO(cfg.private_key),
                    password=cfg.private_key_passphrase,
                )
                transport.connect(username=cfg.username, pkey=key)
            else:
                transport.connect(username=cfg.username, password=cfg.password)

            client = paramiko.SFTPClient.from_transport(transport)
            if client is None:
                raise paramiko.SSHException("SFTP subsystem unavailable")
            client.get_channel().settimeout(cfg.timeout_seconds)
        except (OSError, paramiko.SSHException) as exc:
            if transport is not None:
                transport.close()
            raise TransferError(f"Failed to connect to source host {cfg.host}:{cfg.port}: {exc}") from exc

        logger.info("Connected to source host=%s port=%s user=%s", cfg.host, cfg.port, cfg.username)
        return SFTPSourceSession(client=client, transport=transport, config=cfg, suffix=self._suffix)
