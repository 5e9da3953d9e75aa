"""Immutable configuration for one relay pipeline run.

The pipeline never reads the environment itself. The API layer loads
`api.settings.Settings` once and converts it with `relay_config_from_settings`;
the resulting `RelayConfig` is passed into every run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from backend.services.relay.errors import ConfigurationError


DEFAULT_ARTIFACT_SUFFIX = ".zpaq"
DEFAULT_RETENTION_KEEP = 3


@dataclass(frozen=True)
class SFTPSourceConfig:
    """Connection settings for the SFTP source host."""

    host: str
    port: int
    username: str
    remote_dir: str = "/"
    timeout_seconds: float = 30.0

    password: Optional[str] = None
    private_key: Optional[str] = None
    private_key_passphrase: Optional[str] = None


@dataclass(frozen=True)
class WebDAVConfig:
    """Connection settings for the WebDAV destination."""

    base_url: str
    remote_root: str = "/backups"
    username: Optional[str] = None
    password: Optional[str] = None
    timeout_seconds: float = 60.0
    verify_tls: bool = True


@dataclass(frozen=True)
class RelayConfig:
    """Everything a pipeline run needs, fixed for the duration of the run."""

    source: SFTPSourceConfig
    destination: WebDAVConfig
    artifact_suffix: str = DEFAULT_ARTIFACT_SUFFIX
    retention_keep: int = DEFAULT_RETENTION_KEEP
    staging_dir: str = "/tmp/backups"


def _optional(value: Any) -> Optional[str]:
    text = str(value or "").strip()
    return text or None


def relay_config_from_settings(settings: Any) -> RelayConfig:
    """Build a validated RelayConfig from application settings.

    Args:
        settings: Object exposing the upper-case settings attributes
            (typically `api.settings.settings`).

    Returns:
        RelayConfig: Frozen configuration.

    Raises:
        ConfigurationError: When required values are missing or invalid.
    """

    host = str(getattr(settings, "SFTP_HOST", "") or "").strip()
    if not host:
        raise ConfigurationError("SFTP_HOST is required")

    username = str(getattr(settings, "SFTP_USER", "") or "").strip()
    if not username:
        raise ConfigurationError("SFTP_USER is required")

    password = _optional(getattr(settings, "SFTP_PASS", None))
    private_key = _optional(getattr(settings, "SFTP_PRIVATE_KEY", None))
    if not password and not private_key:
        raise ConfigurationError("Either SFTP_PASS or SFTP_PRIVATE_KEY is required")

    base_url = str(getattr(settings, "WEBDAV_URL", "") or "").strip()
    if not base_url.startswith(("http://", "https://")):
        raise ConfigurationError("WEBDAV_URL must be an http(s) URL")

    suffix = str(getattr(settings, "ARTIFACT_SUFFIX", DEFAULT_ARTIFACT_SUFFIX) or "").strip()
    if not suffix:
        raise ConfigurationError("ARTIFACT_SUFFIX must not be empty")

    try:
        keep = int(getattr(settings, "RETENTION_KEEP", DEFAULT_RETENTION_KEEP))
        port = int(getattr(settings, "SFTP_PORT", 22) or 22)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc

    if keep < 1:
        raise ConfigurationError("RETENTION_KEEP must be at least 1")

    source = SFTPSourceConfig(
        host=host,
        port=port,
        username=username,
        remote_dir=str(getattr(settings, "SFTP_REMOTE_DIR", "/") or "/"),
        timeout_seconds=float(getattr(settings, "SFTP_TIMEOUT_SECONDS", 30.0) or 30.0),
        password=password,
        private_key=private_key,
        private_key_passphrase=_optional(getattr(settings, "SFTP_PRIVATE_KEY_PASSPHRASE", None)),
    )

    destination = WebDAVConfig(
        base_url=base_url.rstrip("/"),
        remote_root=str(getattr(settings, "WEBDAV_ROOT", "/backups") or "/"),
        username=_optional(getattr(settings, "WEBDAV_USER", None)),
        password=_optional(getattr(settings, "WEBDAV_PASS", None)),
        timeout_seconds=float(getattr(settings, "WEBDAV_TIMEOUT_SECONDS", 60.0) or 60.0),
        verify_tls=bool(getattr(settings, "WEBDAV_VERIFY_TLS", True)),
    )

    return RelayConfig(
        source=source,
        destination=destination,
        artifact_suffix=suffix,
        retention_keep=keep,
        staging_dir=str(getattr(settings, "STAGING_DIR", "/tmp/backups") or "/tmp/backups"),
    )
