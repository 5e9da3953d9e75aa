"""Application settings for the Backup Relay service.

Values come from the environment (or a `.env` file). Secrets may alternatively
be provided through `<NAME>_FILE` variables pointing at mounted secret files.

The settings object is only read at the edges (API startup, runner start). The
pipeline itself receives an immutable `RelayConfig` built from it.
"""

from __future__ import annotations

import os
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


def read_secret_file(path: Optional[str]) -> str:
    """Read a secret from a file path, returning an empty string when absent."""

    if not path or not os.path.exists(path):
        return ""
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read().strip()


class Settings(BaseSettings):
    """Backup relay settings loaded from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
    )

    # === SERVICE ===
    IMAGE_TAG: str = "local"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "/app/logs"
    LOG_FILENAME: str = "backup-relay.log"
    ADMIN_API_KEY: str = ""
    ADMIN_API_KEY_FILE: str = ""

    # === SOURCE (SFTP) ===
    SFTP_HOST: str = ""
    SFTP_PORT: int = 22
    SFTP_USER: str = ""
    SFTP_PASS: str = ""
    SFTP_PASS_FILE: str = ""
    SFTP_PRIVATE_KEY: str = ""
    SFTP_PRIVATE_KEY_PASSPHRASE: str = ""
    SFTP_REMOTE_DIR: str = "/"
    SFTP_TIMEOUT_SECONDS: float = 30.0

    # === DESTINATION (WebDAV) ===
    WEBDAV_URL: str = ""
    WEBDAV_USER: str = ""
    WEBDAV_PASS: str = ""
    WEBDAV_PASS_FILE: str = ""
    WEBDAV_ROOT: str = "/backups"
    WEBDAV_TIMEOUT_SECONDS: float = 60.0
    WEBDAV_VERIFY_TLS: bool = True

    # === PIPELINE ===
    ARTIFACT_SUFFIX: str = ".zpaq"
    RETENTION_KEEP: int = 3
    STAGING_DIR: str = "/tmp/backups"

    # === NOTIFICATIONS ===
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USER: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = ""
    SMTP_USE_SSL: bool = False
    SMTP_USE_TLS: bool = True
    SMTP_ALLOW_INSECURE_CERTS: bool = False
    SMTP_CA_CERT_FILE: str = ""
    NOTIFY_EMAIL_TO: str = ""
    NOTIFY_MIN_SEVERITY: str = "info"

    def get_admin_api_key(self) -> str:
        return self.ADMIN_API_KEY or read_secret_file(self.ADMIN_API_KEY_FILE)

    def resolved(self) -> "Settings":
        """Return a copy with `_FILE` secrets folded into their plain fields."""

        updates = {}
        if not self.SFTP_PASS and self.SFTP_PASS_FILE:
            updates["SFTP_PASS"] = read_secret_file(self.SFTP_PASS_FILE)
        if not self.WEBDAV_PASS and self.WEBDAV_PASS_FILE:
            updates["WEBDAV_PASS"] = read_secret_file(self.WEBDAV_PASS_FILE)
        return self.model_copy(update=updates) if updates else self

    def secret_values(self) -> List[str]:
        """Return every configured secret, including those read from `_FILE` paths."""

        resolved = self.resolved()
        values = [
            self.get_admin_api_key(),
            resolved.SFTP_PASS,
            resolved.SFTP_PRIVATE_KEY_PASSPHRASE,
            resolved.WEBDAV_PASS,
            resolved.SMTP_PASSWORD,
        ]
        return [value for value in values if value]


settings = Settings()
