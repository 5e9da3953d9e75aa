import os
import tempfile

# Must be set before the app modules read their settings at import time.
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="backup-relay-logs-"))
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

import pytest

from backend.services.relay.config import RelayConfig, SFTPSourceConfig, WebDAVConfig


@pytest.fixture
def relay_config(tmp_path):
    return RelayConfig(
        source=SFTPSourceConfig(host="sftp.example.test", port=22, username="relay", password="secret", remote_dir="/"),
        destination=WebDAVConfig(base_url="https://dav.example.test", remote_root="/backups", username="u", password="p"),
        artifact_suffix=".zpaq",
        retention_keep=3,
        staging_dir=str(tmp_path / "staging"),
    )


@pytest.fixture(autouse=True)
def _reset_request_budgets():
    from api.security import _counter

    _counter.reset()
    yield
    _counter.reset()
