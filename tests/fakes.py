"""In-memory source and destination used by pipeline tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from backend.services.relay.destination.base import DestinationStore
from backend.services.relay.errors import DeleteError, ListingError, TransferError, UploadError
from backend.services.relay.models import LocalStagedFile, RemoteEntry, SourceArtifact
from backend.services.relay.source.base import SourceHost, SourceSession


T0 = datetime(2025, 3, 1, 2, 0, tzinfo=timezone.utc)


def at(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


class FakeSession(SourceSession):
    def __init__(self, host: "FakeSource"):
        self._host = host
        self.closed = False

    def list_artifacts(self) -> List[SourceArtifact]:
        if self._host.list_error:
            raise TransferError(self._host.list_error)
        return list(self._host.artifacts)

    def download(self, artifact: SourceArtifact, destination_path: Path) -> LocalStagedFile:
        if self._host.download_error:
            raise TransferError(self._host.download_error)
        data = self._host.payloads.get(artifact.name, b"x" * artifact.size_bytes)
        destination_path = Path(destination_path)
        destination_path.parent.mkdir(parents=True, exist_ok=True)
        destination_path.write_bytes(data)
        self._host.downloaded.append(artifact.name)
        return LocalStagedFile(path=str(destination_path), size_bytes=len(data))

    def close(self) -> None:
        self.closed = True
        self._host.closed_sessions += 1


class FakeSource(SourceHost):
    def __init__(
        self,
        artifacts: Iterable[SourceArtifact] = (),
        *,
        payloads: Optional[Dict[str, bytes]] = None,
        connect_error: Optional[str] = None,
        list_error: Optional[str] = None,
        download_error: Optional[str] = None,
    ):
        self.artifacts = list(artifacts)
        self.payloads = payloads or {}
        self.connect_error = connect_error
        self.list_error = list_error
        self.download_error = download_error
        self.downloaded: List[str] = []
        self.sessions: List[FakeSession] = []
        self.closed_sessions = 0

    def connect(self) -> FakeSession:
        if self.connect_error:
            raise TransferError(self.connect_error)
        session = FakeSession(self)
        self.sessions.append(session)
        return session


class FakeDestination(DestinationStore):
    def __init__(
        self,
        entries: Iterable[RemoteEntry] = (),
        *,
        upload_status: Optional[int] = None,
        list_error: Optional[str] = None,
        failing_deletes: Iterable[str] = (),
        clock=lambda: datetime.now(timezone.utc),
        report_uploaded_size: Optional[int] = None,
    ):
        self.entries: Dict[str, RemoteEntry] = {e.name: e for e in entries}
        self.upload_status = upload_status
        self.list_error = list_error
        self.failing_deletes: Set[str] = set(failing_deletes)
        self.clock = clock
        self.report_uploaded_size = report_uploaded_size
        self.published: List[str] = []
        self.uploaded_bytes: Dict[str, bytes] = {}
        self.removed: List[str] = []
        self.list_calls = 0
        self.last_listing: List[RemoteEntry] = []

    def publish(self, local: LocalStagedFile, remote_name: str) -> None:
        if self.upload_status is not None:
            raise UploadError(f"HTTP {self.upload_status}", status_code=self.upload_status)
        data = Path(local.path).read_bytes()
        self.uploaded_bytes[remote_name] = data
        self.published.append(remote_name)
        size = self.report_uploaded_size if self.report_uploaded_size is not None else len(data)
        self.entries[remote_name] = RemoteEntry(
            name=remote_name,
            href=f"/backups/{remote_name}",
            last_modified=self.clock(),
            size_bytes=size,
        )

    def list(self) -> List[RemoteEntry]:
        self.list_calls += 1
        if self.list_error:
            raise ListingError(self.list_error, status_code=500)
        self.last_listing = list(self.entries.values())
        return list(self.last_listing)

    def remove(self, remote_name: str) -> None:
        if remote_name in self.failing_deletes:
            raise DeleteError(f"Delete of '{remote_name}' rejected with HTTP 423", name=remote_name, status_code=423)
        self.entries.pop(remote_name, None)
        self.removed.append(remote_name)


def remote(name: str, hours: float, *, collection: bool = False) -> RemoteEntry:
    return RemoteEntry(name=name, href=f"/backups/{name}", last_modified=at(hours), is_collection=collection)


def artifact(name: str, hours: float, size: int = 16, source: str = "stat") -> SourceArtifact:
    return SourceArtifact(name=name, size_bytes=size, modified_at=at(hours), timestamp_source=source)


def multistatus_document(responses: Iterable[str], *, prefix: str = "d", namespace: str = "DAV:") -> str:
    """Wrap rendered response blocks into a multistatus document."""

    p = f"{prefix}:" if prefix else ""
    xmlns = f'xmlns:{prefix}="{namespace}"' if prefix else f'xmlns="{namespace}"'
    body = "".join(responses)
    return f'<?xml version="1.0" encoding="utf-8"?><{p}multistatus {xmlns}>{body}</{p}multistatus>'


def response_block(
    href: str,
    *,
    prefix: str = "d",
    last_modified: Optional[str] = "Sat, 01 Mar 2025 02:00:00 GMT",
    collection: bool = False,
    length: Optional[int] = None,
    status: str = "HTTP/1.1 200 OK",
    extra_propstats: str = "",
) -> str:
    p = f"{prefix}:" if prefix else ""
    props = ""
    props += f"<{p}resourcetype><{p}collection/></{p}resourcetype>" if collection else f"<{p}resourcetype/>"
    if last_modified is not None:
        props += f"<{p}getlastmodified>{last_modified}</{p}getlastmodified>"
    if length is not None:
        props += f"<{p}getcontentlength>{length}</{p}getcontentlength>"
    return (
        f"<{p}response><{p}href>{href}</{p}href>"
        f"<{p}propstat><{p}prop>{props}</{p}prop><{p}status>{status}</{p}status></{p}propstat>"
        f"{extra_propstats}</{p}response>"
    )
