"""WebDAV destination: publish, list and delete backup artifacts."""

from __future__ import annotations

from datetime import datetime
import logging
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote, urlsplit

import httpx

from backend.services.relay.config import WebDAVConfig
from backend.services.relay.destination.base import DestinationStore
from backend.services.relay.destination.multistatus import parse_multistatus
from backend.services.relay.errors import DeleteError, ListingError, UploadError
from backend.services.relay.models import LocalStagedFile, RemoteEntry, SourceArtifact


logger = logging.getLogger(__name__)

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:">'
    "<d:prop><d:resourcetype/><d:getlastmodified/><d:getcontentlength/></d:prop>"
    "</d:propfind>"
)


def build_remote_name(artifact: SourceArtifact, run_started_at: datetime, *, suffix: str) -> str:
    """Build a collision-resistant destination name for an artifact.

    The artifact's own modification time keeps names readable; the run start
    timestamp guarantees two runs never publish under the same name.

    Args:
        artifact: Selected source artifact.
        run_started_at: Start of the current run (UTC).
        suffix: Artifact suffix, kept at the end of the name.

    Returns:
        str: Remote file name, e.g. `site_2025-03-01_02-00_20250301T031500Z.zpaq`.
    """

    name = artifact.name
    if name.endswith(suffix):
        stem, ext = name[: -len(suffix)], name[-len(suffix):]
    else:
        stem, ext = name, suffix

    modified = artifact.modified_at.strftime("%Y-%m-%d_%H-%M")
    run_stamp = run_started_at.strftime("%Y%m%dT%H%M%SZ")
    return f"{stem}_{modified}_{run_stamp}{ext}"


class WebDAVDestination(DestinationStore):
    """WebDAV storage for relayed backups.

    Every operation opens its own short-lived `httpx.Client`, so a connection
    never outlives the stage that needed it.
    """

    def __init__(
        self,
        config: WebDAVConfig,
        *,
        suffix: str,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the destination.

        Args:
            config: WebDAV configuration.
            suffix: Artifact suffix used to filter listings.
            transport: Optional httpx transport (used by tests).
        """

        self._config = config
        self._suffix = suffix
        self._transport = transport

    @property
    def collection_url(self) -> str:
        root = "/".join(quote(part) for part in self._config.remote_root.split("/") if part)
        base = self._config.base_url.rstrip("/")
        return f"{base}/{root}/" if root else f"{base}/"

    @property
    def root_path(self) -> str:
        return urlsplit(self.collection_url).path

    def object_url(self, remote_name: str) -> str:
        return self.collection_url + quote(remote_name, safe="")

    def _client(self) -> httpx.Client:
        auth = None
        if self._config.username:
            auth = httpx.BasicAuth(self._config.username, self._config.password or "")
        return httpx.Client(
            auth=auth,
            timeout=httpx.Timeout(self._config.timeout_seconds),
            verify=self._config.verify_tls,
            transport=self._transport,
        )

    def ensure_collection(self) -> None:
        """Create the configured collection, one path segment at a time.

        201 means created and 405 means the segment already exists.

        Raises:
            UploadError: When a segment cannot be created.
        """

        base = self._config.base_url.rstrip("/")
        segments = [quote(part, safe="") for part in self._config.remote_root.split("/") if part]
        try:
            with self._client() as client:
                for depth in range(1, len(segments) + 1):
                    url = f"{base}/{'/'.join(segments[:depth])}/"
                    response = client.request("MKCOL", url)
                    if response.status_code in (201, 405) or response.is_success:
                        continue
                    raise UploadError(
                        f"Creating collection {url} rejected with HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
        except httpx.HTTPError as exc:
            raise UploadError(f"Creating collection {self.collection_url} failed: {exc}") from exc

        logger.info("Ensured destination collection url=%s", self.collection_url)

    def _put(self, local: LocalStagedFile, remote_name: str) -> httpx.Response:
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Length": str(local.size_bytes),
            # never replace an existing object
            "If-None-Match": "*",
        }
        try:
            with self._client() as client, Path(local.path).open("rb") as handle:
                return client.put(self.object_url(remote_name), content=handle, headers=headers)
        except (httpx.HTTPError, OSError) as exc:
            raise UploadError(f"Upload of '{remote_name}' failed: {exc}") from exc

    def publish(self, local: LocalStagedFile, remote_name: str) -> None:
        """Upload a staged file under `remote_name`.

        A 409 means a parent collection is missing; the collection is created
        and the upload is sent once more. An existing object with the same name
        is never overwritten (412).

        Args:
            local: Verified staged file.
            remote_name: Destination file name.

        Raises:
            UploadError: On any non-2xx response or transport failure.
        """

        response = self._put(local, remote_name)
        if response.status_code == 409:
            logger.info("Destination collection missing; creating %s", self.collection_url)
            self.ensure_collection()
            response = self._put(local, remote_name)

        if not response.is_success:
            raise UploadError(
                f"Upload of '{remote_name}' rejected with HTTP {response.status_code}",
                status_code=response.status_code,
            )

        logger.info("Published artifact remote_name=%s status=%s", remote_name, response.status_code)

    def list(self) -> List[RemoteEntry]:
        """List backup artifacts currently stored in the collection.

        Returns:
            List[RemoteEntry]: Suffix-matching entries.

        Raises:
            ListingError: On transport failure, unexpected status or invalid body.
        """

        headers = {"Depth": "1", "Content-Type": "application/xml; charset=utf-8"}
        try:
            with self._client() as client:
                response = client.request("PROPFIND", self.collection_url, content=PROPFIND_BODY, headers=headers)
        except httpx.HTTPError as exc:
            raise ListingError(f"Destination listing failed: {exc}") from exc

        if response.status_code not in (200, 207):
            raise ListingError(
                f"Destination listing returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        entries = parse_multistatus(response.content, root_path=self.root_path, suffix=self._suffix)
        logger.info("Destination listing url=%s entries=%s", self.collection_url, len(entries))
        return entries

    def remove(self, remote_name: str) -> None:
        """Delete one entry from the collection.

        A 404 means the entry is already gone and is not an error.

        Raises:
            DeleteError: On any other non-2xx response or transport failure.
        """

        try:
            with self._client() as client:
                response = client.delete(self.object_url(remote_name))
        except httpx.HTTPError as exc:
            raise DeleteError(f"Delete of '{remote_name}' failed: {exc}", name=remote_name) from exc

        if response.status_code == 404:
            logger.info("Entry already absent remote_name=%s", remote_name)
            return

        if not response.is_success:
            raise DeleteError(
                f"Delete of '{remote_name}' rejected with HTTP {response.status_code}",
                name=remote_name,
                status_code=response.status_code,
            )

        logger.info("Deleted entry remote_name=%s", remote_name)
