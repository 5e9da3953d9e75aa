"""Tolerant parser for WebDAV multi-status (PROPFIND) listings.

Servers disagree on namespace prefixes for the same DAV elements: some emit
`d:response`, others `D:response`, `ns1:response`, `lp1:getlastmodified` or no
prefix at all. The document is therefore parsed into a plain nested mapping and
every field is located by its local element name through `find_first` /
`find_all`, ignoring the prefix.

A parser that walks fixed paths returns zero entries against some backends,
which would make the retention step delete the wrong things.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
import logging
import re
from typing import Any, Iterator, List, Optional, Union
from urllib.parse import unquote, urlsplit
from xml.parsers.expat import ExpatError

import xmltodict

from backend.services.relay.errors import ListingError
from backend.services.relay.models import RemoteEntry
from backend.services.relay.source.selection import matches_suffix


logger = logging.getLogger(__name__)

_STATUS_CODE_RE = re.compile(r"\b(\d{3})\b")


def local_name(key: str) -> str:
    """Return an element name without its namespace prefix, lower-cased."""

    return key.rsplit(":", 1)[-1].lower()


def _children(node: Any) -> Iterator[tuple[str, Any]]:
    """Yield (element name, value) pairs below a parsed node.

    Repeated elements are parsed as lists; each item is yielded under the
    element name. Attributes and text keys are skipped.
    """

    if not isinstance(node, dict):
        return
    for key, value in node.items():
        if key.startswith("@") or key.startswith("#"):
            continue
        if isinstance(value, list):
            for item in value:
                yield key, item
        else:
            yield key, value


def _iter_matches(node: Any, name: str) -> Iterator[Any]:
    """Breadth-first search for elements by local name.

    Matching nodes are not searched further, so nested elements with the same
    name are not reported twice.
    """

    wanted = name.lower()
    queue = deque([node])
    while queue:
        current = queue.popleft()
        for key, value in _children(current):
            if local_name(key) == wanted:
                yield value
            else:
                queue.append(value)


_MISSING = object()


def find_first(node: Any, name: str, default: Any = None) -> Any:
    """Return the shallowest descendant whose local name matches `name`.

    Args:
        node: Parsed node (mapping, list or scalar).
        name: Local element name, compared case-insensitively.
        default: Value returned when nothing matches.

    Returns:
        Any: The matching element's value. Empty elements are parsed as None,
        so use `has_descendant` to test presence.
    """

    return next(_iter_matches(node, name), default)


def find_all(node: Any, name: str) -> List[Any]:
    return list(_iter_matches(node, name))


def has_descendant(node: Any, name: str) -> bool:
    return find_first(node, name, _MISSING) is not _MISSING


def text_of(value: Any) -> Optional[str]:
    """Return the text content of a parsed element."""

    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, dict):
        return text_of(value.get("#text"))
    if isinstance(value, list) and value:
        return text_of(value[0])
    return None


def parse_status_code(status_line: Optional[str]) -> Optional[int]:
    """Extract the status code from a line like `HTTP/1.1 200 OK`."""

    if not status_line:
        return None
    match = _STATUS_CODE_RE.search(status_line)
    if not match:
        return None
    return int(match.group(1))


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse a `getlastmodified` value.

    RFC 1123 dates are the norm; ISO 8601 is accepted from servers that emit it.

    Returns:
        Optional[datetime]: Timezone-aware datetime, or None when unparseable.
    """

    if not value:
        return None

    parsed: Optional[datetime] = None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def name_from_href(href: str) -> str:
    """Return the decoded final non-empty path segment of an href."""

    path = urlsplit(href).path
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        return ""
    return unquote(segments[-1])


def _normalize_path(path: str) -> str:
    return "/" + unquote(urlsplit(path).path).strip("/")


def _successful_props(response: Any) -> List[Any]:
    """Return the `prop` blocks of all propstat blocks reporting 200."""

    props: List[Any] = []
    for propstat in find_all(response, "propstat"):
        code = parse_status_code(text_of(find_first(propstat, "status")))
        if code != 200:
            continue
        if has_descendant(propstat, "prop"):
            props.append(find_first(propstat, "prop"))
    return props


def _first_prop(props: List[Any], name: str) -> Any:
    for prop in props:
        value = find_first(prop, name, _MISSING)
        if value is not _MISSING:
            return value
    return _MISSING


def parse_response(response: Any, *, root_path: str) -> Optional[RemoteEntry]:
    """Convert one `response` node into a RemoteEntry.

    Returns:
        Optional[RemoteEntry]: None when the response must be dropped (no
        successful propstat, the listing root itself, or no usable timestamp).
    """

    href = text_of(find_first(response, "href"))
    if not href:
        return None

    name = name_from_href(href)
    if not name or _normalize_path(href) == _normalize_path(root_path):
        return None

    props = _successful_props(response)
    if not props:
        logger.debug("Dropping listing entry without successful propstat href=%s", href)
        return None

    resourcetype = _first_prop(props, "resourcetype")
    is_collection = resourcetype is not _MISSING and has_descendant(resourcetype, "collection")

    raw_modified = _first_prop(props, "getlastmodified")
    modified = parse_http_date(text_of(raw_modified) if raw_modified is not _MISSING else None)
    if modified is None:
        logger.warning("Dropping listing entry with missing or invalid getlastmodified href=%s", href)
        return None

    size: Optional[int] = None
    raw_length = _first_prop(props, "getcontentlength")
    if raw_length is not _MISSING:
        try:
            size = int(text_of(raw_length) or "")
        except ValueError:
            size = None

    return RemoteEntry(
        name=name,
        href=href,
        last_modified=modified,
        is_collection=is_collection,
        size_bytes=size,
    )


def parse_multistatus(document: Union[str, bytes], *, root_path: str, suffix: str) -> List[RemoteEntry]:
    """Parse a PROPFIND multi-status document into retention candidates.

    Args:
        document: Raw XML body.
        root_path: Path of the listed collection; its own entry is dropped.
        suffix: Artifact suffix; only matching names are returned.

    Returns:
        List[RemoteEntry]: Entries in document order.

    Raises:
        ListingError: When the document is not XML or has no multistatus node.
    """

    try:
        tree = xmltodict.parse(document)
    except (ExpatError, ValueError) as exc:
        raise ListingError(f"Destination listing is not valid XML: {exc}") from exc

    multistatus = find_first(tree, "multistatus", _MISSING)
    if multistatus is _MISSING:
        raise ListingError("Destination listing has no multistatus element")

    entries: List[RemoteEntry] = []
    for response in find_all(multistatus, "response"):
        entry = parse_response(response, root_path=root_path)
        if entry is None:
            continue
        if not matches_suffix(entry.name, suffix):
            continue
        entries.append(entry)

    return entries
