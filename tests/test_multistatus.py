from datetime import datetime, timezone

import pytest

from backend.services.relay.destination.multistatus import (
    find_all,
    find_first,
    name_from_href,
    parse_http_date,
    parse_multistatus,
    parse_status_code,
)
from backend.services.relay.errors import ListingError
from backend.services.relay.retention import select_retention

from fakes import multistatus_document, response_block


ROOT = "/backups/"


def _listing(prefix: str, namespace: str = "DAV:") -> str:
    return multistatus_document(
        [
            response_block("/backups/", prefix=prefix, collection=True),
            response_block("/backups/b1.zpaq", prefix=prefix, last_modified="Sat, 01 Mar 2025 02:00:00 GMT", length=10),
            response_block("/backups/b2.zpaq", prefix=prefix, last_modified="Sun, 02 Mar 2025 02:00:00 GMT", length=20),
        ],
        prefix=prefix,
        namespace=namespace,
    )


@pytest.mark.parametrize("prefix", ["d", "D", "ns1", "lp1", ""])
def test_prefix_variants_parse_identically(prefix):
    entries = parse_multistatus(_listing(prefix), root_path=ROOT, suffix=".zpaq")

    assert [(e.name, e.size_bytes) for e in entries] == [("b1.zpaq", 10), ("b2.zpaq", 20)]
    assert entries[1].last_modified == datetime(2025, 3, 2, 2, 0, tzinfo=timezone.utc)
    assert entries == parse_multistatus(_listing("d"), root_path=ROOT, suffix=".zpaq")


def test_undeclared_prefix_is_tolerated():
    document = (
        "<D:multistatus>"
        + response_block("/backups/b1.zpaq", prefix="D")
        + "</D:multistatus>"
    )

    assert [e.name for e in parse_multistatus(document, root_path=ROOT, suffix=".zpaq")] == ["b1.zpaq"]


def test_collection_root_is_excluded():
    document = multistatus_document([response_block("/backups", collection=True)])

    assert parse_multistatus(document, root_path=ROOT, suffix="") == []


def test_non_200_propstat_is_dropped():
    document = multistatus_document(
        [
            response_block("/backups/ok.zpaq"),
            response_block("/backups/missing.zpaq", status="HTTP/1.1 404 Not Found"),
        ]
    )

    assert [e.name for e in parse_multistatus(document, root_path=ROOT, suffix=".zpaq")] == ["ok.zpaq"]


def test_mixed_propstats_keep_the_successful_properties():
    missing = (
        "<d:propstat><d:prop><d:getetag/></d:prop>"
        "<d:status>HTTP/1.1 404 Not Found</d:status></d:propstat>"
    )
    document = multistatus_document([response_block("/backups/mixed.zpaq", length=7, extra_propstats=missing)])

    entries = parse_multistatus(document, root_path=ROOT, suffix=".zpaq")

    assert len(entries) == 1
    assert entries[0].size_bytes == 7


def test_hrefs_are_url_decoded_and_may_be_absolute():
    document = multistatus_document(
        [
            response_block("/backups/site%20backup.zpaq"),
            response_block("https://dav.example.test/backups/abs.zpaq"),
        ]
    )

    names = [e.name for e in parse_multistatus(document, root_path=ROOT, suffix=".zpaq")]

    assert names == ["site backup.zpaq", "abs.zpaq"]


def test_entries_without_usable_timestamp_are_dropped():
    document = multistatus_document(
        [
            response_block("/backups/none.zpaq", last_modified=None),
            response_block("/backups/junk.zpaq", last_modified="yesterday-ish"),
            response_block("/backups/iso.zpaq", last_modified="2025-03-01T02:00:00Z"),
        ]
    )

    entries = parse_multistatus(document, root_path=ROOT, suffix=".zpaq")

    assert [e.name for e in entries] == ["iso.zpaq"]
    assert entries[0].last_modified.tzinfo is not None


def test_suffix_filter_and_collection_flag():
    document = multistatus_document(
        [
            response_block("/backups/keep.zpaq"),
            response_block("/backups/readme.txt"),
            response_block("/backups/nested.zpaq/", collection=True),
        ]
    )

    entries = parse_multistatus(document, root_path=ROOT, suffix=".zpaq")

    assert [(e.name, e.is_collection) for e in entries] == [("keep.zpaq", False), ("nested.zpaq", True)]


def test_invalid_xml_raises_listing_error():
    with pytest.raises(ListingError):
        parse_multistatus("<d:multistatus><d:response>", root_path=ROOT, suffix=".zpaq")

    with pytest.raises(ListingError):
        parse_multistatus(b"not xml at all", root_path=ROOT, suffix=".zpaq")


def test_document_without_multistatus_raises_listing_error():
    with pytest.raises(ListingError):
        parse_multistatus('<d:error xmlns:d="DAV:"/>', root_path=ROOT, suffix=".zpaq")


def test_find_helpers_match_on_local_name():
    tree = {"a:root": {"b:item": [{"c:name": "x"}, {"C:NAME": "y"}], "@xmlns:a": "DAV:"}}

    assert find_first(tree, "item") == {"c:name": "x"}
    assert find_all(tree, "name") == ["x", "y"]
    assert find_first(tree, "absent", "default") == "default"


def test_small_parsers():
    assert parse_status_code("HTTP/1.1 207 Multi-Status") == 207
    assert parse_status_code("garbage") is None
    assert parse_http_date("Sat, 01 Mar 2025 02:00:00 GMT") == datetime(2025, 3, 1, 2, 0, tzinfo=timezone.utc)
    assert parse_http_date("") is None
    assert name_from_href("/backups/dir/") == "dir"
    assert name_from_href("/") == ""


def test_differently_cased_suffix_is_not_a_retention_candidate():
    document = multistatus_document(
        [
            response_block("/backups/manual-keep.ZPAQ", last_modified="Mon, 01 Jan 2024 00:00:00 GMT"),
            response_block("/backups/a.zpaq", last_modified="Sat, 01 Mar 2025 02:00:00 GMT"),
            response_block("/backups/b.zpaq", last_modified="Sun, 02 Mar 2025 02:00:00 GMT"),
            response_block("/backups/c.zpaq", last_modified="Mon, 03 Mar 2025 02:00:00 GMT"),
        ]
    )

    entries = parse_multistatus(document, root_path=ROOT, suffix=".zpaq")

    assert [e.name for e in entries] == ["a.zpaq", "b.zpaq", "c.zpaq"]
    assert select_retention(entries, 3).delete == ()
