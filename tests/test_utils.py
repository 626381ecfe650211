"""Tests for techwire.utils and URL canonicalization."""
from datetime import datetime, timezone

import pytest

from techwire.models import AggregatedPost, CacheEntry, canonical_url
from techwire.utils import (
    artifact_name,
    fnv1a_32,
    human_size,
    normalize_key,
    parse_since_seconds,
    parse_timestamp,
)


class TestNormalizeKey:
    @pytest.mark.parametrize("raw", ["Rust 2.0", "  rust 2.0  ", "RUST   2.0", "rust\t2.0\n"])
    def test_equivalent_inputs_share_a_key(self, raw):
        assert normalize_key(raw) == "rust 2.0"

    def test_idempotent(self):
        once = normalize_key("  Show HN:  My   Project ")
        assert normalize_key(once) == once

    def test_empty(self):
        assert normalize_key("   ") == ""
        assert normalize_key(None) == ""


def test_artifact_name_is_md5_plus_extension():
    name = artifact_name("rust", ".jpg")
    assert name.endswith(".jpg")
    assert len(name) == 32 + 4
    assert artifact_name("rust", ".jpg") == name
    assert artifact_name("go", ".jpg") != name


class TestFnv1a:
    def test_reference_vectors(self):
        assert fnv1a_32("") == 0x811C9DC5
        assert fnv1a_32("a") == 0xE40C292C
        assert fnv1a_32("foobar") == 0xBF9CF968

    def test_fits_32_bits(self):
        assert 0 <= fnv1a_32("x" * 1000) <= 0xFFFFFFFF


class TestParseTimestamp:
    def test_epoch(self):
        assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_iso_string(self):
        dt = parse_timestamp("2024-05-01T12:00:00Z")
        assert dt == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_naive_string_becomes_utc(self):
        assert parse_timestamp("2024-05-01 12:00").tzinfo is not None

    def test_rfc822(self):
        dt = parse_timestamp("Wed, 01 May 2024 12:00:00 +0000")
        assert dt.year == 2024 and dt.hour == 12

    @pytest.mark.parametrize("value", [None, "", "not a date"])
    def test_unparseable(self, value):
        assert parse_timestamp(value) is None


def test_parse_since_seconds():
    assert parse_since_seconds("2h") == 7200
    assert parse_since_seconds("7d") == 7 * 86400
    with pytest.raises(ValueError):
        parse_since_seconds("soon")


def test_human_size():
    assert human_size(0) == "0 Bytes"
    assert human_size(2048) == "2.0 KB"


class TestCanonicalUrl:
    def test_strips_www_scheme_slash_fragment(self):
        assert canonical_url("http://www.Example.com/a/#top") == "https://example.com/a"

    def test_drops_tracking_params_keeps_others(self):
        url = "https://example.com/a?utm_source=hn&id=3&fbclid=x"
        assert canonical_url(url) == "https://example.com/a?id=3"

    def test_param_order_irrelevant(self):
        assert canonical_url("https://x.com/?b=2&a=1") == canonical_url("https://x.com/?a=1&b=2")

    def test_non_url_passthrough(self):
        assert canonical_url("not a url") == "not a url"

    def test_post_falls_back_to_discussion_url(self):
        post = AggregatedPost(id="1", title="t", url="", discussion_url="https://news.ycombinator.com/item?id=1")
        assert post.canonical_url == "https://news.ycombinator.com/item?id=1"


def test_created_ts_unknown_is_zero():
    assert AggregatedPost(id="1", title="t", url="u").created_ts == 0


def test_cache_entry_round_trip():
    entry = CacheEntry(key="k", filename="f.txt", created_at=12.5, source_meta={"provider": "gemini"})
    assert CacheEntry.from_dict("k", entry.to_dict()) == entry
