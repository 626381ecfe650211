"""Tests for the TechWire facade."""
import asyncio
import tempfile

import pytest

from conftest import FakeClock
from techwire.app import IMAGES, SUMMARIES, TechWire
from techwire.cascade import Cascade
from techwire.config import Settings
from techwire.models import AggregatedPost, SummaryResult
from techwire.sources import has_posts, no_posts

SUMMARY = "A fresh look at the Rust compiler's new borrow checker and what it changes."
WEEK = 7 * 24 * 60 * 60


class StubSummarizer:
    name = "stub"

    def __init__(self):
        self.calls = 0

    def attempt(self, request):
        self.calls += 1
        return SummaryResult(summary=SUMMARY, source=self.name, model="stub-1")


class StubSource:
    name = "stub.api"

    def attempt(self, limit):
        return [AggregatedPost(id="1", title="Rust 2.0", url="https://rust.example", score=10)][:limit]


def _techwire(td, clock=None):
    summarizer = StubSummarizer()
    tw = TechWire(
        Settings(cache_dir=td, sources=["stub"]),
        clock=clock or FakeClock(),
        summary_providers=[summarizer],
        image_providers=[],
        source_cascades={"stub": Cascade("stub", [StubSource()], no_posts, validate=has_posts)},
    )
    return tw, summarizer


def test_summary_is_cached_in_its_tier():
    with tempfile.TemporaryDirectory() as td:
        async def go():
            tw, summarizer = _techwire(td)
            first = await tw.get_or_create_summary("Rust 2.0", "https://rust.example")
            second = await tw.get_or_create_summary("Rust 2.0", "https://rust.example")
            return first, second, summarizer.calls, await tw.stats()

        first, second, calls, stats = asyncio.run(go())
        assert first == second == SUMMARY
        assert calls == 1
        assert stats[SUMMARIES].count == 1
        assert stats[IMAGES].count == 0
        assert stats["total"].count == 1


def test_image_without_providers_is_placeholder():
    with tempfile.TemporaryDirectory() as td:
        tw, _ = _techwire(td)
        result = asyncio.run(tw.get_image("Show HN: a thing"))
        assert result.is_placeholder
        assert result.location == "/placeholder.svg"


def test_get_or_create_artifact_calls_producer_once():
    with tempfile.TemporaryDirectory() as td:
        calls = []

        def producer():
            calls.append(1)
            return b"bytes", {"provider": "test"}

        async def go():
            tw, _ = _techwire(td)
            a = await tw.get_or_create_artifact("Some Image", producer)
            b = await tw.get_or_create_artifact("  some   image ", producer)
            return a, b

        a, b = asyncio.run(go())
        assert a == b
        assert a.suffix == ".jpg"
        assert a.read_bytes() == b"bytes"
        assert len(calls) == 1


def test_invalidate_and_clear():
    with tempfile.TemporaryDirectory() as td:
        async def go():
            tw, _ = _techwire(td)
            await tw.get_or_create_artifact("k", lambda: b"img", tier=IMAGES)
            await tw.get_or_create_artifact("k", lambda: b"txt", tier=SUMMARIES)
            await tw.get_or_create_artifact("other", lambda: b"txt", tier=SUMMARIES)
            gone = await tw.invalidate("k")
            again = await tw.invalidate("k")
            cleared = await tw.clear_all(SUMMARIES)
            return gone, again, cleared, await tw.stats()

        gone, again, cleared, stats = asyncio.run(go())
        assert gone is True
        assert again is False
        assert cleared == {SUMMARIES: 1}
        assert stats["total"].count == 0


def test_clean_sweeps_expired_entries():
    clock = FakeClock()
    with tempfile.TemporaryDirectory() as td:
        async def go():
            tw, _ = _techwire(td, clock)
            await tw.get_or_create_artifact("old", lambda: b"x")
            clock.advance(WEEK + 1)
            before = await tw.stats(IMAGES)
            removed = await tw.clean()
            after = await tw.stats(IMAGES)
            return before, removed, after

        before, removed, after = asyncio.run(go())
        assert before[IMAGES].expired_count == 1
        assert removed == {IMAGES: 1, SUMMARIES: 0}
        assert after[IMAGES].count == 0


def test_aggregate_uses_configured_sources():
    with tempfile.TemporaryDirectory() as td:
        tw, _ = _techwire(td)
        posts = asyncio.run(tw.aggregate())
        assert [p.title for p in posts] == ["Rust 2.0"]


def test_unknown_tier_rejected():
    with tempfile.TemporaryDirectory() as td:
        tw, _ = _techwire(td)
        with pytest.raises(ValueError):
            asyncio.run(tw.stats("videos"))
        with pytest.raises(ValueError):
            asyncio.run(tw.invalidate("k", tier="videos"))


def test_provider_report_lists_every_cascade():
    with tempfile.TemporaryDirectory() as td:
        tw, _ = _techwire(td)
        report = tw.provider_report()
        assert list(report) == ["summary", "image", "stub"]
        assert report["summary"]["order"] == ["stub"]
        assert report["image"]["order"] == []
