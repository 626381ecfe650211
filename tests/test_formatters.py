"""Tests for output formatters."""
import json
from datetime import datetime, timezone

from techwire.formatters import ConsoleFormatter, JSONFormatter
from techwire.models import AggregatedPost, CacheStats


def _posts():
    return [
        AggregatedPost(
            id="1", title="Rust 2.0 released", url="https://rust.example/2", score=321, author="alice",
            created_at=datetime(2024, 5, 1, 12, tzinfo=timezone.utc), comment_count=88,
            source_tag="hackernews", discussion_url="https://news.ycombinator.com/item?id=1",
        ),
        AggregatedPost(id="2", title="Undated repo", url="https://github.com/a/b", source_tag="github:rust"),
    ]


class TestConsole:
    def test_posts(self):
        out = ConsoleFormatter().posts(_posts())
        assert "1. Rust 2.0 released" in out
        assert "2024-05-01 12:00" in out
        assert "discuss: https://news.ycombinator.com/item?id=1" in out
        assert "unknown" in out

    def test_posts_not_echoed(self, capsys):
        ConsoleFormatter().posts(_posts())
        assert capsys.readouterr().out == ""

    def test_cache_stats(self):
        out = ConsoleFormatter().cache_stats({"images": CacheStats(count=3, total_approx_size=2048, expired_count=1)})
        assert "images" in out
        assert "2.0 KB" in out

    def test_providers(self):
        report = {"summary": {"order": ["gemini", "openai"], "configured": {"gemini": True, "openai": False}}}
        out = ConsoleFormatter().providers(report)
        assert "gemini -> openai -> fallback" in out
        assert "openai: no" in out


class TestJSON:
    def test_datetimes_serialized(self):
        data = {"when": datetime(2024, 5, 1, tzinfo=timezone.utc), "posts": [p.to_dict() for p in _posts()]}
        parsed = json.loads(JSONFormatter().format(data))
        assert parsed["when"].startswith("2024-05-01")
        assert parsed["posts"][1]["created_at"] is None
