"""Tests for the expiry policy."""
from techwire.expiry import DEFAULT_TTL, ExpiryPolicy
from techwire.models import CacheEntry

NOW = 1_700_000_000.0


def _entry(key, created_at):
    return CacheEntry(key=key, filename=f"{key}.txt", created_at=created_at)


class TestIsExpired:
    def test_default_ttl_is_seven_days(self):
        assert DEFAULT_TTL == 7 * 24 * 3600

    def test_one_second_past_ttl_is_expired(self):
        policy = ExpiryPolicy()
        assert policy.is_expired(_entry("old", NOW - DEFAULT_TTL - 1), NOW)

    def test_fresh_entry_is_live(self):
        policy = ExpiryPolicy()
        assert not policy.is_expired(_entry("new", NOW), NOW)

    def test_exactly_ttl_is_still_live(self):
        policy = ExpiryPolicy(ttl=60)
        assert not policy.is_expired(_entry("edge", NOW - 60), NOW)

    def test_uses_injected_clock(self):
        policy = ExpiryPolicy(ttl=60, clock=lambda: NOW + 61)
        assert policy.is_expired(_entry("x", NOW))


def test_sweep_removes_only_expired():
    policy = ExpiryPolicy(ttl=100)
    entries = {
        "a": _entry("a", NOW - 500),
        "b": _entry("b", NOW - 10),
        "c": _entry("c", NOW - 101),
    }
    removed = policy.sweep(entries, NOW)
    assert sorted(e.key for e in removed) == ["a", "c"]
    assert list(entries) == ["b"]


def test_sweep_is_idempotent():
    policy = ExpiryPolicy(ttl=100)
    entries = {"a": _entry("a", NOW - 500)}
    policy.sweep(entries, NOW)
    assert policy.sweep(entries, NOW) == []
