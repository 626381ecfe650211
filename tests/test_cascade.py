"""Tests for the provider cascade."""
import asyncio
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
import requests

from conftest import FakeClock
from techwire.cascade import FALLBACK, CacheBinding, Cascade, CascadeState, classify
from techwire.errors import ConfigurationError, MalformedResponseError, StorageError, TransientProviderError
from techwire.store import ArtifactStore


class StubProvider:
    """Sync provider returning a fixed value or raising."""

    def __init__(self, name, result=None, error=None, log=None):
        self.name = name
        self.result = result
        self.error = error
        self.log = log if log is not None else []
        self.calls = 0

    def attempt(self, request):
        self.calls += 1
        self.log.append(self.name)
        if self.error is not None:
            raise self.error
        return self.result


class SlowProvider:
    """Async provider that outlives any reasonable timeout."""

    def __init__(self, name, log):
        self.name = name
        self.log = log
        self.calls = 0

    async def attempt(self, request):
        self.calls += 1
        self.log.append(self.name)
        await asyncio.sleep(5)
        return "too late"


def non_empty(payload):
    return bool(payload)


def echo_fallback(request):
    return f"fallback for {request}"


class TestOrdering:
    def test_validation_fail_then_timeout_then_success(self):
        log = []
        p1 = StubProvider("p1", result="", log=log)
        p2 = SlowProvider("p2", log)
        p3 = StubProvider("p3", result="from p3", log=log)

        async def go():
            cascade = Cascade("t", [p1, p2, p3], echo_fallback, validate=non_empty, timeout=0.05)
            return await cascade.run("req")

        outcome = asyncio.run(go())
        assert outcome.payload == "from p3"
        assert outcome.provider == "p3"
        assert log == ["p1", "p2", "p3"]
        assert (p1.calls, p2.calls, p3.calls) == (1, 1, 1)
        assert [a.error_kind for a in outcome.attempts] == ["validation", "timeout", None]
        assert outcome.states == [
            CascadeState.NOT_STARTED,
            CascadeState.TRYING_PROVIDER,
            CascadeState.TRYING_PROVIDER,
            CascadeState.TRYING_PROVIDER,
            CascadeState.SUCCEEDED,
        ]

    def test_first_success_stops_the_cascade(self):
        p1 = StubProvider("p1", result="one")
        p2 = StubProvider("p2", result="two")
        outcome = asyncio.run(Cascade("t", [p1, p2], echo_fallback).run("x"))
        assert outcome.payload == "one"
        assert p2.calls == 0

    def test_skip_bypasses_named_providers(self):
        p1 = StubProvider("p1", result="one")
        p2 = StubProvider("p2", result="two")
        outcome = asyncio.run(Cascade("t", [p1, p2], echo_fallback).run("x", skip=("p1",)))
        assert outcome.payload == "two"
        assert p1.calls == 0


class TestExhaustion:
    def _cascade(self):
        return Cascade(
            "t",
            [
                StubProvider("cfg", error=ConfigurationError("no key")),
                StubProvider("http", error=requests.HTTPError("500 Server Error")),
                StubProvider("boom", error=RuntimeError("bug")),
            ],
            echo_fallback,
        )

    def test_fallback_output_is_deterministic(self):
        first = asyncio.run(self._cascade().run("same request"))
        second = asyncio.run(self._cascade().run("same request"))
        assert first.payload == second.payload == "fallback for same request"
        assert first.provider == FALLBACK
        assert first.used_fallback
        assert first.states[-2:] == [CascadeState.FALLBACK_PRODUCING, CascadeState.SUCCEEDED]

    def test_every_failure_kind_recorded(self):
        cascade = self._cascade()
        outcome = asyncio.run(cascade.run("r"))
        assert [a.error_kind for a in outcome.attempts] == ["configuration", "http", "unexpected"]
        assert cascade.stats.fallbacks == 1
        assert cascade.stats.summary["http"]["failures"] == {"http": 1}

    def test_no_providers_goes_straight_to_fallback(self):
        outcome = asyncio.run(Cascade("t", [], echo_fallback).run("r"))
        assert outcome.payload == "fallback for r"
        assert outcome.attempts == []


@pytest.mark.parametrize("exc,kind", [
    (asyncio.TimeoutError(), "timeout"),
    (requests.Timeout("slow"), "timeout"),
    (requests.HTTPError("404"), "http"),
    (requests.ConnectionError("refused"), "transient"),
    (TransientProviderError("429"), "transient"),
    (ConfigurationError("no key"), "configuration"),
    (MalformedResponseError("bad"), "malformed"),
    (ValueError("Expecting value"), "malformed"),
    (KeyError("x"), "unexpected"),
])
def test_classify(exc, kind):
    assert classify(exc) == kind


class TestCacheBinding:
    def _cascade(self, td, providers):
        store = ArtifactStore(Path(td), ext=".txt", clock=FakeClock())
        return store, Cascade(
            "t", providers, echo_fallback, validate=non_empty,
            cache=CacheBinding(store=store, key=lambda r: r),
        )

    def test_success_is_cached_and_reused(self):
        p1 = StubProvider("p1", result="fresh")
        with tempfile.TemporaryDirectory() as td:
            async def go():
                store, cascade = self._cascade(td, [p1])
                first = await cascade.run("Some Key")
                second = await cascade.run("some key")
                return first, second, cascade

            first, second, cascade = asyncio.run(go())
            assert not first.cached and first.location is not None
            assert second.cached
            assert second.payload == "fresh"
            assert second.provider == "p1"
            assert second.attempts == []
            assert p1.calls == 1
            assert cascade.stats.cache_hits == 1

    def test_fallback_is_not_cached(self):
        with tempfile.TemporaryDirectory() as td:
            async def go():
                store, cascade = self._cascade(td, [StubProvider("p1", result="")])
                await cascade.run("k")
                return await store.index.load()

            assert asyncio.run(go()) == {}

    def test_storage_failure_returns_fresh_payload(self):
        with tempfile.TemporaryDirectory() as td:
            async def go():
                store, cascade = self._cascade(td, [StubProvider("p1", result="fresh")])
                with patch.object(ArtifactStore, "put", side_effect=StorageError("disk full")):
                    return await cascade.run("k")

            outcome = asyncio.run(go())
            assert outcome.payload == "fresh"
            assert outcome.location is None
            assert outcome.provider == "p1"
