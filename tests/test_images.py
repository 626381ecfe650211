"""Tests for image search and the image service."""
import asyncio
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import FakeClock, FakeSession, fake_response
from techwire.errors import ConfigurationError, StorageError, TransientProviderError, ValidationError
from techwire.images import (
    UNSPLASH_SEARCH_URL,
    ImageService,
    UnsplashProvider,
    extract_subject,
)
from techwire.store import ArtifactStore

PHOTO_URL = "https://images.unsplash.com/photo-1?w=400"
SEARCH_HIT = {"results": [{"id": "abc", "urls": {"small": PHOTO_URL, "regular": PHOTO_URL}}]}


def _session(search=None, image=b"\xff\xd8jpeg bytes"):
    return FakeSession({
        UNSPLASH_SEARCH_URL: search or fake_response(SEARCH_HIT),
        "https://images.unsplash.com/": fake_response(content=image),
    })


def _service(td, session, key="u-key", **kwargs):
    store = ArtifactStore(Path(td), ext=".jpg", clock=FakeClock(), name="images")
    return ImageService(store, unsplash_access_key=key, session=session, **kwargs)


@pytest.mark.parametrize("title,subject", [
    ("Show HN: A tiny Lisp in Rust", "A tiny Lisp in Rust"),
    ("Ask HN: How do you back up your laptop?", "How do you back up your laptop?"),
    ("The Mythical Man-Month (1975)", "The Mythical Man-Month"),
    ("  Plain title  ", "Plain title"),
])
def test_extract_subject(title, subject):
    assert extract_subject(title) == subject


class TestUnsplashProvider:
    def test_requires_key(self):
        with pytest.raises(ConfigurationError):
            UnsplashProvider(api_key="", session=_session()).attempt("rust")

    @pytest.mark.parametrize("status", [403, 429])
    def test_rate_limit_is_transient(self, status):
        session = _session(search=fake_response({}, status=status))
        with pytest.raises(TransientProviderError):
            UnsplashProvider(api_key="k", session=session).attempt("rust")

    def test_no_results_is_validation_failure(self):
        session = _session(search=fake_response({"results": []}))
        with pytest.raises(ValidationError):
            UnsplashProvider(api_key="k", session=session).attempt("rust")

    def test_downloads_first_result(self):
        session = _session()
        payload = UnsplashProvider(api_key="k", session=session).attempt("rust")
        assert payload.data == b"\xff\xd8jpeg bytes"
        assert payload.original_url == PHOTO_URL
        assert payload.photo_id == "abc"
        assert session.calls == [UNSPLASH_SEARCH_URL, PHOTO_URL]


class TestImageService:
    def test_downloads_once_then_serves_cache(self):
        session = _session()
        with tempfile.TemporaryDirectory() as td:
            async def go():
                service = _service(td, session)
                first = await service.get_image("Show HN: A tiny Lisp")
                second = await service.get_image("a TINY lisp")
                return first, second

            first, second = asyncio.run(go())
            assert first.source == "unsplash" and not first.cached
            assert Path(first.location).read_bytes() == b"\xff\xd8jpeg bytes"
            assert Path(first.location).parent == Path(td)
            assert second.cached
            assert second.location == first.location
            assert second.original_url == PHOTO_URL
            assert len(session.calls) == 2

    def test_placeholder_without_key(self):
        session = _session()
        with tempfile.TemporaryDirectory() as td:
            result = asyncio.run(_service(td, session, key="", placeholder="/img/none.svg").get_image("Rust"))
            assert result.location == "/img/none.svg"
            assert result.is_placeholder
            assert session.calls == []

    def test_placeholder_not_cached(self):
        with tempfile.TemporaryDirectory() as td:
            async def go():
                service = _service(td, _session(search=fake_response({"results": []})))
                await service.get_image("Rust")
                return await service.store.index.load()

            assert asyncio.run(go()) == {}

    def test_storage_failure_returns_remote_url(self):
        with tempfile.TemporaryDirectory() as td:
            async def go():
                service = _service(td, _session())
                with patch.object(ArtifactStore, "put", side_effect=StorageError("disk full")):
                    return await service.get_image("Rust")

            result = asyncio.run(go())
            assert result.location == PHOTO_URL
            assert result.source == "unsplash"

    def test_url_prefix(self):
        with tempfile.TemporaryDirectory() as td:
            result = asyncio.run(_service(td, _session(), url_prefix="/cache/").get_image("Rust"))
            assert result.location.startswith("/cache/")
            assert result.location.endswith(".jpg")

    def test_empty_title_gets_placeholder(self):
        with tempfile.TemporaryDirectory() as td:
            result = asyncio.run(_service(td, _session()).get_image(""))
            assert result.is_placeholder
