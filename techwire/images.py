"""Representative images for stories.

The subject is pulled out of the story title, searched on Unsplash, and the
first hit is downloaded into the image tier. When no provider can deliver,
the configured placeholder is returned instead; placeholders are never
cached.
"""
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import requests

from techwire.cascade import CacheBinding, Cascade, DEFAULT_TIMEOUT, FALLBACK
from techwire.errors import ConfigurationError, TransientProviderError, ValidationError
from techwire.health import ProviderStats
from techwire.models import CacheEntry
from techwire.schemas import UnsplashSearch, parse
from techwire.sources.base import BaseProvider
from techwire.store import ArtifactStore

logger = logging.getLogger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"
DEFAULT_PLACEHOLDER = "/placeholder.svg"
RATE_LIMIT_STATUSES = (403, 429)

_SUBJECT_PATTERNS = [
    re.compile(r"Ask HN: (.+)"),
    re.compile(r"Show HN: (.+)"),
    re.compile(r"(.+) \(\d{4}\)"),
]


def extract_subject(title: str) -> str:
    """Search subject for a story title.

    >>> extract_subject("Show HN: A tiny Lisp")
    'A tiny Lisp'
    >>> extract_subject("The Mythical Man-Month (1975)")
    'The Mythical Man-Month'
    """
    for pattern in _SUBJECT_PATTERNS:
        m = pattern.search(title)
        if m and m.group(1).strip():
            return m.group(1).strip()
    return title.strip()


@dataclass
class ImagePayload:
    data: bytes
    original_url: str = ""
    photo_id: str = ""


@dataclass
class ImageResult:
    location: str
    source: str
    cached: bool = False
    original_url: str = ""

    @property
    def is_placeholder(self) -> bool:
        return self.source == FALLBACK

    def to_dict(self) -> dict:
        return {
            "imageUrl": self.location,
            "source": self.source,
            "cached": self.cached,
            "originalUrl": self.original_url,
        }


class UnsplashProvider(BaseProvider):
    """Search Unsplash and download the first result's ``small`` rendition."""

    name = "unsplash"

    def __init__(self, api_key: str = "", **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    def _get(self, url: str, **kwargs) -> requests.Response:
        try:
            return self.request("GET", url, **kwargs)
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status in RATE_LIMIT_STATUSES:
                raise TransientProviderError(f"Unsplash rate limited ({status})", provider=self.name) from e
            raise

    def attempt(self, query: str) -> ImagePayload:
        if not self.api_key:
            raise ConfigurationError("UNSPLASH_ACCESS_KEY not configured", provider=self.name)
        resp = self._get(
            UNSPLASH_SEARCH_URL,
            params={"query": query, "per_page": 1},
            headers={"Authorization": f"Client-ID {self.api_key}"},
        )
        search = parse(UnsplashSearch, resp.json(), self.name)
        photo = search.results[0] if search.results else None
        image_url = photo.urls.small if photo else None
        if not image_url:
            raise ValidationError(f"no image found for {query!r}", provider=self.name)
        data = self._get(image_url).content
        if not data:
            raise ValidationError(f"empty image body from {image_url}", provider=self.name)
        logger.debug(f"[Images] Downloaded {len(data)} bytes for {query!r}")
        return ImagePayload(data=data, original_url=image_url, photo_id=photo.id)


def has_image(payload: ImagePayload) -> bool:
    return bool(payload.data)


class ImageService:
    """Image cascade bound to the image cache tier."""

    def __init__(
        self,
        store: ArtifactStore,
        providers: Optional[Sequence[BaseProvider]] = None,
        unsplash_access_key: str = "",
        placeholder: str = DEFAULT_PLACEHOLDER,
        url_prefix: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        stats: Optional[ProviderStats] = None,
    ):
        self.store = store
        self.placeholder = placeholder
        self.url_prefix = url_prefix.rstrip("/")
        if providers is None:
            providers = [UnsplashProvider(api_key=unsplash_access_key, session=session)]
        self.cascade = Cascade(
            "image",
            providers,
            fallback=lambda query: ImagePayload(data=b"", original_url=self.placeholder),
            validate=has_image,
            timeout=timeout,
            cache=CacheBinding(
                store=store,
                key=lambda query: query,
                encode=lambda payload: payload.data,
                decode=self._decode,
                meta=lambda query, payload, provider: {
                    "provider": provider,
                    "query": query,
                    "original_url": payload.original_url,
                    "photo_id": payload.photo_id,
                },
            ),
            stats=stats,
        )

    @staticmethod
    def _decode(data: bytes, entry: CacheEntry) -> ImagePayload:
        return ImagePayload(
            data=data,
            original_url=entry.source_meta.get("original_url", ""),
            photo_id=entry.source_meta.get("photo_id", ""),
        )

    def _location(self, path: Path) -> str:
        if self.url_prefix:
            return f"{self.url_prefix}/{path.name}"
        return str(path)

    async def search(self, query: str) -> ImageResult:
        """Image for a raw search query."""
        query = (query or "").strip()
        if not query:
            return ImageResult(location=self.placeholder, source=FALLBACK)
        outcome = await self.cascade.run(query)
        payload: ImagePayload = outcome.payload
        if outcome.used_fallback:
            logger.info(f"[Images] Using placeholder for {query!r}")
            return ImageResult(location=self.placeholder, source=FALLBACK)
        if outcome.location is None:
            # Could not persist; the remote image is still usable
            return ImageResult(location=payload.original_url, source=outcome.provider, original_url=payload.original_url)
        return ImageResult(
            location=self._location(outcome.location),
            source=outcome.provider,
            cached=outcome.cached,
            original_url=payload.original_url,
        )

    async def get_image(self, title: str) -> ImageResult:
        """Image for a story title (subject extracted first)."""
        return await self.search(extract_subject(title or ""))
