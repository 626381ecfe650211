"""The ``TechWire`` facade: the interface route handlers, UI loaders and the
CLI call into.

Usage:
    tw = TechWire(load_settings())
    posts = await tw.aggregate(["hackernews", "lobsters"], limit=10)
    summary = await tw.get_or_create_summary(posts[0].title, posts[0].url)
    image = await tw.get_image(posts[0].title)
"""
import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import requests

from techwire.aggregate import AggregationReport, Aggregator
from techwire.cascade import Cascade
from techwire.config import Settings, load_settings
from techwire.images import ImageResult, ImageService
from techwire.models import AggregatedPost, CacheStats, SummaryResult
from techwire.sources import build_source_cascades
from techwire.sources.base import BaseProvider, DomainRateLimiter, build_session
from techwire.store import ArtifactStore
from techwire.summarize import SummaryService

logger = logging.getLogger(__name__)

IMAGES = "images"
SUMMARIES = "summaries"
TIERS = (IMAGES, SUMMARIES)


class TechWire:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
        session: Optional[requests.Session] = None,
        summary_providers: Optional[Sequence[BaseProvider]] = None,
        image_providers: Optional[Sequence[BaseProvider]] = None,
        source_cascades: Optional[Dict[str, Cascade]] = None,
    ):
        self.settings = settings or load_settings()
        s = self.settings
        self.session = session or build_session()

        self.stores: Dict[str, ArtifactStore] = {
            IMAGES: ArtifactStore(s.image_dir, ext=".jpg", ttl=s.cache_ttl, clock=clock, name=IMAGES),
            SUMMARIES: ArtifactStore(s.summary_dir, ext=".txt", ttl=s.cache_ttl, clock=clock, name=SUMMARIES),
        }
        self.summaries = SummaryService(
            self.stores[SUMMARIES],
            providers=summary_providers,
            gemini_api_key=s.gemini_api_key,
            openai_api_key=s.openai_api_key,
            timeout=s.provider_timeout,
            session=self.session,
        )
        self.images = ImageService(
            self.stores[IMAGES],
            providers=image_providers,
            unsplash_access_key=s.unsplash_access_key,
            placeholder=s.placeholder_image,
            url_prefix=s.image_url_prefix,
            timeout=s.provider_timeout,
            session=self.session,
        )
        if source_cascades is None:
            source_cascades = build_source_cascades(
                options={
                    "reddit": {"subreddits": s.subreddits},
                    "github": {"token": s.github_token, "language": s.github_language},
                },
                session=self.session,
                rate_limiter=DomainRateLimiter(min_interval=s.rate_limit_interval),
                user_agent=s.user_agent or None,
                timeout=s.provider_timeout,
            )
        self.aggregator = Aggregator(
            source_cascades, source_timeout=s.source_timeout, closeness=s.closeness
        )

    def _store(self, tier: str) -> ArtifactStore:
        try:
            return self.stores[tier]
        except KeyError:
            raise ValueError(f"Unknown cache tier {tier!r}; expected one of {', '.join(TIERS)}") from None

    def _tiers(self, tier: Optional[str]) -> List[str]:
        return [tier] if tier else list(TIERS)

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    async def get_or_create_artifact(self, key: str, producer, tier: str = IMAGES) -> Path:
        """Cached artifact location for ``key``, calling ``producer`` on a miss."""
        return await self._store(tier).get_or_create_artifact(key, producer)

    async def get_or_create_summary(self, title: str, url: str = "", content: str = "") -> str:
        return await self.summaries.get_or_create_summary(title, url, content)

    async def summarize(
        self, title: str, url: str = "", content: str = "", force: Optional[str] = None
    ) -> SummaryResult:
        return await self.summaries.summarize(title, url, content, force=force)

    async def get_image(self, title: str) -> ImageResult:
        return await self.images.get_image(title)

    async def aggregate(
        self,
        sources: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        per_source_limit: Optional[int] = None,
    ) -> List[AggregatedPost]:
        report = await self.aggregate_with_stats(sources, limit, per_source_limit)
        return report.posts

    async def aggregate_with_stats(
        self,
        sources: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
        per_source_limit: Optional[int] = None,
    ) -> AggregationReport:
        return await self.aggregator.aggregate_with_stats(
            sources or self.settings.sources,
            limit or self.settings.limit,
            per_source_limit,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def invalidate(self, key: str, tier: Optional[str] = None) -> bool:
        """Drop ``key`` from one tier, or from every tier when ``tier`` is None."""
        removed = False
        for name in self._tiers(tier):
            if await self._store(name).invalidate(key):
                removed = True
        return removed

    async def clear_all(self, tier: Optional[str] = None) -> Dict[str, int]:
        return {name: await self._store(name).clear() for name in self._tiers(tier)}

    async def clean(self, tier: Optional[str] = None) -> Dict[str, int]:
        return {name: await self._store(name).clean() for name in self._tiers(tier)}

    async def stats(self, tier: Optional[str] = None) -> Dict[str, CacheStats]:
        """Per-tier stats plus a ``total`` row."""
        result: Dict[str, CacheStats] = {}
        for name in self._tiers(tier):
            result[name] = await self._store(name).stats()
        result["total"] = CacheStats(
            count=sum(s.count for s in result.values()),
            total_approx_size=sum(s.total_approx_size for s in result.values()),
            expired_count=sum(s.expired_count for s in result.values()),
        )
        return result

    def provider_report(self) -> Dict[str, dict]:
        """Provider outcome counters for every cascade, keyed by cascade name."""
        cascades = [self.summaries.cascade, self.images.cascade, *self.aggregator.cascades.values()]
        report = {}
        for c in cascades:
            configured = {p.name: bool(p.api_key) for p in c.providers if hasattr(p, "api_key")}
            report[c.name] = {"order": c.provider_names, "configured": configured, **c.stats.to_dict()}
        return report
