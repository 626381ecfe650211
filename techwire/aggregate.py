"""Fan-out over news sources, then merge, dedupe, rank and truncate.

Each source is its own cascade, so a source whose providers all fail still
yields an (empty) list. A source that raises or overruns ``source_timeout``
contributes nothing; the aggregation itself only fails when every source
raised.
"""
import asyncio
import functools
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from techwire.cascade import Cascade
from techwire.dedup import assign_ids, deduplicate
from techwire.errors import AggregationError
from techwire.models import AggregatedPost

logger = logging.getLogger(__name__)

DEFAULT_CLOSENESS = 5
DEFAULT_SOURCE_TIMEOUT = 30.0
DEFAULT_LIMIT = 20


@dataclass
class SourceStat:
    success: bool
    count: int = 0
    provider: str = ""
    error: Optional[str] = None
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "count": self.count,
            "provider": self.provider,
            "error": self.error,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


@dataclass
class AggregationReport:
    posts: List[AggregatedPost]
    source_stats: Dict[str, SourceStat] = field(default_factory=dict)
    successful_sources: int = 0

    @property
    def total_sources(self) -> int:
        return len(self.source_stats)

    def to_dict(self) -> dict:
        return {
            "posts": [p.to_dict() for p in self.posts],
            "sourceStats": {k: v.to_dict() for k, v in self.source_stats.items()},
            "meta": {
                "totalPosts": len(self.posts),
                "totalSources": self.total_sources,
                "successfulSources": self.successful_sources,
            },
        }


def compare_posts(a: AggregatedPost, b: AggregatedPost, closeness: float = DEFAULT_CLOSENESS) -> float:
    """Negative when ``a`` ranks first.

    Higher score wins unless the scores are within ``closeness`` of each
    other, in which case the newer post wins.
    """
    diff = b.score - a.score
    if abs(diff) < closeness:
        return b.created_ts - a.created_ts
    return diff


def rank(posts: List[AggregatedPost], closeness: float = DEFAULT_CLOSENESS) -> List[AggregatedPost]:
    cmp = functools.partial(compare_posts, closeness=closeness)
    return sorted(posts, key=functools.cmp_to_key(cmp))


class Aggregator:
    """Orchestrates one cascade per source."""

    def __init__(
        self,
        cascades: Dict[str, Cascade],
        source_timeout: float = DEFAULT_SOURCE_TIMEOUT,
        closeness: float = DEFAULT_CLOSENESS,
    ):
        self.cascades = cascades
        self.source_timeout = source_timeout
        self.closeness = closeness

    @property
    def source_names(self) -> List[str]:
        return list(self.cascades)

    async def _fetch(self, source: str, limit: int):
        t0 = time.monotonic()
        outcome = await asyncio.wait_for(self.cascades[source].run(limit), timeout=self.source_timeout)
        return outcome, (time.monotonic() - t0) * 1000

    async def aggregate_with_stats(
        self,
        sources: Optional[Sequence[str]] = None,
        limit: int = DEFAULT_LIMIT,
        per_source_limit: Optional[int] = None,
    ) -> AggregationReport:
        """Merged, deduplicated, ranked posts plus per-source stats.

        ``per_source_limit`` defaults to ``limit``: truncation happens only
        after the global sort.
        """
        requested = list(dict.fromkeys(sources or self.source_names))
        per_source = per_source_limit or limit
        stats: Dict[str, SourceStat] = {}

        known = [s for s in requested if s in self.cascades]
        for source in requested:
            if source not in self.cascades:
                logger.warning(f"[Aggregate] Unknown source: {source}")
                stats[source] = SourceStat(success=False, error=f"Unknown source: {source}")

        logger.info(f"[Aggregate] Fetching {len(known)} source(s), limit {limit} ({per_source} per source)")
        results = await asyncio.gather(
            *(self._fetch(s, per_source) for s in known), return_exceptions=True
        )

        merged: List[Tuple[AggregatedPost, int]] = []
        raised = 0
        for source, result in zip(known, results):
            if isinstance(result, asyncio.TimeoutError):
                logger.error(f"[Aggregate] {source} timed out after {self.source_timeout}s")
                stats[source] = SourceStat(success=False, error=f"timed out after {self.source_timeout}s")
                continue
            if isinstance(result, BaseException):
                raised += 1
                logger.error(f"[Aggregate] {source} failed: {result!r}")
                stats[source] = SourceStat(success=False, error=str(result) or type(result).__name__)
                continue
            outcome, elapsed_ms = result
            posts = list(outcome.payload or [])[:per_source]
            stats[source] = SourceStat(
                success=not outcome.used_fallback,
                count=len(posts),
                provider=outcome.provider,
                error="all providers failed" if outcome.used_fallback else None,
                elapsed_ms=elapsed_ms,
            )
            logger.info(f"[Aggregate] {source} returned {len(posts)} posts via {outcome.provider} in {elapsed_ms:.0f}ms")
            merged.extend((post, i) for i, post in enumerate(posts))

        if known and raised == len(known):
            raise AggregationError(f"every source failed: {', '.join(known)}")

        unique = deduplicate([p for p, _ in merged])
        position = {id(p): i for p, i in merged}
        assign_ids(unique, [position[id(p)] for p in unique])
        ranked = rank(unique, self.closeness)[:limit]

        successful = sum(1 for s in stats.values() if s.success)
        logger.info(
            f"[Aggregate] {len(merged)} raw, {len(unique)} unique, returning {len(ranked)} "
            f"from {successful}/{len(requested)} sources"
        )
        return AggregationReport(posts=ranked, source_stats=stats, successful_sources=successful)

    async def aggregate(
        self,
        sources: Optional[Sequence[str]] = None,
        limit: int = DEFAULT_LIMIT,
        per_source_limit: Optional[int] = None,
    ) -> List[AggregatedPost]:
        report = await self.aggregate_with_stats(sources, limit, per_source_limit)
        return report.posts
