"""Hacker News providers.

Primary: the Firebase API (story ids, then one request per item).
Secondary: the Algolia search API, which returns the front page in a
single request.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from techwire.errors import MalformedResponseError
from techwire.models import AggregatedPost
from techwire.schemas import AlgoliaResponse, HNItem, HNStoryIds, parse
from techwire.sources.base import SourceProvider
from techwire.utils import parse_timestamp

logger = logging.getLogger(__name__)

HN_BASE = "https://hacker-news.firebaseio.com/v0"
HN_ITEM = f"{HN_BASE}/item/{{}}.json"
HN_DISCUSSION = "https://news.ycombinator.com/item?id={}"

FEED_ENDPOINTS = {
    "top": f"{HN_BASE}/topstories.json",
    "best": f"{HN_BASE}/beststories.json",
    "new": f"{HN_BASE}/newstories.json",
    "show": f"{HN_BASE}/showstories.json",
    "ask": f"{HN_BASE}/askstories.json",
}

ALGOLIA_FRONT_PAGE = "https://hn.algolia.com/api/v1/search"


class HackerNewsFirebaseProvider(SourceProvider):
    """Top stories via the official Firebase API."""

    name = "hackernews.firebase"
    source = "hackernews"

    def __init__(self, feed: str = "top", max_workers: int = 10, **kwargs):
        super().__init__(**kwargs)
        if feed not in FEED_ENDPOINTS:
            raise ValueError(f"Unknown Hacker News feed: {feed}")
        self.feed = feed
        self.max_workers = max_workers

    def _fetch_item(self, story_id: int) -> Optional[AggregatedPost]:
        try:
            # Item fan-out is bounded by max_workers, not the per-domain limiter
            item = parse(HNItem, self.fetch_json(HN_ITEM.format(story_id), throttle=False), self.name)
        except Exception as e:
            logger.debug(f"[HN] Failed item {story_id}: {e}")
            return None
        if item.type not in ("story", "job") or item.dead or item.deleted or not item.title:
            return None
        discussion = HN_DISCUSSION.format(item.id)
        return AggregatedPost(
            id=str(item.id),
            title=item.title,
            url=item.url or discussion,
            score=item.score,
            author=item.by,
            created_at=parse_timestamp(item.time),
            comment_count=item.descendants,
            source_tag=self.source,
            discussion_url=discussion,
        )

    def attempt(self, limit: int) -> List[AggregatedPost]:
        ids = parse(HNStoryIds, self.fetch_json(FEED_ENDPOINTS[self.feed]), self.name)[:limit]
        if not ids:
            raise MalformedResponseError("empty story list", provider=self.name)

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            # map() keeps the upstream ranking order
            results = list(pool.map(self._fetch_item, ids))
        posts = [p for p in results if p is not None]
        logger.info(f"[HN] Fetched {len(posts)}/{len(ids)} {self.feed} stories")
        return posts


class HackerNewsAlgoliaProvider(SourceProvider):
    """Front page via hn.algolia.com (single request)."""

    name = "hackernews.algolia"
    source = "hackernews"

    def attempt(self, limit: int) -> List[AggregatedPost]:
        data = self.fetch_json(ALGOLIA_FRONT_PAGE, params={"tags": "front_page", "hitsPerPage": limit})
        response = parse(AlgoliaResponse, data, self.name)
        posts = []
        for hit in response.hits[:limit]:
            if not hit.title:
                continue
            discussion = HN_DISCUSSION.format(hit.objectID)
            posts.append(AggregatedPost(
                id=hit.objectID,
                title=hit.title,
                url=hit.url or discussion,
                score=hit.points or 0,
                author=hit.author,
                created_at=parse_timestamp(hit.created_at_i),
                comment_count=hit.num_comments or 0,
                source_tag=self.source,
                discussion_url=discussion,
            ))
        logger.info(f"[HN] Algolia returned {len(posts)} stories")
        return posts
