"""Dev.to providers: the articles API, then the site-wide RSS feed."""
import logging
from typing import List

import feedparser

from techwire.errors import MalformedResponseError
from techwire.models import AggregatedPost
from techwire.schemas import DevToArticles, parse
from techwire.sources.base import SourceProvider
from techwire.utils import parse_timestamp

logger = logging.getLogger(__name__)

DEVTO_API = "https://dev.to/api/articles"
DEVTO_FEED = "https://dev.to/feed"


class DevToAPIProvider(SourceProvider):
    name = "devto.api"
    source = "devto"

    def __init__(self, tag: str = "", top_days: int = 7, **kwargs):
        super().__init__(**kwargs)
        self.tag = tag
        self.top_days = top_days

    def attempt(self, limit: int) -> List[AggregatedPost]:
        params = {"per_page": min(limit, 1000), "top": self.top_days}
        if self.tag:
            params["tag"] = self.tag
        articles = parse(
            DevToArticles,
            self.fetch_json(DEVTO_API, params=params, headers={"Accept": "application/json"}),
            self.name,
        )
        posts = [
            AggregatedPost(
                id=str(a.id),
                title=a.title,
                url=a.url,
                score=a.positive_reactions_count,
                author=a.user.username,
                created_at=parse_timestamp(a.published_at),
                comment_count=a.comments_count,
                source_tag=f"devto:{a.tag_list[0].lower() if a.tag_list else 'general'}",
            )
            for a in articles[:limit]
        ]
        logger.info(f"[DevTo] API returned {len(posts)} articles")
        return posts


class DevToRSSProvider(SourceProvider):
    """Latest articles from the RSS feed (no reaction counts)."""

    name = "devto.rss"
    source = "devto"

    def attempt(self, limit: int) -> List[AggregatedPost]:
        feed = feedparser.parse(self.fetch_url(DEVTO_FEED))
        if feed.bozo and not feed.entries:
            raise MalformedResponseError(f"unparseable RSS: {feed.get('bozo_exception')}", provider=self.name)
        posts = []
        for entry in feed.entries[:limit]:
            title = (entry.get("title") or "").strip()
            link = entry.get("link", "")
            if not title or not link:
                continue
            tags = entry.get("tags") or []
            tag = tags[0].get("term", "").lower() if tags else ""
            posts.append(AggregatedPost(
                id=entry.get("id", ""),
                title=title,
                url=link,
                score=0,
                author=entry.get("author", ""),
                created_at=parse_timestamp(entry.get("published")),
                comment_count=0,
                source_tag=f"devto:{tag or 'general'}",
            ))
        logger.info(f"[DevTo] RSS returned {len(posts)} articles")
        return posts
