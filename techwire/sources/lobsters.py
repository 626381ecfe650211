"""Lobsters providers: ``hottest.json``, then the RSS feed."""
import logging
import re
from typing import List

import feedparser

from techwire.errors import MalformedResponseError
from techwire.models import AggregatedPost
from techwire.schemas import LobstersStories, parse
from techwire.sources.base import SourceProvider
from techwire.utils import parse_timestamp

logger = logging.getLogger(__name__)

LOBSTERS_HOTTEST = "https://lobste.rs/hottest.json"
LOBSTERS_RSS = "https://lobste.rs/rss"

_POINTS_RE = re.compile(r"(\d+)\s*points?", re.I)
_COMMENTS_RE = re.compile(r"(\d+)\s*comments?", re.I)


class LobstersJSONProvider(SourceProvider):
    name = "lobsters.json"
    source = "lobsters"

    def attempt(self, limit: int) -> List[AggregatedPost]:
        stories = parse(LobstersStories, self.fetch_json(LOBSTERS_HOTTEST), self.name)
        posts = []
        for story in stories[:limit]:
            url = story.url or story.comments_url
            if not story.title or not url:
                continue
            posts.append(AggregatedPost(
                id=story.short_id,
                title=story.title.strip(),
                url=url,
                score=story.score,
                author=story.submitter_user,
                created_at=parse_timestamp(story.created_at),
                comment_count=story.comment_count,
                source_tag=self.source,
                discussion_url=story.comments_url,
            ))
        logger.info(f"[Lobsters] hottest.json returned {len(posts)} stories")
        return posts


def _author(raw: str) -> str:
    # "alice@users.lobste.rs (alice)" -> "alice"
    m = re.search(r"\(([^)]+)\)", raw or "")
    if m:
        return m.group(1).strip()
    return (raw or "").split("@")[0].strip()


class LobstersRSSProvider(SourceProvider):
    """RSS carries no score; points and comments are read from the description when present."""

    name = "lobsters.rss"
    source = "lobsters"

    def attempt(self, limit: int) -> List[AggregatedPost]:
        feed = feedparser.parse(self.fetch_url(LOBSTERS_RSS))
        if feed.bozo and not feed.entries:
            raise MalformedResponseError(f"unparseable RSS: {feed.get('bozo_exception')}", provider=self.name)
        posts = []
        for entry in feed.entries[:limit]:
            title = (entry.get("title") or "").strip()
            link = (entry.get("link") or "").strip()
            if not title or not link:
                continue
            description = entry.get("summary", "")
            points = _POINTS_RE.search(description)
            comments = _COMMENTS_RE.search(description)
            discussion = entry.get("comments", "")
            guid = entry.get("id") or discussion or link
            posts.append(AggregatedPost(
                id=guid.rstrip("/").rsplit("/", 1)[-1],
                title=title,
                url=link,
                score=int(points.group(1)) if points else 1,
                author=_author(entry.get("author", "")),
                created_at=parse_timestamp(entry.get("published")),
                comment_count=int(comments.group(1)) if comments else 0,
                source_tag=self.source,
                discussion_url=discussion,
            ))
        logger.info(f"[Lobsters] RSS returned {len(posts)} stories")
        return posts
