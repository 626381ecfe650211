"""Reddit providers.

Primary: the public ``hot.json`` listing for a multi-subreddit, tried on
www.reddit.com and then on the old.reddit.com mirror within the same
attempt. Secondary: the subreddit RSS feed, which carries no score.
"""
import logging
from typing import List, Optional, Sequence

import feedparser
import requests
from bs4 import BeautifulSoup

from techwire.errors import MalformedResponseError
from techwire.models import AggregatedPost
from techwire.schemas import RedditListing, RedditPostData, parse
from techwire.sources.base import SourceProvider
from techwire.utils import parse_timestamp

logger = logging.getLogger(__name__)

DEFAULT_SUBREDDITS = [
    "programming",
    "javascript",
    "webdev",
    "technology",
    "MachineLearning",
    "artificial",
    "coding",
    "compsci",
]

MIRROR_HOSTS = ("www.reddit.com", "old.reddit.com")
MIN_TITLE_LENGTH = 10
_GONE = ("[deleted]", "[removed]")


def _keep(post: RedditPostData) -> bool:
    return (
        post.title not in _GONE
        and post.author not in _GONE
        and post.score >= 0
        and len(post.title) > MIN_TITLE_LENGTH
        and not post.stickied
    )


class RedditJSONProvider(SourceProvider):
    name = "reddit.json"
    source = "reddit"

    def __init__(self, subreddits: Optional[Sequence[str]] = None, hosts: Sequence[str] = MIRROR_HOSTS, **kwargs):
        super().__init__(**kwargs)
        self.subreddits = list(subreddits or DEFAULT_SUBREDDITS)
        self.hosts = list(hosts)

    def _build_url(self, host: str, limit: int) -> str:
        subs = "+".join(self.subreddits)
        return f"https://{host}/r/{subs}/hot.json?limit={limit}&raw_json=1"

    def _to_post(self, post: RedditPostData) -> AggregatedPost:
        discussion = f"https://www.reddit.com{post.permalink}" if post.permalink else ""
        url = post.url if post.url and not post.is_self else discussion
        return AggregatedPost(
            id=post.id,
            title=post.title,
            url=url,
            score=post.score,
            author=post.author,
            created_at=parse_timestamp(post.created_utc),
            comment_count=post.num_comments,
            source_tag=f"reddit:{post.subreddit.lower()}" if post.subreddit else self.source,
            discussion_url=discussion,
        )

    def attempt(self, limit: int) -> List[AggregatedPost]:
        last_error: Optional[Exception] = None
        for host in self.hosts:
            try:
                listing = parse(RedditListing, self.fetch_json(self._build_url(host, limit)), self.name)
            except (requests.RequestException, ValueError) as e:
                logger.info(f"[Reddit] {host} failed, trying next mirror: {e}")
                last_error = e
                continue
            kept = [c.data for c in listing.data.children if _keep(c.data)]
            kept.sort(key=lambda p: p.score, reverse=True)
            posts = [self._to_post(p) for p in kept[:limit]]
            logger.info(f"[Reddit] {host}: {len(posts)} posts from {len(self.subreddits)} subreddit(s)")
            return posts
        raise last_error or MalformedResponseError("no Reddit host configured", provider=self.name)


def _external_link(html: str) -> str:
    """Pull the submitted link out of an RSS entry body (the ``[link]`` anchor)."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for a in soup.find_all("a"):
        if a.get_text(strip=True) == "[link]":
            return a.get("href", "")
    return ""


class RedditRSSProvider(SourceProvider):
    name = "reddit.rss"
    source = "reddit"

    def __init__(self, subreddits: Optional[Sequence[str]] = None, **kwargs):
        super().__init__(**kwargs)
        self.subreddits = list(subreddits or DEFAULT_SUBREDDITS)

    def attempt(self, limit: int) -> List[AggregatedPost]:
        subs = "+".join(self.subreddits)
        text = self.fetch_url(f"https://www.reddit.com/r/{subs}/hot/.rss?limit={limit}")
        feed = feedparser.parse(text)
        if feed.bozo and not feed.entries:
            raise MalformedResponseError(f"unparseable RSS: {feed.get('bozo_exception')}", provider=self.name)

        posts = []
        for entry in feed.entries:
            title = (entry.get("title") or "").strip()
            permalink = entry.get("link", "")
            if len(title) <= MIN_TITLE_LENGTH or not permalink:
                continue
            body = entry.get("content", [{}])[0].get("value", "") if entry.get("content") else ""
            link = _external_link(body) or permalink
            category = entry.get("tags", [{}])[0].get("term", "") if entry.get("tags") else ""
            author = (entry.get("author") or "").replace("/u/", "")
            posts.append(AggregatedPost(
                id=(entry.get("id") or "").replace("t3_", ""),
                title=title,
                url=link,
                score=0,
                author=author,
                created_at=parse_timestamp(entry.get("published") or entry.get("updated")),
                comment_count=0,
                source_tag=f"reddit:{category.lower()}" if category else self.source,
                discussion_url=permalink,
            ))
            if len(posts) >= limit:
                break
        logger.info(f"[Reddit] RSS: {len(posts)} posts")
        return posts
