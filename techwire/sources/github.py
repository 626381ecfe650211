"""GitHub providers.

Primary: the repository search API (recently created, well-starred repos).
Secondary: scraping github.com/trending, which needs no API quota.
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from bs4 import BeautifulSoup

from techwire.errors import MalformedResponseError
from techwire.models import AggregatedPost
from techwire.schemas import GitHubSearch, parse
from techwire.sources.base import SourceProvider
from techwire.utils import parse_timestamp

logger = logging.getLogger(__name__)

GITHUB_SEARCH_URL = "https://api.github.com/search/repositories"
GITHUB_TRENDING_URL = "https://github.com/trending"


def _tag(language: Optional[str]) -> str:
    return f"github:{(language or 'general').lower()}"


class GitHubSearchProvider(SourceProvider):
    name = "github.search"
    source = "github"

    def __init__(
        self,
        language: str = "",
        min_stars: int = 100,
        window_days: int = 30,
        token: str = "",
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.language = language
        self.min_stars = min_stars
        self.window_days = window_days
        self.token = token
        self.now = now

    def _query(self) -> str:
        since = (self.now() - timedelta(days=self.window_days)).strftime("%Y-%m-%d")
        parts = [f"stars:>{self.min_stars}", f"created:>{since}"]
        if self.language:
            parts.insert(0, f"language:{self.language}")
        return " ".join(parts)

    def attempt(self, limit: int) -> List[AggregatedPost]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        data = self.fetch_json(
            GITHUB_SEARCH_URL,
            params={"q": self._query(), "sort": "stars", "order": "desc", "per_page": min(limit, 100)},
            headers=headers,
        )
        repos = parse(GitHubSearch, data, self.name).items
        posts = [
            AggregatedPost(
                id=str(repo.id),
                title=f"{repo.name} - {repo.description or 'No description'}",
                url=repo.html_url,
                score=repo.stargazers_count,
                author=repo.owner.login,
                created_at=parse_timestamp(repo.created_at),
                comment_count=0,
                source_tag=_tag(repo.language),
            )
            for repo in repos[:limit]
        ]
        logger.info(f"[GitHub] Search returned {len(posts)} repos")
        return posts


class GitHubTrendingProvider(SourceProvider):
    """Scrape the trending page; no creation date is available there."""

    name = "github.trending"
    source = "github"

    def __init__(self, since: str = "daily", **kwargs):
        super().__init__(**kwargs)
        self.since = since

    @staticmethod
    def _parse_number(text: str) -> int:
        """Parse '1,234' or '1.2k' style numbers."""
        text = text.strip().replace(",", "")
        m = re.match(r"([\d.]+)\s*k", text, re.IGNORECASE)
        if m:
            return int(float(m.group(1)) * 1000)
        try:
            return int(float(text))
        except (ValueError, TypeError):
            return 0

    def parse_page(self, html: str, limit: int) -> List[AggregatedPost]:
        soup = BeautifulSoup(html, "html.parser")
        rows = soup.select("article.Box-row")
        if not rows:
            raise MalformedResponseError("no repository rows on trending page", provider=self.name)

        posts = []
        for row in rows[:limit]:
            h2 = row.select_one("h2 a")
            if not h2:
                continue
            repo_path = "".join(h2.get("href", "").split()).strip("/")
            if not repo_path:
                continue
            owner, _, repo_name = repo_path.partition("/")
            desc_el = row.select_one("p")
            description = desc_el.get_text(strip=True) if desc_el else ""
            lang_el = row.select_one("span[itemprop='programmingLanguage']")
            language = lang_el.get_text(strip=True) if lang_el else ""

            stars = 0
            for link in row.select("a.Link--muted"):
                if "/stargazers" in link.get("href", ""):
                    stars = self._parse_number(link.get_text(strip=True))
                    break

            posts.append(AggregatedPost(
                id=repo_path,
                title=f"{repo_name or repo_path} - {description or 'No description'}",
                url=f"https://github.com/{repo_path}",
                score=stars,
                author=owner,
                created_at=None,
                comment_count=0,
                source_tag=_tag(language),
            ))
        return posts

    def attempt(self, limit: int) -> List[AggregatedPost]:
        html = self.fetch_url(GITHUB_TRENDING_URL, params={"since": self.since})
        posts = self.parse_page(html, limit)
        logger.info(f"[GitHub] Trending page returned {len(posts)} repos")
        return posts
