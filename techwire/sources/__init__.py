"""Source registry for techwire.

Each news source is a cascade of post-list providers in fixed priority
order, ending in an empty list. Adding a source only requires a provider
module here and one entry in ``SOURCES``.
"""
from __future__ import annotations

import importlib
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

import requests

from techwire.cascade import DEFAULT_TIMEOUT, Cascade
from techwire.models import AggregatedPost
from techwire.sources.base import DomainRateLimiter, SourceProvider, build_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceEntry:
    """Metadata for a registered source."""
    key: str                          # name used by aggregate(), e.g. "reddit"
    display_name: str
    provider_paths: Tuple[str, ...]   # dotted class paths, highest priority first

    def load_classes(self) -> List[Type[SourceProvider]]:
        """Lazily import the provider classes."""
        classes = []
        for path in self.provider_paths:
            module_path, class_name = path.rsplit(".", 1)
            classes.append(getattr(importlib.import_module(module_path), class_name))
        return classes


# Order here is the default merge order.
SOURCES: List[SourceEntry] = [
    SourceEntry("hackernews", "Hacker News", (
        "techwire.sources.hackernews.HackerNewsFirebaseProvider",
        "techwire.sources.hackernews.HackerNewsAlgoliaProvider",
    )),
    SourceEntry("github", "GitHub", (
        "techwire.sources.github.GitHubSearchProvider",
        "techwire.sources.github.GitHubTrendingProvider",
    )),
    SourceEntry("devto", "Dev.to", (
        "techwire.sources.devto.DevToAPIProvider",
        "techwire.sources.devto.DevToRSSProvider",
    )),
    SourceEntry("lobsters", "Lobsters", (
        "techwire.sources.lobsters.LobstersJSONProvider",
        "techwire.sources.lobsters.LobstersRSSProvider",
    )),
    SourceEntry("reddit", "Reddit", (
        "techwire.sources.reddit.RedditJSONProvider",
        "techwire.sources.reddit.RedditRSSProvider",
    )),
]

SOURCE_KEYS: List[str] = [s.key for s in SOURCES]
_BY_KEY: Dict[str, SourceEntry] = {s.key: s for s in SOURCES}


def get_entry(key: str) -> Optional[SourceEntry]:
    return _BY_KEY.get(key)


def has_posts(posts: Any) -> bool:
    return isinstance(posts, list) and len(posts) > 0


def no_posts(limit: int) -> List[AggregatedPost]:
    return []


def _accepted(cls: type, options: Dict[str, Any]) -> Dict[str, Any]:
    """The subset of ``options`` that ``cls.__init__`` takes by name."""
    params = inspect.signature(cls.__init__).parameters
    return {k: v for k, v in options.items() if k in params}


def build_source_cascades(
    keys: Optional[Sequence[str]] = None,
    options: Optional[Dict[str, Dict[str, Any]]] = None,
    session: Optional[requests.Session] = None,
    rate_limiter: Optional[DomainRateLimiter] = None,
    user_agent: Optional[str] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Cascade]:
    """One cascade per source key; unknown keys are skipped with a warning.

    ``options`` maps a source key to constructor arguments; each provider
    receives only the arguments its constructor names (e.g. ``subreddits``
    for both Reddit providers, ``token`` only for GitHub search).
    """
    session = session or build_session()
    options = options or {}
    cascades: Dict[str, Cascade] = {}
    for key in keys or SOURCE_KEYS:
        entry = get_entry(key)
        if entry is None:
            logger.warning(f"[Sources] Unknown source: {key}")
            continue
        source_opts = options.get(key, {})
        providers = [
            cls(
                session=session,
                rate_limiter=rate_limiter,
                user_agent=user_agent,
                **_accepted(cls, source_opts),
            )
            for cls in entry.load_classes()
        ]
        cascades[key] = Cascade(key, providers, fallback=no_posts, validate=has_posts, timeout=timeout)
    return cascades


__all__ = [
    "SOURCES",
    "SOURCE_KEYS",
    "SourceEntry",
    "get_entry",
    "has_posts",
    "no_posts",
    "build_source_cascades",
]
