"""Article summaries: Gemini, then OpenAI, then a keyword template.

Summaries are cached in the summary tier under the article's identity (URL
when known, otherwise the title). Template summaries are not cached, so a
later call can still pick up an AI summary once a provider recovers.
"""
import logging
import re
from typing import Collection, Dict, List, Optional, Sequence

import requests

from techwire.cascade import CacheBinding, Cascade, CascadeOutcome, DEFAULT_TIMEOUT, FALLBACK
from techwire.errors import ConfigurationError
from techwire.health import ProviderStats
from techwire.models import CacheEntry, SummaryRequest, SummaryResult
from techwire.schemas import GeminiResponse, OpenAIResponse, parse
from techwire.sources.base import BaseProvider
from techwire.store import ArtifactStore

logger = logging.getLogger(__name__)

MIN_SUMMARY_LENGTH = 20
MAX_CONTENT_CHARS = 2000

GEMINI_MODEL = "gemini-1.5-flash"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OPENAI_MODEL = "gpt-3.5-turbo"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"

SYSTEM_PROMPT = "You are a tech journalist who writes concise, engaging summaries of technology articles."

# Values accepted by ``force``: which providers to bypass
FORCE_SKIPS: Dict[str, Sequence[str]] = {
    "gemini": (),
    "openai": ("gemini",),
    "fallback": ("gemini", "openai"),
}


def build_prompt(request: SummaryRequest) -> str:
    lines = [
        "Summarize this technology article in 2-3 sentences for developers.",
        f'Title: "{request.title}"',
    ]
    if request.url:
        lines.append(f"URL: {request.url}")
    if request.content:
        lines.append(f"Content: {request.content[:MAX_CONTENT_CHARS]}")
    return "\n".join(lines)


class GeminiProvider(BaseProvider):
    name = "gemini"

    def __init__(self, api_key: str = "", model: str = GEMINI_MODEL, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model

    def attempt(self, request: SummaryRequest) -> SummaryResult:
        if not self.api_key:
            raise ConfigurationError("GEMINI_API_KEY not configured", provider=self.name)
        data = self.request(
            "POST",
            GEMINI_URL.format(model=self.model),
            params={"key": self.api_key},
            json={"contents": [{"parts": [{"text": build_prompt(request)}]}]},
        ).json()
        text = parse(GeminiResponse, data, self.name).text
        return SummaryResult(summary=text, source=self.name, model=self.model)


class OpenAIProvider(BaseProvider):
    name = "openai"

    def __init__(self, api_key: str = "", model: str = OPENAI_MODEL, max_tokens: int = 150, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens

    def attempt(self, request: SummaryRequest) -> SummaryResult:
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured", provider=self.name)
        data = self.request(
            "POST",
            OPENAI_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(request)},
                ],
                "max_tokens": self.max_tokens,
                "temperature": 0.7,
            },
        ).json()
        text = parse(OpenAIResponse, data, self.name).text
        return SummaryResult(summary=text, source=self.name, model=self.model)


# ---------------------------------------------------------------------------
# Template fallback
# ---------------------------------------------------------------------------

STOPWORDS = frozenset([
    "with", "from", "that", "this", "will", "been", "have", "they", "more",
    "were", "said", "each", "than", "them", "many", "some", "time", "very",
    "when", "much", "into",
])

_HN_PREFIXES = {
    "show hn": 'Show HN: the author presents "{subject}" to the Hacker News community for feedback. '
               "The thread covers how it was built and what it is for.",
    "ask hn": 'Ask HN: the community is asked "{subject}". '
              "Replies collect practical experience and recommendations from other developers.",
    "tell hn": 'Tell HN: a community member shares "{subject}". '
               "The discussion adds context and related experiences.",
}
_HN_RE = re.compile(r"^\s*(show hn|ask hn|tell hn)\s*:\s*(.+)$", re.IGNORECASE)


def extract_keywords(title: str, limit: int = 5) -> List[str]:
    words = re.sub(r"[^\w\s]", " ", title.lower()).split()
    return [w for w in words if len(w) > 3 and w not in STOPWORDS][:limit]


def _join(words: List[str], default: str, sep: str = " and ") -> str:
    return sep.join(words) or default


def template_summary(title: str) -> str:
    """Deterministic summary built from the title alone."""
    title = " ".join((title or "").split())
    m = _HN_RE.match(title)
    if m:
        return _HN_PREFIXES[m.group(1).lower()].format(subject=m.group(2).strip())

    kw = extract_keywords(title)
    first = kw[0] if kw else (title or "this topic")
    templates = [
        f"This article discusses {_join(kw[:2], title)}, covering key aspects of "
        f"{_join(kw[2:4], 'the wider ecosystem')}. The piece explores how these technologies "
        f"impact modern development practices.",
        f"A comprehensive look at {first} technology, examining {_join(kw[1:3], 'its main ideas')} "
        f"in detail. This analysis provides insights into current trends and future implications.",
        f"An in-depth exploration of {_join(kw[:2], title)}, highlighting important developments in "
        f"{_join(kw[2:], 'the field', ', ')}. Essential reading for understanding these technological advances.",
        f"This piece examines {first} and its relationship to {_join(kw[1:3], 'modern software')}. "
        f"The article provides practical insights and technical analysis.",
    ]
    return templates[len(title) % len(templates)]


def fallback_result(request: SummaryRequest) -> SummaryResult:
    return SummaryResult(summary=template_summary(request.title), source=FALLBACK)


def is_usable(result: SummaryResult) -> bool:
    return len((result.summary or "").strip()) >= MIN_SUMMARY_LENGTH


def _decode(data: bytes, entry: CacheEntry) -> SummaryResult:
    return SummaryResult(
        summary=data.decode("utf-8"),
        source=entry.source_meta.get("provider", "cache"),
        model=entry.source_meta.get("model", ""),
        cached=True,
    )


def _meta(request: SummaryRequest, result: SummaryResult, provider: str) -> dict:
    return {"provider": provider, "model": result.model, "title": request.title, "url": request.url}


class SummaryService:
    """Summary cascade bound to the summary cache tier."""

    def __init__(
        self,
        store: ArtifactStore,
        providers: Optional[Sequence[BaseProvider]] = None,
        gemini_api_key: str = "",
        openai_api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        stats: Optional[ProviderStats] = None,
    ):
        self.store = store
        if providers is None:
            providers = [
                GeminiProvider(api_key=gemini_api_key, session=session),
                OpenAIProvider(api_key=openai_api_key, session=session),
            ]
        self.cascade = Cascade(
            "summary",
            providers,
            fallback=fallback_result,
            validate=is_usable,
            timeout=timeout,
            cache=CacheBinding(
                store=store,
                key=lambda r: r.identity,
                encode=lambda result: result.summary.strip().encode("utf-8"),
                decode=_decode,
                meta=_meta,
            ),
            stats=stats,
        )

    @property
    def providers(self) -> List[BaseProvider]:
        return self.cascade.providers

    async def resolve(self, request: SummaryRequest, skip: Collection[str] = ()) -> CascadeOutcome:
        if not request.title or not request.title.strip():
            raise ValueError("title is required")
        return await self.cascade.run(request, skip=skip)

    async def summarize(
        self, title: str, url: str = "", content: str = "", force: Optional[str] = None
    ) -> SummaryResult:
        """Summary for one article. ``force`` starts the cascade at a given provider."""
        skip: Sequence[str] = ()
        if force:
            if force not in FORCE_SKIPS:
                raise ValueError(f"force must be one of {sorted(FORCE_SKIPS)}")
            skip = FORCE_SKIPS[force]
        outcome = await self.resolve(SummaryRequest(title=title, url=url, content=content), skip=skip)
        result: SummaryResult = outcome.payload
        if not outcome.cached:
            result.summary = result.summary.strip()
        return result

    async def get_or_create_summary(self, title: str, url: str = "", content: str = "") -> str:
        result = await self.summarize(title, url, content)
        return result.summary

    async def stats(self) -> dict:
        """Cache counters split by the provider that produced each summary."""
        cache = await self.store.stats()
        entries = await self.store.index.load()
        by_provider: Dict[str, int] = {}
        for entry in entries.values():
            name = entry.source_meta.get("provider", "unknown")
            by_provider[name] = by_provider.get(name, 0) + 1
        return {
            "cache": cache.to_dict(),
            "by_provider": by_provider,
            "configured": {
                p.name: bool(getattr(p, "api_key", True)) for p in self.providers
            },
            "strategy": " -> ".join(self.cascade.provider_names + [FALLBACK]),
            "providers": self.cascade.stats.to_dict(),
        }
